"""Commit lookup for a finished or starting build (core domain)."""

from __future__ import annotations

import logging
from typing import Optional

from core.config import is_blank
from core.errors import TemplateExpansionError
from core.models import BuildContext
from core.ports import TemplateExpanderPort

LOGGER = logging.getLogger(__name__)


def resolve_commit_sha1s(
    context: BuildContext,
    commit_sha1_template: Optional[str],
    expander: TemplateExpanderPort,
) -> set[str]:
    """Return every commit id the build status applies to.

    An explicit template wins over the recorded build data. Failure to expand
    the template is logged and yields no commits rather than an error.
    """

    if not is_blank(commit_sha1_template):
        try:
            expanded = expander.expand(commit_sha1_template, context)
        except TemplateExpansionError as exc:
            LOGGER.error("Unable to expand commit SHA value: %s", exc)
            return set()
        return {sha1.strip() for sha1 in expanded if not is_blank(sha1)}

    sha1s: set[str] = set()
    # Multi-SCM builds record one BuildData per checkout.
    for build_data in context.build_data:
        if build_data.last_built_sha1 is None:
            continue
        if build_data.last_built_sha1:
            sha1s.add(build_data.last_built_sha1)
        if build_data.marked_sha1:
            sha1s.add(build_data.marked_sha1)
    return sha1s
