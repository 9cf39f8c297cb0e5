"""Build key derivation (core domain).

The key lets Bitbucket correlate repeated status updates of one logical build
on a commit, so it has to stay stable across the INPROGRESS and final posts.
"""

from __future__ import annotations

import logging

from core.config import NotifierConfig, is_blank
from core.errors import TemplateExpansionError
from core.fields import escape_javascript
from core.models import BuildContext
from core.ports import TemplateExpanderPort

LOGGER = logging.getLogger(__name__)


def default_build_key(context: BuildContext, config: NotifierConfig, ci_root_url: str) -> str:
    """Return <project>[-<number>]-<ci root url>.

    The CI root URL keeps keys distinct when several CI servers report
    against the same repository.
    """

    key = context.project_name
    if config.include_build_number_in_key:
        key += f"-{context.number}"
    return f"{key}-{ci_root_url}"


def build_key(
    context: BuildContext,
    config: NotifierConfig,
    ci_root_url: str,
    expander: TemplateExpanderPort,
) -> str:
    """Return the escaped build key for the notification payload."""

    key = ""
    if config.prepend_parent_project_key and context.parent_full_name:
        key += f"{context.parent_full_name}-"

    override = config.project_key
    if is_blank(override):
        key += default_build_key(context, config, ci_root_url)
    else:
        try:
            key += ",".join(expander.expand(override, context))
        except TemplateExpansionError as exc:
            LOGGER.warning(
                "Cannot expand build key from parameter. Processing with default build key (%s)",
                exc,
            )
            key += default_build_key(context, config, ci_root_url)

    return escape_javascript(key)
