"""CI-environment-to-core build mapping adapter.

This keeps the CI server's environment variable names out of the core
pipeline. The variable names follow what Jenkins exports to build steps.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Optional

from core.models import BuildContext, BuildData, BuildResult

LOGGER = logging.getLogger(__name__)

# Jenkins separates nested job names with this character in display names.
NESTED_JOB_SEPARATOR = " » "


def parse_revision(raw: str) -> BuildData:
    """Parse "<built sha1>[:<marked sha1>]" into a build data record."""

    built, _, marked = raw.strip().partition(":")
    return BuildData(last_built_sha1=built.strip(), marked_sha1=marked.strip() or None)


def parse_result(raw: Optional[str]) -> Optional[BuildResult]:
    if not raw:
        return None
    try:
        return BuildResult(raw.strip().upper())
    except ValueError:
        LOGGER.warning("Unknown build result %s, treating it as a failure", raw)
        return None


def _build_number(environ: Mapping[str, str]) -> int:
    try:
        return int(environ.get("BUILD_NUMBER", "0"))
    except ValueError:
        return 0


def _relative_build_url(environ: Mapping[str, str], job_parts: list[str], number: int) -> str:
    build_url = environ.get("BUILD_URL", "")
    root_url = environ.get("JENKINS_URL", "")
    if build_url and root_url and build_url.startswith(root_url):
        return build_url[len(root_url):]
    if not job_parts:
        return ""
    # Same layout Jenkins uses for build pages: job/<a>/job/<b>/<number>/
    return "job/" + "/job/".join(job_parts) + f"/{number}/"


def build_context(
    environ: Mapping[str, str],
    revisions: Iterable[str] = (),
    description: Optional[str] = None,
    result: Optional[str] = None,
) -> BuildContext:
    """Build a BuildContext from the CI environment plus CLI extras."""

    job_name = environ.get("JOB_NAME", "")
    job_parts = [part for part in job_name.split("/") if part]
    project_name = environ.get("JOB_BASE_NAME") or (job_parts[-1] if job_parts else "")
    number = _build_number(environ)
    display_name = environ.get("BUILD_DISPLAY_NAME") or f"#{number}"

    full_display_name = display_name
    if job_parts:
        full_display_name = f"{NESTED_JOB_SEPARATOR.join(job_parts)} {display_name}"

    parent_full_name = "/".join(job_parts[:-1]) or None

    build_data = [parse_revision(raw) for raw in revisions if raw and raw.strip()]
    if not build_data and environ.get("GIT_COMMIT"):
        build_data = [BuildData(last_built_sha1=environ["GIT_COMMIT"])]

    return BuildContext(
        project_name=project_name,
        full_display_name=full_display_name,
        number=number,
        url=_relative_build_url(environ, job_parts, number),
        description=description,
        parent_full_name=parent_full_name,
        result=parse_result(result),
        build_data=tuple(build_data),
        variables=dict(environ),
    )
