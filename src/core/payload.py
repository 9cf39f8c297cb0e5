"""Notification payload assembly (core domain)."""

from __future__ import annotations

from core.config import is_blank
from core.fields import MAX_FIELD_LENGTH, MAX_URL_FIELD_LENGTH, abbreviate, escape_javascript
from core.models import BuildContext, BuildState, NotificationRequest

CI_NAME = "Jenkins"

# Escaped form of the "»" separator Jenkins puts between nested job names.
# Bitbucket chokes on it, so it is sent as a plain slash instead.
_NESTED_JOB_SEPARATOR = escape_javascript("»")


def build_name(context: BuildContext) -> str:
    return escape_javascript(context.full_display_name).replace(_NESTED_JOB_SEPARATOR, "/")


def build_description(context: BuildContext, state: BuildState, ci_root_url: str) -> str:
    """Prefer the human-entered description, else describe the state."""

    if not is_blank(context.description):
        return context.description
    if state is BuildState.INPROGRESS:
        return f"building on {CI_NAME} @ {ci_root_url}"
    return f"built by {CI_NAME} @ {ci_root_url}"


def build_payload(
    context: BuildContext,
    state: BuildState,
    commit_sha1: str,
    key: str,
    ci_root_url: str,
) -> NotificationRequest:
    """Return the bounded status update for one commit."""

    return NotificationRequest(
        commit_sha1=commit_sha1,
        state=state,
        key=abbreviate(key, MAX_FIELD_LENGTH),
        name=abbreviate(build_name(context), MAX_FIELD_LENGTH),
        description=abbreviate(build_description(context, state, ci_root_url), MAX_FIELD_LENGTH),
        url=abbreviate(ci_root_url + context.url, MAX_URL_FIELD_LENGTH),
    )
