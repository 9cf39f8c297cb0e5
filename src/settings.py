"""Static configuration for bitbucket-notifier.

Global defaults, job overrides, credentials, proxy and logging settings live
in a single JSON file. Secrets are referenced by environment variable name and
loaded from .env with python-dotenv.
"""

import json
import os
from typing import Optional

from dotenv import load_dotenv

from core.config import GlobalConfig, JobConfig

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

CONFIG_ENV_VAR = "BITBUCKET_NOTIFIER_CONFIG"

# Used when BITBUCKET_NOTIFIER_CONFIG is unset; optional so that a job can run
# purely from CLI flags and environment variables.
DEFAULT_CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")


def config_path() -> str:
    return os.getenv(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH


def load_config(path: Optional[str] = None) -> dict:
    """Load config.json with a flat, user-friendly schema.

    An explicitly requested file must exist; the default one may be absent.
    """

    load_dotenv()
    explicit = path or os.getenv(CONFIG_ENV_VAR)
    path = explicit or DEFAULT_CONFIG_PATH
    if not os.path.exists(path):
        if explicit:
            raise FileNotFoundError(f"Config file not found: {path}")
        return {}

    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _optional_str(value) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def global_config(config: dict) -> GlobalConfig:
    """Global defaults from the `global` section."""

    raw = config.get("global", {})
    return GlobalConfig(
        bitbucket_root_url=_optional_str(raw.get("bitbucket_root_url")),
        credentials_id=_optional_str(raw.get("credentials_id")),
        ignore_unverified_ssl=bool(raw.get("ignore_unverified_ssl", False)),
        include_build_number_in_key=bool(raw.get("include_build_number_in_key", False)),
        project_key=_optional_str(raw.get("project_key")),
        prepend_parent_project_key=bool(raw.get("prepend_parent_project_key", False)),
        disable_inprogress_notification=bool(raw.get("disable_inprogress_notification", False)),
    )


def job_config(config: dict, **overrides) -> JobConfig:
    """Job overrides from the `job` section; non-None keyword overrides win."""

    raw = dict(config.get("job", {}))
    raw.update({name: value for name, value in overrides.items() if value is not None})
    return JobConfig(
        bitbucket_server_base_url=_optional_str(raw.get("bitbucket_server_base_url")),
        credentials_id=_optional_str(raw.get("credentials_id")),
        ignore_unverified_ssl_peer=bool(raw.get("ignore_unverified_ssl_peer", False)),
        commit_sha1=_optional_str(raw.get("commit_sha1")),
        include_build_number_in_key=bool(raw.get("include_build_number_in_key", False)),
        project_key=_optional_str(raw.get("project_key")),
        prepend_parent_project_key=bool(raw.get("prepend_parent_project_key", False)),
        disable_inprogress_notification=bool(raw.get("disable_inprogress_notification", False)),
    )
