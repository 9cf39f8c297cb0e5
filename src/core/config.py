"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, TypeVar

from core.models import Credentials

T = TypeVar("T")


def is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def effective(local: Optional[T], default: Optional[T]) -> Optional[T]:
    """Return the job-level value when present, else the global default.

    Strings count as absent when blank, booleans when false.
    """

    if isinstance(local, str):
        return default if is_blank(local) else local
    return local if local else default


@dataclass(frozen=True)
class JobConfig:
    """Per-job overrides of the global defaults."""

    bitbucket_server_base_url: Optional[str] = None
    credentials_id: Optional[str] = None
    ignore_unverified_ssl_peer: bool = False
    commit_sha1: Optional[str] = None
    include_build_number_in_key: bool = False
    project_key: Optional[str] = None
    prepend_parent_project_key: bool = False
    disable_inprogress_notification: bool = False


@dataclass(frozen=True)
class GlobalConfig:
    """Global defaults shared by every job."""

    bitbucket_root_url: Optional[str] = None
    credentials_id: Optional[str] = None
    ignore_unverified_ssl: bool = False
    include_build_number_in_key: bool = False
    project_key: Optional[str] = None
    prepend_parent_project_key: bool = False
    disable_inprogress_notification: bool = False


@dataclass(frozen=True)
class NotifierConfig:
    """Job overrides paired with the global defaults they fall back to."""

    job: JobConfig
    defaults: GlobalConfig

    @property
    def base_url(self) -> Optional[str]:
        url = effective(self.job.bitbucket_server_base_url, self.defaults.bitbucket_root_url)
        if is_blank(url):
            return None
        url = url.strip()
        return url[:-1] if url.endswith("/") else url

    @property
    def credentials_id(self) -> Optional[str]:
        return effective(self.job.credentials_id, self.defaults.credentials_id)

    @property
    def ignore_unverified_ssl(self) -> bool:
        return bool(effective(self.job.ignore_unverified_ssl_peer, self.defaults.ignore_unverified_ssl))

    @property
    def include_build_number_in_key(self) -> bool:
        return bool(
            effective(self.job.include_build_number_in_key, self.defaults.include_build_number_in_key)
        )

    @property
    def project_key(self) -> Optional[str]:
        return effective(self.job.project_key, self.defaults.project_key)

    @property
    def prepend_parent_project_key(self) -> bool:
        return bool(
            effective(self.job.prepend_parent_project_key, self.defaults.prepend_parent_project_key)
        )

    @property
    def disable_inprogress_notification(self) -> bool:
        return bool(
            effective(
                self.job.disable_inprogress_notification,
                self.defaults.disable_inprogress_notification,
            )
        )


@dataclass(frozen=True)
class ProxySettings:
    """HTTP proxy selected for a target host."""

    host: str
    port: int
    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"


@dataclass(frozen=True)
class ConnectionConfig:
    """Everything the HTTP client factory needs, resolved at call time."""

    base_url: Optional[str]
    credentials_id: Optional[str]
    ignore_unverified_ssl: bool
    credentials: Optional[Credentials] = None
    proxy: Optional[ProxySettings] = None
