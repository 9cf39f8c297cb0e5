"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any CI- or transport-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class BuildState(Enum):
    """States communicated to the Bitbucket server."""

    SUCCESSFUL = "SUCCESSFUL"
    FAILED = "FAILED"
    INPROGRESS = "INPROGRESS"


class BuildResult(Enum):
    """Final result of a host build."""

    SUCCESS = "SUCCESS"
    UNSTABLE = "UNSTABLE"
    FAILURE = "FAILURE"
    NOT_BUILT = "NOT_BUILT"
    ABORTED = "ABORTED"


@dataclass(frozen=True)
class BuildData:
    """Revision information recorded by one SCM checkout of a build."""

    last_built_sha1: Optional[str]
    # Differs from last_built_sha1 when a merge happened before the build.
    marked_sha1: Optional[str] = None


@dataclass(frozen=True)
class BuildContext:
    """Minimal build context used by the notification pipeline."""

    project_name: str
    full_display_name: str
    number: int
    url: str
    description: Optional[str] = None
    parent_full_name: Optional[str] = None
    result: Optional[BuildResult] = None
    build_data: tuple[BuildData, ...] = ()
    variables: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class UsernamePasswordCredentials:
    """Credentials sent as an HTTP Basic authorization header."""

    id: str
    username: str
    password: str


@dataclass(frozen=True)
class CertificateCredentials:
    """PKCS#12 keystore presented as the TLS client identity."""

    id: str
    keystore: bytes
    password: str


Credentials = Union[UsernamePasswordCredentials, CertificateCredentials]


@dataclass(frozen=True)
class NotificationRequest:
    """Status update for a single commit, with every field already bounded."""

    commit_sha1: str
    state: BuildState
    key: str
    name: str
    description: str
    url: str

    def to_json(self) -> dict[str, Any]:
        return {
            "state": self.state.name,
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "url": self.url,
        }


@dataclass(frozen=True)
class NotificationResult:
    """Outcome of one notification attempt."""

    success: bool
    message: Optional[str] = None

    @classmethod
    def succeeded(cls) -> "NotificationResult":
        return cls(success=True)

    @classmethod
    def failed(cls, message: str) -> "NotificationResult":
        return cls(success=False, message=message)
