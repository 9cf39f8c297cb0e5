"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for the CI host collaborators so that the
core can be reused with different backends.
"""

from __future__ import annotations

from typing import Optional, Protocol

import httpx

from core.config import ConnectionConfig, ProxySettings
from core.models import BuildContext, Credentials


class TemplateExpanderPort(Protocol):
    """Expands a template against the build; raises TemplateExpansionError."""

    def expand(self, template: str, context: BuildContext) -> list[str]:
        ...


class CredentialsPort(Protocol):
    """Resolves a credential id to its stored credentials."""

    def lookup(self, credentials_id: Optional[str]) -> Optional[Credentials]:
        ...


class HostEnvironmentPort(Protocol):
    """CI host settings the pipeline reads but never owns."""

    @property
    def root_url(self) -> Optional[str]:
        ...

    def proxy_for(self, host: str) -> Optional[ProxySettings]:
        ...


class HttpClientFactoryPort(Protocol):
    """Builds a client the caller must close."""

    def __call__(self, config: ConnectionConfig) -> httpx.Client:
        ...
