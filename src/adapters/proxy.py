"""Proxy and host settings adapter.

Mirrors the CI server's proxy configuration: one HTTP proxy with optional
basic credentials plus a list of host patterns that bypass it.
"""

from __future__ import annotations

import fnmatch
import os
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import unquote, urlsplit

from core.config import ProxySettings

DEFAULT_PROXY_PORT = 3128


def _split_patterns(raw) -> list[str]:
    if isinstance(raw, str):
        raw = raw.replace(",", "\n").splitlines()
    return [pattern.strip() for pattern in raw or [] if pattern and pattern.strip()]


@dataclass(frozen=True)
class ProxyConfiguration:
    """Proxy server plus the hosts that must be reached directly."""

    host: str
    port: int = DEFAULT_PROXY_PORT
    username: Optional[str] = None
    password: Optional[str] = None
    no_proxy: tuple[str, ...] = ()

    def is_excluded(self, target_host: str) -> bool:
        """Return True when the target host matches a no-proxy pattern."""

        target = target_host.lower()
        for pattern in self.no_proxy:
            pattern = pattern.lower()
            if pattern == "*":
                return True
            if any(char in pattern for char in "*?["):
                if fnmatch.fnmatchcase(target, pattern):
                    return True
                continue
            # NO_PROXY style: "example.com" and ".example.com" both cover the
            # domain and its subdomains.
            domain = pattern.lstrip(".")
            if target == domain or target.endswith("." + domain):
                return True
        return False

    def create_proxy(self, target_host: str) -> Optional[ProxySettings]:
        if self.is_excluded(target_host):
            return None
        return ProxySettings(
            host=self.host,
            port=self.port,
            username=self.username or None,
            password=self.password,
        )


def proxy_from_config(raw: Optional[dict], environ: Mapping[str, str]) -> Optional[ProxyConfiguration]:
    """Build the proxy from the `proxy` config section."""

    if not raw or not raw.get("host"):
        return None
    password = raw.get("password")
    if raw.get("password_env"):
        password = environ.get(raw["password_env"])
    return ProxyConfiguration(
        host=raw["host"],
        port=int(raw.get("port", DEFAULT_PROXY_PORT)),
        username=raw.get("username"),
        password=password,
        no_proxy=tuple(_split_patterns(raw.get("no_proxy", []))),
    )


def proxy_from_environment(environ: Mapping[str, str]) -> Optional[ProxyConfiguration]:
    """Build the proxy from HTTPS_PROXY/HTTP_PROXY and NO_PROXY variables."""

    raw_url = None
    for name in ("HTTPS_PROXY", "https_proxy", "HTTP_PROXY", "http_proxy"):
        if environ.get(name):
            raw_url = environ[name]
            break
    if not raw_url:
        return None

    if "://" not in raw_url:
        raw_url = f"http://{raw_url}"
    parts = urlsplit(raw_url)
    if not parts.hostname:
        return None
    no_proxy = environ.get("NO_PROXY") or environ.get("no_proxy") or ""
    return ProxyConfiguration(
        host=parts.hostname,
        port=parts.port or DEFAULT_PROXY_PORT,
        username=unquote(parts.username) if parts.username else None,
        password=unquote(parts.password) if parts.password is not None else None,
        no_proxy=tuple(_split_patterns(no_proxy)),
    )


@dataclass(frozen=True)
class HostEnvironment:
    """CI host settings: root URL and proxy."""

    ci_root_url: Optional[str] = None
    proxy: Optional[ProxyConfiguration] = None

    @property
    def root_url(self) -> Optional[str]:
        if not self.ci_root_url or not self.ci_root_url.strip():
            return None
        return self.ci_root_url.strip()

    def proxy_for(self, host: str) -> Optional[ProxySettings]:
        if self.proxy is None:
            return None
        return self.proxy.create_proxy(host)


def host_environment(
    ci_root_url: Optional[str],
    proxy_config: Optional[dict],
    environ: Optional[Mapping[str, str]] = None,
) -> HostEnvironment:
    """Configured proxy wins; otherwise the process environment is used."""

    environ = os.environ if environ is None else environ
    proxy = proxy_from_config(proxy_config, environ) or proxy_from_environment(environ)
    return HostEnvironment(ci_root_url=ci_root_url or environ.get("JENKINS_URL"), proxy=proxy)
