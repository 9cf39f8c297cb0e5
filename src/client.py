"""HTTP client factory for bitbucket-notifier.

Every notification gets its own client so TLS and proxy settings are always
resolved from the current configuration. The caller owns the returned client
and must close it, including on error paths.
"""

from __future__ import annotations

import logging
import os
import secrets
import ssl
import tempfile
from typing import Optional, Union

import httpx
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from core.config import ConnectionConfig, ProxySettings, is_blank
from core.errors import ConfigurationError, CredentialsError
from core.models import CertificateCredentials, UsernamePasswordCredentials

LOGGER = logging.getLogger(__name__)


def parse_base_url(base_url: Optional[str]) -> httpx.URL:
    """Parse the effective server URL, failing on anything unusable."""

    if is_blank(base_url):
        raise ConfigurationError("No Bitbucket server URL configured")
    try:
        url = httpx.URL(base_url.strip())
    except httpx.InvalidURL as exc:
        raise ConfigurationError(f"Invalid Bitbucket server URL: {base_url}") from exc
    if url.scheme not in ("http", "https") or not url.host:
        raise ConfigurationError(f"Invalid Bitbucket server URL: {base_url}")
    return url


def _load_key_material(context: ssl.SSLContext, credentials: CertificateCredentials) -> None:
    """Install the PKCS#12 keystore as the TLS client identity."""

    password = credentials.password.encode("utf-8") if credentials.password else None
    try:
        key, certificate, chain = pkcs12.load_key_and_certificates(credentials.keystore, password)
    except ValueError as exc:
        raise CredentialsError(f"Cannot read keystore of credentials {credentials.id}") from exc
    if key is None or certificate is None:
        raise CredentialsError(f"Keystore of credentials {credentials.id} has no client key pair")

    # ssl only loads identities from files; the key stays encrypted on disk,
    # under a one-time passphrase when the keystore has none.
    if not password:
        password = secrets.token_urlsafe(32).encode("ascii")
    encryption = serialization.BestAvailableEncryption(password)
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        encryption,
    )
    cert_pem = certificate.public_bytes(serialization.Encoding.PEM) + b"".join(
        extra.public_bytes(serialization.Encoding.PEM) for extra in chain or []
    )
    with tempfile.TemporaryDirectory(prefix="bitbucket-notifier-") as directory:
        cert_path = os.path.join(directory, "client.crt")
        key_path = os.path.join(directory, "client.key")
        with open(cert_path, "wb") as handle:
            handle.write(cert_pem)
        with open(key_path, "wb") as handle:
            handle.write(key_pem)
        context.load_cert_chain(cert_path, key_path, password=password)


def build_ssl_context(
    ignore_unverified_ssl: bool,
    credentials: Union[CertificateCredentials, UsernamePasswordCredentials, None],
) -> ssl.SSLContext:
    """Return a TLS context with optional client identity and relaxed trust.

    Both options can apply at once (mutual TLS against a self-signed server).
    Without ignore_unverified_ssl the platform trust store and hostname
    checks stay in force.
    """

    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    if isinstance(credentials, CertificateCredentials):
        _load_key_material(context, credentials)
    if ignore_unverified_ssl:
        # Hostname checks must be off before verify_mode can drop to CERT_NONE.
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def _build_proxy(settings: ProxySettings) -> httpx.Proxy:
    if settings.username:
        return httpx.Proxy(settings.url, auth=(settings.username, settings.password or ""))
    return httpx.Proxy(settings.url)


def build_http_client(config: ConnectionConfig) -> httpx.Client:
    """Create an httpx client for the effective connection settings."""

    url = parse_base_url(config.base_url)

    # Every branch starts from the platform trust store, never a bundled one.
    if url.scheme == "https":
        verify = build_ssl_context(config.ignore_unverified_ssl, config.credentials)
    else:
        verify = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)

    proxy = None
    if config.proxy is not None:
        LOGGER.debug("Using proxy %s for %s", config.proxy.url, url.host)
        proxy = _build_proxy(config.proxy)

    # trust_env is off so only the resolved proxy configuration applies.
    return httpx.Client(verify=verify, proxy=proxy, trust_env=False)
