from __future__ import annotations

import datetime
import ssl
from typing import Optional

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

import client as client_module
from client import build_http_client, build_ssl_context, parse_base_url
from core.config import ConnectionConfig, ProxySettings
from core.errors import ConfigurationError, CredentialsError
from core.models import CertificateCredentials, UsernamePasswordCredentials


def _keystore(password: Optional[bytes]) -> bytes:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "ci-client")])
    now = datetime.datetime.now(datetime.timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    return pkcs12.serialize_key_and_certificates(
        b"ci-client",
        key,
        certificate,
        None,
        serialization.BestAvailableEncryption(password) if password else serialization.NoEncryption(),
    )


@pytest.fixture
def cert_chain_calls(monkeypatch):
    calls: list[tuple] = []
    original = ssl.SSLContext.load_cert_chain

    def spy(self, *args, **kwargs):
        calls.append((args, kwargs))
        return original(self, *args, **kwargs)

    monkeypatch.setattr(ssl.SSLContext, "load_cert_chain", spy)
    return calls


class CapturingClient:
    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs


@pytest.fixture
def captured(monkeypatch):
    created: list[CapturingClient] = []

    def factory(**kwargs):
        instance = CapturingClient(**kwargs)
        created.append(instance)
        return instance

    monkeypatch.setattr(client_module.httpx, "Client", factory)
    return created


def test_parse_base_url_rejects_blank_and_garbage() -> None:
    assert parse_base_url("https://bitbucket.example.com").host == "bitbucket.example.com"
    for bad in (None, "", "   ", "not a url", "ftp://bitbucket.example.com"):
        with pytest.raises(ConfigurationError):
            parse_base_url(bad)


def test_certificate_without_ignore_keeps_default_trust(cert_chain_calls) -> None:
    credentials = CertificateCredentials(id="mtls", keystore=_keystore(b"secret"), password="secret")
    context = build_ssl_context(False, credentials)
    assert len(cert_chain_calls) == 1
    assert context.verify_mode == ssl.CERT_REQUIRED
    assert context.check_hostname is True


def test_ignore_unverified_accepts_everything(cert_chain_calls) -> None:
    context = build_ssl_context(True, None)
    assert not cert_chain_calls
    assert context.verify_mode == ssl.CERT_NONE
    assert context.check_hostname is False


def test_certificate_and_ignore_combine(cert_chain_calls) -> None:
    credentials = CertificateCredentials(id="mtls", keystore=_keystore(b"pw"), password="pw")
    context = build_ssl_context(True, credentials)
    assert len(cert_chain_calls) == 1
    assert context.verify_mode == ssl.CERT_NONE


def test_keystore_without_passphrase_is_encrypted_on_disk(cert_chain_calls) -> None:
    credentials = CertificateCredentials(id="mtls", keystore=_keystore(None), password="")
    build_ssl_context(False, credentials)
    _, kwargs = cert_chain_calls[0]
    assert kwargs["password"]


def test_broken_keystore_raises_credentials_error() -> None:
    credentials = CertificateCredentials(id="mtls", keystore=b"not a keystore", password="pw")
    with pytest.raises(CredentialsError):
        build_ssl_context(False, credentials)


def test_plain_https_uses_platform_trust(captured) -> None:
    config = ConnectionConfig(
        base_url="https://bitbucket.example.com",
        credentials_id="basic",
        ignore_unverified_ssl=False,
        credentials=UsernamePasswordCredentials(id="basic", username="ci", password="pw"),
    )
    build_http_client(config)
    verify = captured[0].kwargs["verify"]
    assert isinstance(verify, ssl.SSLContext)
    assert verify.verify_mode == ssl.CERT_REQUIRED
    assert verify.check_hostname is True
    assert captured[0].kwargs["proxy"] is None
    assert captured[0].kwargs["trust_env"] is False


def test_https_with_ignore_installs_custom_context(captured) -> None:
    config = ConnectionConfig(
        base_url="https://bitbucket.example.com",
        credentials_id=None,
        ignore_unverified_ssl=True,
    )
    build_http_client(config)
    verify = captured[0].kwargs["verify"]
    assert isinstance(verify, ssl.SSLContext)
    assert verify.verify_mode == ssl.CERT_NONE


def test_plain_http_ignores_tls_options(captured, cert_chain_calls) -> None:
    config = ConnectionConfig(
        base_url="http://bitbucket.example.com",
        credentials_id=None,
        ignore_unverified_ssl=True,
    )
    build_http_client(config)
    verify = captured[0].kwargs["verify"]
    assert verify.verify_mode == ssl.CERT_REQUIRED
    assert not cert_chain_calls


def test_https_with_certificate_presents_client_identity(captured, cert_chain_calls) -> None:
    config = ConnectionConfig(
        base_url="https://bitbucket.example.com",
        credentials_id="mtls",
        ignore_unverified_ssl=False,
        credentials=CertificateCredentials(id="mtls", keystore=_keystore(b"secret"), password="secret"),
    )
    build_http_client(config)
    verify = captured[0].kwargs["verify"]
    assert isinstance(verify, ssl.SSLContext)
    assert verify.verify_mode == ssl.CERT_REQUIRED
    assert verify.check_hostname is True
    assert len(cert_chain_calls) == 1


def test_plain_http_with_certificate_loads_no_identity(captured, cert_chain_calls) -> None:
    config = ConnectionConfig(
        base_url="http://bitbucket.example.com",
        credentials_id="mtls",
        ignore_unverified_ssl=False,
        credentials=CertificateCredentials(id="mtls", keystore=_keystore(b"secret"), password="secret"),
    )
    build_http_client(config)
    assert not cert_chain_calls
    assert captured[0].kwargs["verify"].verify_mode == ssl.CERT_REQUIRED


def test_proxy_with_credentials_is_attached(captured) -> None:
    config = ConnectionConfig(
        base_url="https://bitbucket.example.com",
        credentials_id=None,
        ignore_unverified_ssl=False,
        proxy=ProxySettings(host="proxy.corp", port=8080, username="alice", password="s3cret"),
    )
    build_http_client(config)
    proxy = captured[0].kwargs["proxy"]
    assert isinstance(proxy, httpx.Proxy)
    assert proxy.url == httpx.URL("http://proxy.corp:8080")
    assert proxy.auth == ("alice", "s3cret")


def test_real_client_is_closable() -> None:
    config = ConnectionConfig(
        base_url="https://bitbucket.example.com",
        credentials_id=None,
        ignore_unverified_ssl=False,
    )
    http_client = build_http_client(config)
    http_client.close()
    assert http_client.is_closed
