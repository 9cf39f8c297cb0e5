"""Credential store adapter backed by the config file.

Secrets never live in config.json: entries name the environment variable
holding them (usually filled from .env via python-dotenv).
"""

from __future__ import annotations

import logging
import os
from typing import Iterable, Mapping, Optional

from core.errors import CredentialsError
from core.models import CertificateCredentials, Credentials, UsernamePasswordCredentials

LOGGER = logging.getLogger(__name__)

USERNAME_PASSWORD = "username_password"
CERTIFICATE = "certificate"

# Only these kinds can be used to talk to Bitbucket.
SUPPORTED_TYPES = (USERNAME_PASSWORD, CERTIFICATE)


class ConfigCredentialStore:
    """Resolve credential ids from the `credentials` config section."""

    def __init__(
        self,
        entries: Iterable[dict],
        environ: Optional[Mapping[str, str]] = None,
        base_dir: Optional[str] = None,
    ) -> None:
        self._entries = {entry["id"]: entry for entry in entries if entry.get("id")}
        self._environ = os.environ if environ is None else environ
        self._base_dir = base_dir or os.getcwd()

    def matching_ids(self) -> list[str]:
        """Return the ids of entries usable as Bitbucket credentials."""

        return sorted(
            credentials_id
            for credentials_id, entry in self._entries.items()
            if entry.get("type") in SUPPORTED_TYPES
        )

    def _secret(self, entry: dict) -> str:
        name = entry.get("password_env")
        if name:
            value = self._environ.get(name)
            if value is None:
                raise CredentialsError(f"Environment variable {name} for credentials {entry['id']} is not set")
            return value
        return entry.get("password", "")

    def _read_keystore(self, entry: dict) -> bytes:
        path = entry.get("keystore_path")
        if not path:
            raise CredentialsError(f"Credentials {entry['id']} have no keystore_path")
        if not os.path.isabs(path):
            path = os.path.join(self._base_dir, path)
        try:
            with open(path, "rb") as handle:
                return handle.read()
        except OSError as exc:
            raise CredentialsError(f"Cannot read keystore {path}: {exc}") from exc

    def lookup(self, credentials_id: Optional[str]) -> Optional[Credentials]:
        entry = self._entries.get(credentials_id) if credentials_id else None
        if entry is None:
            LOGGER.warning("No credentials found with id %s", credentials_id)
            return None

        kind = entry.get("type")
        if kind == USERNAME_PASSWORD:
            return UsernamePasswordCredentials(
                id=credentials_id,
                username=entry.get("username", ""),
                password=self._secret(entry),
            )
        if kind == CERTIFICATE:
            return CertificateCredentials(
                id=credentials_id,
                keystore=self._read_keystore(entry),
                password=self._secret(entry),
            )
        LOGGER.warning("Ignoring credentials %s of unsupported type %s", credentials_id, kind)
        return None
