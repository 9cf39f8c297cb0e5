"""Core notification pipeline.

The dispatcher enforces a strict order for every lifecycle event:
1) Bail out when the CI root URL is unknown (the payload needs a build link)
2) Resolve the commits the build applies to
3) Per commit: build key + payload, POST it, interpret the response, log
4) Always report success to the host so notifications never fail a build

It only relies on ports for credentials, template expansion, the host
environment and the HTTP client, keeping it testable without a CI server.
"""

from __future__ import annotations

import base64
import logging
import ssl
from typing import Optional
from urllib.parse import urlsplit

import httpx

from core.commits import resolve_commit_sha1s
from core.config import ConnectionConfig, NotifierConfig, is_blank
from core.keys import build_key
from core.models import (
    BuildContext,
    BuildResult,
    BuildState,
    NotificationRequest,
    NotificationResult,
    UsernamePasswordCredentials,
)
from core.payload import build_payload
from core.ports import (
    CredentialsPort,
    HostEnvironmentPort,
    HttpClientFactoryPort,
    TemplateExpanderPort,
)

LOGGER = logging.getLogger(__name__)

SUCCESS_STATUS_CODES = (200, 201)

PEER_UNVERIFIED_HINT = (
    "SSL peer verification failed while notifying Bitbucket for commit %s. "
    "Make sure the SSL certificate of your Bitbucket server is valid or enable "
    "the 'ignore unverified SSL peer' option in the notifier configuration."
)


def _is_peer_unverified(exc: BaseException) -> bool:
    """Return True when an SSL certificate check failed somewhere in the chain."""

    seen: set[int] = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, ssl.SSLCertVerificationError):
            return True
        if "CERTIFICATE_VERIFY_FAILED" in str(current):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


def status_url(base_url: str, commit_sha1: str) -> str:
    return f"{base_url}/commit/{commit_sha1}/statuses/build"


def build_request(connection: ConnectionConfig, payload: NotificationRequest) -> httpx.Request:
    """Return the POST for one commit; Basic auth only for password credentials."""

    headers = {"Content-Type": "application/json"}
    credentials = connection.credentials
    if isinstance(credentials, UsernamePasswordCredentials):
        token = f"{credentials.username}:{credentials.password}".encode("utf-8")
        headers["Authorization"] = "Basic " + base64.b64encode(token).decode("ascii")
    return httpx.Request(
        "POST",
        status_url(connection.base_url, payload.commit_sha1),
        headers=headers,
        json=payload.to_json(),
    )


class NotificationDispatcher:
    """Posts the build status of every resolved commit to Bitbucket."""

    def __init__(
        self,
        config: NotifierConfig,
        environment: HostEnvironmentPort,
        credentials: CredentialsPort,
        expander: TemplateExpanderPort,
        client_factory: HttpClientFactoryPort,
    ) -> None:
        self._config = config
        self._environment = environment
        self._credentials = credentials
        self._expander = expander
        self._client_factory = client_factory

    def prebuild(self, context: BuildContext) -> bool:
        """Announce that the build started, unless disabled."""

        if self._config.disable_inprogress_notification:
            return True
        return self.dispatch(context, BuildState.INPROGRESS)

    def perform(self, context: BuildContext) -> bool:
        """Report the final result; anything but SUCCESS counts as FAILED."""

        if context.result is BuildResult.SUCCESS:
            return self.dispatch(context, BuildState.SUCCESSFUL)
        return self.dispatch(context, BuildState.FAILED)

    def connection_config(self) -> ConnectionConfig:
        """Resolve the effective connection settings at call time."""

        credentials_id = self._config.credentials_id
        credentials = None
        if not is_blank(credentials_id):
            credentials = self._credentials.lookup(credentials_id)

        base_url = self._config.base_url
        proxy = None
        if base_url:
            try:
                host = urlsplit(base_url).hostname
            except ValueError:
                host = None
            if host:
                proxy = self._environment.proxy_for(host)

        return ConnectionConfig(
            base_url=base_url,
            credentials_id=credentials_id,
            ignore_unverified_ssl=self._config.ignore_unverified_ssl,
            credentials=credentials,
            proxy=proxy,
        )

    def dispatch(self, context: BuildContext, state: BuildState) -> bool:
        """Notify Bitbucket for every commit of the build.

        Always returns True so that notification problems never abort the job.
        """

        ci_root_url = self._environment.root_url
        # The Bitbucket build API needs a valid link back to the CI system.
        if is_blank(ci_root_url):
            LOGGER.error("Cannot notify Bitbucket! (CI root URL not configured)")
            return True

        try:
            commit_sha1s = resolve_commit_sha1s(context, self._config.job.commit_sha1, self._expander)
        except Exception:
            LOGGER.exception("Cannot resolve commits to notify Bitbucket about")
            return True
        if not commit_sha1s:
            LOGGER.info("found no commit info")
            return True

        for commit_sha1 in sorted(commit_sha1s):
            try:
                result = self.notify(context, commit_sha1, state, ci_root_url)
            except Exception as exc:
                if _is_peer_unverified(exc):
                    LOGGER.error(PEER_UNVERIFIED_HINT, commit_sha1)
                else:
                    LOGGER.exception("Caught exception while notifying Bitbucket with id %s", commit_sha1)
                continue

            if result.success:
                LOGGER.info("Notified Bitbucket for commit with id %s", commit_sha1)
            else:
                LOGGER.error("Failed to notify Bitbucket for commit %s (%s)", commit_sha1, result.message)
        return True

    def notify(
        self,
        context: BuildContext,
        commit_sha1: str,
        state: BuildState,
        ci_root_url: str,
    ) -> NotificationResult:
        """Send one status update and interpret the response."""

        key = build_key(context, self._config, ci_root_url, self._expander)
        payload = build_payload(context, state, commit_sha1, key, ci_root_url)
        connection = self.connection_config()

        client = self._client_factory(connection)
        try:
            response = client.send(build_request(connection, payload))
        finally:
            client.close()

        if response.status_code not in SUCCESS_STATUS_CODES:
            return NotificationResult.failed(response.text)
        return NotificationResult.succeeded()
