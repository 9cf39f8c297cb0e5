"""Application entry point for bitbucket-notifier.

CI jobs call `prebuild` before the build and `perform --result <RESULT>`
after it. Notification problems are logged but never change the exit code,
so a flaky Bitbucket server cannot fail a build.
"""

from __future__ import annotations

import argparse
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

import settings
from adapters.build_environment import build_context
from adapters.credential_store import ConfigCredentialStore
from adapters.proxy import host_environment
from adapters.template_expander import EnvTemplateExpander
from client import build_http_client, parse_base_url
from core.config import NotifierConfig, is_blank
from core.dispatcher import NotificationDispatcher
from core.errors import ConfigurationError
from core.models import BuildState

NAME = "bitbucket-notifier"

LOGGER = logging.getLogger(__name__)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    """Values of every environment variable that holds a secret."""

    names = set(config.get("logging", {}).get("redact", {}).get("patterns", []))
    for entry in config.get("credentials", []):
        if entry.get("password_env"):
            names.add(entry["password_env"])
    proxy = config.get("proxy") or {}
    if proxy.get("password_env"):
        names.add(proxy["password_env"])

    values = []
    for name in names:
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging(config: dict) -> None:
    logging_cfg = config.get("logging", {})
    if not logging_cfg.get("enabled", True):
        return

    level_name = str(logging_cfg.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(_collect_redaction_values(config), fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if logging_cfg.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = logging_cfg.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/bitbucket-notifier.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _job_overrides(args: argparse.Namespace) -> dict:
    # Flags left unset must not shadow the `job` section of the config file.
    return {
        "bitbucket_server_base_url": args.base_url,
        "credentials_id": args.credentials_id,
        "ignore_unverified_ssl_peer": args.ignore_unverified_ssl or None,
        "commit_sha1": args.commit_sha1,
        "include_build_number_in_key": args.include_build_number or None,
        "project_key": args.project_key,
        "prepend_parent_project_key": args.prepend_parent_key or None,
        "disable_inprogress_notification": args.disable_inprogress or None,
    }


def _notifier_config(config: dict, args: argparse.Namespace) -> NotifierConfig:
    return NotifierConfig(
        job=settings.job_config(config, **_job_overrides(args)),
        defaults=settings.global_config(config),
    )


def _credential_store(config: dict, args: argparse.Namespace) -> ConfigCredentialStore:
    base_dir = os.path.dirname(os.path.abspath(args.config or settings.config_path()))
    return ConfigCredentialStore(config.get("credentials", []), base_dir=base_dir)


def _build_dispatcher(config: dict, args: argparse.Namespace) -> NotificationDispatcher:
    return NotificationDispatcher(
        config=_notifier_config(config, args),
        environment=host_environment(config.get("ci_root_url"), config.get("proxy")),
        credentials=_credential_store(config, args),
        expander=EnvTemplateExpander(),
        client_factory=build_http_client,
    )


def _run_notification(config: dict, args: argparse.Namespace) -> int:
    dispatcher = _build_dispatcher(config, args)
    context = build_context(
        os.environ,
        revisions=args.revision or (),
        description=args.description,
        result=getattr(args, "result", None),
    )

    if args.command == "prebuild":
        dispatcher.prebuild(context)
    elif args.command == "perform":
        dispatcher.perform(context)
    else:
        dispatcher.dispatch(context, BuildState[args.state])
    return 0


def _check(config: dict, args: argparse.Namespace) -> int:
    """Validate the effective server URL and credentials id."""

    notifier_config = _notifier_config(config, args)
    ok = True

    try:
        parse_base_url(notifier_config.base_url)
    except ConfigurationError as exc:
        LOGGER.error("Please specify a valid URL here or in the global configuration (%s)", exc)
        ok = False

    credentials_id = notifier_config.credentials_id
    if is_blank(credentials_id):
        LOGGER.error("Please specify the credentials to use")
        ok = False
    elif credentials_id not in _credential_store(config, args).matching_ids():
        LOGGER.error("Credentials %s are not a username/password or certificate entry", credentials_id)
        ok = False

    if ok:
        LOGGER.info("Configuration OK (server %s)", notifier_config.base_url)
    return 0 if ok else 1


def _list_credentials(config: dict, args: argparse.Namespace) -> int:
    for credentials_id in _credential_store(config, args).matching_ids():
        print(credentials_id)
    return 0


def _add_job_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--base-url", help="Bitbucket server base URL (overrides global)")
    parser.add_argument("--credentials-id", help="Credentials id (overrides global)")
    parser.add_argument("--ignore-unverified-ssl", action="store_true", help="Accept any server certificate")
    parser.add_argument("--commit-sha1", help="Commit SHA1 template, e.g. ${GIT_COMMIT}")
    parser.add_argument("--include-build-number", action="store_true", help="Add the build number to the key")
    parser.add_argument("--project-key", help="Build key template (overrides the default key)")
    parser.add_argument("--prepend-parent-key", action="store_true", help="Prefix the key with the parent job")
    parser.add_argument(
        "--disable-inprogress",
        action="store_true",
        help="Skip the INPROGRESS notification in prebuild",
    )


def _add_build_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--revision",
        action="append",
        help="Built revision as SHA1[:MARKED_SHA1]; repeat for multi-SCM builds",
    )
    parser.add_argument("--description", help="Build description shown in Bitbucket")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog=NAME)
    parser.add_argument("--config", help="Path to config.json")
    subparsers = parser.add_subparsers(dest="command", required=True)

    prebuild = subparsers.add_parser("prebuild", help="Send the INPROGRESS notification")
    perform = subparsers.add_parser("perform", help="Send the final build result")
    perform.add_argument("--result", help="Build result (SUCCESS, UNSTABLE, FAILURE, ...)")
    notify = subparsers.add_parser("notify", help="Send an explicit build state")
    notify.add_argument("--state", required=True, choices=[state.name for state in BuildState])
    for subparser in (prebuild, perform, notify):
        _add_job_arguments(subparser)
        _add_build_arguments(subparser)

    check = subparsers.add_parser("check", help="Validate the effective configuration")
    _add_job_arguments(check)
    subparsers.add_parser("credentials", help="List usable credential ids")

    args = parser.parse_args(argv)
    config = settings.load_config(args.config)
    _configure_logging(config)

    if args.command == "check":
        return _check(config, args)
    if args.command == "credentials":
        return _list_credentials(config, args)
    return _run_notification(config, args)


if __name__ == "__main__":
    raise SystemExit(main())
