"""Exceptions raised inside the notification pipeline."""

from __future__ import annotations


class NotifierError(Exception):
    """Base class for notifier errors."""


class ConfigurationError(NotifierError):
    """The effective configuration cannot be used (e.g. unparsable URL)."""


class TemplateExpansionError(NotifierError):
    """A template could not be expanded against the build context."""


class CredentialsError(NotifierError):
    """A credential entry is malformed or its key material cannot be read."""
