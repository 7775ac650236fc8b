"""Exception hierarchy shared across the receiver."""

from __future__ import annotations


class ReceiverError(Exception):
    """Base class for receiver errors."""


class ConfigError(ReceiverError):
    """Invalid environment configuration (fatal at startup)."""


class BackendConfigError(ConfigError):
    """A configured LLM backend is missing its model, credential or region."""


class BackendError(ReceiverError):
    """A single LLM backend call failed (transport, status, timeout or decode)."""


class PrometheusQueryError(ReceiverError):
    """A single Prometheus instant query failed."""


class PromptBuildError(ReceiverError):
    """The prompt payload could not be serialized."""
