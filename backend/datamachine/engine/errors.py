"""Error taxonomy shared by steps, handlers and auth providers."""

from __future__ import annotations

from typing import Any


class DataMachineError(Exception):
    """Base class for errors raised inside the pipeline engine."""

    error_type = "DataMachineError"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.error_type, "message": str(self) or self.error_type}


class ConfigurationError(DataMachineError):
    """Missing handler slug, required settings or static credentials."""

    error_type = "ConfigurationError"


class CredentialsMissingError(ConfigurationError):
    """An auth provider has no stored token to work with."""

    error_type = "ConfigMissing"


class AuthenticationError(DataMachineError):
    """Token refresh failed or credentials were rejected."""

    error_type = "AuthenticationFailed"


class TransientSourceError(DataMachineError):
    """Network failure, rate limiting or a malformed upstream response."""

    error_type = "TransientSourceError"


class ContentValidationError(DataMachineError):
    """Fetched content was empty or could not be interpreted."""

    error_type = "ContentValidationError"


class HandlerExecutionError(DataMachineError):
    """Unexpected fault inside a handler."""

    error_type = "HandlerExecutionError"


class HandlerTimeoutError(TransientSourceError):
    """A handler call exceeded the configured time limit."""

    error_type = "Timeout"


def error_payload(exc: BaseException) -> dict[str, Any]:
    """Convert any exception into the structured error dictionary."""

    if isinstance(exc, DataMachineError):
        return exc.to_dict()
    message = str(exc) or exc.__class__.__name__
    return {
        "type": HandlerExecutionError.error_type,
        "message": message,
        "exception": exc.__class__.__name__,
    }
