"""Shared error taxonomy for cairn-bench."""

from __future__ import annotations

from typing import Any, Mapping


def _normalize_context_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return normalize_context(value)
    if isinstance(value, (list, tuple)):
        return [_normalize_context_value(item) for item in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def normalize_context(context: Mapping[str, Any]) -> dict[str, Any]:
    """Return a JSON-friendly copy of an error context mapping."""
    return {key: _normalize_context_value(val) for key, val in context.items()}


class CBError(Exception):
    """Base error type for typed failure handling."""

    def __init__(
        self,
        message: str,
        *,
        context: Mapping[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.context = normalize_context(context or {})
        if cause is not None:
            self.__cause__ = cause

    @property
    def error_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.error_type, "message": str(self), "context": self.context}


class DiscoveryError(CBError):
    """Case layout is missing or holds no benchmark cases."""


class StagingError(CBError):
    """A case could not be staged into the workspace."""


class MeasurementError(CBError):
    """The benchmarking tool failed for one (case, strategy) pair."""


class CollectionError(CBError):
    """Copying workspace artifacts into the results tree failed."""


class ContainerError(CBError):
    """A container runtime command exited non-zero."""


class ConfigurationError(CBError, ValueError):
    """Failure due to invalid configuration or a malformed invocation."""


class ReportError(CBError):
    """The downstream report generator failed."""


class ArchiveError(CBError):
    """Packaging the results tree failed."""


class CleanupError(CBError):
    """The shared workspace could not be restored to its baseline."""


def error_to_payload(error: CBError) -> dict[str, Any]:
    """Convert a CBError to a result/marker payload."""
    return {
        "error_type": error.error_type,
        "error": str(error),
        "error_context": error.context,
    }
