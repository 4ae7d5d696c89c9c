"""Centralized exception hierarchy for WXHub.

All domain and pipeline exceptions inherit from :class:`WxHubError` so that
callers can catch a single base class when they need a broad safety net, yet
still match on specific subclasses where narrower handling is appropriate.

Field-scoped errors (parse/validation/conversion) are normally *not* raised
past an adapter boundary: adapters collect them as diagnostics and drop the
offending field. Sink errors are carried inside ``SinkResult`` instead of
propagating. Only programmer errors (``InvariantViolation``,
``UnitMismatchError``) are expected to escape.

Hierarchy
---------
::

    WxHubError (base)
    ├── FieldError                (field-scoped, carries ``field``)
    │   ├── ParseError            (value could not be extracted)
    │   ├── ValidationError       (value outside physical range)
    │   └── ConversionOverflow    (unit math produced a non-finite value)
    ├── SinkError                 (per-sink delivery failure)
    │   ├── SinkTimeout
    │   ├── SinkUnavailable
    │   └── SinkRejected          (non-retryable)
    ├── QueueSaturated            (ingest backpressure drop)
    ├── ConfigurationError        (missing / invalid config)
    ├── InvariantViolation        (internal bug, raised loudly)
    └── UnitMismatchError         (conversion across quantities)
"""

from __future__ import annotations


class WxHubError(Exception):
    """Base exception for all WXHub errors.

    Parameters
    ----------
    message:
        Human-readable description.
    detail:
        Optional machine-readable context dict attached to the error for
        structured logging.
    """

    def __init__(self, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.detail = detail or {}


# ── Field-scoped errors ──────────────────────────────────────────────


class FieldError(WxHubError):
    """A single payload field was rejected; the rest of the record survives."""

    def __init__(self, field: str, message: str = "", *, raw: object = None, detail: dict | None = None) -> None:
        super().__init__(message or field, detail=detail)
        self.field = field
        self.raw = raw

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"kind": self.kind, "field": self.field, "message": str(self), "raw": None if self.raw is None else str(self.raw)}


class ParseError(FieldError):
    """Adapter could not extract a numeric value from the field."""


class ValidationError(FieldError):
    """Field value falls outside its physical range."""


class ConversionOverflow(FieldError):
    """Unit conversion produced a non-finite value."""


# ── Sink errors ──────────────────────────────────────────────────────


class SinkError(WxHubError):
    """Base for per-sink delivery failures."""

    retryable: bool = True


class SinkTimeout(SinkError):
    """A sink call did not complete within its per-attempt timeout."""


class SinkUnavailable(SinkError):
    """The sink backend refused or could not be reached."""


class SinkRejected(SinkError):
    """The backend rejected the unit itself; retrying cannot help."""

    retryable = False


# ── Pipeline / programmer errors ─────────────────────────────────────


class QueueSaturated(WxHubError):
    """The ingest queue stayed full past the enqueue timeout."""


class ConfigurationError(WxHubError):
    """Missing or invalid configuration value."""


class InvariantViolation(WxHubError):
    """Internal state is inconsistent. Never caught by the pipeline."""


class UnitMismatchError(WxHubError, TypeError):
    """Conversion requested between units of different quantities."""
