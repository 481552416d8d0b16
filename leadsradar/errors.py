"""Error taxonomy for LeadsRadar core operations.

Every failure the core reports to a caller is one of the classes below.  The
HTTP layer (``leadsradar/api/errors.py``) renders them as ``{"error": ...}``
JSON with the class's ``status_code``; the CLI prints ``public_message``.

``public_message`` is the only text ever shown to a caller.  ``detail`` is
internal context for logs and must never contain secrets or full API keys.
"""

from __future__ import annotations


class LeadsRadarError(Exception):
    """Base class for structured LeadsRadar errors.

    Args:
        public_message: Caller-facing message.  Defaults to the class default.
        detail:         Internal-only detail for structured logging.
    """

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "Internal Server Error"

    def __init__(self, public_message: str | None = None, detail: str | None = None) -> None:
        self.public_message = public_message or self.default_message
        self.detail = detail
        super().__init__(f"{self.code}: {detail}" if detail else self.public_message)

    def to_dict(self) -> dict:
        return {"error": self.public_message, "code": self.code}


class Unauthorized(LeadsRadarError):
    """No/invalid caller identity, or the caller does not own the resource."""

    status_code = 401
    code = "unauthorized"
    default_message = "Unauthorized"


class InvalidInput(LeadsRadarError):
    """Input rejected before any state was touched.  Never retried."""

    status_code = 400
    code = "invalid_input"
    default_message = "Invalid input"


class ValidationError(InvalidInput):
    """Schema validation failure carrying field-level details.

    Args:
        public_message: Caller-facing summary.
        details:        List of ``{"field": ..., "message": ...}`` dicts.
    """

    code = "validation_error"
    default_message = "Invalid payload"

    def __init__(
        self,
        public_message: str | None = None,
        details: list[dict] | None = None,
        detail: str | None = None,
    ) -> None:
        self.details = details or []
        super().__init__(public_message, detail=detail)

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["details"] = self.details
        return body


class RateLimitExceeded(LeadsRadarError):
    """A per-user resource ceiling has been reached; the caller should back off."""

    status_code = 429
    code = "rate_limit_exceeded"
    default_message = "Rate limit exceeded"


class NotFound(LeadsRadarError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class VersionConflict(LeadsRadarError):
    """Optimistic-concurrency loss: the stored version moved since the caller read it.

    Args:
        expected_version: Version the caller supplied.
        current_version:  Version currently stored, so the caller can refetch.
    """

    status_code = 409
    code = "version_conflict"
    default_message = "This lead was changed by someone else. Refresh and try again."

    def __init__(self, expected_version: int, current_version: int) -> None:
        self.expected_version = expected_version
        self.current_version = current_version
        super().__init__(
            detail=f"expected version {expected_version}, stored version {current_version}"
        )

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["current_version"] = self.current_version
        return body


class UpstreamError(LeadsRadarError):
    """An external dependency failed or timed out.  Not retried automatically."""

    status_code = 502
    code = "upstream_error"
    default_message = "Upstream service unavailable"


class InternalError(LeadsRadarError):
    """Unexpected failure.  Carries the correlation id used in the logs.

    Args:
        request_id: Correlation id returned to the caller for support lookup.
        detail:     Internal-only context.
    """

    def __init__(self, request_id: str | None = None, detail: str | None = None) -> None:
        self.request_id = request_id
        super().__init__(detail=detail)

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.request_id:
            body["request_id"] = self.request_id
        return body
