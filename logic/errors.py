"""Error taxonomy shared by the domain services and the HTTP layer."""

from __future__ import annotations

from typing import Any, Dict, Optional


class TryOnError(Exception):
    """Base class for failures surfaced to a caller with a machine-readable kind."""

    kind = "internal"
    status_code = 500

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.field:
            payload["field"] = self.field
        return {"error": payload}


class InvalidRequest(TryOnError):
    """Malformed, missing or over-quota input."""

    kind = "invalid_request"
    status_code = 400


class Unauthorized(TryOnError):
    kind = "unauthorized"
    status_code = 401


class Forbidden(TryOnError):
    kind = "forbidden"
    status_code = 403


class NotFound(TryOnError):
    kind = "not_found"
    status_code = 404


class UpstreamFailure(TryOnError):
    """An external AI or storage service failed or timed out."""

    kind = "upstream_failure"
    status_code = 502


__all__ = [
    "TryOnError",
    "InvalidRequest",
    "Unauthorized",
    "Forbidden",
    "NotFound",
    "UpstreamFailure",
]
