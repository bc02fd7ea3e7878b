# backend/vhc_engine/exceptions.py
"""
Engine-wide exception hierarchy.

Services raise these and never raise HTTPException; main.create_app()
registers one handler per type so the status codes stay consistent:

    NotFoundError        -> 404
    ValidationError      -> 422
    InvalidStatusError   -> 409
    ForbiddenActionError -> 403
    LinkExpiredError     -> 410

Invalid status *transitions* during recompute are not errors at all; see
domain.transitions.SILENT_TRANSITION_SKIP.
"""
from __future__ import annotations

from typing import Any, Iterable, Optional


class EngineError(Exception):
    status_code: int = 400

    def to_payload(self) -> dict[str, Any]:
        return {"detail": str(self)}


class NotFoundError(EngineError):
    """
    The record does not exist within the caller's organization.

    Used for both genuinely missing rows and cross-org lookups so a 404 never
    confirms that another organization's record exists.
    """

    status_code = 404

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        org_id: Optional[int] = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.org_id = org_id
        super().__init__(f"{resource} not found")

    def to_payload(self) -> dict[str, Any]:
        # org_id stays in logs only
        return {"detail": str(self), "resource": self.resource, "resource_id": self.resource_id}


class ValidationError(EngineError):
    """Well-formed input that breaks a business rule (missing option, past defer date, ...)."""

    status_code = 422

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.details = details or {}
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"detail": str(self)}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidStatusError(EngineError):
    status_code = 409

    def __init__(self, message: str, *, current_status: str, allowed: Iterable[str] = ()) -> None:
        self.current_status = current_status
        self.allowed = sorted(allowed)
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        return {"detail": str(self), "current_status": self.current_status, "allowed": self.allowed}


class ForbiddenActionError(EngineError):
    status_code = 403


class LinkExpiredError(EngineError):
    status_code = 410

    def __init__(self, expired_at) -> None:
        self.expired_at = expired_at
        super().__init__("Link has expired")

    def to_payload(self) -> dict[str, Any]:
        return {"detail": str(self), "expired": True, "expired_at": self.expired_at}
