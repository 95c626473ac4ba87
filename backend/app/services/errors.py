"""Business-rule errors raised by the allocation engine.

Every error carries a stable machine-readable ``code``, the HTTP status the
routers answer with, and a structured ``detail`` payload naming the invariant
or field involved so callers can correct the request.
"""

from __future__ import annotations

from typing import Any, Optional


class AssetEngineError(RuntimeError):
    """Base class for caller-correctable rejections."""

    code = "engine_error"
    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        invariant: Optional[str] = None,
        **context: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.invariant = invariant
        self.context = context

    @property
    def detail(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.field is not None:
            payload["field"] = self.field
        if self.invariant is not None:
            payload["invariant"] = self.invariant
        payload.update(self.context)
        return payload


class ValidationFailed(AssetEngineError):
    """Malformed or missing input, or a reference that does not qualify."""

    code = "validation_failed"
    status_code = 422


class StructuralViolation(AssetEngineError):
    """Component/standalone rules would be broken."""

    code = "structural_violation"
    status_code = 409


class ComponentCannotBeAssigned(StructuralViolation):
    code = "component_cannot_be_assigned"


class AlreadyAssigned(AssetEngineError):
    code = "already_assigned"
    status_code = 409


class InvalidStatusTransition(AssetEngineError):
    code = "invalid_status_transition"
    status_code = 409


class PoolExhausted(AssetEngineError):
    """No seat left in the license pool."""

    code = "pool_exhausted"
    status_code = 409


class PoolMismatch(AssetEngineError):
    """The license pool belongs to another software product."""

    code = "pool_mismatch"
    status_code = 422


class DateAfterExpiration(AssetEngineError):
    """Installation date falls after the pool expiration date."""

    code = "date_after_expiration"
    status_code = 422


class NotFound(AssetEngineError):
    code = "not_found"
    status_code = 404


class AssetDeleted(NotFound):
    """The asset exists but is soft-deleted."""

    code = "asset_deleted"


class AlreadyDeleted(AssetEngineError):
    code = "already_deleted"
    status_code = 409


class NotDeleted(AssetEngineError):
    code = "not_deleted"
    status_code = 409


class TooManyAssets(AssetEngineError):
    code = "too_many_assets"
    status_code = 413


class ConcurrentChange(AssetEngineError):
    """Related rows changed between the first read and taking the locks; retry."""

    code = "concurrent_change"
    status_code = 409


class RestoreConflict(AssetEngineError):
    """Restoring would break an invariant because the world changed meanwhile."""

    code = "restore_conflict"
    status_code = 409


class ParentNoLongerValid(RestoreConflict):
    code = "parent_no_longer_valid"


# Allocation callers know this rejection by its contract name.
ExpiredBeforeInstallDate = DateAfterExpiration
