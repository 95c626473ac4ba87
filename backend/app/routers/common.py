"""Helpers shared by the routers."""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException

from ..services.errors import AssetEngineError

API_SOURCE = "api"


def engine_error(exc: AssetEngineError) -> HTTPException:
    """Translate a business-rule rejection into the HTTP error the caller sees."""

    return HTTPException(status_code=exc.status_code, detail=exc.detail)


def request_actor(x_actor_id: Optional[str] = Header(None, max_length=120)) -> Optional[str]:
    """Identifier of whoever issued the request, recorded in the asset history."""

    return x_actor_id.strip() if x_actor_id and x_actor_id.strip() else None
