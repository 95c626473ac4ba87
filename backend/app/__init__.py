"""FastAPI application package."""

from __future__ import annotations


def get_app():
    """Return the FastAPI application without importing it eagerly.

    Alembic and the import script load models only, so the app and its
    routers are imported on first use.
    """

    from .main import app as fastapi_app

    return fastapi_app


__all__ = ["get_app"]
