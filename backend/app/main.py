"""Expose the asset allocation FastAPI app."""

import logging
import os
import re
from contextlib import asynccontextmanager
from typing import Callable, Iterable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .migrations import run_database_migrations
from .routers import (
    assets_router,
    catalog_router,
    license_pools_router,
    software_installations_router,
)
from .services.license_retention import (
    start_license_retention_scheduler,
    stop_license_retention_scheduler,
)
from .services.scheduler_monitor import JOB_LICENSE_RETENTION, SchedulerMonitor

LOCAL_DEVELOPMENT_ORIGINS = {
    "http://localhost:5173",
    "http://localhost:5174",
}
LOCALHOST_ORIGIN_REGEX = r"https?://(localhost|127\.0\.0\.1|0\.0\.0\.0)(:\d+)?$"


def _normalize_origin(origin: str) -> str | None:
    stripped = origin.strip()
    if not stripped:
        return None
    return stripped.rstrip("/")


def _read_allowed_origins(raw_origins: Iterable[str]) -> list[str]:
    normalized = {_normalize_origin(origin) for origin in raw_origins}
    return sorted({origin for origin in normalized if origin})


def _resolve_allowed_origins() -> list[str]:
    """Origins from ``BACKEND_ALLOWED_ORIGINS`` (comma or whitespace separated) plus the dev servers."""

    raw_value = os.getenv("BACKEND_ALLOWED_ORIGINS") or ""
    origins = [origin for origin in re.split(r"[\s,]+", raw_value) if origin]
    return _read_allowed_origins([*origins, *LOCAL_DEVELOPMENT_ORIGINS])


def _read_bool_env(name: str, default: bool = True) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _maybe_start_job(env_flag: str, job_name: str, starter: Callable[[], bool]) -> None:
    enabled = _read_bool_env(env_flag, True)
    if not enabled:
        SchedulerMonitor.set_job_enabled(job_name, False)
        LOGGER.info("%s disabled via %s", job_name, env_flag)
        return
    SchedulerMonitor.set_job_enabled(job_name, starter())


@asynccontextmanager
async def lifespan(_: FastAPI):
    ensure_database_is_ready()
    start_background_jobs()
    try:
        yield
    finally:
        stop_background_jobs()


app = FastAPI(title="Asset Allocation API", lifespan=lifespan)

LOGGER = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_resolve_allowed_origins(),
    allow_origin_regex=LOCALHOST_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(catalog_router, prefix="/catalog", tags=["catalog"])
app.include_router(assets_router, prefix="/assets", tags=["assets"])
app.include_router(
    software_installations_router,
    prefix="/software-installations",
    tags=["software-installations"],
)
app.include_router(license_pools_router, prefix="/license-pools", tags=["license-pools"])


def ensure_database_is_ready() -> None:
    """Apply pending database migrations when the service starts."""

    if not _read_bool_env("ENABLE_STARTUP_MIGRATIONS", True):
        LOGGER.info("Startup migrations disabled via ENABLE_STARTUP_MIGRATIONS")
        return
    LOGGER.info("Ensuring database schema is up to date before serving requests")
    run_database_migrations()


def start_background_jobs() -> None:
    _maybe_start_job(
        env_flag="ENABLE_LICENSE_RETENTION",
        job_name=JOB_LICENSE_RETENTION,
        starter=start_license_retention_scheduler,
    )


@app.get("/", tags=["health"])
def read_root() -> dict[str, object]:
    """Return a simple health check response with background job status."""
    return {"status": "ok", "jobs": SchedulerMonitor.snapshot()}


def stop_background_jobs() -> None:
    stop_license_retention_scheduler()
