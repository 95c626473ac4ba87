"""Background job releasing license seats held by long-deleted assets."""

from __future__ import annotations

import logging
import os
import threading
from datetime import timedelta
from typing import Optional

from ..database import SessionLocal
from .lifecycle import LifecycleService, utcnow
from .scheduler_monitor import JOB_LICENSE_RETENTION, SchedulerMonitor

LOGGER = logging.getLogger(__name__)

RETENTION_DAYS_ENV = "SOFT_DELETE_LICENSE_RETENTION_DAYS"
RETENTION_INTERVAL_ENV = "LICENSE_RETENTION_CHECK_INTERVAL_MINUTES"

DEFAULT_RETENTION_INTERVAL = timedelta(minutes=60)

_retention_thread: Optional[threading.Thread] = None
_retention_stop = threading.Event()


def _read_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        LOGGER.warning("Invalid value for %s=%s; using %s", name, raw, default)
        return default


def get_retention_days() -> Optional[int]:
    """Days a deleted asset keeps its seats, or ``None`` when seats are kept forever."""

    days = _read_int(RETENTION_DAYS_ENV, None)
    if days is None:
        return None
    if days < 0:
        LOGGER.warning("%s must not be negative; retention disabled.", RETENTION_DAYS_ENV)
        return None
    return days


def _resolve_interval() -> timedelta:
    interval = _read_int(
        RETENTION_INTERVAL_ENV, int(DEFAULT_RETENTION_INTERVAL.total_seconds() / 60)
    )
    if interval is None or interval <= 0:
        LOGGER.warning("%s must be greater than zero; using the default.", RETENTION_INTERVAL_ENV)
        return DEFAULT_RETENTION_INTERVAL
    return timedelta(minutes=interval)


def run_retention_cycle(session_factory=SessionLocal) -> int:
    """Release the seats of assets deleted longer than the retention period."""

    days = get_retention_days()
    if days is None:
        return 0
    session = session_factory()
    try:
        released = LifecycleService.release_retained_seats(
            session, deleted_before=utcnow() - timedelta(days=days)
        )
    finally:
        session.close()
    if released:
        LOGGER.info("License retention released %s seats", released)
    return released


def _retention_worker(interval: timedelta) -> None:
    while not _retention_stop.is_set():
        released = None
        try:
            released = run_retention_cycle()
        except Exception as exc:
            LOGGER.exception("License retention cycle failed: %s", exc)
            SchedulerMonitor.record_error(JOB_LICENSE_RETENTION, str(exc))
        SchedulerMonitor.record_tick(JOB_LICENSE_RETENTION, released)
        _retention_stop.wait(max(interval.total_seconds(), 60.0))


def start_license_retention_scheduler() -> bool:
    """Start the retention worker; returns ``False`` when no retention period is configured."""

    global _retention_thread
    if get_retention_days() is None:
        LOGGER.info("%s not set; deleted assets keep their seats.", RETENTION_DAYS_ENV)
        return False
    if _retention_thread and _retention_thread.is_alive():
        return True

    interval = _resolve_interval()
    _retention_stop.clear()
    _retention_thread = threading.Thread(
        target=_retention_worker, args=(interval,), daemon=True
    )
    _retention_thread.start()
    LOGGER.info("License retention scheduler started every %s", interval)
    return True


def stop_license_retention_scheduler() -> None:
    _retention_stop.set()
    if _retention_thread and _retention_thread.is_alive():
        _retention_thread.join(timeout=5)
