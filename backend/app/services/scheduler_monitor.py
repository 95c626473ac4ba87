"""Health tracking for the background jobs started with the application."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, MutableMapping, Optional

JOB_LICENSE_RETENTION = "license_retention"


@dataclass
class JobStatus:
    enabled: bool = True
    runs: int = 0
    last_tick: datetime | None = None
    last_result: Optional[int] = None
    recent_errors: deque[str] = field(default_factory=lambda: deque(maxlen=10))


class SchedulerMonitor:
    """Thread-safe registry of job status, exposed by the health endpoint."""

    _lock = Lock()
    _jobs: Dict[str, JobStatus] = {}

    @classmethod
    def _status(cls, job_name: str) -> JobStatus:
        status = cls._jobs.get(job_name)
        if status is None:
            status = JobStatus()
            cls._jobs[job_name] = status
        return status

    @classmethod
    def set_job_enabled(cls, job_name: str, enabled: bool) -> None:
        with cls._lock:
            cls._status(job_name).enabled = enabled

    @classmethod
    def record_tick(cls, job_name: str, result: Optional[int] = None) -> None:
        """Mark one completed cycle; ``result`` is the number of items it processed."""

        with cls._lock:
            status = cls._status(job_name)
            status.runs += 1
            status.last_tick = datetime.now(timezone.utc)
            if result is not None:
                status.last_result = result

    @classmethod
    def record_error(cls, job_name: str, message: str) -> None:
        timestamped = f"{datetime.now(timezone.utc).isoformat()} - {message}"
        with cls._lock:
            cls._status(job_name).recent_errors.append(timestamped)

    @classmethod
    def snapshot(cls) -> MutableMapping[str, dict[str, object]]:
        with cls._lock:
            return {
                name: {
                    "enabled": status.enabled,
                    "runs": status.runs,
                    "last_tick": status.last_tick,
                    "last_result": status.last_result,
                    "recent_errors": list(status.recent_errors),
                }
                for name, status in cls._jobs.items()
            }

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._jobs.clear()
