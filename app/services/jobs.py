# app/services/jobs.py
"""
In-memory job registry.

All state lives in one dict guarded by a lock; a restart clears every job.
Status moves forward only: queued -> running -> completed | failed.
"""
from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from app.schemas.purchase import PurchaseParams


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


_ALLOWED = {
    JobStatus.QUEUED: {JobStatus.RUNNING},
    JobStatus.RUNNING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


class InvalidJobTransition(ValueError):

    def __init__(self, job_id: str, current: JobStatus, target: JobStatus):
        super().__init__(
            f"Job {job_id} cannot move from {current.value} to {target.value}")
        self.job_id = job_id
        self.current = current
        self.target = target


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    id: str
    params: PurchaseParams
    status: JobStatus = JobStatus.QUEUED
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    completed_at: Optional[datetime] = None
    logs: List[str] = field(default_factory=list)
    error: Optional[str] = None
    result: Any = None

    def snapshot(self) -> "Job":
        # copy with its own log list so readers never see later appends
        return replace(self, logs=list(self.logs))


class JobRegistry:

    def __init__(self):
        self._lock = threading.Lock()
        self._store: Dict[str, Job] = {}  # job_id -> Job, in creation order

    @staticmethod
    def _new_id() -> str:
        return f"job_{uuid.uuid4().hex}"

    def create(self, params: PurchaseParams) -> Job:
        with self._lock:
            job_id = self._new_id()
            while job_id in self._store:
                job_id = self._new_id()
            job = Job(id=job_id, params=params, logs=["Purchase job created"])
            self._store[job_id] = job
            return job.snapshot()

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._store.get(job_id)
            return job.snapshot() if job else None

    def list(self) -> List[Job]:
        with self._lock:
            return [job.snapshot() for job in self._store.values()]

    def delete(self, job_id: str) -> bool:
        with self._lock:
            return self._store.pop(job_id, None) is not None

    def delete_terminal(self) -> int:
        with self._lock:
            doomed = [jid for jid, job in self._store.items() if job.status.is_terminal]
            for jid in doomed:
                del self._store[jid]
            return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    # ── mutations used by the runner ──────────────────────────────
    # Every mutation returns False when the job has been deleted meanwhile.

    def append_log(self, job_id: str, message: str) -> bool:
        with self._lock:
            job = self._store.get(job_id)
            if job is None:
                return False
            job.logs.append(message)
            job.updated_at = _now()
            return True

    def _transition(self, job_id: str, target: JobStatus, message: str,
                    **fields: Any) -> bool:
        with self._lock:
            job = self._store.get(job_id)
            if job is None:
                return False
            if target not in _ALLOWED[job.status]:
                raise InvalidJobTransition(job_id, job.status, target)
            now = _now()
            job.status = target
            job.updated_at = now
            if target.is_terminal:
                job.completed_at = now
            for name, value in fields.items():
                setattr(job, name, value)
            job.logs.append(message)
            return True

    def mark_running(self, job_id: str) -> bool:
        return self._transition(job_id, JobStatus.RUNNING,
                                "Starting ticket purchase process")

    def mark_completed(self, job_id: str, result: Any = None) -> bool:
        return self._transition(job_id, JobStatus.COMPLETED,
                                "Purchase process completed successfully",
                                result=result)

    def mark_failed(self, job_id: str, error: str) -> bool:
        return self._transition(job_id, JobStatus.FAILED, f"Error: {error}",
                                error=error)
