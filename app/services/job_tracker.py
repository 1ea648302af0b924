"""
In-memory job status store polled by clients.

Entries are replaced wholesale on every update and expire a fixed time after
their last write, whatever their status. State is lost on restart.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from app.core import config
from app.models.compilation import JobState, JobStatus

logger = logging.getLogger("compiler.jobs")

PLACEHOLDER_MESSAGE = "Processing video..."
PLACEHOLDER_PROGRESS = 10


def new_job_id() -> str:
    """Time-based id with a random suffix. Unique per process, not secret."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


@dataclass
class _Entry:
    state: JobState
    written_at: float


class JobTracker:
    def __init__(
        self,
        retention_seconds: float = config.JOB_RETENTION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.retention_seconds = retention_seconds
        self._clock = clock
        self._jobs: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def create(self, job_id: str, state: Optional[JobState] = None) -> JobState:
        state = state or JobState(status=JobStatus.PROCESSING, message="Compilation queued", progress=0)
        with self._lock:
            self._purge_locked()
            if job_id in self._jobs:
                raise ValueError(f"Job {job_id} already exists")
            self._jobs[job_id] = _Entry(state=state, written_at=self._clock())
        logger.info("[%s] Job created (%s)", job_id, state.status.value)
        return state

    def update(
        self,
        job_id: str,
        status: JobStatus,
        message: str,
        progress: int,
        video_url: Optional[str] = None,
        error: Optional[str] = None,
    ) -> JobState:
        """Overwrite the job's snapshot. Progress never moves backwards."""
        with self._lock:
            self._purge_locked()
            previous = self._jobs.get(job_id)
            if previous is not None and progress < previous.state.progress:
                progress = previous.state.progress
            state = JobState(
                status=status,
                message=message,
                progress=max(0, min(100, progress)),
                videoUrl=video_url if status is JobStatus.COMPLETED else None,
                error=error if status is JobStatus.FAILED else None,
            )
            self._jobs[job_id] = _Entry(state=state, written_at=self._clock())
        logger.debug("[%s] %s %d%% - %s", job_id, status.value, state.progress, message)
        return state

    def get(self, job_id: str) -> Optional[JobState]:
        """Current snapshot, or None when the id is unknown or expired."""
        with self._lock:
            self._purge_locked()
            entry = self._jobs.get(job_id)
            return entry.state.model_copy() if entry else None

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def clear(self) -> None:
        with self._lock:
            self._jobs.clear()

    @staticmethod
    def placeholder() -> JobState:
        """Response served for ids the tracker does not know about."""
        return JobState(
            status=JobStatus.PROCESSING,
            message=PLACEHOLDER_MESSAGE,
            progress=PLACEHOLDER_PROGRESS,
        )

    def _purge_locked(self) -> int:
        cutoff = self._clock() - self.retention_seconds
        expired = [job_id for job_id, entry in self._jobs.items() if entry.written_at <= cutoff]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            logger.info("Expired %d job(s) from tracker", len(expired))
        return len(expired)


job_tracker = JobTracker()
