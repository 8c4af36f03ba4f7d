# repository/job_repository.py
import time
from typing import Callable, Dict, List, Optional
from config.settings import settings
from model.job import GenerationJob

Clock = Callable[[], float]


class JobRepository:
    """
    Flow:
    - One GenerationJob snapshot per job key, kept in process memory only.
    - Every write stamps `updated_at`; the orchestrator's sweep uses it to
      abandon stalled jobs and to drop old terminal ones.
    - Reads hand out deep copies so callers cannot mutate owned state.
    """

    def __init__(
        self,
        retention_seconds: int = settings.JOB_RETENTION_SECONDS,
        clock: Clock = time.monotonic,
    ) -> None:
        self._retention = int(retention_seconds)
        self._clock = clock
        self._jobs: Dict[str, GenerationJob] = {}

    # ---------------- Core CRUD ----------------

    def create(self, job_key: str, **fields) -> GenerationJob:
        now = self._clock()
        job = GenerationJob(job_key=job_key, started_at=now, updated_at=now, **fields)
        self._jobs[job_key] = job
        return job.model_copy(deep=True)

    def get(self, job_key: str) -> Optional[GenerationJob]:
        if not job_key:
            return None
        job = self._jobs.get(job_key)
        return job.model_copy(deep=True) if job else None

    def update(self, job_key: str, **fields) -> Optional[GenerationJob]:
        job = self._jobs.get(job_key)
        if job is None:
            return None
        updated = job.model_copy(update={**fields, "updated_at": self._clock()})
        self._jobs[job_key] = updated
        return updated.model_copy(deep=True)

    def touch(self, job_key: str) -> bool:
        job = self._jobs.get(job_key)
        if job is None:
            return False
        job.updated_at = self._clock()
        return True

    def delete(self, job_key: str) -> int:
        return 1 if self._jobs.pop(job_key, None) is not None else 0

    def all(self) -> List[GenerationJob]:
        return [j.model_copy(deep=True) for j in self._jobs.values()]

    # ---------------- Status helpers ----------------

    def is_active(self, job_key: str) -> bool:
        job = self._jobs.get(job_key)
        return bool(job and job.is_active)

    def idle_active(self, idle_seconds: float) -> List[str]:
        now = self._clock()
        return [
            key
            for key, job in self._jobs.items()
            if job.is_active and now - job.updated_at > idle_seconds
        ]

    def prune_terminal(self) -> int:
        """
        Drop terminal jobs whose last write is older than the retention window.
        """
        now = self._clock()
        expired = [
            key
            for key, job in self._jobs.items()
            if job.is_terminal and now - job.updated_at > self._retention
        ]
        for key in expired:
            del self._jobs[key]
        return len(expired)
