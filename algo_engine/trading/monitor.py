"""
Scheduled job bookkeeping: one JobExecution per run plus running totals per job type.
A job that is disabled, or has failed too many times in a row, is not started again
until it is re-enabled or reset.
"""

from __future__ import annotations
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

from algo_engine.core.types import JobExecution, JobRunStatus, ScheduledJob, utcnow
from algo_engine.persistence.repositories import Store

logger = logging.getLogger("algo_engine.jobs")

MAX_CONSECUTIVE_FAILURES = 10
DURATION_SMOOTHING = 0.2


class JobMonitor:
    def __init__(
        self,
        store: Store,
        clock: Callable = utcnow,
        max_consecutive_failures: int = MAX_CONSECUTIVE_FAILURES,
    ):
        self.store = store
        self.clock = clock
        self.max_consecutive_failures = max_consecutive_failures

    def _job(self, job: str) -> ScheduledJob:
        return self.store.jobs.get_job(job) or ScheduledJob(job=job)

    def set_enabled(self, job: str, enabled: bool) -> ScheduledJob:
        with self.store.transaction():
            state = self._job(job)
            state.enabled = enabled
            self.store.jobs.save_job(state)
        return state

    def reset(self, job: str) -> ScheduledJob:
        """Clear the failure streak so a tripped job runs again."""
        with self.store.transaction():
            state = self._job(job)
            state.consecutive_failures = 0
            self.store.jobs.save_job(state)
        return state

    def should_run(self, job: str) -> Optional[str]:
        """None when the job may run, otherwise the reason it is held back."""
        state = self.store.jobs.get_job(job)
        if state is None:
            return None
        if not state.enabled:
            logger.info("Job %s is disabled", job)
            return "disabled"
        if state.consecutive_failures > self.max_consecutive_failures:
            logger.error("Job %s has failed %d times in a row, skipping", job, state.consecutive_failures)
            return "too many consecutive failures"
        return None

    def start(self, job: str, metadata: Optional[Dict[str, Any]] = None) -> JobExecution:
        execution = JobExecution(id=uuid.uuid4().hex, job=job, started_at=self.clock(), metadata=dict(metadata or {}))
        self.store.jobs.save_execution(execution)
        logger.info("Job started: %s (%s)", job, execution.id)
        return execution

    def _finish(self, execution: JobExecution, status: JobRunStatus, error: Optional[str]) -> None:
        now = self.clock()
        execution.status = status
        execution.completed_at = now
        execution.duration_ms = max(0, int((now - execution.started_at).total_seconds() * 1000))
        execution.error = error
        with self.store.transaction():
            self.store.jobs.save_execution(execution)
            state = self._job(execution.job)
            state.last_run_at = now
            state.last_status = status
            state.last_error = error
            if status == JobRunStatus.COMPLETED:
                state.run_count += 1
                state.consecutive_failures = 0
                if state.average_duration_ms is None:
                    state.average_duration_ms = execution.duration_ms
                else:
                    state.average_duration_ms = round(
                        state.average_duration_ms * (1 - DURATION_SMOOTHING) + execution.duration_ms * DURATION_SMOOTHING
                    )
            else:
                state.failure_count += 1
                state.consecutive_failures += 1
            self.store.jobs.save_job(state)

    def complete(self, execution: JobExecution, metadata: Optional[Dict[str, Any]] = None) -> None:
        if metadata:
            execution.metadata.update(metadata)
        self._finish(execution, JobRunStatus.COMPLETED, None)
        logger.info("Job completed: %s (%sms)", execution.job, execution.duration_ms)

    def fail(self, execution: JobExecution, error: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        if metadata:
            execution.metadata.update(metadata)
        self._finish(execution, JobRunStatus.FAILED, error)
        logger.error("Job failed: %s - %s", execution.job, error)

    def history(self, job: str, limit: int = 10) -> List[JobExecution]:
        return self.store.jobs.history(job, limit)

    def stats(self) -> List[ScheduledJob]:
        return self.store.jobs.list_jobs()
