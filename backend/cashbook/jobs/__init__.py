# Overview: Background job runner backed by the queued_jobs table (at-least-once, per-job retry attempts).

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from flask import current_app

from ..extensions import db
from ..models import (
    QueuedJob,
    JOB_STATUS_DEAD,
    JOB_STATUS_DONE,
    JOB_STATUS_PENDING,
    JOB_STATUS_RUNNING,
)
from ..services.concurrency import run_with_retry


class JobNotRegisteredError(KeyError):
    pass


@dataclass(eq=False)
class Job:
    name: str
    args: tuple
    attempts: int = 0
    last_error: Optional[str] = None
    status: str = JOB_STATUS_PENDING
    id: Optional[int] = None


@dataclass(frozen=True)
class JobDefinition:
    handler: Callable
    max_attempts: int


def _from_row(row: QueuedJob) -> Job:
    return Job(
        name=row.name,
        args=tuple(row.args or ()),
        attempts=row.attempts,
        last_error=row.last_error,
        status=row.status,
        id=row.id,
    )


class JobQueue:
    """
    Named job handlers plus the queued_jobs table.

    MODES:
    - inline (JOBS_INLINE=True): enqueue() runs the job immediately, retrying
      up to max_attempts. Used by the CLI and tests.
    - deferred: enqueue() commits a pending row; drain() (any process) runs
      every pending row, including rows enqueued while draining.

    A job that raises is logged, its session rolled back, and retried until
    it has used max_attempts; then it is stored as dead. Handlers must be
    safe to run more than once.
    """

    def __init__(self, app=None):
        self._definitions: dict[str, JobDefinition] = {}
        self.inline = True
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self.inline = bool(app.config.get("JOBS_INLINE", True))
        app.extensions["job_queue"] = self

    def job(self, name: str, *, max_attempts: int = 1):
        """Decorator registering a handler under name."""
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        def decorator(func):
            self._definitions[name] = JobDefinition(handler=func, max_attempts=max_attempts)
            return func
        return decorator

    def registered(self) -> list[str]:
        return sorted(self._definitions)

    def _rows(self, status: str) -> list[Job]:
        rows = db.session.query(QueuedJob).filter_by(status=status).order_by(QueuedJob.id).all()
        return [_from_row(row) for row in rows]

    @property
    def pending(self) -> list[Job]:
        return self._rows(JOB_STATUS_PENDING)

    @property
    def running(self) -> list[Job]:
        return self._rows(JOB_STATUS_RUNNING)

    @property
    def dead(self) -> list[Job]:
        return self._rows(JOB_STATUS_DEAD)

    def enqueue(self, name: str, *args) -> Job:
        """
        Run (inline) or store (deferred) a job.

        Deferred mode commits the session; callers enqueue after their own
        commit.
        """
        if name not in self._definitions:
            raise JobNotRegisteredError(name)
        job = Job(name=name, args=tuple(args))
        if self.inline:
            while not self.perform(job) and job.status != JOB_STATUS_DEAD:
                pass
            if job.status == JOB_STATUS_DEAD:
                self._store(job)
        else:
            self._store(job)
        return job

    def _store(self, job: Job) -> None:
        row = QueuedJob(
            name=job.name,
            args=list(job.args),
            status=job.status,
            attempts=job.attempts,
            last_error=job.last_error,
        )
        db.session.add(row)
        db.session.commit()
        job.id = row.id

    def perform(self, job: Job) -> bool:
        """Run one attempt of job. True on success."""
        definition = self._definitions[job.name]
        job.attempts += 1
        try:
            definition.handler(*job.args)
        except Exception as exc:
            db.session.rollback()
            job.last_error = str(exc)
            current_app.logger.exception(
                "Job %s%r failed (attempt %s of %s)",
                job.name, job.args, job.attempts, definition.max_attempts,
            )
            if job.attempts >= definition.max_attempts:
                job.status = JOB_STATUS_DEAD
            else:
                job.status = JOB_STATUS_PENDING
            return False
        job.status = JOB_STATUS_DONE
        return True

    def _claim_next(self) -> Job | None:
        """
        Move the next pending row to running with a conditional UPDATE.

        Retried jobs sort after fresh ones. Losing the claim to another
        drain just moves on to the next row.
        """
        while True:
            row = db.session.query(QueuedJob).filter_by(status=JOB_STATUS_PENDING).order_by(
                QueuedJob.attempts, QueuedJob.id
            ).first()
            if row is None:
                return None
            job = _from_row(row)
            claimed = db.session.query(QueuedJob).filter(
                QueuedJob.id == job.id,
                QueuedJob.status == JOB_STATUS_PENDING,
            ).update({QueuedJob.status: JOB_STATUS_RUNNING}, synchronize_session=False)
            db.session.commit()
            if claimed == 1:
                job.status = JOB_STATUS_RUNNING
                return job

    def _settle(self, job: Job) -> None:
        def _op():
            query = db.session.query(QueuedJob).filter_by(id=job.id)
            if job.status == JOB_STATUS_DONE:
                query.delete(synchronize_session=False)
            else:
                query.update(
                    {
                        QueuedJob.status: job.status,
                        QueuedJob.attempts: job.attempts,
                        QueuedJob.last_error: job.last_error,
                    },
                    synchronize_session=False,
                )
            db.session.commit()

        run_with_retry(_op)

    def drain(self) -> int:
        """
        Run pending jobs (including ones they enqueue) until none is left.
        Failed jobs with attempts left go back to pending.
        Returns the number of jobs that succeeded.
        """
        succeeded = 0
        while True:
            job = self._claim_next()
            if job is None:
                return succeeded
            if job.name not in self._definitions:
                current_app.logger.error("Job %s has no registered handler; marking it dead", job.name)
                job.status = JOB_STATUS_DEAD
                job.last_error = f"No handler registered for job {job.name}"
            elif self.perform(job):
                succeeded += 1
            self._settle(job)


job_queue = JobQueue()


def get_job_queue() -> JobQueue:
    return current_app.extensions["job_queue"]
