from __future__ import annotations

from ..extensions import db


JOB_STATUS_PENDING = "pending"
JOB_STATUS_RUNNING = "running"
JOB_STATUS_DEAD = "dead"
# Never stored: a job row is deleted once its handler succeeds.
JOB_STATUS_DONE = "done"


class QueuedJob(db.Model):
    """
    A deferred job waiting for `flask jobs drain`, or one that used up its attempts.

    LIFECYCLE:
    1. pending: enqueued, or failed with attempts left
    2. running: claimed by a drain (pending -> running is a conditional UPDATE)
    3. dead: failed max_attempts times; kept for inspection

    Successful jobs are deleted, so the table only holds outstanding work.
    """
    __tablename__ = "queued_jobs"
    __table_args__ = (
        db.Index("ix_queued_jobs_status_attempts", "status", "attempts", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    # Positional handler arguments (JSON array of ids)
    args = db.Column(db.JSON, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=JOB_STATUS_PENDING)  # pending, running, dead
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<QueuedJob id={self.id} name={self.name} status={self.status} attempts={self.attempts}>"
