from __future__ import annotations

from ..extensions import db
from cashbook.time_utils import to_utc_z


REPORT_STATUS_IN_PROCESS = "in_process"
REPORT_STATUS_COMPLETED = "completed"
REPORT_STATUS_FAILED = "failed"
TERMINAL_REPORT_STATUSES = {REPORT_STATUS_COMPLETED, REPORT_STATUS_FAILED}


class TransactionsReport(db.Model):
    """
    One archival run for one account and one cutoff date.

    LIFECYCLE:
    1. in_process: created by the scheduler (or on request)
    2. completed: rows tagged, exported, consolidated and purged
    3. failed: any step failed; failure_reason says why

    completed and failed are terminal.

    The (account_id, cutoff_date) unique constraint is what makes repeated
    scheduler runs safe: a second insert for the same pair fails and the
    caller skips that account.
    """
    __tablename__ = "transactions_reports"
    __table_args__ = (
        db.UniqueConstraint("account_id", "cutoff_date", name="uq_transactions_reports_account_cutoff"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    cutoff_date = db.Column(db.Date, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=REPORT_STATUS_IN_PROCESS, index=True)  # in_process, completed, failed
    failure_reason = db.Column(db.Text, nullable=True)

    email_sent = db.Column(db.Boolean, nullable=False, default=False)
    email_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    account = db.relationship("Account", backref=db.backref("transactions_reports", lazy=True))
    artifact = db.relationship(
        "ReportArtifact",
        uselist=False,
        back_populates="report",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<TransactionsReport id={self.id} account_id={self.account_id} status={self.status}>"

    @property
    def file_attached(self) -> bool:
        return self.artifact is not None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_REPORT_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "cutoff_date": self.cutoff_date.isoformat(),
            "status": self.status,
            "failure_reason": self.failure_reason,
            "email_sent": self.email_sent,
            "email_sent_at": to_utc_z(self.email_sent_at) if self.email_sent_at else None,
            "file_attached": self.file_attached,
            "filename": self.artifact.filename if self.artifact else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
        }


class ReportArtifact(db.Model):
    """
    The exported file of a report, stored as an opaque blob keyed by report.
    """
    __tablename__ = "report_artifacts"
    __table_args__ = (
        db.UniqueConstraint("report_id", name="uq_report_artifacts_report"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    report_id = db.Column(db.Integer, db.ForeignKey("transactions_reports.id"), nullable=False)

    filename = db.Column(db.String(255), nullable=False)
    content_type = db.Column(db.String(64), nullable=False, default="text/csv")
    data = db.Column(db.LargeBinary, nullable=False)
    row_count = db.Column(db.Integer, nullable=False, default=0)
    byte_size = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    report = db.relationship("TransactionsReport", back_populates="artifact")
