# backend/cashbook/services/report_service.py
"""
Transactions report lifecycle.

WHY: Aged transactions are archived into a CSV snapshot per account, then
consolidated into one cutoff row per money account and purged. This module
owns the report record and its state machine; consolidation lives in
cutoff_service, delivery in mail_service.

LIFECYCLE:
1. in_process: record created (one per account and cutoff date)
2. failed: nothing to archive, or any step raised
3. completed: set by the cutoff consolidator after a successful purge

Generation never commits half a state change: tagging is committed on its
own (so a crash after tagging leaves rows tagged, never lost), the artifact
is committed together with nothing else, and the ARTIFACT_ATTACHED event is
returned only after that commit.
"""
from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..events import ARTIFACT_ATTACHED, ReportEvent, publish
from ..extensions import db
from ..models import (
    Account,
    ReportArtifact,
    Transaction,
    TransactionsReport,
    REPORT_STATUS_COMPLETED,
    REPORT_STATUS_FAILED,
    REPORT_STATUS_IN_PROCESS,
    TERMINAL_REPORT_STATUSES,
)
from ..time_utils import months_ago, utcnow
from .concurrency import run_with_retry
from .export_service import export_transactions_csv
from .ledger_service import (
    archivable_transactions,
    release_report_transactions,
    tag_transactions,
    tagged_transactions,
)


NO_TRANSACTIONS_REASON = "No transactions found for the specified cutoff date"


class ReportError(Exception):
    """Raised when a report request cannot be served."""
    pass


class ReportStateError(ReportError):
    """Raised on a transition out of a terminal report status."""
    pass


def get_report(report_id: int) -> TransactionsReport | None:
    return db.session.get(TransactionsReport, report_id)


def get_account_report(account_id: int, report_id: int) -> TransactionsReport:
    report = db.session.query(TransactionsReport).filter_by(id=report_id, account_id=account_id).first()
    if not report:
        raise ReportError(f"Report {report_id} not found")
    return report


def list_reports(account_id: int) -> list[TransactionsReport]:
    return db.session.query(TransactionsReport).filter_by(account_id=account_id).order_by(
        TransactionsReport.created_at.desc(), TransactionsReport.id.desc()
    ).all()


def _transition(report: TransactionsReport, status: str) -> None:
    if report.is_terminal:
        raise ReportStateError(
            f"Report {report.id} is already {report.status}; cannot move to {status}"
        )
    report.status = status


def mark_failed(report: TransactionsReport, reason: str) -> None:
    _transition(report, REPORT_STATUS_FAILED)
    report.failure_reason = reason


def claim_terminal_status(report_id: int, status: str, *, reason: str | None = None) -> bool:
    """
    Move an in_process report to status with one conditional UPDATE.

    Returns False when the report is no longer in_process, i.e. another
    run already finished it. The UPDATE is not committed here: callers
    commit it together with the writes it guards.
    """
    if status not in TERMINAL_REPORT_STATUSES:
        raise ReportStateError(f"{status} is not a terminal report status")

    values = {
        TransactionsReport.status: status,
        TransactionsReport.failure_reason: reason,
    }
    if status == REPORT_STATUS_COMPLETED:
        values[TransactionsReport.completed_at] = utcnow()

    claimed = db.session.query(TransactionsReport).filter(
        TransactionsReport.id == report_id,
        TransactionsReport.status == REPORT_STATUS_IN_PROCESS,
    ).update(values, synchronize_session=False)
    return claimed == 1


def mark_email_sent(report_id: int) -> None:
    """
    Columns-only UPDATE: no ORM flush, no events, nothing re-enqueued.
    """
    def _op():
        db.session.query(TransactionsReport).filter_by(id=report_id).update(
            {
                TransactionsReport.email_sent: True,
                TransactionsReport.email_sent_at: utcnow(),
            },
            synchronize_session=False,
        )
        db.session.commit()

    run_with_retry(_op)


def report_filename(report: TransactionsReport) -> str:
    return f"transactions_report_{report.id}_{report.cutoff_date.isoformat()}.csv"


def retention_cutoff_date(retention_months: int | None = None) -> date:
    if retention_months is None:
        retention_months = current_app.config["DATA_RETENTION_MONTHS"]
    if retention_months < 0:
        raise ReportError("Retention months must not be negative")
    return months_ago(retention_months)


def create_report(*, account_id: int, cutoff_date: date) -> TransactionsReport | None:
    """
    Insert an in_process report, or return None if one already exists for
    (account_id, cutoff_date). The unique constraint decides races.
    """
    report = TransactionsReport(
        account_id=account_id,
        cutoff_date=cutoff_date,
        status=REPORT_STATUS_IN_PROCESS,
    )
    db.session.add(report)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.info(
            "TransactionsReport for account %s and cutoff %s already exists; skipping",
            account_id, cutoff_date,
        )
        return None
    return report


def generate_report(report_id: int) -> ReportEvent | None:
    """
    Tag, export and attach. Returns the ARTIFACT_ATTACHED event, or None
    when there was nothing to do or the report failed.
    """
    report = get_report(report_id)
    if report is None:
        raise ReportError(f"Report {report_id} not found")

    if report.file_attached or report.status != REPORT_STATUS_IN_PROCESS:
        return None

    try:
        candidates = archivable_transactions(report.account_id, report.cutoff_date)
        if not db.session.query(candidates.exists()).scalar():
            current_app.logger.info("No transactions found for TransactionsReport %s", report.id)
            mark_failed(report, NO_TRANSACTIONS_REASON)
            db.session.commit()
            return None

        tagged = tag_transactions(
            account_id=report.account_id,
            cutoff_date=report.cutoff_date,
            report_id=report.id,
        )
        db.session.commit()
        if tagged == 0:
            # Another run claimed every candidate between the check and the UPDATE
            current_app.logger.info("No transactions left to tag for TransactionsReport %s", report.id)
            mark_failed(report, NO_TRANSACTIONS_REASON)
            db.session.commit()
            return None

        export = export_transactions_csv(
            tagged_transactions(report.id),
            batch_size=current_app.config["REPORT_EXPORT_BATCH_SIZE"],
        )
        report.artifact = ReportArtifact(
            filename=report_filename(report),
            content_type="text/csv",
            data=export.data,
            row_count=export.row_count,
            byte_size=export.byte_size,
        )
        db.session.commit()
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to generate TransactionsReport %s", report_id)
        report = get_report(report_id)
        mark_failed(report, str(exc))
        db.session.commit()
        return None

    current_app.logger.info(
        "TransactionsReport %s exported %s transactions", report.id, export.row_count
    )
    return ReportEvent(ARTIFACT_ATTACHED, report.id)


def request_report(*, account_id: int, cutoff_date: date) -> TransactionsReport | None:
    """Create, generate and announce a report. None if it already existed."""
    report = create_report(account_id=account_id, cutoff_date=cutoff_date)
    if report is None:
        return None
    report_id = report.id
    publish(generate_report(report_id))
    return get_report(report_id)


def release_failed_reports() -> int:
    """
    Reconcile failed reports: clear their tags so the rows become eligible
    for the next run. The failed records stay as an audit trail.
    """
    report_ids = [
        row.id
        for row in db.session.query(TransactionsReport.id).filter(
            TransactionsReport.status == REPORT_STATUS_FAILED
        )
    ]
    released = 0
    for report_id in report_ids:
        count = release_report_transactions(report_id)
        if count:
            current_app.logger.info(
                "Released %s transactions tagged by failed TransactionsReport %s", count, report_id
            )
        released += count
    db.session.commit()
    return released


def generate_monthly_reports(*, cutoff_date: date | None = None) -> dict:
    """
    Scheduler pass: ensure one report per account for the retention cutoff.

    Accounts that already have a report for that date are skipped, never
    retried.
    """
    if cutoff_date is None:
        cutoff_date = retention_cutoff_date()

    released = release_failed_reports()

    created: list[int] = []
    skipped: list[int] = []
    account_ids = [row.id for row in db.session.query(Account.id).order_by(Account.id)]
    for account_id in account_ids:
        report = request_report(account_id=account_id, cutoff_date=cutoff_date)
        if report is None:
            skipped.append(account_id)
        else:
            created.append(report.id)

    return {
        "cutoff_date": cutoff_date.isoformat(),
        "created_report_ids": created,
        "skipped_account_ids": skipped,
        "released_transactions": released,
    }


def report_summary(report: TransactionsReport) -> dict:
    count, total = db.session.query(
        func.count(Transaction.id),
        func.coalesce(func.sum(Transaction.amount_cents), 0),
    ).filter(Transaction.transactions_report_id == report.id).one()
    return {
        **report.to_dict(),
        "transactions_count": int(count or 0),
        "total_amount_cents": int(total or 0),
    }


def delete_report(report: TransactionsReport) -> None:
    """
    Delete a finished report record and its file. Transactions are never
    deleted here: a failed report's rows are released, a completed report
    has none left.
    """
    if report.status == REPORT_STATUS_IN_PROCESS:
        raise ReportStateError(f"Report {report.id} is still in process")
    release_report_transactions(report.id)
    db.session.delete(report)
    db.session.commit()
