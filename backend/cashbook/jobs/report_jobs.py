# Overview: Background jobs of the transactions report lifecycle and their event wiring.

from __future__ import annotations

from flask import current_app

from ..events import ARTIFACT_ATTACHED, EventBus, ReportEvent
from ..services import cutoff_service, mail_service, report_service
from . import JobQueue, job_queue


GENERATE_MONTHLY_REPORTS_JOB = "generate_monthly_transactions_reports"
SEND_REPORT_JOB = "send_transactions_report"
TRANSACTIONS_CUTOFF_JOB = "transactions_cutoff"


@job_queue.job(GENERATE_MONTHLY_REPORTS_JOB, max_attempts=3)
def generate_monthly_transactions_reports() -> dict:
    summary = report_service.generate_monthly_reports()
    current_app.logger.info(
        "Monthly transactions reports for cutoff %s: %s created, %s skipped",
        summary["cutoff_date"],
        len(summary["created_report_ids"]),
        len(summary["skipped_account_ids"]),
    )
    return summary


@job_queue.job(SEND_REPORT_JOB)
def send_transactions_report(report_id: int) -> None:
    report = report_service.get_report(report_id)
    if report is None:
        raise report_service.ReportError(f"Report {report_id} not found")
    if report.email_sent:
        current_app.logger.info("TransactionsReport %s already sent; skipping", report_id)
        return

    mail_service.notify_account_users(report)
    report_service.mark_email_sent(report_id)


@job_queue.job(TRANSACTIONS_CUTOFF_JOB)
def transactions_cutoff(report_id: int) -> None:
    cutoff_service.consolidate(report_id)


def register_report_subscribers(bus: EventBus, queue: JobQueue) -> None:
    """Fan ARTIFACT_ATTACHED out to delivery and consolidation, by report id only."""

    def _enqueue_delivery(event: ReportEvent) -> None:
        queue.enqueue(SEND_REPORT_JOB, event.report_id)

    def _enqueue_cutoff(event: ReportEvent) -> None:
        queue.enqueue(TRANSACTIONS_CUTOFF_JOB, event.report_id)

    bus.subscribe(ARTIFACT_ATTACHED, _enqueue_delivery)
    bus.subscribe(ARTIFACT_ATTACHED, _enqueue_cutoff)
