# Overview: Composes and delivers the transactions report email.

from __future__ import annotations

import smtplib
from email.message import EmailMessage

from flask import current_app

from ..models import TransactionsReport


class MailError(Exception):
    """Raised when a report email cannot be composed."""
    pass


def report_subject(report: TransactionsReport) -> str:
    return f"Your Transactions Summary for {report.cutoff_date.strftime('%B %Y')}"


def build_report_message(report: TransactionsReport) -> EmailMessage:
    artifact = report.artifact
    if artifact is None:
        raise MailError(f"Report {report.id} has no file to send")

    recipients = [user.email for user in report.account.users if user.email]
    if not recipients:
        raise MailError(f"Account {report.account_id} has no users to notify")

    message = EmailMessage()
    message["From"] = current_app.config["MAIL_DEFAULT_FROM"]
    message["To"] = ", ".join(recipients)
    message["Subject"] = report_subject(report)
    message.set_content(
        f"Attached are the {artifact.row_count} transactions of {report.account.name} "
        f"dated before {report.cutoff_date.isoformat()}.\n"
        "They have been archived and replaced by one cutoff entry per money account.\n"
    )
    maintype, _, subtype = (artifact.content_type or "text/csv").partition("/")
    message.add_attachment(
        artifact.data,
        maintype=maintype,
        subtype=subtype or "csv",
        filename=artifact.filename,
    )
    return message


def deliver(message: EmailMessage) -> None:
    """
    Send through SMTP, or keep in app.extensions["mail_outbox"] when
    MAIL_SUPPRESS_SEND is set. SMTP errors propagate to the caller.
    """
    config = current_app.config
    if config.get("MAIL_SUPPRESS_SEND"):
        current_app.extensions.setdefault("mail_outbox", []).append(message)
        return

    with smtplib.SMTP(config["MAIL_SERVER"], config["MAIL_PORT"], timeout=30) as smtp:
        if config.get("MAIL_USE_TLS"):
            smtp.starttls()
        if config.get("MAIL_USERNAME"):
            smtp.login(config["MAIL_USERNAME"], config.get("MAIL_PASSWORD") or "")
        smtp.send_message(message)


def notify_account_users(report: TransactionsReport) -> EmailMessage:
    message = build_report_message(report)
    deliver(message)
    current_app.logger.info("Sent TransactionsReport %s to %s", report.id, message["To"])
    return message


def outbox() -> list[EmailMessage]:
    return current_app.extensions.setdefault("mail_outbox", [])
