"""
End-to-end archival runs through the job queue: generation, delivery and
cutoff consolidation fanned out from the artifact-attached event.
"""

from cashbook.events import ARTIFACT_ATTACHED, EventBus, ReportEvent
from cashbook.jobs import JobQueue, job_queue
from cashbook.jobs.report_jobs import (
    GENERATE_MONTHLY_REPORTS_JOB,
    SEND_REPORT_JOB,
    TRANSACTIONS_CUTOFF_JOB,
    generate_monthly_transactions_reports,
    register_report_subscribers,
    send_transactions_report,
    transactions_cutoff,
)
from cashbook.models import (
    QueuedJob,
    Transaction,
    TransactionKind,
    TransactionsReport,
    REPORT_STATUS_COMPLETED,
    REPORT_STATUS_FAILED,
    JOB_STATUS_DEAD,
    JOB_STATUS_DONE,
    JOB_STATUS_PENDING,
)
from cashbook.services import mail_service, report_service
from cashbook.time_utils import months_ago

from conftest import add_transaction, balance


def _only_report(db_session):
    return db_session.query(TransactionsReport).one()


def _seed_aged_and_recent(cash):
    aged = [add_transaction(cash, -200 * k, months_back=6 + (k % 3) + 1) for k in range(1, 6)]
    recent = [add_transaction(cash, -10 * k, months_back=1 + k) for k in range(1, 4)]
    return aged, recent


def test_monthly_run_archives_aged_transactions(db_session, account, user, cash):
    aged, recent = _seed_aged_and_recent(cash)
    aged_ids = [txn.id for txn in aged]
    recent_ids = [txn.id for txn in recent]
    before = balance(cash)

    job = job_queue.enqueue(GENERATE_MONTHLY_REPORTS_JOB)

    assert job.attempts == 1
    assert job.status == JOB_STATUS_DONE
    assert job_queue.dead == []

    report = _only_report(db_session)
    assert report.cutoff_date == months_ago(6)
    assert report.status == REPORT_STATUS_COMPLETED
    assert report.email_sent is True
    assert report.artifact.row_count == 5

    cutoff_rows = db_session.query(Transaction).filter(Transaction.cutoff.is_(True)).all()
    assert len(cutoff_rows) == 1
    assert cutoff_rows[0].amount_cents == -3000
    assert cutoff_rows[0].kind == TransactionKind.EXPENSE

    assert all(db_session.get(Transaction, txn_id) is None for txn_id in aged_ids)
    for txn_id in recent_ids:
        kept = db_session.get(Transaction, txn_id)
        assert kept is not None
        assert kept.transactions_report_id is None
    assert balance(cash) == before


def test_report_email_sent_once_with_attachment(db_session, account, user, cash):
    _seed_aged_and_recent(cash)

    job_queue.enqueue(GENERATE_MONTHLY_REPORTS_JOB)

    messages = mail_service.outbox()
    assert len(messages) == 1
    message = messages[0]
    report = _only_report(db_session)
    assert message["To"] == "ana@example.com"
    assert message["From"] == "reports@cashbook.test"
    assert message["Subject"] == f"Your Transactions Summary for {report.cutoff_date.strftime('%B %Y')}"

    attachments = list(message.iter_attachments())
    assert len(attachments) == 1
    assert attachments[0].get_filename() == report.artifact.filename
    assert attachments[0].get_payload(decode=True) == report.artifact.data


def test_only_recent_transactions_fail_the_report(db_session, account, user, cash):
    add_transaction(cash, -100, months_back=2)

    job_queue.enqueue(GENERATE_MONTHLY_REPORTS_JOB)

    report = _only_report(db_session)
    assert report.status == REPORT_STATUS_FAILED
    assert not report.file_attached
    assert db_session.query(Transaction).filter(Transaction.cutoff.is_(True)).count() == 0
    assert mail_service.outbox() == []


def test_second_run_for_same_cutoff_is_skipped(db_session, account, user, cash):
    _seed_aged_and_recent(cash)
    job_queue.enqueue(GENERATE_MONTHLY_REPORTS_JOB)

    summary = report_service.generate_monthly_reports()

    assert summary["created_report_ids"] == []
    assert summary["skipped_account_ids"] == [account.id]
    assert db_session.query(TransactionsReport).count() == 1
    assert db_session.query(Transaction).filter(Transaction.cutoff.is_(True)).count() == 1
    assert len(mail_service.outbox()) == 1


def test_every_account_gets_its_own_report(db_session, account, user, cash, other_account):
    add_transaction(cash, -100, months_back=8)

    summary = report_service.generate_monthly_reports()

    assert len(summary["created_report_ids"]) == 2
    statuses = {
        report.account_id: report.status
        for report in db_session.query(TransactionsReport).all()
    }
    assert statuses == {account.id: REPORT_STATUS_COMPLETED, other_account.id: REPORT_STATUS_FAILED}


def test_redelivered_send_job_does_not_mail_twice(db_session, account, user, cash):
    _seed_aged_and_recent(cash)
    job_queue.enqueue(GENERATE_MONTHLY_REPORTS_JOB)
    report = _only_report(db_session)

    job_queue.enqueue(SEND_REPORT_JOB, report.id)

    assert len(mail_service.outbox()) == 1


def test_mail_failure_leaves_flag_unset(db_session, account, user, cash, monkeypatch):
    _seed_aged_and_recent(cash)

    def _smtp_down(message):
        raise ConnectionRefusedError("smtp down")

    monkeypatch.setattr(mail_service, "deliver", _smtp_down)

    job_queue.enqueue(GENERATE_MONTHLY_REPORTS_JOB)

    report = _only_report(db_session)
    assert report.email_sent is False
    assert report.email_sent_at is None
    # Consolidation does not depend on delivery
    assert report.status == REPORT_STATUS_COMPLETED
    assert [job.name for job in job_queue.dead] == [SEND_REPORT_JOB]
    assert job_queue.dead[0].last_error == "smtp down"


def test_deferred_mode_runs_everything_on_drain(db_session, account, user, cash):
    _seed_aged_and_recent(cash)
    job_queue.inline = False

    job_queue.enqueue(GENERATE_MONTHLY_REPORTS_JOB)
    assert [job.name for job in job_queue.pending] == [GENERATE_MONTHLY_REPORTS_JOB]
    assert db_session.query(TransactionsReport).count() == 0

    succeeded = job_queue.drain()

    assert succeeded == 3
    assert job_queue.pending == []
    report = _only_report(db_session)
    assert report.status == REPORT_STATUS_COMPLETED
    assert report.email_sent is True
    assert db_session.query(QueuedJob).count() == 0


def test_deferred_jobs_survive_for_another_worker(db_session, account, user, cash):
    _seed_aged_and_recent(cash)
    job_queue.inline = False

    job = job_queue.enqueue(GENERATE_MONTHLY_REPORTS_JOB)

    row = db_session.get(QueuedJob, job.id)
    assert (row.name, row.args, row.status, row.attempts) == (
        GENERATE_MONTHLY_REPORTS_JOB, [], JOB_STATUS_PENDING, 0,
    )

    # A queue built from scratch only knows what the table holds
    worker = JobQueue()
    worker.inline = False
    worker.job(GENERATE_MONTHLY_REPORTS_JOB, max_attempts=3)(generate_monthly_transactions_reports)
    worker.job(SEND_REPORT_JOB)(send_transactions_report)
    worker.job(TRANSACTIONS_CUTOFF_JOB)(transactions_cutoff)

    # Delivery and cutoff are enqueued as rows while draining and run in the same pass
    assert worker.drain() == 3
    assert db_session.query(QueuedJob).count() == 0
    assert _only_report(db_session).status == REPORT_STATUS_COMPLETED


def test_drain_retries_then_keeps_dead_row(db_session):
    calls = []
    queue = JobQueue()
    queue.inline = False

    @queue.job("flaky", max_attempts=2)
    def _flaky(value):
        calls.append(value)
        raise RuntimeError("still broken")

    job = queue.enqueue("flaky", 5)

    assert queue.drain() == 0
    assert calls == [5, 5]
    assert queue.pending == []
    [dead] = queue.dead
    assert (dead.id, dead.name, dead.args, dead.attempts, dead.last_error) == (
        job.id, "flaky", (5,), 2, "still broken",
    )


def test_drain_buries_rows_without_handler(db_session):
    db_session.add(QueuedJob(name="retired_job", args=[1], status=JOB_STATUS_PENDING, attempts=0))
    db_session.commit()

    assert JobQueue().drain() == 0

    row = db_session.query(QueuedJob).one()
    assert row.status == JOB_STATUS_DEAD
    assert row.last_error == "No handler registered for job retired_job"


def test_monthly_job_retries_then_dies(db_session, account, monkeypatch):
    calls = []

    def _unavailable(*, cutoff_date=None):
        calls.append(cutoff_date)
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(report_service, "generate_monthly_reports", _unavailable)

    job = job_queue.enqueue(GENERATE_MONTHLY_REPORTS_JOB)

    assert len(calls) == 3
    assert job.attempts == 3
    assert job.status == JOB_STATUS_DEAD
    assert job.last_error == "database unavailable"
    assert [(dead.id, dead.attempts) for dead in job_queue.dead] == [(job.id, 3)]


def test_monthly_job_recovers_within_attempts(db_session, account, user, cash, monkeypatch):
    add_transaction(cash, -100, months_back=8)
    original = report_service.generate_monthly_reports
    calls = []

    def _flaky(*, cutoff_date=None):
        calls.append(cutoff_date)
        if len(calls) == 1:
            raise RuntimeError("deadlock")
        return original(cutoff_date=cutoff_date)

    monkeypatch.setattr(report_service, "generate_monthly_reports", _flaky)

    job = job_queue.enqueue(GENERATE_MONTHLY_REPORTS_JOB)

    assert job.attempts == 2
    assert job_queue.dead == []
    assert _only_report(db_session).status == REPORT_STATUS_COMPLETED


def test_artifact_event_fans_out_by_report_id(app, db_session):
    queue = JobQueue()
    queue.inline = False
    queue.job(SEND_REPORT_JOB)(lambda report_id: None)
    queue.job(TRANSACTIONS_CUTOFF_JOB)(lambda report_id: None)
    bus = EventBus()
    register_report_subscribers(bus, queue)

    with app.app_context():
        delivered = bus.publish(ReportEvent(ARTIFACT_ATTACHED, 42))
        pending = [(job.name, job.args) for job in queue.pending]

    assert delivered == 2
    assert pending == [
        (SEND_REPORT_JOB, (42,)),
        (TRANSACTIONS_CUTOFF_JOB, (42,)),
    ]


def test_failing_subscriber_does_not_stop_the_rest(app):
    bus = EventBus()
    seen = []

    def _broken(event):
        raise RuntimeError("handler bug")

    bus.subscribe(ARTIFACT_ATTACHED, _broken)
    bus.subscribe(ARTIFACT_ATTACHED, lambda event: seen.append(event.report_id))

    with app.app_context():
        delivered = bus.publish(ReportEvent(ARTIFACT_ATTACHED, 7))

    assert delivered == 1
    assert seen == [7]
