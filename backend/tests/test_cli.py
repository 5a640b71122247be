from cashbook.jobs import job_queue
from cashbook.jobs.report_jobs import GENERATE_MONTHLY_REPORTS_JOB, SEND_REPORT_JOB, TRANSACTIONS_CUTOFF_JOB
from cashbook.models import TransactionsReport, REPORT_STATUS_COMPLETED
from cashbook.time_utils import months_ago

from conftest import add_transaction


def test_jobs_list(app, db_session):
    result = app.test_cli_runner().invoke(args=["jobs", "list"])

    assert result.exit_code == 0
    for name in (GENERATE_MONTHLY_REPORTS_JOB, SEND_REPORT_JOB, TRANSACTIONS_CUTOFF_JOB):
        assert name in result.output
    assert "Pending: 0  Running: 0  Dead: 0" in result.output


def test_generate_monthly_through_queue(app, db_session, account, user, cash):
    add_transaction(cash, -100, months_back=8)

    result = app.test_cli_runner().invoke(args=["reports", "generate-monthly"])

    assert result.exit_code == 0
    assert "Monthly report generation finished." in result.output
    assert db_session.query(TransactionsReport).one().status == REPORT_STATUS_COMPLETED


def test_generate_monthly_with_retention_override(app, db_session, account, user, cash):
    add_transaction(cash, -100, months_back=5)

    result = app.test_cli_runner().invoke(args=["reports", "generate-monthly", "--retention-months", "3"])

    assert result.exit_code == 0
    assert f"Cutoff {months_ago(3).isoformat()}: 1 created, 0 skipped, 0 released." in result.output


def test_generate_monthly_deferred_then_drain(app, db_session, account, user, cash):
    add_transaction(cash, -100, months_back=8)
    job_queue.inline = False
    runner = app.test_cli_runner()

    enqueued = runner.invoke(args=["reports", "generate-monthly"])
    drained = runner.invoke(args=["jobs", "drain"])

    assert "Monthly report generation enqueued." in enqueued.output
    assert "3 job(s) succeeded, 0 dead." in drained.output
    assert db_session.query(TransactionsReport).one().status == REPORT_STATUS_COMPLETED


def test_consolidate_missing_report(app, db_session):
    result = app.test_cli_runner().invoke(args=["reports", "consolidate", "9999"])

    assert result.exit_code == 0
    assert "Nothing consolidated for report 9999 (status: missing)." in result.output


def test_release_failed(app, db_session, account):
    result = app.test_cli_runner().invoke(args=["reports", "release-failed"])

    assert result.exit_code == 0
    assert "Released 0 transactions from failed reports." in result.output
