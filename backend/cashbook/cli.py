# Overview: Flask CLI command groups for the report scheduler, job queue and database bootstrap.

# backend/cashbook/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to cashbook (PowerShell: $env:FLASK_APP="cashbook").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migrated databases).
#
# Transactions reports (schedule monthly with cron or any periodic runner):
# - python -m flask reports generate-monthly [--retention-months 6]
#   Release tags of failed reports, then create one report per account for today minus retention.
# - python -m flask reports release-failed
#   Clear the report tag of transactions held by failed reports.
# - python -m flask reports consolidate 42
#   Re-run the cutoff consolidation of report 42 (no-op unless it is in process with a file).
#
# Jobs:
# - python -m flask jobs list
#   List registered jobs and pending/running/dead counts (rows of queued_jobs).
# - python -m flask jobs drain
#   Run every pending job stored in queued_jobs (deferred mode, JOBS_INLINE=false).

import click
from flask.cli import with_appcontext

from .extensions import db
from .jobs import get_job_queue
from .models import JOB_STATUS_DEAD
from .jobs.report_jobs import GENERATE_MONTHLY_REPORTS_JOB
from .services import cutoff_service, report_service


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db_cli():
    """Create all tables."""
    from . import models  # noqa: F401

    db.create_all()
    click.echo("Database tables created.")


@click.group('reports')
def reports_group():
    """Transactions report lifecycle commands."""


@reports_group.command('generate-monthly')
@click.option('--retention-months', type=int, default=None, help='Override DATA_RETENTION_MONTHS.')
@with_appcontext
def generate_monthly_cli(retention_months):
    """
    Create (or skip) one transactions report per account.

    Runs through the job queue so its retry policy applies.
    """
    if retention_months is not None:
        cutoff_date = report_service.retention_cutoff_date(retention_months)
        summary = report_service.generate_monthly_reports(cutoff_date=cutoff_date)
        click.echo(
            f"Cutoff {summary['cutoff_date']}: "
            f"{len(summary['created_report_ids'])} created, "
            f"{len(summary['skipped_account_ids'])} skipped, "
            f"{summary['released_transactions']} released."
        )
        return

    queue = get_job_queue()
    job = queue.enqueue(GENERATE_MONTHLY_REPORTS_JOB)
    if not queue.inline:
        click.echo("Monthly report generation enqueued.")
    elif job.status == JOB_STATUS_DEAD:
        click.echo(f"Monthly report generation failed after {job.attempts} attempt(s): {job.last_error}")
    else:
        click.echo("Monthly report generation finished.")


@reports_group.command('release-failed')
@with_appcontext
def release_failed_cli():
    """Release transactions tagged by failed reports."""
    released = report_service.release_failed_reports()
    click.echo(f"Released {released} transactions from failed reports.")


@reports_group.command('consolidate')
@click.argument('report_id', type=int)
@with_appcontext
def consolidate_cli(report_id):
    """Run the cutoff consolidation of one report."""
    result = cutoff_service.consolidate(report_id)
    if result is None:
        report = report_service.get_report(report_id)
        status = report.status if report else "missing"
        click.echo(f"Nothing consolidated for report {report_id} (status: {status}).")
        return
    click.echo(
        f"Report {report_id} {result.status}: "
        f"{len(result.outcomes)} money account(s), {result.purged} transactions purged."
    )


@click.group('jobs')
def jobs_group():
    """Background job commands."""


@jobs_group.command('list')
@with_appcontext
def list_jobs_cli():
    """List registered jobs."""
    queue = get_job_queue()
    for name in queue.registered():
        click.echo(name)
    click.echo(f"Pending: {len(queue.pending)}  Running: {len(queue.running)}  Dead: {len(queue.dead)}")


@jobs_group.command('drain')
@with_appcontext
def drain_jobs_cli():
    """Run every pending job."""
    queue = get_job_queue()
    succeeded = queue.drain()
    click.echo(f"{succeeded} job(s) succeeded, {len(queue.dead)} dead.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(reports_group)
    app.cli.add_command(jobs_group)
