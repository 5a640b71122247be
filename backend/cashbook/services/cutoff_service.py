# backend/cashbook/services/cutoff_service.py
"""
Cutoff consolidation of an exported transactions report.

For every money account touched by the report, the tagged rows are replaced
by a single cutoff transaction carrying their signed net:

    net > 0  -> Incoming cutoff row of +net
    net < 0  -> Expense cutoff row of net
    net == 0 -> no row (the group still counts as consolidated)

CRITICAL: the report is all-or-nothing. Every group is evaluated; only if
every group succeeded is the report claimed as completed, the cutoff rows
inserted and the tagged rows purged, all in one commit. The purge must remove
exactly the rows the groups were computed from. If any group failed, nothing is
inserted and nothing is purged, so the ledger balance is exactly what it was
before the run.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import (
    MoneyAccount,
    Transaction,
    TransactionKind,
    TransactionsReport,
    REPORT_STATUS_COMPLETED,
    REPORT_STATUS_FAILED,
    REPORT_STATUS_IN_PROCESS,
)
from ..time_utils import today
from .ledger_service import purge_report_transactions
from .report_service import ReportError, claim_terminal_status, get_report


CUTOFF_DESCRIPTION = "Account cutoff: {name}"


class CutoffError(ReportError):
    """Raised when a report cannot be consolidated."""
    pass


@dataclass
class GroupOutcome:
    money_account_id: int
    net_cents: int
    transaction: Optional[Transaction] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class CutoffResult:
    report_id: int
    status: str
    outcomes: list[GroupOutcome] = field(default_factory=list)
    purged: int = 0

    @property
    def failed_groups(self) -> list[GroupOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]


def build_cutoff_transaction(money_account: MoneyAccount, net_cents: int, *, on: date | None = None) -> Transaction:
    """Build (not persist) the cutoff row replacing net_cents on money_account."""
    if net_cents == 0:
        raise CutoffError("A cutoff transaction needs a non-zero amount")
    txn = Transaction(
        account_id=money_account.account_id,
        money_account_id=money_account.id,
        kind=TransactionKind.for_net_amount(net_cents),
        amount_cents=net_cents,
        transaction_date=on or today(),
        description=CUTOFF_DESCRIPTION.format(name=money_account.name),
        cutoff=True,
        fixed=False,
    )
    txn.check_amount_sign()
    return txn


def report_groups(report_id: int) -> list[tuple[int, int, int]]:
    """(money_account_id, net_cents, row_count) for every money account tagged by the report."""
    rows = db.session.query(
        Transaction.money_account_id,
        func.coalesce(func.sum(Transaction.amount_cents), 0),
        func.count(Transaction.id),
    ).filter(
        Transaction.transactions_report_id == report_id
    ).group_by(Transaction.money_account_id).order_by(Transaction.money_account_id).all()
    return [(int(ma_id), int(net), int(count)) for ma_id, net, count in rows]


def consolidate_group(money_account_id: int, net_cents: int) -> GroupOutcome:
    outcome = GroupOutcome(money_account_id=money_account_id, net_cents=net_cents)
    if net_cents == 0:
        return outcome
    try:
        money_account = db.session.get(MoneyAccount, money_account_id)
        if money_account is None:
            raise CutoffError(f"Money account {money_account_id} not found")
        outcome.transaction = build_cutoff_transaction(money_account, net_cents)
    except Exception as exc:
        current_app.logger.warning(
            "Cutoff for money account %s (net %s) failed: %s", money_account_id, net_cents, exc
        )
        outcome.error = str(exc)
    return outcome


def consolidate(report_id: int) -> CutoffResult | None:
    """
    Consolidate and purge an exported report.

    Returns None when there was nothing to do (no file yet, already
    finished, or finished by an overlapping run) or the run failed
    unexpectedly; the report status carries the outcome in every case.

    The report is claimed with a conditional UPDATE (in_process -> terminal)
    before any cutoff row is written, in the same transaction as those rows
    and the purge. A second delivery that read the same groups loses the
    claim and writes nothing.
    """
    report: TransactionsReport | None = None
    try:
        report = get_report(report_id)
        if report is None:
            raise CutoffError(f"Report {report_id} not found")
        if not report.file_attached or report.is_terminal:
            return None

        groups = report_groups(report.id)
        if not groups:
            raise CutoffError(f"No tagged transactions found for report {report.id}")
        tagged_count = sum(row_count for _, _, row_count in groups)

        # Evaluate every group before deciding; no short-circuit.
        outcomes = [consolidate_group(money_account_id, net) for money_account_id, net, _ in groups]
        result = CutoffResult(report_id=report_id, status=REPORT_STATUS_IN_PROCESS, outcomes=outcomes)

        if result.failed_groups:
            reason = f"Failed to post cutoff transaction for {len(result.failed_groups)} money account(s)"
            if not claim_terminal_status(report_id, REPORT_STATUS_FAILED, reason=reason):
                return _lost_claim(report_id)
            db.session.commit()
            result.status = REPORT_STATUS_FAILED
            return result

        if not claim_terminal_status(report_id, REPORT_STATUS_COMPLETED):
            return _lost_claim(report_id)

        for outcome in outcomes:
            if outcome.transaction is not None:
                db.session.add(outcome.transaction)
        db.session.flush()

        result.purged = purge_report_transactions(report_id)
        if result.purged != tagged_count:
            raise CutoffError(
                f"Purged {result.purged} of {tagged_count} tagged transactions for report {report_id}"
            )
        db.session.commit()
        result.status = REPORT_STATUS_COMPLETED

        current_app.logger.info(
            "TransactionsReport %s consolidated: %s cutoff rows, %s transactions purged",
            report_id,
            sum(1 for outcome in outcomes if outcome.transaction is not None),
            result.purged,
        )
        return result
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception("Transactions cutoff failed for report %s", report_id)
        if report is not None and claim_terminal_status(report_id, REPORT_STATUS_FAILED, reason=str(exc)):
            db.session.commit()
        else:
            db.session.rollback()
        return None


def _lost_claim(report_id: int) -> None:
    db.session.rollback()
    current_app.logger.info(
        "TransactionsReport %s was finished by another cutoff run; nothing written", report_id
    )
    return None
