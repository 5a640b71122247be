# Overview: Set-based ledger queries used by report generation, consolidation and transfers.

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterator

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import joinedload

from ..extensions import db
from ..models import Transaction
"""
Ledger invariants this module relies on (authoritative)

- A money account balance is SUM(amount_cents) over its remaining rows.
- Tagging, untagging and purging are single UPDATE/DELETE statements.
  No per-row loops: a row must never be observed half-tagged.
- Every statement that touches report-tagged rows is scoped by report id.
"""


def money_account_balance(money_account_id: int) -> int:
    total = db.session.query(func.coalesce(func.sum(Transaction.amount_cents), 0)).filter(
        Transaction.money_account_id == money_account_id
    ).scalar()
    return int(total or 0)


def archivable_transactions(account_id: int, cutoff_date: date):
    """Untagged transactions of an account dated strictly before cutoff_date."""
    return db.session.query(Transaction).filter(
        Transaction.account_id == account_id,
        Transaction.transaction_date < cutoff_date,
        Transaction.transactions_report_id.is_(None),
    )


def tag_transactions(*, account_id: int, cutoff_date: date, report_id: int) -> int:
    """
    Tag every archivable transaction with report_id in one UPDATE.

    The WHERE clause repeats the "untagged" predicate, so rows claimed by a
    concurrent run between our SELECT and this UPDATE are left alone.
    Returns the number of rows tagged.
    """
    return archivable_transactions(account_id, cutoff_date).update(
        {Transaction.transactions_report_id: report_id},
        synchronize_session=False,
    )


def tagged_transactions(report_id: int):
    return db.session.query(Transaction).filter(Transaction.transactions_report_id == report_id)


def release_report_transactions(report_id: int) -> int:
    """Clear the report tag from every row tagged with report_id."""
    return tagged_transactions(report_id).update(
        {Transaction.transactions_report_id: None},
        synchronize_session=False,
    )


def purge_report_transactions(report_id: int) -> int:
    """Delete every row tagged with report_id (and nothing else)."""
    if report_id is None:
        raise ValueError("report_id is required to purge transactions")
    return tagged_transactions(report_id).delete(synchronize_session=False)


def iter_transaction_batches(query, *, batch_size: int = 1000) -> Iterator[list[Transaction]]:
    """
    Walk a transaction query newest-first in keyset pages.

    Order is (transaction_date DESC, id DESC); each page resumes strictly
    after the last (date, id) seen, so rows are never skipped or repeated
    and only one page is held in memory at a time.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    base = query.options(
        joinedload(Transaction.account),
        joinedload(Transaction.budget),
        joinedload(Transaction.user),
    ).order_by(Transaction.transaction_date.desc(), Transaction.id.desc())

    last_date = None
    last_id = None
    while True:
        page_query = base
        if last_id is not None:
            page_query = page_query.filter(
                or_(
                    Transaction.transaction_date < last_date,
                    and_(Transaction.transaction_date == last_date, Transaction.id < last_id),
                )
            )
        batch = page_query.limit(batch_size).all()
        if not batch:
            return
        yield batch
        if len(batch) < batch_size:
            return
        last_date = batch[-1].transaction_date
        last_id = batch[-1].id


def format_cents(amount_cents: int) -> str:
    """-1050 -> '-10.50'"""
    return str(Decimal(int(amount_cents)).scaleb(-2))
