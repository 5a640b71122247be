# Overview: CSV export of report transactions.

from __future__ import annotations

import csv
import io
from dataclasses import dataclass

from ..models import Transaction, TransactionKind
from .ledger_service import format_cents, iter_transaction_batches


HEADERS = [
    "ID",
    "Date",
    "Description",
    "Amount",
    "Account",
    "Budget",
    "Type",
    "Registered By",
    "Fixed",
]


@dataclass(frozen=True)
class CsvExport:
    data: bytes
    row_count: int

    @property
    def byte_size(self) -> int:
        return len(self.data)


def transaction_row(txn: Transaction) -> list:
    return [
        txn.id,
        txn.transaction_date.isoformat(),
        txn.description or "",
        format_cents(txn.amount_cents),
        txn.account.name if txn.account else "",
        txn.budget.name if txn.budget else "",
        TransactionKind(txn.kind).value,
        txn.user.name if txn.user else "",
        "true" if txn.fixed else "false",
    ]


def export_transactions_csv(query, *, batch_size: int = 1000) -> CsvExport:
    """
    Serialize the transactions selected by query to CSV bytes.

    Rows are read through keyset pages of batch_size, so only one batch of
    ORM objects is loaded at a time. The CSV text itself is built in memory:
    the artifact is stored as a single LargeBinary value, so the whole file
    exists as one bytes object either way. The header is always written, so
    an empty query yields a header-only file.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(HEADERS)

    row_count = 0
    for batch in iter_transaction_batches(query, batch_size=batch_size):
        writer.writerows(transaction_row(txn) for txn in batch)
        row_count += len(batch)

    return CsvExport(data=buffer.getvalue().encode("utf-8"), row_count=row_count)
