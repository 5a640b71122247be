from __future__ import annotations

import enum

from sqlalchemy import event

from ..extensions import db
from cashbook.time_utils import to_utc_z


class TransactionKind(str, enum.Enum):
    """
    Discriminator for the single transaction row shape.

    The stored value doubles as the "Type" column of report exports.
    """
    EXPENSE = "Expense"
    INCOMING = "Incoming"
    OUTGOING_TRANSFER = "OutgoingTransfer"
    INCOMING_TRANSFER = "IncomingTransfer"

    @property
    def is_outflow(self) -> bool:
        return self in (TransactionKind.EXPENSE, TransactionKind.OUTGOING_TRANSFER)

    @property
    def is_transfer(self) -> bool:
        return self in (TransactionKind.OUTGOING_TRANSFER, TransactionKind.INCOMING_TRANSFER)

    @classmethod
    def for_net_amount(cls, amount_cents: int) -> "TransactionKind":
        return cls.INCOMING if amount_cents > 0 else cls.EXPENSE


class InvalidTransactionError(ValueError):
    """Raised when a transaction row breaks the kind/sign rule."""
    pass


class Transaction(db.Model):
    """
    One signed money movement on a money account.

    SIGN RULE:
    - Expense / OutgoingTransfer: amount_cents <= 0
    - Incoming / IncomingTransfer: amount_cents >= 0
    - Cutoff rows carry the net of the rows they replace; their kind is
      derived from that sign, so the same rule holds.

    LIFECYCLE:
    - Posted by ledger collaborators, the transfer service or the cutoff
      consolidator.
    - transactions_report_id is set when a report archives the row.
    - Deleted only by the purge of a completed report, or by the transfer
      service when it destroys its own pair.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        # Keyset pagination for exports walks (transaction_date DESC, id DESC)
        db.Index("ix_transactions_date_id", "transaction_date", "id"),
        db.Index("ix_transactions_account_date", "account_id", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    money_account_id = db.Column(db.Integer, db.ForeignKey("money_accounts.id"), nullable=False, index=True)
    budget_id = db.Column(db.Integer, db.ForeignKey("budgets.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    transactions_report_id = db.Column(
        db.Integer, db.ForeignKey("transactions_reports.id"), nullable=True, index=True
    )

    kind = db.Column(
        db.Enum(
            TransactionKind,
            native_enum=False,
            length=32,
            values_callable=lambda kinds: [k.value for k in kinds],
            name="transaction_kind",
        ),
        nullable=False,
        index=True,
    )
    amount_cents = db.Column(db.Integer, nullable=False)
    transaction_date = db.Column(db.Date, nullable=False)
    description = db.Column(db.String(512), nullable=True)

    cutoff = db.Column(db.Boolean, nullable=False, default=False)
    fixed = db.Column(db.Boolean, nullable=False, default=False)

    # Shared by both rows of a transfer pair
    transfer_group_id = db.Column(db.String(36), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    account = db.relationship("Account")
    money_account = db.relationship("MoneyAccount")
    budget = db.relationship("Budget")
    user = db.relationship("User")
    transactions_report = db.relationship("TransactionsReport")

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} kind={self.kind} amount_cents={self.amount_cents}>"

    def check_amount_sign(self) -> None:
        if self.kind is None or self.amount_cents is None:
            raise InvalidTransactionError("Transaction kind and amount are required")
        kind = TransactionKind(self.kind)
        if kind.is_outflow and self.amount_cents > 0:
            raise InvalidTransactionError(f"{kind.value} amount must not be positive")
        if not kind.is_outflow and self.amount_cents < 0:
            raise InvalidTransactionError(f"{kind.value} amount must not be negative")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "money_account_id": self.money_account_id,
            "budget_id": self.budget_id,
            "user_id": self.user_id,
            "transactions_report_id": self.transactions_report_id,
            "kind": TransactionKind(self.kind).value,
            "amount_cents": self.amount_cents,
            "transaction_date": self.transaction_date.isoformat() if self.transaction_date else None,
            "description": self.description,
            "cutoff": self.cutoff,
            "fixed": self.fixed,
            "transfer_group_id": self.transfer_group_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


@event.listens_for(Transaction, "before_insert")
@event.listens_for(Transaction, "before_update")
def _enforce_amount_sign(mapper, connection, target: Transaction) -> None:
    target.check_amount_sign()
