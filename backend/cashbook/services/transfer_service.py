# backend/cashbook/services/transfer_service.py
"""
Money account transfer service.

WHY: Moving money between two money accounts of the same owner is a pair of
rows, never one: an OutgoingTransfer of -amount on the source and an
IncomingTransfer of +amount on the destination. The owner's total balance is
unchanged by any transfer operation.

PAIRING: both rows share a transfer_group_id. The outgoing row's id is the
transfer's public handle.

ATOMICITY: validation (ownership, funds) runs before any write; both rows
are written, updated or deleted inside a single commit. On any failure the
session is rolled back and a TransferError is raised.
"""
from __future__ import annotations

import uuid

from flask import current_app

from ..extensions import db
from ..models import MoneyAccount, Transaction, TransactionKind, User
from ..time_utils import today
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import money_account_balance


class TransferError(Exception):
    """Raised when transfer operations fail."""
    pass


def _require(actor: User | None, **fields) -> None:
    if actor is None or any(value is None for value in fields.values()):
        raise TransferError("Invalid data for transfer action")


def _validate_amount(amount_cents) -> int:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise TransferError("Transfer amount must be an integer number of cents")
    if amount_cents <= 0:
        raise TransferError("Transfer amount must be positive")
    return amount_cents


def _load_money_accounts(actor: User, from_money_account_id: int, to_money_account_id: int) -> tuple[MoneyAccount, MoneyAccount]:
    if from_money_account_id == to_money_account_id:
        raise TransferError("Source and destination money accounts must differ")

    accounts = {
        money_account.id: money_account
        for money_account in lock_for_update(
            db.session.query(MoneyAccount).filter(
                MoneyAccount.id.in_([from_money_account_id, to_money_account_id])
            )
        ).all()
    }
    from_account = accounts.get(from_money_account_id)
    to_account = accounts.get(to_money_account_id)
    if from_account is None:
        raise TransferError(f"Money account {from_money_account_id} not found")
    if to_account is None:
        raise TransferError(f"Money account {to_money_account_id} not found")

    if from_account.account_id != to_account.account_id:
        raise TransferError("Source and destination money accounts do not belong to the same account")
    if from_account.account_id != actor.account_id:
        raise TransferError("Money accounts do not belong to the acting user's account")

    return from_account, to_account


def _find_pair(actor: User, transfer_id: int) -> tuple[Transaction, Transaction]:
    outgoing = lock_for_update(
        db.session.query(Transaction).filter_by(
            id=transfer_id,
            account_id=actor.account_id,
            kind=TransactionKind.OUTGOING_TRANSFER,
        )
    ).first()
    if outgoing is None:
        raise TransferError(f"Transfer {transfer_id} not found")
    if outgoing.transfer_group_id is None:
        raise TransferError(f"Transfer {transfer_id} has no transfer group")

    incoming = lock_for_update(
        db.session.query(Transaction).filter_by(
            transfer_group_id=outgoing.transfer_group_id,
            account_id=actor.account_id,
            kind=TransactionKind.INCOMING_TRANSFER,
        )
    ).first()
    if incoming is None:
        raise TransferError(f"Incoming side of transfer {transfer_id} not found")
    return outgoing, incoming


def _ensure_not_archived(outgoing: Transaction, incoming: Transaction) -> None:
    if outgoing.transactions_report_id is not None or incoming.transactions_report_id is not None:
        raise TransferError(f"Transfer {outgoing.id} is archived by a transactions report")


def _run_atomically(action: str, op):
    """
    Run op and commit; roll back and wrap every failure as TransferError.
    """
    def _op():
        result = op()
        db.session.commit()
        return result

    try:
        return run_with_retry(_op)
    except TransferError as exc:
        db.session.rollback()
        current_app.logger.warning("Failed to %s money account transfer: %s", action, exc)
        raise
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to %s money account transfer", action)
        raise TransferError(str(exc)) from exc


def create_transfer(
    actor: User,
    *,
    description: str | None,
    amount_cents: int,
    from_money_account_id: int,
    to_money_account_id: int,
) -> Transaction:
    """
    Move amount_cents from one money account to another.

    Returns:
        Transaction: the outgoing row (the transfer handle)

    Raises:
        TransferError: missing data, cross-account transfer, insufficient funds
            or a failed write; nothing is persisted in any of these cases
    """
    def _op():
        _require(
            actor,
            amount_cents=amount_cents,
            from_money_account_id=from_money_account_id,
            to_money_account_id=to_money_account_id,
        )
        amount = _validate_amount(amount_cents)
        from_account, to_account = _load_money_accounts(actor, from_money_account_id, to_money_account_id)

        available = money_account_balance(from_account.id)
        if available < amount:
            raise TransferError(
                f"Insufficient funds in money account {from_account.id}. "
                f"Available: {available}, requested: {amount}"
            )

        group_id = str(uuid.uuid4())
        outgoing = Transaction(
            account_id=from_account.account_id,
            money_account_id=from_account.id,
            user_id=actor.id,
            kind=TransactionKind.OUTGOING_TRANSFER,
            amount_cents=-amount,
            transaction_date=today(),
            description=description,
            transfer_group_id=group_id,
        )
        incoming = Transaction(
            account_id=to_account.account_id,
            money_account_id=to_account.id,
            user_id=actor.id,
            kind=TransactionKind.INCOMING_TRANSFER,
            amount_cents=amount,
            transaction_date=today(),
            description=description,
            transfer_group_id=group_id,
        )
        db.session.add_all([outgoing, incoming])
        db.session.flush()
        return outgoing

    return _run_atomically("create", _op)


def update_transfer(
    actor: User,
    *,
    transfer_id: int,
    description: str | None,
    amount_cents: int,
    from_money_account_id: int,
    to_money_account_id: int,
) -> Transaction:
    """
    Rewrite both rows of a transfer. The rows stay exact negatives.

    Funds are re-checked against the source balance with the current
    outgoing row backed out.
    """
    def _op():
        _require(
            actor,
            transfer_id=transfer_id,
            amount_cents=amount_cents,
            from_money_account_id=from_money_account_id,
            to_money_account_id=to_money_account_id,
        )
        amount = _validate_amount(amount_cents)
        outgoing, incoming = _find_pair(actor, transfer_id)
        _ensure_not_archived(outgoing, incoming)
        from_account, to_account = _load_money_accounts(actor, from_money_account_id, to_money_account_id)

        available = money_account_balance(from_account.id)
        if outgoing.money_account_id == from_account.id:
            available -= outgoing.amount_cents
        if incoming.money_account_id == from_account.id:
            available -= incoming.amount_cents
        if available < amount:
            raise TransferError(
                f"Insufficient funds in money account {from_account.id}. "
                f"Available: {available}, requested: {amount}"
            )

        outgoing.money_account_id = from_account.id
        outgoing.amount_cents = -amount
        outgoing.description = description
        outgoing.user_id = actor.id

        incoming.money_account_id = to_account.id
        incoming.amount_cents = amount
        incoming.description = description
        incoming.user_id = actor.id

        db.session.flush()
        return outgoing

    return _run_atomically("update", _op)


def destroy_transfer(actor: User, *, transfer_id: int) -> Transaction:
    """Delete both rows of a transfer. Returns the deleted outgoing row."""
    def _op():
        _require(actor, transfer_id=transfer_id)
        outgoing, incoming = _find_pair(actor, transfer_id)
        _ensure_not_archived(outgoing, incoming)
        db.session.delete(incoming)
        db.session.delete(outgoing)
        db.session.flush()
        return outgoing

    return _run_atomically("destroy", _op)


def get_transfer(actor: User, transfer_id: int) -> dict:
    outgoing, incoming = _find_pair(actor, transfer_id)
    return {
        "id": outgoing.id,
        "transfer_group_id": outgoing.transfer_group_id,
        "description": outgoing.description,
        "amount_cents": incoming.amount_cents,
        "from_money_account_id": outgoing.money_account_id,
        "to_money_account_id": incoming.money_account_id,
        "outgoing": outgoing.to_dict(),
        "incoming": incoming.to_dict(),
    }
