# backend/cashbook/routes/transfers.py
"""
Money account transfer API routes.
"""
from flask import Blueprint, request, jsonify, g

from cashbook.decorators import require_actor
from cashbook.extensions import db
from cashbook.models import MoneyAccount
from cashbook.services import transfer_service


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")
money_accounts_bp = Blueprint("money_accounts", __name__, url_prefix="/api/money-accounts")


def _transfer_fields(data: dict) -> dict:
    return {
        "description": data.get("description"),
        "amount_cents": data["amount_cents"],
        "from_money_account_id": data["from_money_account_id"],
        "to_money_account_id": data["to_money_account_id"],
    }


@transfers_bp.route("", methods=["POST"])
@require_actor
def create_transfer():
    """
    Create a transfer between two money accounts of the caller's account.

    Request body:
    {
        "description": str (optional),
        "amount_cents": int,
        "from_money_account_id": int,
        "to_money_account_id": int
    }

    Returns:
        201: Transfer created
        400: Invalid request, cross-account transfer or insufficient funds
    """
    data = request.get_json(silent=True) or {}

    try:
        outgoing = transfer_service.create_transfer(g.current_user, **_transfer_fields(data))
        return jsonify(transfer_service.get_transfer(g.current_user, outgoing.id)), 201
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except transfer_service.TransferError as e:
        return jsonify({"error": str(e)}), 400


@transfers_bp.route("/<int:transfer_id>", methods=["GET"])
@require_actor
def show_transfer(transfer_id: int):
    try:
        return jsonify(transfer_service.get_transfer(g.current_user, transfer_id)), 200
    except transfer_service.TransferError as e:
        return jsonify({"error": str(e)}), 404


@transfers_bp.route("/<int:transfer_id>", methods=["PUT"])
@require_actor
def update_transfer(transfer_id: int):
    data = request.get_json(silent=True) or {}

    try:
        outgoing = transfer_service.update_transfer(
            g.current_user, transfer_id=transfer_id, **_transfer_fields(data)
        )
        return jsonify(transfer_service.get_transfer(g.current_user, outgoing.id)), 200
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except transfer_service.TransferError as e:
        return jsonify({"error": str(e)}), 400


@transfers_bp.route("/<int:transfer_id>", methods=["DELETE"])
@require_actor
def destroy_transfer(transfer_id: int):
    try:
        transfer_service.destroy_transfer(g.current_user, transfer_id=transfer_id)
        return jsonify({"id": transfer_id, "deleted": True}), 200
    except transfer_service.TransferError as e:
        return jsonify({"error": str(e)}), 400


@money_accounts_bp.get("")
@require_actor
def list_money_accounts():
    money_accounts = db.session.query(MoneyAccount).filter_by(account_id=g.account_id).order_by(
        MoneyAccount.name.asc()
    ).all()
    return jsonify({"money_accounts": [money_account.to_dict() for money_account in money_accounts]}), 200
