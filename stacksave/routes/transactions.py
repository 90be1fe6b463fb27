#!/usr/bin/env python3
"""Transaction ledger routes: listings, withdrawals, earnings postings."""
from flask import Blueprint, jsonify, request

from stacksave.extensions import get_services
from stacksave.routes.serializers import to_json, json_body, int_arg

transactions_bp = Blueprint('transactions', __name__, url_prefix='/api/transactions')


@transactions_bp.route('/<int:user_id>')
def api_list_transactions(user_id):
    rows = get_services().db.list_transactions(
        user_id, limit=int_arg('limit', 50), tx_type=request.args.get('type'),
    )
    return jsonify({"success": True, "transactions": to_json(rows)})


@transactions_bp.route('/<int:user_id>/recent')
def api_recent_transactions(user_id):
    rows = get_services().db.recent_transactions(user_id)
    return jsonify({"success": True, "transactions": to_json(rows)})


@transactions_bp.route('/<int:user_id>/withdrawal', methods=['POST'])
def api_withdraw(user_id):
    body = json_body()
    result = get_services().ledger.record_withdrawal(
        user_id,
        body.get('amount'),
        description=body.get('description'),
        transaction_hash=body.get('transactionHash'),
        withdrawal_address=body.get('withdrawalAddress'),
    )
    return jsonify({"success": True, **to_json(result)}), 201


@transactions_bp.route('/<int:user_id>/earnings', methods=['POST'])
def api_record_earnings(user_id):
    body = json_body()
    result = get_services().ledger.record_earnings(
        user_id, body.get('amount'), description=body.get('description'),
    )
    return jsonify({"success": True, **to_json(result)}), 201


@transactions_bp.route('/<int:transaction_id>/status', methods=['PUT'])
def api_transaction_status(transaction_id):
    row = get_services().ledger.update_transaction_status(transaction_id, json_body().get('status'))
    return jsonify({"success": True, "message": "Transaction status updated", **to_json(row)})
