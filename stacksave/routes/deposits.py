#!/usr/bin/env python3
"""Deposit routes."""
from flask import Blueprint, jsonify, request

from stacksave.extensions import get_services
from stacksave.routes.serializers import to_json, json_body, int_arg

deposits_bp = Blueprint('deposits', __name__, url_prefix='/api/deposits')


@deposits_bp.route('/<int:user_id>')
def api_list_deposits(user_id):
    """
    Deposits newest first.

    Query params:
        limit: Max rows (default 50)
        goalId: Only deposits into this goal
    """
    goal_id = request.args.get('goalId', type=int)
    rows = get_services().db.list_deposits(user_id, limit=int_arg('limit', 50), goal_id=goal_id)
    return jsonify({"success": True, "deposits": to_json(rows)})


@deposits_bp.route('/<int:user_id>', methods=['POST'])
def api_create_deposit(user_id):
    body = json_body()
    result = get_services().ledger.record_deposit(
        user_id,
        body.get('amount'),
        goal_id=body.get('goalId'),
        payment_method_id=body.get('paymentMethodId'),
        transaction_hash=body.get('transactionHash'),
    )
    return jsonify({"success": True, **to_json(result)}), 201


@deposits_bp.route('/<int:deposit_id>/status', methods=['PUT'])
def api_deposit_status(deposit_id):
    row = get_services().ledger.update_deposit_status(deposit_id, json_body().get('status'))
    return jsonify({"success": True, "message": "Deposit status updated", **to_json(row)})
