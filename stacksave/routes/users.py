#!/usr/bin/env python3
"""Wallet connect, user profile and daily growth routes."""
from datetime import date

from flask import Blueprint, jsonify

from stacksave.errors import ValidationError
from stacksave.extensions import get_services
from stacksave.routes.serializers import to_json, json_body, int_arg

users_bp = Blueprint('users', __name__)


@users_bp.route('/api/auth/connect-wallet', methods=['POST'])
def api_connect_wallet():
    """Log in with a wallet address, creating the user on first sight."""
    body = json_body()
    user, created = get_services().db.connect_wallet(body.get('walletAddress'))
    return jsonify({
        "success": True,
        "message": "Wallet connected successfully",
        "created": created,
        "user": to_json(user),
    })


@users_bp.route('/api/users/<int:user_id>')
def api_get_user(user_id):
    return jsonify({"success": True, "user": to_json(get_services().db.get_user(user_id))})


@users_bp.route('/api/users/<int:user_id>/mode', methods=['PUT'])
def api_update_mode(user_id):
    user = get_services().db.update_user_mode(user_id, json_body().get('mode'))
    return jsonify({"success": True, "message": "Mode updated successfully", "mode": user['mode']})


@users_bp.route('/api/users/<int:user_id>/balance', methods=['PUT'])
def api_set_balance(user_id):
    body = json_body()
    if body.get('totalBalance') is None:
        raise ValidationError("totalBalance is required", field='totalBalance')
    user = get_services().db.set_user_balance(user_id, body['totalBalance'], body.get('totalEarnings'))
    return jsonify({
        "success": True,
        "message": "Balance updated successfully",
        "totalBalance": float(user['total_balance']),
        "totalEarnings": float(user['total_earnings']),
    })


@users_bp.route('/api/users/<int:user_id>/growth')
def api_get_growth(user_id):
    """Daily growth, oldest to newest.

    Query params:
        limit: Number of most recent days (default 30)
    """
    growth = get_services().db.get_growth(user_id, limit=int_arg('limit', 30))
    return jsonify({"success": True, "growth": to_json(growth)})


@users_bp.route('/api/users/<int:user_id>/growth', methods=['POST'])
def api_add_growth(user_id):
    body = json_body()
    raw_date = body.get('date')
    try:
        day = date.fromisoformat(raw_date[:10]) if raw_date else get_services().ledger.today()
    except (TypeError, ValueError):
        raise ValidationError("Invalid date", field='date')

    row = get_services().db.add_growth(
        user_id, day,
        growth_percentage=body.get('growthPercentage', 0),
        earnings=body.get('earnings', 0),
        has_deposit=bool(body.get('hasDeposit', False)),
    )
    return jsonify({"success": True, "growth": to_json(row)}), 201
