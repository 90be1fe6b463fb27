#!/usr/bin/env python3
"""Payment method routes."""
from flask import Blueprint, jsonify, request

from stacksave.extensions import get_services
from stacksave.routes.serializers import to_json, json_body

payment_methods_bp = Blueprint('payment_methods', __name__, url_prefix='/api/payment-methods')


def _flag(name):
    return request.args.get(name, 'false').lower() in ('1', 'true', 'yes')


@payment_methods_bp.route('/<int:user_id>')
def api_list_payment_methods(user_id):
    rows = get_services().db.list_payment_methods(user_id, active_only=_flag('activeOnly'))
    return jsonify({"success": True, "paymentMethods": to_json(rows)})


@payment_methods_bp.route('/<int:user_id>/default')
def api_default_payment_method(user_id):
    row = get_services().db.get_default_payment_method(user_id)
    return jsonify({"success": True, "paymentMethod": to_json(row)})


@payment_methods_bp.route('/<int:user_id>', methods=['POST'])
def api_create_payment_method(user_id):
    body = json_body()
    row = get_services().db.create_payment_method(
        user_id,
        body.get('type'),
        account_name=body.get('accountName'),
        account_number=body.get('accountNumber'),
        wallet_address=body.get('walletAddress'),
        is_default=body.get('isDefault', False),
    )
    return jsonify({"success": True, "paymentMethod": to_json(row)}), 201


@payment_methods_bp.route('/<int:payment_method_id>', methods=['PUT'])
def api_update_payment_method(payment_method_id):
    body = json_body()
    row = get_services().db.update_payment_method(
        payment_method_id,
        account_name=body.get('accountName'),
        account_number=body.get('accountNumber'),
        wallet_address=body.get('walletAddress'),
        is_default=body.get('isDefault'),
        is_active=body.get('isActive'),
    )
    return jsonify({"success": True, "paymentMethod": to_json(row)})


@payment_methods_bp.route('/<int:payment_method_id>', methods=['DELETE'])
def api_delete_payment_method(payment_method_id):
    hard = _flag('hard')
    get_services().db.delete_payment_method(payment_method_id, hard=hard)
    message = "Payment method deleted" if hard else "Payment method deactivated"
    return jsonify({"success": True, "message": message})
