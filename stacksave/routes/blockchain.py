#!/usr/bin/env python3
"""Read-only on-chain data routes."""
from flask import Blueprint, jsonify

from stacksave.errors import ValidationError, NotFoundError
from stacksave.extensions import get_services
from stacksave.routes.serializers import to_json, json_body

blockchain_bp = Blueprint('blockchain', __name__, url_prefix='/api/blockchain')


@blockchain_bp.route('/goals/<address>')
def api_chain_goals(address):
    goals = get_services().chain.get_user_goals(address)
    return jsonify({"success": True, "data": to_json(goals)})


@blockchain_bp.route('/balance/<address>')
def api_chain_balance(address):
    chain = get_services().chain
    data = {
        'balance': chain.get_user_balance(address),
        'total_balance': chain.get_total_balance(address),
        'pending_interest': chain.get_pending_interest(address),
    }
    return jsonify({"success": True, "data": to_json(data)})


@blockchain_bp.route('/stats/<address>')
def api_chain_stats(address):
    chain = get_services().chain
    data = chain.get_user_stats(address)
    data['usdc_balance'] = chain.get_usdc_balance(address)
    return jsonify({"success": True, "data": to_json(data)})


@blockchain_bp.route('/total-deposits')
def api_chain_total_deposits():
    total = get_services().chain.get_total_deposits()
    return jsonify({"success": True, "data": {"totalDeposits": float(total)}})


@blockchain_bp.route('/transaction/<tx_hash>')
def api_chain_transaction(tx_hash):
    receipt = get_services().chain.get_transaction_receipt(tx_hash)
    if receipt is None:
        raise NotFoundError("Transaction not found", tx_hash=tx_hash)
    return jsonify({"success": True, "data": to_json(receipt)})


@blockchain_bp.route('/sync/<int:user_id>', methods=['POST'])
def api_chain_sync(user_id):
    wallet_address = json_body().get('walletAddress')
    if not wallet_address:
        raise ValidationError("Wallet address is required", field='walletAddress')
    data = get_services().chain.sync_user(user_id, wallet_address)
    return jsonify({"success": True, "message": "Data synced successfully", "data": to_json(data)})


@blockchain_bp.route('/contract-info')
def api_contract_info():
    return jsonify({"success": True, "data": to_json(get_services().chain.contract_info())})
