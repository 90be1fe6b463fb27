#!/usr/bin/env python3
"""Portfolio allocation and APY routes."""
from flask import Blueprint, jsonify

from stacksave.errors import ValidationError
from stacksave.extensions import get_services
from stacksave.models import POOL_TYPES
from stacksave.routes.serializers import to_json, json_body, int_arg
from stacksave.services.apy import get_all_protocols_with_apy

portfolio_bp = Blueprint('portfolio', __name__, url_prefix='/api/portfolio')

# request body keys -> allocator keys
_ALLOCATION_FIELDS = {
    'poolType': 'pool_type',
    'protocolId': 'protocol_id',
    'protocolName': 'protocol_name',
    'protocolAddress': 'protocol_address',
    'amount': 'amount',
    'percentage': 'percentage',
    'apy': 'apy',
}


def _allocation_from_body(item):
    if not isinstance(item, dict):
        raise ValidationError("Each allocation must be an object")
    return {snake: item.get(camel) for camel, snake in _ALLOCATION_FIELDS.items()}


@portfolio_bp.route('/<int:user_id>')
def api_portfolio(user_id):
    return jsonify({"success": True, **to_json(get_services().portfolio.get_portfolio(user_id))})


@portfolio_bp.route('/<int:user_id>/by-type/<pool_type>')
def api_portfolio_by_type(user_id, pool_type):
    if pool_type not in POOL_TYPES:
        raise ValidationError(f"Invalid pool type: {pool_type}", field='poolType')
    result = get_services().portfolio.get_allocations_by_type(user_id, pool_type)
    return jsonify({"success": True, **to_json(result)})


@portfolio_bp.route('/<int:user_id>/allocate', methods=['POST'])
def api_allocate(user_id):
    """
    Split funds across pools.

    Body:
        allocations: [{poolType, protocolId, protocolName, protocolAddress?,
                       amount, percentage, apy}]
        userMode: 'lite' | 'balanced' | 'pro'
        depositAmount: optional, defaults to the allocated total
        depositId: optional originating deposit
    """
    body = json_body()
    allocations = body.get('allocations')
    if not isinstance(allocations, list) or not allocations:
        raise ValidationError("Allocations array is required", field='allocations')

    rows = get_services().portfolio.allocate(
        user_id,
        [_allocation_from_body(a) for a in allocations],
        body.get('userMode'),
        deposit_amount=body.get('depositAmount'),
        deposit_id=body.get('depositId'),
    )
    return jsonify({
        "success": True,
        "message": "Portfolio allocated successfully",
        "allocations": to_json(rows),
    }), 201


@portfolio_bp.route('/<int:user_id>/history')
def api_allocation_history(user_id):
    history = get_services().portfolio.get_allocation_history(user_id, limit=int_arg('limit', 20))
    return jsonify({"success": True, "history": to_json(history)})


@portfolio_bp.route('/<int:user_id>/update-earnings', methods=['PUT'])
def api_update_earnings(user_id):
    result = get_services().portfolio.update_earnings(user_id)
    return jsonify({"success": True, "message": "Earnings updated successfully", **to_json(result)})


@portfolio_bp.route('/<int:user_id>/allocation/<int:allocation_id>', methods=['DELETE'])
def api_deallocate(user_id, allocation_id):
    result = get_services().portfolio.deallocate(user_id, allocation_id)
    return jsonify({"success": True, **to_json(result)})


# ─── APY ──────────────────────────────────────────────────────────────────

@portfolio_bp.route('/protocols/apy')
def api_protocols_apy():
    protocols = get_all_protocols_with_apy(get_services().apy_cache)
    return jsonify({"success": True, "protocols": to_json(protocols)})


@portfolio_bp.route('/protocols/apy/<protocol_id>')
def api_protocol_apy(protocol_id):
    apy = get_services().apy_cache.get_apy(protocol_id)
    return jsonify({"success": True, "protocolId": protocol_id, "currentAPY": apy})


@portfolio_bp.route('/protocols/apy/batch', methods=['POST'])
def api_batch_apy():
    protocol_ids = json_body().get('protocolIds')
    if not isinstance(protocol_ids, list) or not all(isinstance(p, str) for p in protocol_ids):
        raise ValidationError("protocolIds array is required", field='protocolIds')
    return jsonify({"success": True, "data": get_services().apy_cache.get_batch_apy(protocol_ids)})


@portfolio_bp.route('/protocols/cache', methods=['DELETE'])
def api_clear_apy_cache():
    get_services().apy_cache.clear_cache()
    return jsonify({"success": True, "message": "APY cache cleared successfully"})
