#!/usr/bin/env python3
"""Streak routes."""
from flask import Blueprint, jsonify

from stacksave.extensions import get_services
from stacksave.routes.serializers import to_json

streaks_bp = Blueprint('streaks', __name__, url_prefix='/api/streaks')


@streaks_bp.route('/<int:user_id>')
def api_get_streak(user_id):
    return jsonify({"success": True, "streak": to_json(get_services().streaks.get_streak(user_id))})


@streaks_bp.route('/<int:user_id>/check', methods=['POST'])
def api_check_streak(user_id):
    result = get_services().streaks.check_streak(user_id)
    message = "Streak updated" if result['updated'] else "Streak already counted today"
    return jsonify({"success": True, "message": message, "streak": to_json(result)})


@streaks_bp.route('/<int:user_id>/reset', methods=['POST'])
def api_reset_streak(user_id):
    state = get_services().streaks.reset_streak(user_id)
    return jsonify({"success": True, "message": "Streak reset", "streak": to_json(state)})
