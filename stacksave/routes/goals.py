#!/usr/bin/env python3
"""Savings goal routes."""
from flask import Blueprint, jsonify

from stacksave.extensions import get_services
from stacksave.routes.serializers import to_json, json_body

goals_bp = Blueprint('goals', __name__, url_prefix='/api/goals')


@goals_bp.route('/<int:user_id>')
def api_list_goals(user_id):
    return jsonify({"success": True, "goals": to_json(get_services().db.list_goals(user_id))})


@goals_bp.route('/<int:user_id>/main')
def api_main_goal(user_id):
    return jsonify({"success": True, "goal": to_json(get_services().db.get_main_goal(user_id))})


@goals_bp.route('/<int:user_id>', methods=['POST'])
def api_create_goal(user_id):
    body = json_body()
    goal = get_services().db.create_goal(
        user_id,
        title=body.get('title'),
        target_amount=body.get('targetAmount'),
        frequency=body.get('frequency'),
        start_date=body.get('startDate'),
        end_date=body.get('endDate'),
        is_main_goal=body.get('isMainGoal', False),
    )
    return jsonify({"success": True, "goal": to_json(goal)}), 201


@goals_bp.route('/<int:goal_id>', methods=['PUT'])
def api_update_goal(goal_id):
    body = json_body()
    goal = get_services().db.update_goal(
        goal_id,
        title=body.get('title'),
        target_amount=body.get('targetAmount'),
        current_amount=body.get('currentAmount'),
        frequency=body.get('frequency'),
        end_date=body.get('endDate'),
        is_main_goal=body.get('isMainGoal'),
        is_completed=body.get('isCompleted'),
    )
    return jsonify({"success": True, "goal": to_json(goal)})


@goals_bp.route('/<int:goal_id>', methods=['DELETE'])
def api_delete_goal(goal_id):
    get_services().db.delete_goal(goal_id)
    return jsonify({"success": True, "message": "Goal deleted successfully"})
