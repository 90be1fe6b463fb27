#!/usr/bin/env python3
"""Liveness endpoint."""
from datetime import datetime, timezone

from flask import Blueprint, jsonify

from stacksave.errors import StackSaveError
from stacksave.extensions import get_services

health_bp = Blueprint('health', __name__)


@health_bp.route('/health')
def health():
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        get_services().db.ping()
    except StackSaveError as e:
        return jsonify({
            "status": "unhealthy", "timestamp": timestamp,
            "database": "disconnected", "error": e.message,
        }), 503
    return jsonify({"status": "healthy", "timestamp": timestamp, "database": "connected"})
