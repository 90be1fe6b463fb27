#!/usr/bin/env python3
"""Shared Flask extensions and service instances for StackSave."""
import logging
from datetime import date

from flask import Flask, current_app, jsonify
from flask_cors import CORS

from stacksave.config import ALLOWED_ORIGINS, GROWTH_BASELINE
from stacksave.database import LedgerDB
from stacksave.errors import StackSaveError
from stacksave.services.apy import get_apy_cache
from stacksave.services.chain import get_chain_reader
from stacksave.services.ledger import LedgerCoordinator
from stacksave.services.portfolio import PortfolioAllocator
from stacksave.services.streaks import StreakService

logger = logging.getLogger("stacksave")


class Services:
    """Everything a request handler needs, built once per app."""

    def __init__(self, db, apy_cache, chain, today=date.today, growth_baseline=GROWTH_BASELINE):
        self.db = db
        self.apy_cache = apy_cache
        self.chain = chain
        self.streaks = StreakService(db, today=today)
        self.ledger = LedgerCoordinator(db, today=today, growth_baseline=growth_baseline)
        self.portfolio = PortfolioAllocator(db)


def get_services() -> Services:
    return current_app.extensions['stacksave']


def create_app(db=None, apy_cache=None, chain=None, today=date.today):
    """Application factory.

    Collaborators default to the process-wide instances; tests pass their own.
    """
    from stacksave.routes import register_blueprints

    app = Flask(__name__)

    # SECURITY: Restrict CORS to allowed origins only
    CORS(app, origins=ALLOWED_ORIGINS, supports_credentials=True)

    @app.after_request
    def add_security_headers(response):
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        return response

    @app.errorhandler(StackSaveError)
    def handle_service_error(e):
        if e.status_code >= 500:
            logger.error(f"[API] {type(e).__name__}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"success": False, "error": "Not Found"}), 404

    app.extensions['stacksave'] = Services(
        db if db is not None else LedgerDB(),
        apy_cache if apy_cache is not None else get_apy_cache(),
        chain if chain is not None else get_chain_reader(),
        today=today,
    )
    register_blueprints(app)
    return app
