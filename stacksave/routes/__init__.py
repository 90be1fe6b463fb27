"""Routes package for StackSave."""
from stacksave.routes.health import health_bp
from stacksave.routes.users import users_bp
from stacksave.routes.goals import goals_bp
from stacksave.routes.deposits import deposits_bp
from stacksave.routes.transactions import transactions_bp
from stacksave.routes.streaks import streaks_bp
from stacksave.routes.payment_methods import payment_methods_bp
from stacksave.routes.portfolio import portfolio_bp
from stacksave.routes.blockchain import blockchain_bp

BLUEPRINTS = [
    health_bp, users_bp, goals_bp, deposits_bp, transactions_bp,
    streaks_bp, payment_methods_bp, portfolio_bp, blockchain_bp,
]


def register_blueprints(app):
    for bp in BLUEPRINTS:
        app.register_blueprint(bp)


__all__ = ['register_blueprints', 'BLUEPRINTS']
