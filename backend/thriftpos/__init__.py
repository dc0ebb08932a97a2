# backend/thriftpos/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate



def create_app(config_object=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Card processor registry ("mock" always present)
    from .services import payment_processor
    payment_processor.init_app(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.transactions import transactions_bp
    from .routes.gift_cards import gift_cards_bp
    from .routes.payments import payments_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(gift_cards_bp)
    app.register_blueprint(payments_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "X-User-Id, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
