# backend/jewelerp/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        # Must land before db.init_app: the engine is built from this config
        app.config.update(config_overrides)

    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    app.logger.setLevel(level)
    logging.getLogger("jewelerp").setLevel(level)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Cloud store stays None until SUPABASE_URL / SUPABASE_KEY are set
    from .services.cloud_store import cloud_store_from_config
    app.extensions["cloud_store"] = cloud_store_from_config(app.config)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.customers import customers_bp
    from .routes.products import products_bp
    from .routes.metal_rates import metal_rates_bp
    from .routes.invoices import invoices_bp
    from .routes.gold_loans import gold_loans_bp
    from .routes.karigars import karigars_bp
    from .routes.purchasing import purchase_orders_bp, vendors_bp
    from .routes.sync import sync_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(metal_rates_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(gold_loans_bp)
    app.register_blueprint(karigars_bp)
    app.register_blueprint(vendors_bp)
    app.register_blueprint(purchase_orders_bp)
    app.register_blueprint(sync_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "app://.",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    if app.config.get("SYNC_AUTOSTART"):
        from .services.sync_scheduler import initialize_sync
        initialize_sync(app)

    return app
