# backend/fahampesa/__init__.py
from __future__ import annotations

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)
    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.access import access_bp
    from .routes.branches import branches_bp
    from .routes.products import products_bp
    from .routes.staff import staff_bp
    from .routes.inventory import inventory_bp, stock_bp
    from .routes.transfers import transfers_bp
    from .routes.purchase_orders import suppliers_bp, purchase_orders_bp
    from .routes.sales import sales_bp, debtors_bp
    from .routes.reports import reports_bp
    from .routes.subscriptions import mpesa_bp, subscriptions_bp, admin_subscriptions_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(access_bp)
    app.register_blueprint(branches_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(staff_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(transfers_bp)
    app.register_blueprint(suppliers_bp)
    app.register_blueprint(purchase_orders_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(debtors_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(mpesa_bp)
    app.register_blueprint(subscriptions_bp)
    app.register_blueprint(admin_subscriptions_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config["CORS_ALLOWED_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
