# backend/academy/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # External clients live on app.extensions so tests can swap them
    from .services.payment_gateway import init_payment_gateway
    from .services.notification_service import init_mailer
    init_payment_gateway(app)
    init_mailer(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.checkout import checkout_bp
    from .routes.webhooks import webhooks_bp
    from .routes.portal import portal_bp
    from .routes.admin_bookings import admin_bookings_bp
    from .routes.admin_block_bookings import admin_block_bookings_bp
    from .routes.admin_discounts import admin_discounts_bp
    from .routes.admin_sessions import admin_sessions_bp
    from .routes.admin_payment_links import admin_payment_links_bp
    from .routes.admin_webhooks import admin_webhooks_bp
    from .routes.admin_dashboard import admin_dashboard_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(portal_bp)
    app.register_blueprint(admin_bookings_bp)
    app.register_blueprint(admin_block_bookings_bp)
    app.register_blueprint(admin_discounts_bp)
    app.register_blueprint(admin_sessions_bp)
    app.register_blueprint(admin_payment_links_bp)
    app.register_blueprint(admin_webhooks_bp)
    app.register_blueprint(admin_dashboard_bp)

    allowed_origins = set(app.config.get("ALLOWED_ORIGINS") or [])

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
