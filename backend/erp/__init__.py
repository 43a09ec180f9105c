# backend/erp/__init__.py
import logging

from flask import Flask, current_app
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import ERPError
from .extensions import db, migrate


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ERPError)
    def handle_erp_error(e: ERPError):
        current_app.logger.warning("%s: %s", e.code, e.message)
        return e.to_dict(), e.http_status

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return {"error": e.description, "error_code": e.name.upper().replace(" ", "_"), "details": {}}, e.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e: Exception):
        current_app.logger.exception("Unhandled error")
        db.session.rollback()
        return {"error": "An unexpected error occurred", "error_code": "INTERNAL_ERROR", "details": {}}, 500


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    logging.getLogger("erp").setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.sales_orders import sales_orders_bp
    from .routes.purchase_orders import purchase_orders_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(sales_orders_bp)
    app.register_blueprint(purchase_orders_bp)

    _register_error_handlers(app)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
