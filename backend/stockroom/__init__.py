# backend/stockroom/__init__.py
from flask import Flask, request, jsonify

from .config import Config
from .extensions import db, migrate
from .errors import StockroomError, ConsistencyError


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(StockroomError)
    def handle_stockroom_error(exc: StockroomError):
        db.session.rollback()
        if isinstance(exc, ConsistencyError):
            app.logger.error("Consistency failure on %s %s: %s", request.method, request.path, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(404)
    def handle_not_found(exc):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(exc):
        return jsonify({"error": "Method not allowed"}), 405

    # Flask has already logged the traceback by the time this runs
    @app.errorhandler(500)
    def handle_internal_error(exc):
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500


def create_app(config_object=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.products import products_bp
    from .routes.arrivages import arrivages_bp
    from .routes.expenses import expenses_bp
    from .routes.sales import sales_bp
    from .routes.dashboard import dashboard_bp
    from .routes.settings import settings_bp
    from .routes.catalog import catalog_bp
    from .routes.team import team_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(arrivages_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(team_bp)

    _register_error_handlers(app)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
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

    return app
