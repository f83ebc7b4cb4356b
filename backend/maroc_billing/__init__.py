# backend/maroc_billing/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_class=Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)

    logging.basicConfig(
        level=getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.taxes import taxes_bp
    from .routes.stock import stock_bp
    from .routes.invoices import invoices_bp
    from .routes.quotes import quotes_bp
    from .routes.proformas import proformas_bp
    from .routes.credit_notes import credit_notes_bp
    from .routes.payments import payments_bp
    from .routes.inventories import inventories_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(taxes_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(quotes_bp)
    app.register_blueprint(proformas_bp)
    app.register_blueprint(credit_notes_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(inventories_bp)
    app.register_blueprint(reports_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
