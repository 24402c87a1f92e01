# backend/stockledger/__init__.py
import logging
import os

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db, directory=os.path.join(os.path.dirname(__file__), os.pardir, "migrations"))

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Collaborators (tests may swap these on app.extensions)
    from .services.attachment_service import BLOB_STORE_EXTENSION_KEY, build_blob_store
    from .services.movement_service import MOVEMENT_LOG_EXTENSION_KEY, SqlMovementLog
    from .services.scope_service import AUTHORIZER_EXTENSION_KEY, UserDirectoryAuthorizer

    app.extensions[AUTHORIZER_EXTENSION_KEY] = UserDirectoryAuthorizer(
        approver_roles=app.config["APPROVER_ROLES"],
        tenant_wide_roles=app.config["TENANT_WIDE_ROLES"],
    )
    app.extensions[BLOB_STORE_EXTENSION_KEY] = build_blob_store(app.config)
    app.extensions[MOVEMENT_LOG_EXTENSION_KEY] = SqlMovementLog()

    # Register blueprints
    from .routes.system import system_bp
    from .routes.receipts import receipts_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(receipts_bp)
    app.register_blueprint(reports_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
