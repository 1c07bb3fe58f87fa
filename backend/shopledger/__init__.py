# backend/shopledger/__init__.py
from __future__ import annotations

import logging
import os

from flask import Flask

from .config import Config
from .extensions import db, migrate

MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "migrations")


def create_app(config_object=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    level_name = str(app.config.get("SHOPLEDGER_LOG_LEVEL", "INFO")).upper()
    app.logger.setLevel(getattr(logging, level_name, logging.INFO))
    logging.getLogger("shopledger").setLevel(app.logger.level)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db, directory=MIGRATIONS_DIR)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
