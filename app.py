"""
Application factory for the Thought Percolator application.
"""

import logging

from flask import Flask

from config import get_config
from lifecycle import IdeaLifecycle
from models import db
from routes import bp, csrf, limiter
from storage import IdeaStore, UserStore, VersionArchive

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Configure root logging once per process."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logging.getLogger().setLevel(level)


def build_lifecycle(app: Flask) -> IdeaLifecycle:
    """Construct the stores and the lifecycle core for this application."""
    return IdeaLifecycle(
        users=UserStore(db.session),
        ideas=IdeaStore(db.session),
        archive=VersionArchive(db.session),
        allow_anonymous=app.config.get("ALLOW_ANONYMOUS_IDEAS", False),
    )


def create_app(env: str = None, **overrides) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        env: Environment name (development, production, testing)
        **overrides: Config values applied after the environment config

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)
    app.config.from_object(get_config(env))
    app.config.update(overrides)

    configure_logging(app.config["LOG_LEVEL"])

    # Extensions
    db.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    app.extensions["lifecycle"] = build_lifecycle(app)
    app.register_blueprint(bp)

    logger.debug(f"Application created with database {app.config['SQLALCHEMY_DATABASE_URI']}")
    return app
