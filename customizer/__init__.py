"""
Print Customizer - Flask Application Factory
Product customization and live preview for a print storefront
"""

import os
from pathlib import Path
from flask import Flask
from loguru import logger
from dotenv import load_dotenv

from .config import load_config, set_config


def create_app(config_name=None, overrides=None, collaborator=None, surface_factory=None):
    """Flask application factory"""

    # Load environment variables
    load_dotenv()

    app = Flask(__name__)

    # Load configuration
    environment = config_name or os.getenv('FLASK_ENV', 'development')
    config = load_config(environment, overrides)
    set_config(config)
    app.config.update(config.model_dump())
    app.config['MAX_CONTENT_LENGTH'] = config.MAX_UPLOAD_SIZE * 2

    # Configure logging
    setup_logging(app)

    # Session store and order collaborator
    from .orders import InMemoryOrderCollaborator
    from .session import SessionRegistry
    app.extensions['customizer_sessions'] = SessionRegistry(config.SESSION_IDLE_TIMEOUT, config.MAX_SESSIONS)
    app.extensions['order_collaborator'] = collaborator or InMemoryOrderCollaborator()
    if surface_factory is not None:
        app.extensions['surface_factory'] = surface_factory

    # Register blueprints
    from . import routes
    app.register_blueprint(routes.bp)

    logger.info(f"Print Customizer initialized in {environment} mode")

    return app


def setup_logging(app):
    """Configure loguru logging"""
    log_level = app.config.get('LOG_LEVEL', 'INFO')
    log_file = app.config.get('LOG_FILE', 'logs/app.log')

    # Ensure logs directory exists
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logger.add(
        log_file,
        rotation="1 day",
        retention="30 days",
        level=log_level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}"
    )
