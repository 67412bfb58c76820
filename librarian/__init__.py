"""Flask application factory module.

Provides create_app() factory function.
Creates and configures the application with database and storage setup.
"""
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import text


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""
    pass


# Initialize SQLAlchemy with custom base
db = SQLAlchemy(model_class=Base)


def ensure_directories(app):
    """Create storage directories if they don't exist.

    Args:
        app: Flask application instance with config loaded
    """
    for folder_key in ['UPLOAD_FOLDER', 'THUMBNAILS_FOLDER', 'LIBRARY_ROOT']:
        path = app.config[folder_key]
        path.mkdir(parents=True, exist_ok=True)

    # Also ensure instance directory exists
    instance_path = app.config.get('INSTANCE_DIR')
    if instance_path:
        instance_path.mkdir(parents=True, exist_ok=True)


def create_app(config_name='development', overrides=None):
    """Application factory function.

    Args:
        config_name: Configuration environment ('development', 'production' or 'testing')
        overrides: Optional mapping applied on top of the configuration class
            (before the database is bound)

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__, instance_relative_config=True)

    # Load configuration
    from config import config as config_dict, INSTANCE_DIR
    app.config.from_object(config_dict[config_name])
    app.config['INSTANCE_DIR'] = INSTANCE_DIR
    if overrides:
        app.config.update(overrides)

    # Validate timezone configuration
    config_dict[config_name].validate_timezone(app.config['TIMEZONE'])

    db.init_app(app)

    with app.app_context():
        ensure_directories(app)

        # Import models to register them with SQLAlchemy
        from librarian import models  # noqa: F401 - registers models

        # Enable SQLite WAL mode for better concurrency
        if app.config.get('SQLALCHEMY_DATABASE_URI', '').startswith('sqlite:///'):
            with db.engine.connect() as conn:
                conn.execute(text('PRAGMA journal_mode=WAL'))
                conn.execute(text('PRAGMA busy_timeout=5000'))
                conn.commit()

        db.create_all()

    from librarian.services import init_services
    init_services(app)

    from librarian.routes import queue_bp, library_bp, keywords_bp, register_error_handlers
    app.register_blueprint(queue_bp)
    app.register_blueprint(library_bp)
    app.register_blueprint(keywords_bp)
    register_error_handlers(app)

    return app
