"""Application configuration module.

Provides configuration classes for different environments with pathlib-based
paths and timezone handling. Every path and external tool location can be
overridden from the environment.
"""
import os
from pathlib import Path
from zoneinfo import ZoneInfo


# Base directories using pathlib
BASE_DIR = Path(__file__).parent.absolute()
INSTANCE_DIR = BASE_DIR / 'instance'
STORAGE_DIR = BASE_DIR / 'storage'


def _env_path(name: str, default: Path) -> Path:
    value = os.environ.get(name)
    return Path(value) if value else default


class Config:
    """Base configuration with common settings."""

    # Flask secret key
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    # Database configuration
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or f"sqlite:///{INSTANCE_DIR / 'librarian.db'}"
    SQLALCHEMY_ENGINE_OPTIONS = {
        'connect_args': {
            'check_same_thread': False,
            'timeout': 5.0
        }
    } if SQLALCHEMY_DATABASE_URI.startswith('sqlite') else {}
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Storage directories (using pathlib.Path)
    UPLOAD_FOLDER = _env_path('UPLOAD_DIR', STORAGE_DIR / 'uploads')
    THUMBNAILS_FOLDER = _env_path('THUMBNAIL_DIR', STORAGE_DIR / 'uploads' / 'thumb')
    LIBRARY_ROOT = _env_path('LIBRARY_ROOT_DIR', STORAGE_DIR / 'library')

    # External tools
    EXIFTOOL_PATH = os.environ.get('EXIFTOOL_PATH', 'exiftool')
    FFMPEG_PATH = os.environ.get('FFMPEG_PATH', 'ffmpeg')
    SUBPROCESS_TIMEOUT = float(os.environ.get('SUBPROCESS_TIMEOUT', 120))

    # Zone used as the "current local zone" for timezone inference
    TIMEZONE = os.environ.get('TIMEZONE', 'America/New_York')

    WORKER_THREADS = None  # None = auto-detect CPU count

    @classmethod
    def validate_timezone(cls, zone=None):
        """Validate timezone configuration using zoneinfo."""
        zone = zone or cls.TIMEZONE
        try:
            ZoneInfo(zone)
            return True
        except Exception as e:
            raise ValueError(f"Invalid TIMEZONE '{zone}': {e}")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    SQLALCHEMY_ECHO = True


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False


class TestingConfig(Config):
    """Test configuration: in-memory friendly, no SQL echo."""

    TESTING = True
    DEBUG = False
    TIMEZONE = 'UTC'
    WORKER_THREADS = 2


# Configuration dictionary for easy lookup
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
