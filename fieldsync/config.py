"""
fieldsync
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when no DATABASE_URL is set
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'fieldsync_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() in ("1", "true", "yes")


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False
    # Photo URL prefix and log format key off this; each environment sets its own
    APP_ENV = "production"

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
    }

    # CORS / auth
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    API_KEY = os.getenv("API_KEY", "")

    # Intake
    API_URL = os.getenv("API_URL", "http://localhost:5000").rstrip("/")
    UPLOADS_DIR = os.getenv("UPLOADS_DIR", os.path.join(basedir, "uploads"))
    MAX_PHOTOS = _env_int("MAX_PHOTOS", 5)
    MAX_PHOTO_BYTES = _env_int("MAX_PHOTO_BYTES", 10 * 1024 * 1024)
    MAX_CONTENT_LENGTH = 60 * 1024 * 1024
    SUBMIT_RATE_LIMIT = os.getenv("SUBMIT_RATE_LIMIT", "30 per minute")
    RATELIMIT_STORAGE_URI = os.getenv("REDIS_URL", "memory://")

    # Spreadsheet mirrors
    GOOGLE_SERVICE_ACCOUNT_FILE = os.getenv("GOOGLE_SERVICE_ACCOUNT_FILE", "")
    MIRROR_TIMEZONE = os.getenv("MIRROR_TIMEZONE", "Asia/Jakarta")
    ALL_SPREADSHEET_ID = os.getenv("ALL_SPREADSHEET_ID", "")
    ALL_SHEET_RANGE = os.getenv("ALL_SHEET_RANGE", "Sheet1!A:L")
    FS_SPREADSHEET_ID = os.getenv("FS_SPREADSHEET_ID", "")
    FS_SHEET_RANGE = os.getenv("FS_SHEET_RANGE", "Sheet1!A:J")
    STATUS_ID_RANGE = os.getenv("STATUS_ID_RANGE", "Sheet1!A:A")
    STATUS_SHEET_NAME = os.getenv("STATUS_SHEET_NAME", "Sheet1")
    STATUS_RESULT_COLUMN = os.getenv("STATUS_RESULT_COLUMN", "K")

    # Coverage check service
    COVERAGE_BOT_HOST = os.getenv("COVERAGE_BOT_HOST", "").rstrip("/")
    COVERAGE_BOT_API_KEY = os.getenv("COVERAGE_BOT_API_KEY", "")
    COVERAGE_OPERATOR = os.getenv("COVERAGE_OPERATOR", "fiberstar")

    EXTERNAL_TIMEOUT_SECONDS = _env_int("EXTERNAL_TIMEOUT_SECONDS", 30)

    # Fan-out: "thread" (background, not awaited) or "inline" (tests, CLI)
    SYNC_FANOUT_MODE = os.getenv("SYNC_FANOUT_MODE", "thread")

    # Reconcilers
    SCHEDULER_ENABLED = _env_bool("SCHEDULER_ENABLED", True)
    COVERAGE_REGISTRATION_INTERVAL_MINUTES = _env_int("COVERAGE_REGISTRATION_INTERVAL_MINUTES", 15)
    COVERAGE_STATUS_INTERVAL_MINUTES = _env_int("COVERAGE_STATUS_INTERVAL_MINUTES", 5)
    MIRROR_INTERVAL_MINUTES = _env_int("MIRROR_INTERVAL_MINUTES", 15)
    COVERAGE_REGISTRATION_BATCH_SIZE = _env_int("COVERAGE_REGISTRATION_BATCH_SIZE", 10)
    COVERAGE_STATUS_BATCH_SIZE = _env_int("COVERAGE_STATUS_BATCH_SIZE", 10)
    MIRROR_BATCH_SIZE = _env_int("MIRROR_BATCH_SIZE", 10)
    MIRROR_RECONCILE_GRACE_SECONDS = _env_int("MIRROR_RECONCILE_GRACE_SECONDS", 120)


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    APP_ENV = "development"
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    APP_ENV = "testing"
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    API_KEY = "test-api-key"
    API_URL = "https://intake.example.test"
    RATELIMIT_ENABLED = False
    SCHEDULER_ENABLED = False
    SYNC_FANOUT_MODE = "inline"
    ALL_SPREADSHEET_ID = "sheet-all"
    FS_SPREADSHEET_ID = "sheet-fs"
    COVERAGE_BOT_HOST = "https://coverage.example.test"
    COVERAGE_BOT_API_KEY = "coverage-key"
    MIRROR_TIMEZONE = "Asia/Jakarta"


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    APP_ENV = "production"
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")
        if not self.API_KEY:
            raise RuntimeError("API_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
