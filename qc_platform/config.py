"""
QC Inspection Platform
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'qc_platform_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _db_url(value: str) -> str:
    # Heroku-style postgres:// is rejected by SQLAlchemy 2.0
    return value.replace("postgres://", "postgresql://", 1)


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Rate limiting (Flask-Limiter)
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    REPORT_RATE_LIMIT = os.getenv("REPORT_RATE_LIMIT", "30/minute")
    ANALYSIS_RATE_LIMIT = os.getenv("ANALYSIS_RATE_LIMIT", "10/minute")

    # Attachment Store
    ATTACHMENT_STORE_URL = os.getenv("ATTACHMENT_STORE_URL")
    ATTACHMENT_STORE_API_KEY = os.getenv("ATTACHMENT_STORE_API_KEY")
    ATTACHMENT_STORE_TIMEOUT = int(os.getenv("ATTACHMENT_STORE_TIMEOUT", "30"))
    ATTACHMENT_STORE_ROOT = os.getenv("ATTACHMENT_STORE_ROOT", os.path.join(basedir, "instance", "uploads"))
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_UPLOAD_MB", "25")) * 1024 * 1024

    # AI Insight Provider
    # Unset disables analysis; "local-stub" must be chosen explicitly
    INSIGHT_MODEL = os.getenv("INSIGHT_MODEL") or None
    INSIGHT_TIMEOUT_SECONDS = float(os.getenv("INSIGHT_TIMEOUT_SECONDS", "30"))

    # Report geometry (millimetres, A4 portrait)
    REPORT_PAGE_WIDTH = 210.0
    REPORT_PAGE_HEIGHT = 297.0
    REPORT_MARGIN_TOP = 20.0
    REPORT_MARGIN_BOTTOM = 20.0
    REPORT_MARGIN_LEFT = 20.0
    REPORT_MARGIN_RIGHT = 20.0
    REPORT_LINE_HEIGHT = 5.0
    REPORT_TEXT_PADDING = 10.0
    REPORT_SIGNATURE_CARD_HEIGHT = 30.0
    REPORT_SIGNATURE_GAP = 10.0


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _db_url(_raw_db_url) if _raw_db_url else _SQLITE_DEV


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    INSIGHT_MODEL = "local-stub"
    ATTACHMENT_STORE_URL = None


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _db_url(_raw_db_url) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
