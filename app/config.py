"""
IP Docket
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])

Renewal settings are read once into a RenewalSettings value and passed to
the services explicitly:

    settings = RenewalSettings.from_config(current_app.config)
"""

import os
import secrets
from dataclasses import dataclass
from decimal import Decimal

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'ipdocket_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,   # recycle connections every 5 min
    }

    # Renewals: fees
    RENEWAL_DEFAULT_FEE = os.getenv("RENEWAL_DEFAULT_FEE", "145")
    RENEWAL_GRACE_FEE_FACTOR = os.getenv("RENEWAL_GRACE_FEE_FACTOR", "1.0")
    RENEWAL_VAT_RATE = os.getenv("RENEWAL_VAT_RATE", "0.2")

    # Renewals: notice periods (days before due date)
    RENEWAL_VALIDITY_BEFORE = int(os.getenv("RENEWAL_VALIDITY_BEFORE", "60"))
    RENEWAL_VALIDITY_BEFORE_LAST = int(os.getenv("RENEWAL_VALIDITY_BEFORE_LAST", "30"))
    RENEWAL_INSTRUCT_BEFORE = int(os.getenv("RENEWAL_INSTRUCT_BEFORE", "45"))

    # Renewals: schedule generation
    RENEWAL_HORIZON_YEARS = int(os.getenv("RENEWAL_HORIZON_YEARS", "20"))
    RENEWAL_LOOKBACK_MONTHS = int(os.getenv("RENEWAL_LOOKBACK_MONTHS", "6"))
    RENEWAL_LOOKBACK_MONTHS_WO = int(os.getenv("RENEWAL_LOOKBACK_MONTHS_WO", "19"))
    RENEWAL_GRACE_MONTHS = int(os.getenv("RENEWAL_GRACE_MONTHS", "6"))
    RENEWAL_GRACE_MONTHS_WO = int(os.getenv("RENEWAL_GRACE_MONTHS_WO", "19"))


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {
            "options": "-c statement_timeout=30000",  # 30s query timeout
        },
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


@dataclass(frozen=True)
class RenewalSettings:
    """Renewal parameters consumed by the fee, schedule and quote services."""

    default_fee: Decimal = Decimal("145")
    grace_fee_factor: Decimal = Decimal("1.0")
    vat_rate: Decimal = Decimal("0.2")
    validity_before: int = 60
    validity_before_last: int = 30
    instruct_before: int = 45
    horizon_years: int = 20
    lookback_months: int = 6
    lookback_months_wo: int = 19
    grace_months: int = 6
    grace_months_wo: int = 19

    @classmethod
    def from_config(cls, cfg) -> "RenewalSettings":
        return cls(
            default_fee=Decimal(str(cfg.get("RENEWAL_DEFAULT_FEE", "145"))),
            grace_fee_factor=Decimal(str(cfg.get("RENEWAL_GRACE_FEE_FACTOR", "1.0"))),
            vat_rate=Decimal(str(cfg.get("RENEWAL_VAT_RATE", "0.2"))),
            validity_before=int(cfg.get("RENEWAL_VALIDITY_BEFORE", 60)),
            validity_before_last=int(cfg.get("RENEWAL_VALIDITY_BEFORE_LAST", 30)),
            instruct_before=int(cfg.get("RENEWAL_INSTRUCT_BEFORE", 45)),
            horizon_years=int(cfg.get("RENEWAL_HORIZON_YEARS", 20)),
            lookback_months=int(cfg.get("RENEWAL_LOOKBACK_MONTHS", 6)),
            lookback_months_wo=int(cfg.get("RENEWAL_LOOKBACK_MONTHS_WO", 19)),
            grace_months=int(cfg.get("RENEWAL_GRACE_MONTHS", 6)),
            grace_months_wo=int(cfg.get("RENEWAL_GRACE_MONTHS_WO", 19)),
        )

    @classmethod
    def current(cls) -> "RenewalSettings":
        """Settings of the active Flask app, or the defaults outside one."""
        from flask import current_app, has_app_context

        if has_app_context():
            return cls.from_config(current_app.config)
        return cls()
