# backend/stockroom/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockroom.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockroom.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Net margin packaging cost (DH) when the org has no packagingCostTotal setting
    DEFAULT_PACKAGING_COST = os.environ.get("DEFAULT_PACKAGING_COST", "8.00")
    DEFAULT_EXCHANGE_RATE = os.environ.get("DEFAULT_EXCHANGE_RATE", "10.85")
    LOW_STOCK_DEFAULT_REORDER_LEVEL = int(os.environ.get("LOW_STOCK_DEFAULT_REORDER_LEVEL", "5"))

    # Bearer tokens are minted for the external identity provider's users
    SESSION_TOKEN_TTL_HOURS = int(os.environ.get("SESSION_TOKEN_TTL_HOURS", "24"))

    # /api/health recomputes this many of the newest arrivages
    HEALTH_DRIFT_SCAN_LIMIT = int(os.environ.get("HEALTH_DRIFT_SCAN_LIMIT", "200"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_LEVEL = "DEBUG"
