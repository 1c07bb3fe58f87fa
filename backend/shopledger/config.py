# backend/shopledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/shopledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///shopledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SHOPLEDGER_LOG_LEVEL = os.environ.get("SHOPLEDGER_LOG_LEVEL", "INFO")

    # Random code/number allocation retries before falling back
    PRODUCT_CODE_MAX_ATTEMPTS = int(os.environ.get("PRODUCT_CODE_MAX_ATTEMPTS", "10"))
    ORDER_NUMBER_MAX_ATTEMPTS = int(os.environ.get("ORDER_NUMBER_MAX_ATTEMPTS", "10"))

    TOP_SELLING_DEFAULT_LIMIT = int(os.environ.get("TOP_SELLING_DEFAULT_LIMIT", "10"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SHOPLEDGER_LOG_LEVEL = "DEBUG"
