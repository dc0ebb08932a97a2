# backend/thriftpos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/thriftpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///thriftpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Card processing backend ("mock" is always registered)
    PAYMENT_PROCESSOR = os.environ.get("PAYMENT_PROCESSOR", "mock")
    MOCK_PROCESSOR_DELAY_MS = int(os.environ.get("MOCK_PROCESSOR_DELAY_MS", "0"))

    TRANSACTION_PAGE_LIMIT_MAX = int(os.environ.get("TRANSACTION_PAGE_LIMIT_MAX", "100"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    PAYMENT_PROCESSOR = "mock"
    MOCK_PROCESSOR_DELAY_MS = 0
