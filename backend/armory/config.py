# backend/armory/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the instance by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///armory.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Renewal obligations
    DEFAULT_RENEWAL_DAYS = int(os.environ.get("DEFAULT_RENEWAL_DAYS", "30"))
    RENEWAL_DUE_WINDOW_DAYS = int(os.environ.get("RENEWAL_DUE_WINDOW_DAYS", "7"))

    # Per-armory write scope retry policy
    ARMORY_RETRY_ATTEMPTS = int(os.environ.get("ARMORY_RETRY_ATTEMPTS", "3"))
    ARMORY_RETRY_BACKOFF = float(os.environ.get("ARMORY_RETRY_BACKOFF", "0.1"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
