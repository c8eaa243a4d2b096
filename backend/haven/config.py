# backend/haven/config.py
from __future__ import annotations
import os


def _database_url() -> str:
    url = os.environ.get("DATABASE_URL", "sqlite:///haven.sqlite3")
    # Heroku-style URLs use the old scheme name
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def _cors_origins() -> set[str]:
    raw = os.environ.get("CORS_ORIGINS")
    if not raw:
        return {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
    return {origin.strip() for origin in raw.split(",") if origin.strip()}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    CORS_ORIGINS = _cors_origins()

    # Items at or below this quantity show up in low-stock reports
    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "5"))

    # Sales under this margin (percent of revenue) carry a LOW_MARGIN warning
    LOW_MARGIN_PERCENT = int(os.environ.get("LOW_MARGIN_PERCENT", "10"))

    SALE_COMMIT_ATTEMPTS = int(os.environ.get("SALE_COMMIT_ATTEMPTS", "3"))
