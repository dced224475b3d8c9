# backend/quickpos/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/quickpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///quickpos.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Ticket branding
    RESTAURANT_NAME = os.environ.get("RESTAURANT_NAME", "QUICKITCHEN")
    RESTAURANT_TAGLINE = os.environ.get("RESTAURANT_TAGLINE", "Asian, Italian, American & Beyond")
    RESTAURANT_WEBSITE = os.environ.get("RESTAURANT_WEBSITE", "www.quickitchen.ma")
    CURRENCY_LABEL = os.environ.get("CURRENCY_LABEL", "dh")

    # 32 columns fits a 58mm roll, use 48 for 80mm printers
    TICKET_WIDTH = int(os.environ.get("TICKET_WIDTH", "32"))

    # Printing channels
    PRINT_BRIDGE_ENABLED = _env_bool("PRINT_BRIDGE_ENABLED", True)
    PRINT_BRIDGE_URL = os.environ.get("PRINT_BRIDGE_URL", "http://localhost:40213/print")
    PRINT_BRIDGE_TIMEOUT = float(os.environ.get("PRINT_BRIDGE_TIMEOUT", "3"))
    PRINT_URI_SCHEME = os.environ.get("PRINT_URI_SCHEME", "rawbt")
    PRINT_DIALOG_ENABLED = _env_bool("PRINT_DIALOG_ENABLED", True)
    PRINT_DIALOG_TIMEOUT = float(os.environ.get("PRINT_DIALOG_TIMEOUT", "1"))
    PRINT_DIALOG_MAX_RETRIES = int(os.environ.get("PRINT_DIALOG_MAX_RETRIES", "3"))

    # Seconds between keepalive comments on /api/orders/stream
    ORDER_STREAM_KEEPALIVE = float(os.environ.get("ORDER_STREAM_KEEPALIVE", "15"))

    CORS_ALLOWED_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    )
