# backend/pharmapos/config.py
from __future__ import annotations
import os


def _env_list(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [part.strip().lower() for part in raw.split(",") if part.strip()]


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/pharmapos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///pharmapos.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Payment methods that defer payment and open a credit account at checkout
    CREDIT_PAYMENT_METHODS = _env_list("CREDIT_PAYMENT_METHODS", "credit")

    # When true, a checkout that loses a stock race mid-way keeps the
    # deducted prefix as the sale instead of failing the whole checkout.
    CHECKOUT_ACCEPT_PARTIAL = _env_bool("CHECKOUT_ACCEPT_PARTIAL", False)

    LOW_STOCK_DEFAULT_REORDER_LEVEL = int(os.environ.get("LOW_STOCK_DEFAULT_REORDER_LEVEL", "10"))
