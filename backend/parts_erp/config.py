# backend/parts_erp/config.py
from __future__ import annotations
import os
from decimal import Decimal


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/parts_erp.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///parts_erp.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Stock-affecting workflows: "auto" tests the engine once at startup,
    # "on" requires transactions, "off" forces sequential best-effort writes.
    STOCK_TRANSACTIONS = os.environ.get("STOCK_TRANSACTIONS", "auto").lower()

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Loyalty program (currency units)
    LOYALTY_MIN_MONTHLY_PURCHASE = Decimal(os.environ.get("LOYALTY_MIN_MONTHLY_PURCHASE", "500"))
    LOYALTY_DISCOUNT_TOLERANCE = Decimal("0.01")

    INVOICE_PAYMENT_TERMS_DAYS = int(os.environ.get("INVOICE_PAYMENT_TERMS_DAYS", "30"))

    # Catalogue defaults (percentages)
    DEFAULT_TAX_RATE = Decimal("19")
    DEFAULT_MARGIN_RATE = Decimal("20")
    DEFAULT_MIN_MARGIN_ON_LAST_PURCHASE = Decimal("10")

    # Browser origins allowed by the CORS after_request hook
    CORS_ALLOWED_ORIGINS = (
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    )
