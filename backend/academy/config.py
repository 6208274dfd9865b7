# backend/academy/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/academy.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///academy.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Stripe. Webhooks are rejected with a 500 until STRIPE_WEBHOOK_SECRET is set.
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_WEBHOOK_TOLERANCE_SECONDS = int(os.environ.get("STRIPE_WEBHOOK_TOLERANCE_SECONDS", "300"))
    CURRENCY = os.environ.get("CURRENCY", "gbp")

    # Resend. Without an API key emails are logged instead of sent.
    RESEND_API_KEY = os.environ.get("RESEND_API_KEY", "")
    EMAIL_FROM = os.environ.get("EMAIL_FROM", "TTNTS <onboarding@resend.dev>")
    ACADEMY_NAME = os.environ.get("ACADEMY_NAME", "Taking The Next Step Football")
    ACADEMY_SHORT_NAME = os.environ.get("ACADEMY_SHORT_NAME", "TTNTS121")
    ACADEMY_EMAIL = os.environ.get("ACADEMY_EMAIL", "info@ttnts.co.uk")
    ACADEMY_PHONE = os.environ.get("ACADEMY_PHONE", "07000 000000")

    # Used to build success/cancel/portal links in checkout sessions and emails
    PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "http://localhost:3000")

    DASHBOARD_STATS_TTL_SECONDS = int(os.environ.get("DASHBOARD_STATS_TTL_SECONDS", "300"))

    ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    ]
