import os
import urllib.parse


def _csv_env(name: str, default: str = "") -> list[str]:
    raw = os.environ.get(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY") or "smartsteps-dev-secret"

    # DB
    DB_USER = os.environ.get("DB_USER", "root")
    DB_PASSWORD = os.environ.get("DB_PASSWORD", "")
    DB_HOST = os.environ.get("DB_HOST", "localhost")
    DB_PORT = int(os.environ.get("DB_PORT", "3306"))
    DB_NAME = os.environ.get("DB_NAME", "smartsteps")

    _encoded_password = urllib.parse.quote_plus(DB_PASSWORD)
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL") or (
        f"mysql+mysqlconnector://{DB_USER}:{_encoded_password}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    AUTO_INIT_DB = bool(int(os.environ.get("AUTO_INIT_DB", "0")))
    AUTO_SEED_DB = bool(int(os.environ.get("AUTO_SEED_DB", "0")))

    APP_URL = os.environ.get("APP_URL", "http://localhost:5000")
    TIMEZONE = os.environ.get("TIMEZONE", "America/New_York")

    # Email
    EMAIL_ENABLED = bool(int(os.environ.get("EMAIL_ENABLED", "0")))
    EMAIL_FROM = os.environ.get("EMAIL_FROM", "no-reply@smartstepsaba.local")
    AWS_REGION = os.environ.get("AWS_REGION", "us-east-1")
    MAIN_EMAIL_RECIPIENTS = _csv_env("MAIN_EMAIL_RECIPIENTS", "billing@smartstepsaba.local")
    COMMUNITY_EMAIL_RECIPIENTS = _csv_env("COMMUNITY_EMAIL_RECIPIENTS", "community@smartstepsaba.local")

    # Security
    INVOICE_TOKEN_DAYS = int(os.environ.get("INVOICE_TOKEN_DAYS", "30"))
    LOGIN_MAX_ATTEMPTS = int(os.environ.get("LOGIN_MAX_ATTEMPTS", "5"))
    LOGIN_LOCK_MINUTES = int(os.environ.get("LOGIN_LOCK_MINUTES", "30"))
    PASSWORD_RESET_MINUTES = int(os.environ.get("PASSWORD_RESET_MINUTES", "60"))

    # Bootstrap admin
    ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "")
    ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
