import os

from .config import Config


class ProductionConfig(Config):
    DEBUG = False
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True

    if Config.SECRET_KEY == "smartsteps-dev-secret" and not os.environ.get("ALLOW_INSECURE_SECRET"):
        raise RuntimeError("SECRET_KEY must be set in production")


SETTINGS = ProductionConfig
