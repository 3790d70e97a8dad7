from .config import Config


class DevelopmentConfig(Config):
    DEBUG = True
    # Apply schema on startup (create_all is idempotent)
    AUTO_INIT_DB = True
    LOG_LEVEL = "DEBUG"


SETTINGS = DevelopmentConfig
