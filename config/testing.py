from .config import Config


class TestingConfig(Config):
    DEBUG = False
    TESTING = True
    SECRET_KEY = "test-secret"

    SQLALCHEMY_DATABASE_URI = "sqlite://"
    AUTO_INIT_DB = True
    AUTO_SEED_DB = False

    EMAIL_ENABLED = False
    APP_URL = "http://testserver"
    MAIN_EMAIL_RECIPIENTS = ["billing@example.com"]
    COMMUNITY_EMAIL_RECIPIENTS = ["community@example.com"]
    LOG_LEVEL = "WARNING"


SETTINGS = TestingConfig
