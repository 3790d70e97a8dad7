import os

_ALIASES = {
    "prod": "production",
    "production": "production",
    "test": "testing",
    "testing": "testing",
    "ci": "testing",
}


def get_settings_module() -> str:
    """Dotted path of the settings module for APP_ENV (development when unset)."""
    env = (os.getenv("APP_ENV") or os.getenv("FLASK_ENV") or "development").strip().lower()
    return f"config.{_ALIASES.get(env, 'development')}"
