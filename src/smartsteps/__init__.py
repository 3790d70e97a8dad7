"""Smart Steps practice administration service."""

__all__ = ["create_app"]

__version__ = "1.4.0"


def create_app(settings_module=None):
    from .main import create_app as _create_app

    return _create_app(settings_module)
