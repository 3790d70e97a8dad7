from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Optional

from flask import Flask, current_app, g, jsonify, request, session
from werkzeug.exceptions import HTTPException

from ..core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from ..core.exceptions import AuthenticationError, AuthorizationError, DomainError, ValidationError
from ..permissions.resolver import has_permission

logger = logging.getLogger(__name__)


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(DomainError)
    def handle_domain_error(exc: DomainError):
        body: dict[str, Any] = {"ok": False, "code": exc.code, "error": exc.message or exc.code}
        if exc.details is not None:
            body["details"] = exc.details
        if exc.status_code >= 500:
            logger.error("Domain error on %s: %s", request.path, exc.message)
        return jsonify(body), exc.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        code = "NOT_FOUND" if exc.code == 404 else "HTTP_ERROR"
        return jsonify({"ok": False, "code": code, "error": exc.description}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        logger.exception(
            "Unhandled error on %s %s (user=%s)",
            request.method,
            request.path,
            session.get("user_id"),
        )
        return jsonify({"ok": False, "code": "INTERNAL_ERROR", "error": "Internal server error"}), 500


def ok(data: Any = None, status: int = 200, **extra):
    body: dict[str, Any] = {"ok": True}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return jsonify(body), status


def read_json() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def page_args() -> tuple[int, int]:
    try:
        page = max(int(request.args.get("page", 1)), 1)
        size = int(request.args.get("page_size", DEFAULT_PAGE_SIZE))
    except ValueError:
        raise ValidationError("page and page_size must be integers")
    return page, min(max(size, 1), MAX_PAGE_SIZE)


def arg_int(name: str) -> Optional[int]:
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def uploaded_file(field: str = "file"):
    f = request.files.get(field)
    if f is None or not f.filename:
        raise ValidationError("File is required")
    return f


def current_container():
    return current_app.extensions["smartsteps.container"]


def current_user():
    return g.current_user


def login_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        user_id = session.get("user_id")
        if not user_id:
            raise AuthenticationError("Authentication required")
        user = current_container().auth_service.session_user(int(user_id))
        if user is None:
            session.clear()
            raise AuthenticationError("Authentication required")
        g.current_user = user
        return view(*args, **kwargs)

    return wrapper


def permission_required(name: str, action: str = "view"):
    """Reject callers whose resolved permissions lack ``name``."""

    def decorator(view):
        @wraps(view)
        @login_required
        def wrapper(*args, **kwargs):
            if not has_permission(g.current_user, name, action):
                raise AuthorizationError("Permission denied")
            return view(*args, **kwargs)

        return wrapper

    return decorator


def admin_required(view):
    @wraps(view)
    @login_required
    def wrapper(*args, **kwargs):
        if not g.current_user.is_admin:
            raise AuthorizationError("Admin access required")
        return view(*args, **kwargs)

    return wrapper
