"""Bearer-token authentication and role checks.

Tokens are signed ``{user_id, role}`` payloads produced with itsdangerous. The
authenticated principal is stored on ``flask.g`` for the lifetime of a single
request and handed explicitly to services that need it.
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable

from flask import current_app, g, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .errors import AuthenticationError, ForbiddenError

TOKEN_SALT = "auth-token"


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: str


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def build_token(user_id: int, role: str) -> str:
    return _serializer().dumps({"user_id": user_id, "role": role})


def load_principal() -> Principal | None:
    """Extract and validate the principal from the Authorization header.

    Returns None if the header is missing, malformed, tampered with or expired.
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None

    token = auth_header[7:]  # Remove "Bearer " prefix
    try:
        payload = _serializer().loads(token, max_age=current_app.config["TOKEN_MAX_AGE_SECONDS"])
    except SignatureExpired:
        current_app.logger.info("Rejected expired auth token")
        return None
    except BadSignature:
        return None

    user_id = payload.get("user_id")
    role = payload.get("role")
    if not isinstance(user_id, int) or not role:
        return None
    return Principal(user_id=user_id, role=role)


def current_principal() -> Principal | None:
    return g.get("principal")


def login_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: any authenticated staff account."""

    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        principal = load_principal()
        if principal is None:
            raise AuthenticationError("Invalid or missing token")
        g.principal = principal
        return view_func(*args, **kwargs)

    return wrapper


def roles_required(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator factory: authenticated and holding one of ``roles``."""

    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            principal = load_principal()
            if principal is None:
                raise AuthenticationError("Invalid or missing token")
            if principal.role not in roles:
                current_app.logger.warning(
                    "User %s with role %s denied access to %s", principal.user_id, principal.role, request.path
                )
                raise ForbiddenError(f"Requires one of roles: {', '.join(roles)}")
            g.principal = principal
            return view_func(*args, **kwargs)

        return wrapper

    return decorator
