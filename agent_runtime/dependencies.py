from __future__ import annotations

import base64
import binascii
import hmac
from typing import Optional

from fastapi import Request

from .domain import APIKeyAuth, AuthConfig, BasicAuth, BearerTokenAuth


class AuthError(RuntimeError):
    """Raised when authentication fails."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(message)


def _secure_compare(supplied: str, expected: str) -> bool:
    return hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


def _get_authorization(request: Request, scheme: str) -> Optional[str]:
    auth_header = request.headers.get("Authorization")
    prefix = f"{scheme} "
    if auth_header and auth_header.startswith(prefix):
        return auth_header[len(prefix):]
    return None


def _verify_api_key(request: Request, config: APIKeyAuth) -> None:
    supplied = request.headers.get(config.header_name)
    if not supplied:
        raise AuthError(401, f"Missing {config.header_name} header")
    if not _secure_compare(supplied, config.api_key):
        raise AuthError(401, "Invalid API key")


def _verify_basic(request: Request, config: BasicAuth) -> None:
    encoded = _get_authorization(request, "Basic")
    if encoded is None:
        raise AuthError(401, "Missing or invalid Authorization header")

    try:
        decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise AuthError(401, "Invalid Basic auth format") from exc

    username, sep, password = decoded.partition(":")
    if not sep:
        raise AuthError(401, "Invalid Basic auth format")

    # Both fields are always compared.
    username_ok = _secure_compare(username, config.username)
    password_ok = _secure_compare(password, config.password)
    if not (username_ok and password_ok):
        raise AuthError(401, "Invalid credentials")


def _verify_bearer(request: Request, config: BearerTokenAuth) -> None:
    token = _get_authorization(request, "Bearer")
    if token is None:
        raise AuthError(401, "Missing or invalid Authorization header")
    if not _secure_compare(token.strip(), config.token):
        raise AuthError(401, "Invalid bearer token")


def enforce_auth(request: Request, auth_config: Optional[AuthConfig]) -> None:
    """
    Auth guard for the agent endpoint.

    No configuration means authentication is disabled (dev/tests).
    """
    if auth_config is None:
        return
    if isinstance(auth_config, APIKeyAuth):
        _verify_api_key(request, auth_config)
    elif isinstance(auth_config, BasicAuth):
        _verify_basic(request, auth_config)
    elif isinstance(auth_config, BearerTokenAuth):
        _verify_bearer(request, auth_config)
    else:
        raise AuthError(500, "Unknown auth type")
