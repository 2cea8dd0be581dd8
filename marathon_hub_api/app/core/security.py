"""
Security helpers for cookie-based JWT authentication.

This module implements a lightweight JSON Web Token (JWT) mechanism
using HMAC‑SHA256 signatures and base64url encoding.  Tokens embed
the claims posted to ``/jwt`` (typically ``{"email": ...}``) and an
expiration timestamp (``exp``).  The secret key from the application
settings is used to sign and verify the token.

Tokens travel in an http‑only cookie rather than an ``Authorization``
header.  ``get_current_user`` is the verification gate used by
protected routes: it either returns the decoded claims or short
circuits the request with ``401 unauthorized access``.
"""

import base64
import hashlib
import hmac
import json
import time
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Response, status
from fastapi.security import APIKeyCookie

from .config import settings


def _b64_url_encode(data: bytes) -> str:
    """Base64‑url encode bytes without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("utf-8")


def _b64_url_decode(data: str) -> bytes:
    """Decode base64‑url encoded string, adding padding if necessary."""
    padding = '=' * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(message: bytes, secret: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()


def create_access_token(data: Dict[str, Any], expires_delta: Optional[int] = None) -> str:
    """Create a signed JWT token with the given payload.

    The payload is extended with an ``exp`` field representing the
    expiration time as a UNIX timestamp.  The token is a string of the
    form ``header.payload.signature``, where each part is base64url
    encoded.

    Parameters
    ----------
    data : dict
        Claims to embed in the token (e.g. ``{"email": "user@example.com"}``).
    expires_delta : Optional[int]
        Lifetime of the token in seconds.  Defaults to
        ``settings.access_token_expire_minutes * 60`` (one hour).

    Returns
    -------
    str
        A signed JWT token.
    """
    to_encode = dict(data)
    exp_seconds = expires_delta or settings.access_token_expire_minutes * 60
    now = int(time.time())
    to_encode["iat"] = now
    to_encode["exp"] = now + exp_seconds
    header = {"alg": "HS256", "typ": "JWT"}
    header_b64 = _b64_url_encode(json.dumps(header, separators=(',', ':')).encode("utf-8"))
    payload_b64 = _b64_url_encode(json.dumps(to_encode, separators=(',', ':'), default=str).encode("utf-8"))
    signing_input = f"{header_b64}.{payload_b64}".encode("utf-8")
    signature_b64 = _b64_url_encode(_sign(signing_input, settings.secret_key))
    return f"{header_b64}.{payload_b64}.{signature_b64}"


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Verify and decode a JWT token.

    Returns the payload dictionary when the signature matches and the
    token has not expired; otherwise returns ``None``.
    """
    try:
        parts = token.split('.')
        if len(parts) != 3:
            return None
        header_b64, payload_b64, signature_b64 = parts
        signing_input = f"{header_b64}.{payload_b64}".encode("utf-8")
        expected_sig = _sign(signing_input, settings.secret_key)
        actual_sig = _b64_url_decode(signature_b64)
        if not hmac.compare_digest(expected_sig, actual_sig):
            return None
        data = json.loads(_b64_url_decode(payload_b64).decode("utf-8"))
        if not isinstance(data, dict):
            return None
        if data.get("exp") is None or int(data["exp"]) < int(time.time()):
            return None
        return data
    except (ValueError, TypeError, UnicodeDecodeError):
        return None


token_cookie = APIKeyCookie(name=settings.token_cookie_name, auto_error=False)


def get_current_user(token: Optional[str] = Depends(token_cookie)) -> Dict[str, Any]:
    """Dependency that retrieves the claims of the authenticated caller.

    A missing cookie, a bad signature or an expired token all yield
    ``401 unauthorized access``.
    """
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized access")
    payload = decode_access_token(token)
    if not payload:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized access")
    return payload


def ensure_same_email(current_user: Dict[str, Any], email: str) -> None:
    """Reject access to resources scoped to someone else's email."""
    if current_user.get("email") != email:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden access")


def cookie_options() -> Dict[str, Any]:
    """Cookie flags for the auth token, adapted to the environment.

    Production deployments serve the front end from another origin, so
    the cookie must be ``Secure`` and ``SameSite=None``; local
    development keeps it strict.
    """
    production = settings.is_production
    return {
        "httponly": True,
        "secure": production,
        "samesite": "none" if production else "strict",
    }


def set_token_cookie(response: Response, token: str) -> None:
    response.set_cookie(key=settings.token_cookie_name, value=token, **cookie_options())


def clear_token_cookie(response: Response) -> None:
    response.delete_cookie(key=settings.token_cookie_name, **cookie_options())
