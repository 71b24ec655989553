"""Подписанные cookie сессии пользователя и администратора."""

import base64
import hashlib
import hmac
import json
import secrets
import time
from dataclasses import dataclass

from app.core.config import settings

SESSION_COOKIE = "session"


@dataclass(frozen=True)
class SessionData:
    user_id: int | None
    is_admin: bool


def _b64_encode(value: str) -> str:
    encoded = base64.urlsafe_b64encode(value.encode("utf-8")).decode("utf-8")
    return encoded.rstrip("=")


def _b64_decode(value: str) -> str:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode("utf-8")).decode("utf-8")


def _sign(payload: str) -> str:
    digest = hmac.new(settings.secret_key.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).decode("utf-8").rstrip("=")


def create_session_cookie(user_id: int | None, is_admin: bool = False, issued_at: int | None = None) -> str:
    data = {"uid": user_id, "is_admin": is_admin, "iat": int(time.time()) if issued_at is None else issued_at}
    payload = _b64_encode(json.dumps(data, separators=(",", ":")))
    signature = _sign(payload)
    return f"{payload}.{signature}"


def read_session(cookie_value: str | None) -> SessionData | None:
    if not cookie_value or "." not in cookie_value:
        return None

    payload, signature = cookie_value.rsplit(".", 1)
    expected_signature = _sign(payload)
    if not hmac.compare_digest(signature, expected_signature):
        return None

    try:
        data = json.loads(_b64_decode(payload))
    except (ValueError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    user_id = data.get("uid")
    if user_id is not None and not isinstance(user_id, int):
        return None
    # Просроченная сессия отклоняется независимо от max_age у cookie.
    issued_at = data.get("iat")
    if not isinstance(issued_at, int) or time.time() - issued_at > settings.session_max_age:
        return None
    return SessionData(user_id=user_id, is_admin=bool(data.get("is_admin")))


def is_admin_session(cookie_value: str | None) -> bool:
    session = read_session(cookie_value)
    return bool(session and session.is_admin)


def generate_access_token() -> str:
    # Токен показывается пользователю один раз, в БД хранится только хеш.
    return secrets.token_urlsafe(24)


def hash_access_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
