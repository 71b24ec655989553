"""Проверяет подпись cookie сессии."""

import time

from app.core.config import settings
from app.core.session import (
    create_session_cookie,
    generate_access_token,
    hash_access_token,
    is_admin_session,
    read_session,
)


def test_session_cookie_round_trip() -> None:
    session = read_session(create_session_cookie(42))

    assert session is not None
    assert session.user_id == 42
    assert session.is_admin is False


def test_admin_cookie_without_user() -> None:
    cookie = create_session_cookie(None, is_admin=True)

    assert is_admin_session(cookie)
    assert read_session(cookie).user_id is None


def test_tampered_cookie_is_rejected() -> None:
    cookie = create_session_cookie(7)
    payload, signature = cookie.rsplit(".", 1)
    forged_payload = create_session_cookie(7, is_admin=True).rsplit(".", 1)[0]

    assert read_session(f"{forged_payload}.{signature}") is None
    assert read_session(payload) is None
    assert read_session("") is None
    assert not is_admin_session(None)


def test_expired_cookie_is_rejected() -> None:
    now = int(time.time())
    stale = create_session_cookie(7, is_admin=True, issued_at=now - settings.session_max_age - 1)
    fresh = create_session_cookie(7, issued_at=now - settings.session_max_age + 60)

    assert read_session(stale) is None
    assert not is_admin_session(stale)
    assert read_session(fresh).user_id == 7


def test_access_token_hash_is_stable() -> None:
    token = generate_access_token()

    assert len(token) >= 32
    assert hash_access_token(token) == hash_access_token(token)
    assert hash_access_token(token) != hash_access_token(token + "x")
