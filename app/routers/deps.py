"""Общие помощники маршрутов: сессия из cookie и единый формат ошибок."""

from fastapi import Depends, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.session import SESSION_COOKIE, SessionData, create_session_cookie, read_session
from app.db.session import get_db
from app.models.user import User
from app.services.errors import AuthenticationRequiredError, PermissionDeniedError, ServiceError


def error_response(exc: ServiceError) -> JSONResponse:
    return JSONResponse({"ok": False, "error": str(exc)}, status_code=exc.status_code)


async def current_session(request: Request, db: AsyncSession) -> SessionData | None:
    """Сессия из cookie, сверенная с записью пользователя в БД.

    Права администратора берутся из текущей записи: пониженный или удаленный
    пользователь теряет их сразу, даже со старой cookie. Сессия по ключу
    администратора (без uid) в БД не проверяется.
    """
    session = read_session(request.cookies.get(SESSION_COOKIE))
    if not session or session.user_id is None:
        return session
    user = await db.get(User, session.user_id)
    if not user:
        return None
    return SessionData(user_id=user.id, is_admin=user.is_admin)


async def require_user(request: Request, db: AsyncSession) -> SessionData:
    session = await current_session(request, db)
    if not session or session.user_id is None:
        raise AuthenticationRequiredError("Login required")
    return session


async def require_admin(request: Request, db: AsyncSession = Depends(get_db)) -> SessionData:
    session = await current_session(request, db)
    if not session or not session.is_admin:
        raise PermissionDeniedError("Admin access required")
    return session


def set_session_cookie(response: Response, user_id: int | None, is_admin: bool = False) -> Response:
    response.set_cookie(
        SESSION_COOKIE,
        create_session_cookie(user_id, is_admin=is_admin),
        httponly=True,
        samesite="lax",
        max_age=settings.session_max_age,
    )
    return response
