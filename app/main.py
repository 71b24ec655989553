"""Создаёт FastAPI-приложение, подключает маршруты и middleware."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse

from app.core.config import settings
from app.core.logging import configure_logging
from app.core.session import SESSION_COOKIE, create_session_cookie, is_admin_session
from app.db.session import init_db
from app.routers.admin import auth_router as admin_auth_router
from app.routers.admin import router as admin_router
from app.routers.api import router as api_router
from app.routers.deps import error_response
from app.services.errors import ServiceError

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.create_schema_on_startup:
        await init_db()
        logger.info("Database schema created")
    yield


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)


@app.middleware("http")
async def admin_auth_middleware(request: Request, call_next):
    normalized_path = request.url.path.rstrip("/") or "/"
    if not normalized_path.startswith("/admin") or normalized_path in {"/admin/login", "/admin/logout"}:
        return await call_next(request)

    if is_admin_session(request.cookies.get(SESSION_COOKIE)):
        return await call_next(request)

    # Вход по ссылке вида /admin?admin_key=...
    admin_key = request.query_params.get("admin_key")
    if normalized_path == "/admin" and admin_key and admin_key == settings.admin_key:
        response = RedirectResponse(url="/admin", status_code=303)
        response.set_cookie(
            SESSION_COOKIE,
            create_session_cookie(None, is_admin=True),
            httponly=True,
            samesite="lax",
            max_age=settings.session_max_age,
        )
        logger.info("Admin session opened via admin key")
        return response
    return JSONResponse({"ok": False, "error": "Forbidden"}, status_code=403)


@app.exception_handler(ServiceError)
async def service_error_handler(_: Request, exc: ServiceError):
    # Ошибки из зависимостей маршрутов, например require_admin.
    return error_response(exc)


app.include_router(api_router)
app.include_router(admin_auth_router)
app.include_router(admin_router)


if __name__ == "__main__":
    uvicorn.run("app.main:app", host=settings.app_host, port=settings.app_port, reload=settings.debug)
