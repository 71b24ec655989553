"""Проверяет запуск приложения через python -m app.main."""

import runpy

import uvicorn

from app.core.config import settings


def test_main_runs_uvicorn_with_configured_host_and_port(monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))

    runpy.run_module("app.main", run_name="__main__")

    assert calls == [("app.main:app", {"host": settings.app_host, "port": settings.app_port, "reload": settings.debug})]
