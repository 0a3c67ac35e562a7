"""
Tests for the app factory and the console entry point.
"""

import logging

import pytest
import structlog
from starlette.applications import Starlette

from pizzaz_server_python import main as main_module
from pizzaz_server_python.config import Settings


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


@pytest.mark.unit
def test_nothing_is_built_at_import():
    assert not hasattr(main_module, "app")


@pytest.mark.unit
def test_factory_configures_logging_before_building(assets_dir, restore_logging, monkeypatch):
    seen = []
    build = main_module.create_app

    def recording_create_app(settings):
        seen.append((structlog.is_configured(), logging.getLogger().level))
        return build(settings)

    monkeypatch.setattr(main_module, "create_app", recording_create_app)
    structlog.reset_defaults()

    app = main_module.create_app_from_env(
        Settings(assets_dir=assets_dir, log_level="WARNING")
    )

    assert isinstance(app, Starlette)
    assert seen == [(True, logging.WARNING)]


@pytest.mark.unit
def test_main_runs_the_factory_app_once(assets_dir, restore_logging, monkeypatch):
    import uvicorn

    settings = Settings(assets_dir=assets_dir, port=4321)
    built = []
    runs = []

    def fake_factory(received):
        built.append(received)
        return "the-app"

    monkeypatch.setattr(Settings, "from_env", classmethod(lambda cls, **kwargs: settings))
    monkeypatch.setattr(main_module, "create_app_from_env", fake_factory)
    monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: runs.append((app, kwargs)))

    main_module.main()

    assert built == [settings]
    assert runs == [("the-app", {"host": settings.host, "port": 4321})]
