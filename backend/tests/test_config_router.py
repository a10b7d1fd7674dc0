import pytest
from fastapi import HTTPException

import backend.app.routers.config as config_router
from backend.app.config import settings
from backend.app.routers.config import DatabaseConfigIn


@pytest.fixture
def config_dir(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "config_dir", str(tmp_path))
    rebuilt = []
    monkeypatch.setattr(config_router, "recreate_pool", lambda: rebuilt.append(True))
    return rebuilt


def test_status_before_setup(config_dir):
    assert config_router.config_status() == {"is_configured": False, "database": None}


def test_save_then_status_hides_password(config_dir):
    out = config_router.save_config(DatabaseConfigIn(host=" db.local ", name="shop", user="app", password="pw"))
    assert out["success"] is True
    assert config_dir == [True]

    status = config_router.config_status()
    assert status["is_configured"] is True
    assert status["database"] == {"host": "db.local", "port": 5432, "name": "shop", "user": "app", "has_password": True}

    config_router.reset()
    assert config_router.config_status()["is_configured"] is False


def test_save_requires_name_and_user(config_dir):
    with pytest.raises(HTTPException) as e:
        config_router.save_config(DatabaseConfigIn(name=" ", user="app"))
    assert e.value.status_code == 400
    assert config_dir == []


def test_create_database_reports_unreachable_server(config_dir, monkeypatch):
    def _refused(*a, **kw):
        raise config_router.psycopg.OperationalError("connection refused")

    monkeypatch.setattr(config_router.psycopg, "connect", _refused)

    out = config_router.create_database(DatabaseConfigIn(host="nowhere", name="shop", user="app"))

    assert out["success"] is False
    assert out["created"] is False
    assert out["message"] == "Connection failed: connection refused"


def test_test_connection_reports_unreachable_server(config_dir, monkeypatch):
    def _refused(*a, **kw):
        raise config_router.psycopg.OperationalError("timeout expired")

    monkeypatch.setattr(config_router.psycopg, "connect", _refused)

    out = config_router.test_connection(DatabaseConfigIn(host="nowhere", name="shop", user="app"))

    assert out == {"success": False, "message": "Connection failed: timeout expired"}
