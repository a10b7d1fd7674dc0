from contextlib import contextmanager

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

import backend.app.deps as deps
import backend.app.main as main
import backend.app.routers.auth as auth_router
import backend.app.routers.products as products_router
from backend.app.routers.auth import ChangePasswordIn, LoginIn, RegisterIn
from backend.app.security import create_access_token, decode_access_token, hash_password


class _DummyCursor:
    def __init__(self, results):
        # One entry per execute(): a list of rows.
        self.results = list(results)
        self.executed = []
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, sql, params=None):
        self.executed.append((" ".join(sql.split()), params))
        self._rows = self.results.pop(0) if self.results else []

    def fetchone(self):
        return self._rows[0] if self._rows else None

    def fetchall(self):
        return list(self._rows)


class _DummyConn:
    def __init__(self, results=()):
        self.cur = _DummyCursor(results)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    @contextmanager
    def transaction(self):
        yield

    def cursor(self):
        return self.cur


def test_login_issues_token_for_valid_password(monkeypatch):
    conn = _DummyConn([[{"id": 5, "password_hash": hash_password("hunter22")}]])
    monkeypatch.setattr(auth_router, "get_conn", lambda: conn)

    out = auth_router.login(LoginIn(email=" Owner@Shop.PK ", password="hunter22"))

    assert decode_access_token(out["token"])["user"]["id"] == 5
    assert conn.cur.executed[0][1] == ("owner@shop.pk",)


def test_login_rejects_bad_password_and_unknown_email(monkeypatch):
    conn = _DummyConn([[{"id": 5, "password_hash": hash_password("hunter22")}], []])
    monkeypatch.setattr(auth_router, "get_conn", lambda: conn)

    for email in ("owner@shop.pk", "nobody@shop.pk"):
        with pytest.raises(HTTPException) as e:
            auth_router.login(LoginIn(email=email, password="nope"))
        assert e.value.status_code == 401
        assert e.value.detail == "Password or Email is incorrect"


def test_register_existing_email(monkeypatch):
    conn = _DummyConn([[{"id": 1}]])
    monkeypatch.setattr(auth_router, "get_conn", lambda: conn)

    with pytest.raises(HTTPException) as e:
        auth_router.register(RegisterIn(name="Owner", email="owner@shop.pk", password="secret1"))
    assert e.value.status_code == 401
    assert e.value.detail == "User already exists"
    assert len(conn.cur.executed) == 1


def test_register_requires_valid_email():
    with pytest.raises(HTTPException) as e:
        auth_router.register(RegisterIn(name="Owner", email="not-an-email", password="secret1"))
    assert e.value.status_code == 400


def test_change_password_checks_before_touching_db(monkeypatch):
    def _no_db():
        raise AssertionError("db should not be used")

    monkeypatch.setattr(auth_router, "get_conn", _no_db)
    user = {"user_id": 1}
    with pytest.raises(HTTPException) as e:
        auth_router.change_password(ChangePasswordIn(current_password="x", new_password="abc", confirm_password="abc"), user)
    assert e.value.status_code == 400
    with pytest.raises(HTTPException) as e:
        auth_router.change_password(
            ChangePasswordIn(current_password="x", new_password="abcdef", confirm_password="abcdeg"), user
        )
    assert e.value.detail == "passwords do not match"


def test_change_password_wrong_current(monkeypatch):
    conn = _DummyConn([[{"password_hash": hash_password("old-pass")}]])
    monkeypatch.setattr(auth_router, "get_conn", lambda: conn)
    with pytest.raises(HTTPException) as e:
        auth_router.change_password(
            ChangePasswordIn(current_password="bad-pass", new_password="abcdef", confirm_password="abcdef"),
            {"user_id": 1},
        )
    assert e.value.status_code == 401
    assert e.value.detail == "Current password is incorrect"


def test_protected_routes_require_bearer_token():
    client = TestClient(main.app)

    r = client.get("/products")
    assert r.status_code == 401
    assert r.json()["detail"] == "missing token"

    r = client.get("/products", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401
    assert r.json()["detail"] == "invalid token"


def test_protected_route_with_valid_token(monkeypatch):
    user_conn = _DummyConn([[{"id": 3, "name": "Owner", "email": "owner@shop.pk", "role": "admin"}]])
    monkeypatch.setattr(deps, "get_conn", lambda: user_conn)
    products_conn = _DummyConn([[{"id": 1, "name": "Nozzle"}]])
    monkeypatch.setattr(products_router, "get_conn", lambda: products_conn)

    client = TestClient(main.app)
    r = client.get("/products", headers={"Authorization": f"Bearer {create_access_token(3)}"})

    assert r.status_code == 200
    assert r.json() == [{"id": 1, "name": "Nozzle"}]
    assert r.headers.get("X-Request-Id")
    assert user_conn.cur.executed[0][1] == (3,)


def test_token_for_deleted_user_is_rejected(monkeypatch):
    monkeypatch.setattr(deps, "get_conn", lambda: _DummyConn([[]]))
    client = TestClient(main.app)
    r = client.get("/auth/profile", headers={"Authorization": f"Bearer {create_access_token(99)}"})
    assert r.status_code == 401


def test_health_reports_db_down(monkeypatch):
    def _down():
        raise RuntimeError("connection refused")

    monkeypatch.setattr(main, "get_conn", _down)
    r = TestClient(main.app).get("/health")
    assert r.status_code == 503
    assert r.json()["db"] == "down"
