from typing import Optional

import psycopg
from fastapi import APIRouter, HTTPException
from psycopg import sql
from pydantic import BaseModel

from ..config import build_database_url, get_database_config, is_configured, reset_config, save_database_config
from ..db import get_conn, recreate_pool
from ..logs import json_log
from ..schema import apply_schema

router = APIRouter(prefix="/config", tags=["config"])

CONNECT_TIMEOUT_SECONDS = 5


class DatabaseConfigIn(BaseModel):
    host: str = "localhost"
    port: int = 5432
    name: str = "spraycenter"
    user: str = "postgres"
    password: Optional[str] = ""


def _as_db(data: DatabaseConfigIn) -> dict:
    return {
        "host": (data.host or "").strip() or "localhost",
        "port": int(data.port or 5432),
        "name": (data.name or "").strip(),
        "user": (data.user or "").strip(),
        "password": data.password or "",
    }


def _database_exists(cur, name: str) -> bool:
    cur.execute("SELECT 1 FROM pg_database WHERE datname = %s", (name,))
    return cur.fetchone() is not None


@router.get("/status")
def config_status():
    configured = is_configured()
    db = get_database_config() if configured else None
    return {
        "is_configured": configured,
        "database": (
            {
                "host": db["host"],
                "port": db["port"],
                "name": db["name"],
                "user": db["user"],
                # The password itself is never returned.
                "has_password": bool(db.get("password")),
            }
            if db
            else None
        ),
    }


@router.post("/test-connection")
def test_connection(data: DatabaseConfigIn):
    db = _as_db(data)
    try:
        with psycopg.connect(
            build_database_url(db, name="postgres"), connect_timeout=CONNECT_TIMEOUT_SECONDS
        ) as conn:
            with conn.cursor() as cur:
                exists = _database_exists(cur, db["name"])
    except psycopg.OperationalError as e:
        return {"success": False, "message": f"Connection failed: {e}"}
    return {
        "success": True,
        "database_exists": exists,
        "message": "Connection successful! Database exists."
        if exists
        else "Connection successful! Database does not exist but will be created.",
    }


@router.post("/save")
def save_config(data: DatabaseConfigIn):
    db = _as_db(data)
    if not db["host"] or not db["name"] or not db["user"]:
        raise HTTPException(status_code=400, detail="Host, database name, and user are required")
    save_database_config(db)
    recreate_pool()
    json_log("info", "config.saved", host=db["host"], port=db["port"], database=db["name"])
    return {"success": True, "message": "Configuration saved successfully"}


@router.post("/create-database")
def create_database(data: DatabaseConfigIn):
    db = _as_db(data)
    if not db["name"]:
        raise HTTPException(status_code=400, detail="database name is required")
    try:
        # CREATE DATABASE cannot run inside a transaction block.
        with psycopg.connect(
            build_database_url(db, name="postgres"), connect_timeout=CONNECT_TIMEOUT_SECONDS, autocommit=True
        ) as conn:
            with conn.cursor() as cur:
                if _database_exists(cur, db["name"]):
                    return {"success": True, "created": False, "message": "Database already exists"}
                cur.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(db["name"])))
    except psycopg.OperationalError as e:
        json_log("warning", "config.create_database_failed", database=db["name"], error=str(e))
        return {"success": False, "created": False, "message": f"Connection failed: {e}"}
    json_log("info", "config.database_created", database=db["name"])
    return {"success": True, "created": True, "message": "Database created successfully"}


@router.post("/init-database")
def init_database():
    with get_conn() as conn:
        applied = apply_schema(conn)
    json_log("info", "config.schema_applied", files=applied)
    return {"success": True, "applied": applied, "message": "Database initialized successfully"}


@router.post("/reset")
def reset():
    reset_config()
    recreate_pool()
    return {"success": True, "message": "Configuration reset"}
