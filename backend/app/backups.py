import os
import re
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import HTTPException
from psycopg.conninfo import conninfo_to_dict

from .config import build_database_url, settings
from .logs import json_log

BACKUP_PREFIX = "spraycenter_backup_"
_SAFE_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*\.sql$")
PG_DUMP_TIMEOUT_SECONDS = 600


def backup_dir() -> Path:
    p = Path(settings.backup_dir)
    p.mkdir(parents=True, exist_ok=True)
    return p


def backup_filename(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"{BACKUP_PREFIX}{now.strftime('%Y-%m-%dT%H-%M-%S')}.sql"


def pg_dump_command(db: dict, target: Path) -> list[str]:
    exe = "pg_dump"
    if settings.pg_bin_path:
        exe = str(Path(settings.pg_bin_path) / "pg_dump")
    return [
        exe,
        "-U", str(db["user"]),
        "-h", str(db["host"]),
        "-p", str(db["port"]),
        "-d", str(db["name"]),
        "-F", "p",
        "-f", str(target),
    ]


def list_backups() -> list[dict]:
    out = []
    for p in backup_dir().glob("*.sql"):
        st = p.stat()
        out.append({"filename": p.name, "size": st.st_size, "created": datetime.fromtimestamp(st.st_mtime)})
    out.sort(key=lambda b: b["created"], reverse=True)
    return out


def prune_backups(keep: Optional[int] = None) -> list[str]:
    keep = settings.backup_keep if keep is None else keep
    removed = []
    for b in list_backups()[keep:]:
        (backup_dir() / b["filename"]).unlink(missing_ok=True)
        removed.append(b["filename"])
    return removed


def dump_target_database() -> dict:
    """
    Connection parameters for pg_dump, parsed from the same URL the pool
    connects with so DATABASE_URL deployments dump the right database.
    """
    info = conninfo_to_dict(build_database_url())
    return {
        "host": info.get("host") or "localhost",
        "port": info.get("port") or 5432,
        "name": info.get("dbname") or "postgres",
        "user": info.get("user") or "postgres",
        "password": info.get("password") or "",
    }


def create_backup() -> dict:
    db = dump_target_database()
    target = backup_dir() / backup_filename()
    env = {**os.environ, "PGPASSWORD": str(db["password"])}
    try:
        proc = subprocess.run(
            pg_dump_command(db, target),
            env=env,
            capture_output=True,
            timeout=PG_DUMP_TIMEOUT_SECONDS,
            check=False,
        )
    except FileNotFoundError:
        target.unlink(missing_ok=True)
        raise HTTPException(status_code=500, detail="pg_dump is not installed (set PG_BIN_PATH)")
    except subprocess.TimeoutExpired:
        target.unlink(missing_ok=True)
        json_log("error", "backup.timeout", file=target.name, timeout=PG_DUMP_TIMEOUT_SECONDS)
        raise HTTPException(status_code=500, detail=f"Backup timed out after {PG_DUMP_TIMEOUT_SECONDS}s")
    if proc.returncode != 0 or not target.exists():
        target.unlink(missing_ok=True)
        err = (proc.stderr or b"").decode("utf-8", errors="replace").strip()
        json_log("error", "backup.failed", file=target.name, returncode=proc.returncode, error=err)
        raise HTTPException(status_code=500, detail=f"Backup failed: {err or 'no output file'}")

    size = target.stat().st_size
    removed = prune_backups()
    json_log("info", "backup.created", file=target.name, size=size, pruned=len(removed))
    return {"success": True, "filename": target.name, "size": size, "path": str(target)}


def resolve_backup(filename: str) -> Path:
    name = (filename or "").strip()
    if not name or len(name) > 200 or "/" in name or "\\" in name or not _SAFE_NAME_RE.match(name):
        raise HTTPException(status_code=400, detail="invalid filename")
    base = backup_dir().resolve()
    target = (base / name).resolve()
    if target.parent != base:
        raise HTTPException(status_code=400, detail="invalid filename")
    if not target.is_file():
        raise HTTPException(status_code=404, detail="Backup not found")
    return target
