import json
import os
from typing import List, Optional
from urllib.parse import quote_plus

CONFIG_FILE_NAME = "app-config.json"

DEFAULT_DB_CONFIG = {
    "host": "localhost",
    "port": 5432,
    "name": "spraycenter",
    "user": "postgres",
    "password": "",
}


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Settings:
    def _split_csv(self, raw: str, *, default: List[str]) -> List[str]:
        parts = [p.strip() for p in (raw or "").split(",")]
        return [p for p in parts if p] or default

    def __init__(self) -> None:
        self.env = os.getenv("APP_ENV", "local")
        self.db_url = (os.getenv("DATABASE_URL") or "").strip() or None
        self.db_host = os.getenv("DB_HOST", "localhost")
        self.db_port = _env_int("DB_PORT", 5432)
        self.db_name = os.getenv("DB_NAME", "spraycenter")
        self.db_user = os.getenv("DB_USER", "postgres")
        self.db_password = os.getenv("DB_PASSWORD", "postgres")
        # Single shared signing secret; tokens are not rotated or refreshed.
        self.jwt_secret = os.getenv("JWT_SECRET", "change-me-in-production")
        self.jwt_expire_hours = _env_int("JWT_EXPIRE_HOURS", 24)
        self.cors_origins = self._split_csv(
            os.getenv("CORS_ORIGINS", "").strip(),
            default=["http://localhost:5173", "http://localhost:3000"],
        )
        self.config_dir = os.getenv("CONFIG_DIR", "").strip() or os.path.dirname(os.path.abspath(__file__))
        self.backup_dir = os.getenv("BACKUP_DIR", "").strip() or os.path.join(os.getcwd(), "backups")
        self.backup_keep = _env_int("BACKUP_KEEP", 10)
        self.pg_bin_path = os.getenv("PG_BIN_PATH", "").strip() or None
        self.api_version = os.getenv("APP_VERSION", "0.1.0").strip() or "0.1.0"


settings = Settings()


# Setup-wizard settings file. When marked configured it takes precedence
# over the DB_* environment variables.

def get_config_path() -> str:
    return os.path.join(settings.config_dir, CONFIG_FILE_NAME)


def default_config() -> dict:
    return {"database": dict(DEFAULT_DB_CONFIG), "isConfigured": False}


def read_config() -> dict:
    path = get_config_path()
    cfg = default_config()
    if not os.path.exists(path):
        return cfg
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f) or {}
    cfg.update(data)
    cfg["database"] = {**DEFAULT_DB_CONFIG, **(data.get("database") or {})}
    return cfg


def write_config(cfg: dict) -> None:
    path = get_config_path()
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(cfg, f, indent=2)


def is_configured() -> bool:
    return read_config().get("isConfigured") is True


def save_database_config(db_config: dict) -> dict:
    cfg = read_config()
    cfg["database"] = {**cfg["database"], **db_config}
    cfg["isConfigured"] = True
    write_config(cfg)
    return cfg


def reset_config() -> None:
    write_config(default_config())


def get_database_config() -> dict:
    """
    Active connection parameters: the setup file when configured, otherwise env.
    """
    if is_configured():
        return dict(read_config()["database"])
    return {
        "host": settings.db_host,
        "port": settings.db_port,
        "name": settings.db_name,
        "user": settings.db_user,
        "password": settings.db_password,
    }


def build_database_url(db: Optional[dict] = None, *, name: Optional[str] = None) -> str:
    if db is None and settings.db_url and not is_configured():
        return settings.db_url
    db = db or get_database_config()
    password = db.get("password") or ""
    password_part = f":{quote_plus(password)}" if password else ""
    dbname = name if name is not None else db.get("name")
    return f"postgresql://{quote_plus(db.get('user') or 'postgres')}{password_part}@{db.get('host') or 'localhost'}:{int(db.get('port') or 5432)}/{dbname}"
