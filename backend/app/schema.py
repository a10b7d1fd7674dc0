from pathlib import Path

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "db" / "migrations"


def migration_files() -> list[Path]:
    return sorted(MIGRATIONS_DIR.glob("*.sql"))


def apply_schema(conn) -> list[str]:
    """
    Apply every migration file in order. Files are idempotent, so this is
    safe to run against an already initialized database.
    """
    applied = []
    with conn.transaction():
        with conn.cursor() as cur:
            for path in migration_files():
                cur.execute(path.read_text(encoding="utf-8"))
                applied.append(path.name)
    return applied
