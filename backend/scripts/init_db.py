#!/usr/bin/env python3
import argparse

import psycopg
from psycopg.rows import dict_row

from backend.app.config import build_database_url
from backend.app.schema import apply_schema


def main() -> int:
    parser = argparse.ArgumentParser(description="Create or update the database schema.")
    parser.add_argument(
        "--db",
        default=None,
        help="Postgres connection string (defaults to the active database settings).",
    )
    args = parser.parse_args()

    with psycopg.connect(args.db or build_database_url(), row_factory=dict_row) as conn:
        applied = apply_schema(conn)

    for name in applied:
        print(f"applied: {name}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
