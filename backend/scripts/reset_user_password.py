#!/usr/bin/env python3
import argparse
import sys

import psycopg
from psycopg.rows import dict_row

from backend.app.config import build_database_url
from backend.app.security import hash_password


def main() -> int:
    parser = argparse.ArgumentParser(description="Reset a user's password (admin/maintenance).")
    parser.add_argument(
        "--db",
        default=None,
        help="Postgres connection string (defaults to the active database settings).",
    )
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    args = parser.parse_args()

    email = (args.email or "").strip().lower()
    if not email:
        print("email is required", file=sys.stderr)
        return 2
    if len(args.password) < 6:
        print("password must be at least 6 characters", file=sys.stderr)
        return 2

    with psycopg.connect(args.db or build_database_url(), row_factory=dict_row) as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE users
                    SET password_hash = %s
                    WHERE email = %s
                    RETURNING id
                    """,
                    (hash_password(args.password), email),
                )
                if not cur.fetchone():
                    print(f"user not found: {email}", file=sys.stderr)
                    return 2

    # Issued tokens stay valid until they expire; rotate JWT_SECRET to revoke them all.
    print("OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
