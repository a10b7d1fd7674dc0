from typing import Optional

from fastapi import Depends, Header, HTTPException

from .db import get_conn
from .security import decode_access_token


def _extract_bearer_token(authorization: Optional[str]) -> str:
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
        if token:
            return token
    raise HTTPException(status_code=401, detail="missing token")


def get_token_payload(authorization: Optional[str] = Header(None)) -> dict:
    payload = decode_access_token(_extract_bearer_token(authorization))
    if not payload:
        raise HTTPException(status_code=401, detail="invalid token")
    return payload


def get_current_user(payload=Depends(get_token_payload)):
    user_id = payload["user"]["id"]
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT id, name, email, role
                FROM users
                WHERE id = %s
                """,
                (user_id,),
            )
            row = cur.fetchone()
            if not row:
                raise HTTPException(status_code=401, detail="invalid token")
            return {"user_id": row["id"], "name": row["name"], "email": row["email"], "role": row["role"]}
