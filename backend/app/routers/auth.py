import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from psycopg import errors as pg_errors

from ..db import get_conn
from ..deps import get_current_user, get_token_payload
from ..security import create_access_token, hash_password, needs_rehash, verify_password

router = APIRouter(prefix="/auth", tags=["auth"])

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LEN = 6


def _clean_email(raw: Optional[str]) -> str:
    email = (raw or "").strip().lower()
    if not email or not EMAIL_RE.match(email):
        raise HTTPException(status_code=400, detail="valid email is required")
    return email


class RegisterIn(BaseModel):
    name: str
    email: str
    password: str


class LoginIn(BaseModel):
    email: str
    password: str


class ProfileIn(BaseModel):
    name: str
    email: str


class ChangePasswordIn(BaseModel):
    current_password: str
    new_password: str
    confirm_password: str


@router.post("/register")
def register(data: RegisterIn):
    name = (data.name or "").strip()
    email = _clean_email(data.email)
    if not name or not data.password:
        raise HTTPException(status_code=400, detail="name and password are required")
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute("SELECT id FROM users WHERE email = %s", (email,))
                if cur.fetchone():
                    raise HTTPException(status_code=401, detail="User already exists")
                try:
                    cur.execute(
                        """
                        INSERT INTO users (name, email, password_hash)
                        VALUES (%s, %s, %s)
                        RETURNING id
                        """,
                        (name, email, hash_password(data.password)),
                    )
                except pg_errors.UniqueViolation:
                    raise HTTPException(status_code=401, detail="User already exists")
                user_id = cur.fetchone()["id"]
    return {"token": create_access_token(user_id)}


@router.post("/login")
def login(data: LoginIn):
    email = (data.email or "").strip().lower()
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT id, password_hash
                FROM users
                WHERE email = %s
                """,
                (email,),
            )
            user = cur.fetchone()
            if not user or not verify_password(data.password, user["password_hash"]):
                raise HTTPException(status_code=401, detail="Password or Email is incorrect")
            if needs_rehash(user["password_hash"]):
                cur.execute(
                    """
                    UPDATE users
                    SET password_hash = %s
                    WHERE id = %s
                    """,
                    (hash_password(data.password), user["id"]),
                )
    return {"token": create_access_token(user["id"])}


@router.get("/is-verify")
def is_verify(_payload=Depends(get_token_payload)):
    return True


@router.get("/profile")
def get_profile(user=Depends(get_current_user)):
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT id, name, email, role, created_at
                FROM users
                WHERE id = %s
                """,
                (user["user_id"],),
            )
            row = cur.fetchone()
            if not row:
                raise HTTPException(status_code=404, detail="user not found")
            return row


@router.put("/profile")
def update_profile(data: ProfileIn, user=Depends(get_current_user)):
    name = (data.name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    email = _clean_email(data.email)
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT id FROM users WHERE email = %s AND id <> %s",
                    (email, user["user_id"]),
                )
                if cur.fetchone():
                    raise HTTPException(status_code=400, detail="Email is already in use")
                cur.execute(
                    """
                    UPDATE users
                    SET name = %s, email = %s
                    WHERE id = %s
                    RETURNING id, name, email, role, created_at
                    """,
                    (name, email, user["user_id"]),
                )
                return cur.fetchone()


@router.put("/change-password")
def change_password(data: ChangePasswordIn, user=Depends(get_current_user)):
    if len(data.new_password or "") < MIN_PASSWORD_LEN:
        raise HTTPException(status_code=400, detail=f"new password must be at least {MIN_PASSWORD_LEN} characters")
    if data.new_password != data.confirm_password:
        raise HTTPException(status_code=400, detail="passwords do not match")
    with get_conn() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT password_hash FROM users WHERE id = %s FOR UPDATE",
                    (user["user_id"],),
                )
                row = cur.fetchone()
                if not row or not verify_password(data.current_password, row["password_hash"]):
                    raise HTTPException(status_code=401, detail="Current password is incorrect")
                cur.execute(
                    """
                    UPDATE users
                    SET password_hash = %s
                    WHERE id = %s
                    """,
                    (hash_password(data.new_password), user["user_id"]),
                )
    return {"ok": True}
