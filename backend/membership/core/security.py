# membership/core/security.py
from __future__ import annotations

import datetime as dt
import secrets
from functools import lru_cache
from typing import Optional, Tuple

from fastapi import Depends, Request
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.orm import Session
from starlette.responses import Response

from membership.config import get_settings
from membership.db.session import get_db
from membership.errors import AuthError, ForbiddenError
from membership.models.session import UserSession
from membership.models.user import User

MSG_NOT_LOGGED_IN = "ログインしていません"
MSG_SESSION_INVALID = "セッションが無効です"
MSG_ACCOUNT_INACTIVE = "アカウントが有効ではありません"


@lru_cache
def _pwd_ctx() -> CryptContext:
    return CryptContext(
        schemes=["bcrypt"],
        deprecated="auto",
        bcrypt__rounds=get_settings().BCRYPT_ROUNDS,
    )


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def as_utc(d: dt.datetime) -> dt.datetime:
    # SQLite hands back naive datetimes; everything we store is UTC.
    if d.tzinfo is None:
        return d.replace(tzinfo=dt.timezone.utc)
    return d.astimezone(dt.timezone.utc)


def hash_password(plain: str) -> str:
    return _pwd_ctx().hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    return _pwd_ctx().verify(plain, hashed)


@lru_cache
def _dummy_hash() -> str:
    return hash_password(secrets.token_hex(16))


def burn_password_check(plain: str) -> None:
    """Spend one hash comparison so unknown emails cost the same as wrong passwords."""
    _pwd_ctx().verify(plain, _dummy_hash())


def new_token() -> str:
    """64 hex chars from 32 random bytes; used for sessions and email links."""
    return secrets.token_hex(32)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def session_ttl() -> dt.timedelta:
    return dt.timedelta(days=get_settings().SESSION_TTL_DAYS)


# ---------------------------------------------------------------------------
# Cookies
# ---------------------------------------------------------------------------

def set_session_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=int(session_ttl().total_seconds()),
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
    )


def clear_session_cookie(response: Response) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value="",
        max_age=0,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
    )


def read_session_token(request: Request) -> Optional[str]:
    token = request.cookies.get(get_settings().SESSION_COOKIE_NAME)
    return token or None


# ---------------------------------------------------------------------------
# Session resolution
# ---------------------------------------------------------------------------

def session_user_stmt(token: str, now: dt.datetime, *, for_update: bool = False):
    """SELECT the (session, user) pair for a live token, optionally row-locked."""
    stmt = (
        select(UserSession, User)
        .join(User, User.id == UserSession.user_id)
        .where(UserSession.session_token == token, UserSession.expires_at > now)
        .limit(1)
    )
    if for_update:
        stmt = stmt.with_for_update()
    return stmt


def resolve_session(
    db: Session,
    token: Optional[str],
    *,
    for_update: bool = False,
    clear_on_failure: bool = False,
) -> Tuple[UserSession, User]:
    """Map a cookie token to its live session and active user or raise."""
    if not token:
        raise AuthError(MSG_NOT_LOGGED_IN)

    row = db.execute(session_user_stmt(token, utc_now(), for_update=for_update)).first()
    if row is None:
        raise AuthError(MSG_SESSION_INVALID, clear_session=clear_on_failure)

    user_session, user = row
    if not user.is_active:
        raise ForbiddenError(MSG_ACCOUNT_INACTIVE, clear_session=clear_on_failure)
    return user_session, user


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """FastAPI dependency that validates the session cookie and returns an active user."""
    _, user = resolve_session(db, read_session_token(request))
    return user
