"""Admin role change.

Every guard runs inside one transaction and raises on failure, so the first
failing guard rolls back everything read or locked so far. Rows that are read
and later written (caller session, caller user, target user, remaining admins)
are taken with ``SELECT ... FOR UPDATE``: two concurrent changes by the same
caller or against the same target serialize instead of both passing the
last-admin check. When two admins demote each other at once, PostgreSQL
aborts one transaction as a deadlock; that caller gets a 409.
"""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from membership.core.security import normalize_email, resolve_session, session_ttl, utc_now
from membership.db.session import transaction
from membership.errors import AuthError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from membership.models.user import EMAIL_MAX_LENGTH, ROLE_ADMIN, ROLES, User
from membership.observability.metrics import ROLE_CHANGES

logger = structlog.get_logger(__name__)

MSG_INVALID_INPUT = "入力が不正です"
MSG_NOT_ADMIN = "管理者権限がありません"
MSG_TARGET_NOT_FOUND = "ユーザーが見つかりません"
MSG_SELF_DEMOTION = "自分の管理者権限は削除できません"
MSG_SAME_ROLE = "既に同じロールです"
MSG_LAST_ADMIN = "最後の管理者は降格できません"
MSG_NOT_LOGGED_IN = "ログインしていません"
MSG_LOCK_CONFLICT = "他の操作と競合しました。もう一度お試しください"

# deadlock_detected, serialization_failure
LOCK_CONFLICT_PGCODES = ("40P01", "40001")


def _valid_email(email: Any) -> bool:
    return isinstance(email, str) and "@" in email and len(email) <= EMAIL_MAX_LENGTH


def _valid_role(role: Any) -> bool:
    return role in ROLES


@dataclass
class RoleChange:
    target: User
    previous_role: str
    session_token: str
    session_expires_at: dt.datetime


def target_user_stmt(email: str):
    return select(User).where(User.email == email).limit(1).with_for_update()


def other_admins_stmt(target_id: int):
    # FOR UPDATE cannot wrap an aggregate on PostgreSQL; lock ids and count them.
    return (
        select(User.id)
        .where(User.role == ROLE_ADMIN, User.id != target_id)
        .with_for_update()
    )


def ensure_not_last_admin(db: Session, target: User, new_role: str) -> None:
    if target.role != ROLE_ADMIN or new_role == ROLE_ADMIN:
        return
    remaining = db.execute(other_admins_stmt(target.id)).scalars().all()
    if not remaining:
        raise ConflictError(MSG_LAST_ADMIN)


def _is_lock_conflict(exc: OperationalError) -> bool:
    return getattr(exc.orig, "pgcode", None) in LOCK_CONFLICT_PGCODES


def _apply_role_change(db: Session, session_token: str, target_email: str, role: str):
    with transaction(db):
        caller_session, caller = resolve_session(
            db, session_token, for_update=True, clear_on_failure=True
        )
        if not caller.is_admin:
            raise ForbiddenError(MSG_NOT_ADMIN)

        target = db.execute(target_user_stmt(target_email)).scalar_one_or_none()
        if target is None:
            raise NotFoundError(MSG_TARGET_NOT_FOUND)

        if target.id == caller.id and role != ROLE_ADMIN:
            raise ConflictError(MSG_SELF_DEMOTION)

        if target.role == role:
            raise ConflictError(MSG_SAME_ROLE)

        ensure_not_last_admin(db, target, role)

        previous_role = target.role
        now = utc_now()
        target.role = role
        target.updated_at = now

        # a successful privileged action slides the caller's own session
        caller_session.expires_at = now + session_ttl()

    return caller, caller_session, target, previous_role


def change_role(db: Session, *, session_token: Optional[str], email: Any, role: Any) -> RoleChange:
    if not session_token:
        raise AuthError(MSG_NOT_LOGGED_IN)
    if not _valid_email(email) or not _valid_role(role):
        raise ValidationError(MSG_INVALID_INPUT)

    target_email = normalize_email(email)

    try:
        caller, caller_session, target, previous_role = _apply_role_change(
            db, session_token, target_email, role
        )
    except OperationalError as exc:
        if not _is_lock_conflict(exc):
            raise
        logger.warning("roles.lock_conflict", pgcode=exc.orig.pgcode, target_email=target_email)
        raise ConflictError(MSG_LOCK_CONFLICT) from exc

    logger.info(
        "roles.changed",
        caller_id=caller.id,
        target_id=target.id,
        previous_role=previous_role,
        role=role,
    )
    ROLE_CHANGES.labels(role=role).inc()
    return RoleChange(
        target=target,
        previous_role=previous_role,
        session_token=caller_session.session_token,
        session_expires_at=caller_session.expires_at,
    )
