from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from membership.config import get_settings
from membership.core.security import (
    as_utc,
    burn_password_check,
    hash_password,
    new_token,
    normalize_email,
    session_ttl,
    utc_now,
    verify_password,
)
from membership.db.session import transaction
from membership.errors import (
    MSG_INVALID_INPUT,
    AuthError,
    ConflictError,
    ExpiredError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from membership.models.session import UserSession
from membership.models.user import (
    EMAIL_MAX_LENGTH,
    NAME_MAX_LENGTH,
    PHONE_MAX_LENGTH,
    ROLE_USER,
    ROLES,
    STATUS_ACTIVE,
    STATUS_PENDING,
    User,
)
from membership.observability.metrics import LOGIN_ATTEMPTS
from membership.services.mailer import Mailer, send_verification_mail

logger = structlog.get_logger(__name__)

MSG_MISSING_FIELDS = "必須項目が不足しています"
MSG_EMAIL_TAKEN = "このメールアドレスは既に登録されています"
MSG_INVALID_LINK = "無効なリンクです"
MSG_LINK_NOT_FOUND = "無効または期限切れのリンクです"
MSG_LINK_EXPIRED = "リンクの有効期限が切れています"
MSG_LOGIN_MISSING = "メールアドレスとパスワードを入力してください"
MSG_BAD_CREDENTIALS = "メールアドレスまたはパスワードが正しくありません"
MSG_NOT_VERIFIED = "メール認証が完了していません"


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _check_lengths(name: str, email: str, phone: str) -> None:
    # column bounds; PostgreSQL rejects longer values at flush
    if (
        len(name) > NAME_MAX_LENGTH
        or len(email) > EMAIL_MAX_LENGTH
        or len(phone) > PHONE_MAX_LENGTH
    ):
        raise ValidationError(MSG_INVALID_INPUT)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

def register(
    db: Session,
    mailer: Mailer,
    *,
    name: Optional[str],
    email: Optional[str],
    phone: Optional[str],
    password: Optional[str],
) -> User:
    """Create a pending user and mail the verification link.

    The mail goes out after commit. If delivery fails the pending row stays
    and the address cannot be registered again until it is cleaned up.
    """
    if _blank(name) or _blank(email) or _blank(phone) or not password:
        raise ValidationError(MSG_MISSING_FIELDS)

    name, phone = name.strip(), phone.strip()
    normalized = normalize_email(email)
    _check_lengths(name, normalized, phone)
    token = new_token()

    with transaction(db):
        existing = db.execute(select(User.id).where(User.email == normalized)).first()
        if existing is not None:
            raise ConflictError(MSG_EMAIL_TAKEN)

        user = User(
            name=name,
            email=normalized,
            phone=phone,
            password_hash=hash_password(password),
            role=ROLE_USER,
            status=STATUS_PENDING,
            verification_token=token,
            verification_token_expires_at=utc_now()
            + dt.timedelta(minutes=get_settings().VERIFICATION_TTL_MINUTES),
        )
        db.add(user)
        try:
            db.flush()
        except IntegrityError:
            # lost a race with a concurrent registration of the same email
            raise ConflictError(MSG_EMAIL_TAKEN)

    logger.info("registration.created", user_id=user.id)

    try:
        send_verification_mail(mailer, normalized, user.name, token)
    except Exception as exc:
        # Accepted inconsistency: the committed pending row is kept.
        logger.error(
            "registration.verification_mail_failed",
            user_id=user.id,
            exc_type=type(exc).__name__,
            error=str(exc),
        )
    return user


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------

def verify_email(db: Session, token: Optional[str]) -> User:
    if _blank(token):
        raise ValidationError(MSG_INVALID_LINK)

    with transaction(db):
        user = db.execute(
            select(User)
            .where(User.verification_token == token, User.status == STATUS_PENDING)
            .with_for_update()
        ).scalar_one_or_none()
        if user is None:
            raise NotFoundError(MSG_LINK_NOT_FOUND, status_code=400)

        expires_at = user.verification_token_expires_at
        if expires_at is None or as_utc(expires_at) < utc_now():
            raise ExpiredError(MSG_LINK_EXPIRED)

        user.status = STATUS_ACTIVE
        user.verification_token = None
        user.verification_token_expires_at = None
        user.updated_at = utc_now()

    logger.info("registration.verified", user_id=user.id)
    return user


# ---------------------------------------------------------------------------
# Login / logout
# ---------------------------------------------------------------------------

@dataclass
class LoginResult:
    user: User
    session_token: str
    expires_at: dt.datetime


def login(db: Session, *, email: Optional[str], password: Optional[str]) -> LoginResult:
    if _blank(email) or not password:
        raise ValidationError(MSG_LOGIN_MISSING)

    normalized = normalize_email(email)
    with transaction(db):
        user = db.execute(select(User).where(User.email == normalized)).scalar_one_or_none()
        if user is None:
            burn_password_check(password)
            logger.info("auth.login_failed", reason="unknown_email")
            LOGIN_ATTEMPTS.labels(outcome="unknown_email").inc()
            raise AuthError(MSG_BAD_CREDENTIALS)

        if user.status != STATUS_ACTIVE:
            logger.info("auth.login_failed", reason="not_active", user_id=user.id)
            LOGIN_ATTEMPTS.labels(outcome="not_active").inc()
            raise ForbiddenError(MSG_NOT_VERIFIED)

        if not verify_password(password, user.password_hash):
            logger.info("auth.login_failed", reason="bad_password", user_id=user.id)
            LOGIN_ATTEMPTS.labels(outcome="bad_password").inc()
            raise AuthError(MSG_BAD_CREDENTIALS)

        token = new_token()
        expires_at = utc_now() + session_ttl()
        db.add(UserSession(user_id=user.id, session_token=token, expires_at=expires_at))

    logger.info("auth.login_succeeded", user_id=user.id)
    LOGIN_ATTEMPTS.labels(outcome="success").inc()
    return LoginResult(user=user, session_token=token, expires_at=expires_at)


def logout(db: Session, token: Optional[str]) -> None:
    if not token:
        return
    with transaction(db):
        result = db.execute(delete(UserSession).where(UserSession.session_token == token))
    if result.rowcount:
        logger.info("auth.logged_out")


# ---------------------------------------------------------------------------
# Operator bootstrap
# ---------------------------------------------------------------------------

def create_active_user(
    db: Session,
    *,
    name: str,
    email: str,
    phone: str,
    password: str,
    role: str = ROLE_USER,
) -> User:
    """Insert an already verified user; the only way to seed the first admin."""
    if role not in ROLES:
        raise ValidationError(f"unknown role: {role}")
    normalized = normalize_email(email)
    _check_lengths(name, normalized, phone)
    with transaction(db):
        if db.execute(select(User.id).where(User.email == normalized)).first() is not None:
            raise ConflictError(MSG_EMAIL_TAKEN)
        user = User(
            name=name,
            email=normalized,
            phone=phone,
            password_hash=hash_password(password),
            role=role,
            status=STATUS_ACTIVE,
        )
        db.add(user)
    logger.info("accounts.bootstrap_user_created", user_id=user.id, role=role)
    return user
