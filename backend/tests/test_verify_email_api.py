from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from _helpers import error_of
from membership.models import User


def _pending(make_user, *, token="a" * 64, expires_in=timedelta(hours=1)):
    return make_user(
        "pending@example.com",
        status="pending",
        verification_token=token,
        verification_expires_at=datetime.now(timezone.utc) + expires_in,
    )


def _status(db, email):
    db.expire_all()
    return db.execute(select(User.status).where(User.email == email)).scalar_one()


def test_verify_activates_and_redirects(client, db, make_user):
    _pending(make_user)

    r = client.get("/api/verify-email", params={"token": "a" * 64}, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/register-success.html"

    db.expire_all()
    user = db.execute(select(User).where(User.email == "pending@example.com")).scalar_one()
    assert user.status == "active"
    assert user.verification_token is None
    assert user.verification_token_expires_at is None
    assert user.updated_at is not None


def test_token_is_single_use(client, make_user):
    _pending(make_user)

    first = client.get("/api/verify-email", params={"token": "a" * 64}, follow_redirects=False)
    assert first.status_code == 303

    second = client.get("/api/verify-email", params={"token": "a" * 64}, follow_redirects=False)
    assert second.status_code == 400
    assert error_of(second) == ("NOT_FOUND", "無効または期限切れのリンクです")


def test_expired_token_leaves_user_pending(client, db, make_user):
    _pending(make_user, expires_in=timedelta(minutes=-1))

    r = client.get("/api/verify-email", params={"token": "a" * 64}, follow_redirects=False)
    assert r.status_code == 400
    assert error_of(r) == ("EXPIRED", "リンクの有効期限が切れています")
    assert _status(db, "pending@example.com") == "pending"


def test_missing_token(client):
    r = client.get("/api/verify-email", follow_redirects=False)
    assert r.status_code == 400
    assert error_of(r) == ("VALIDATION_ERROR", "無効なリンクです")


def test_unknown_token(client, make_user):
    _pending(make_user)
    r = client.get("/api/verify-email", params={"token": "b" * 64}, follow_redirects=False)
    assert r.status_code == 400
    assert error_of(r)[0] == "NOT_FOUND"


def test_legacy_verify_path(client, db, make_user):
    _pending(make_user)
    r = client.get("/api/verify", params={"token": "a" * 64}, follow_redirects=False)
    assert r.status_code == 303
    assert _status(db, "pending@example.com") == "active"


def test_register_then_verify_then_login(client, mailer):
    r = client.post(
        "/api/register",
        json={"name": "B", "email": "b@x.com", "phone": "2", "password": "secret"},
    )
    assert r.status_code == 201
    link = mailer.sent[0]["body"].split("?token=")[1].split()[0]

    assert client.get("/api/verify-email", params={"token": link}, follow_redirects=False).status_code == 303
    login = client.post("/api/login", json={"email": "b@x.com", "password": "secret"})
    assert login.status_code == 200, login.text
