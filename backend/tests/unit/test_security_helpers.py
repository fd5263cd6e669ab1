from __future__ import annotations

import datetime as dt

from starlette.responses import Response

from membership.core.security import (
    as_utc,
    clear_session_cookie,
    hash_password,
    new_token,
    normalize_email,
    set_session_cookie,
    verify_password,
)


def test_password_hash_round_trip():
    hashed = hash_password("s3cret")
    assert hashed != "s3cret"
    assert hashed.startswith("$2")
    assert verify_password("s3cret", hashed)
    assert not verify_password("S3cret", hashed)


def test_tokens_are_unique_hex():
    tokens = {new_token() for _ in range(50)}
    assert len(tokens) == 50
    assert all(len(t) == 64 and int(t, 16) >= 0 for t in tokens)


def test_normalize_email():
    assert normalize_email("  Foo@Example.COM\n") == "foo@example.com"


def test_as_utc_handles_naive_and_aware():
    naive = dt.datetime(2024, 1, 1, 12, 0)
    assert as_utc(naive).tzinfo == dt.timezone.utc
    jst = dt.timezone(dt.timedelta(hours=9))
    assert as_utc(dt.datetime(2024, 1, 1, 21, 0, tzinfo=jst)) == dt.datetime(2024, 1, 1, 12, 0, tzinfo=dt.timezone.utc)


def test_session_cookie_attributes():
    response = Response()
    set_session_cookie(response, "abc")
    header = response.headers["set-cookie"]
    assert header.startswith("session=abc;")
    assert "HttpOnly" in header
    assert "Max-Age=604800" in header
    assert "Path=/" in header
    assert "samesite=lax" in header.lower()


def test_clear_session_cookie():
    response = Response()
    clear_session_cookie(response)
    header = response.headers["set-cookie"]
    assert 'session="";' in header or "session=;" in header
    assert "Max-Age=0" in header
