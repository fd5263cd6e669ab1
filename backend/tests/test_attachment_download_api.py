from __future__ import annotations

import uuid
from datetime import timedelta

from _helpers import error_of


def _download(client, attachment_id, **params):
    return client.get(
        f"/api/attachments/{attachment_id}/download",
        params=params,
        follow_redirects=False,
    )


def test_redirects_to_signed_url(client, signer, make_user, login_as, make_attachment):
    login_as(make_user("member@example.com"))
    attachment = make_attachment()

    r = _download(client, attachment.id)
    assert r.status_code == 302, r.text
    assert r.headers["location"].startswith("https://storage.googleapis.com/test-bucket/posts/report.pdf")
    assert r.headers["cache-control"] == "no-store"

    call = signer.calls[0]
    assert call["key"] == "posts/report.pdf"
    assert call["expires_in"] == timedelta(minutes=5)
    assert call["response_type"] == "application/pdf"
    assert call["response_disposition"].startswith('attachment; filename="report.pdf"')


def test_inline_disposition(client, signer, make_user, login_as, make_attachment):
    login_as(make_user("member@example.com"))
    attachment = make_attachment()

    r = _download(client, attachment.id, disposition="inline")
    assert r.status_code == 302
    assert signer.calls[0]["response_disposition"].startswith("inline; ")


def test_unknown_disposition_is_rejected(client, signer, make_user, login_as, make_attachment):
    login_as(make_user("member@example.com"))
    attachment = make_attachment()

    r = _download(client, attachment.id, disposition="download")
    assert r.status_code == 400
    assert signer.calls == []


def test_unpublished_post_is_not_resolvable(client, signer, make_user, login_as, make_attachment):
    login_as(make_user("member@example.com"))
    attachment = make_attachment(published=False)

    r = _download(client, attachment.id)
    assert r.status_code == 404
    assert error_of(r) == ("NOT_FOUND", "Not Found")
    assert signer.calls == []


def test_unknown_attachment(client, make_user, login_as):
    login_as(make_user("member@example.com"))
    r = _download(client, uuid.uuid4())
    assert r.status_code == 404


def test_malformed_id_is_rejected_before_lookup(client, signer, make_user, login_as):
    login_as(make_user("member@example.com"))
    r = _download(client, "not-a-uuid")
    assert r.status_code == 400
    assert error_of(r)[1] == "Invalid id"
    assert signer.calls == []


def test_requires_session(client, signer, make_attachment):
    attachment = make_attachment()
    r = _download(client, attachment.id)
    assert r.status_code == 401
    assert signer.calls == []


def test_expired_session(client, make_user, make_session, make_attachment):
    token = make_session(make_user("member@example.com"), expires_in=timedelta(minutes=-1))
    client.cookies.set("session", token)
    r = _download(client, make_attachment().id)
    assert r.status_code == 401


def test_unsupported_provider(client, signer, make_user, login_as, make_attachment):
    login_as(make_user("member@example.com"))
    attachment = make_attachment(provider="s3")

    r = _download(client, attachment.id)
    assert r.status_code == 400
    assert error_of(r)[1] == "Unsupported storage provider"
    assert signer.calls == []


def test_filename_is_sanitized_for_header(client, signer, make_user, login_as, make_attachment):
    login_as(make_user("member@example.com"))
    attachment = make_attachment(filename='evil"\r\nSet-Cookie: x=1;.pdf')

    r = _download(client, attachment.id)
    assert r.status_code == 302
    disposition = signer.calls[0]["response_disposition"]
    assert "\r" not in disposition and "\n" not in disposition
    assert 'filename="evilSet-Cookie: x=1.pdf"' in disposition


def test_missing_content_type_is_not_forced(client, signer, make_user, login_as, make_attachment):
    login_as(make_user("member@example.com"))
    attachment = make_attachment(content_type=None)

    assert _download(client, attachment.id).status_code == 302
    assert signer.calls[0]["response_type"] is None
