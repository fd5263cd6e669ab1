import os
import sys
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

# Ensure backend/ is importable as the top-level "membership" package even when pytest runs from repo root
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

# Ensure the application runs in test/sqlite mode *before* importing any app modules
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DB_REQUIRE_SSL", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("GCS_BUCKET", "test-bucket")

from membership.config import get_settings
from membership.core.security import hash_password, new_token
from membership.db.base import Base
from membership.db.session import Database
from membership.main import create_app
from membership.models import Attachment, Post, User, UserSession

from _helpers import DEFAULT_PASSWORD

# --- Use a single in-memory SQLite DB for the whole test session ---
ENGINE = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    future=True,
)
DATABASE = Database(engine=ENGINE)


class FakeMailer:
    """Collects outgoing mail instead of talking to SMTP."""

    def __init__(self):
        self.sent = []
        self.fail_with = None
        self.settings = get_settings()

    def send(self, to_email, subject, body):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append({"to": to_email, "subject": subject, "body": body})


class FakeSigner:
    """Records signing requests and returns a deterministic URL."""

    provider = "gcs"

    def __init__(self):
        self.calls = []

    def signed_download_url(self, key, *, expires_in, response_disposition=None, response_type=None):
        self.calls.append(
            {
                "key": key,
                "expires_in": expires_in,
                "response_disposition": response_disposition,
                "response_type": response_type,
            }
        )
        return f"https://storage.googleapis.com/test-bucket/{key}?X-Goog-Signature=fake"


@pytest.fixture(scope="function")
def reset_db():
    Base.metadata.drop_all(bind=ENGINE)
    Base.metadata.create_all(bind=ENGINE)
    yield
    Base.metadata.drop_all(bind=ENGINE)


@pytest.fixture(scope="function")
def db(reset_db):
    session = DATABASE.session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def mailer():
    return FakeMailer()


@pytest.fixture(scope="function")
def signer():
    return FakeSigner()


@pytest.fixture(scope="function")
def app(reset_db, mailer, signer):
    return create_app(get_settings(), database=DATABASE, storage=signer, mailer=mailer)


@pytest.fixture(scope="function")
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(db):
    def _make_user(
        email="member@example.com",
        *,
        name="Member",
        role="user",
        status="active",
        password=DEFAULT_PASSWORD,
        verification_token=None,
        verification_expires_at=None,
    ):
        user = User(
            name=name,
            email=email,
            phone="0000",
            password_hash=hash_password(password),
            role=role,
            status=status,
            verification_token=verification_token,
            verification_token_expires_at=verification_expires_at,
        )
        db.add(user)
        db.commit()
        return user

    return _make_user


@pytest.fixture
def make_session(db):
    def _make_session(user, *, expires_in=timedelta(days=7)):
        token = new_token()
        db.add(
            UserSession(
                user_id=user.id,
                session_token=token,
                expires_at=datetime.now(timezone.utc) + expires_in,
            )
        )
        db.commit()
        return token

    return _make_session


@pytest.fixture
def make_attachment(db):
    def _make_attachment(
        *,
        published=True,
        filename="report.pdf",
        provider="gcs",
        key="posts/report.pdf",
        content_type="application/pdf",
    ):
        post = Post(id=str(uuid.uuid4()), title="Post", published=published)
        attachment = Attachment(
            id=str(uuid.uuid4()),
            post_id=post.id,
            filename=filename,
            storage_provider=provider,
            storage_key=key,
            content_type=content_type,
        )
        db.add_all([post, attachment])
        db.commit()
        return attachment

    return _make_attachment


@pytest.fixture
def login_as(client, make_session):
    def _login_as(user):
        token = make_session(user)
        client.cookies.set("session", token)
        return token

    return _login_as
