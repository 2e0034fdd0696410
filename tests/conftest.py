import os
import re

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RUN_REMINDER_SCHEDULER"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"

import pytest
from datetime import datetime, timedelta

from server.database import Base, engine, SessionLocal
from server.models import User
from server.security_utils import hash_password

CODE_RE = re.compile(r"\b(\d{6})\b")


class FakeClock:
    def __init__(self, start=datetime(2025, 3, 1, 9, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeMailer:
    """Records outgoing mail; flip ``fail`` to simulate a provider outage."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def __call__(self, to, subject, body):
        if self.fail:
            return {"status": "error", "message": "provider down"}, 503
        self.sent.append((to, subject, body))
        return {"status": "sent"}, 202

    def last_code(self, to):
        for recipient, _, body in reversed(self.sent):
            if recipient == to:
                return CODE_RE.search(body).group(1)
        raise AssertionError(f"no mail sent to {to}")


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def make_user(db):
    def _make_user(email="ann@x.com", password="secret1", verified=True, name="Ann"):
        user = User(name=name, email=email, password_hash=hash_password(password), is_verified=verified)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user
