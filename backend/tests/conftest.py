import os

# Point the module-level app at throwaway in-memory stores before it is imported.
os.environ.setdefault("RELATIONAL_DB_URL", "sqlite://")
os.environ.setdefault("DOCUMENT_DB_URL", "sqlite://")
os.environ.setdefault("DIET_AI_RETRY_DELAY_SECONDS", "0")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, select

from fittrack.database import Database, make_engine
from fittrack.main import app
from fittrack.utils.mailer import Mailer
from fittrack.utils.rate_limit import InMemoryRateLimiter


class RecordingMailer(Mailer):
    """Mailer that keeps messages in memory instead of talking SMTP."""

    def __init__(self, settings):
        super().__init__(settings)
        self.sent = []

    def send(self, to, subject, html_body, text_body):
        self.sent.append({"to": to, "subject": subject, "html": html_body, "text": text_body})
        return True


@pytest.fixture
def db():
    """Fresh in-memory relational and document stores for one test."""
    database = Database(make_engine("sqlite://"), make_engine("sqlite://"))
    database.create_all()
    previous = app.state.db
    app.state.db = database
    yield database
    app.state.db = previous
    database.dispose()


@pytest.fixture
def mailer():
    previous = app.state.mailer
    recording = RecordingMailer(app.state.settings)
    app.state.mailer = recording
    yield recording
    app.state.mailer = previous


@pytest.fixture(autouse=True)
def fresh_rate_limiters():
    previous = (app.state.rate_limiter, app.state.diet_rate_limiter)
    app.state.rate_limiter = InMemoryRateLimiter(10_000, 900)
    app.state.diet_rate_limiter = InMemoryRateLimiter(10, 900)
    yield
    app.state.rate_limiter, app.state.diet_rate_limiter = previous


@pytest.fixture
def client(db, mailer):
    return TestClient(app)


@pytest.fixture
def signup(client):
    """Create an account through the API and return the response body."""
    def _signup(username="lifter", email=None, password="pass123"):
        r = client.post('/api/auth/signup', json={
            'username': username,
            'email': email or f'{username}@example.com',
            'password': password,
        })
        assert r.status_code == 201, r.text
        return r.json()
    return _signup


@pytest.fixture
def auth_headers(signup):
    token = signup()['token']
    return {'Authorization': f'Bearer {token}'}


def count_rows(engine, model):
    with Session(engine) as session:
        return len(session.exec(select(model)).all())
