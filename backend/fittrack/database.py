"""Database engines and session helpers.

The service talks to two stores: a relational database for accounts,
logged workouts and saved plans, and a document database for the exercise
log and diet plans. Both are plain SQLModel/SQLAlchemy engines bundled in
a `Database` object that is built from settings and attached to
`app.state`, so tests can swap in fresh in-memory databases.
"""

from typing import Iterator

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from .config import Settings
from .documents import DOCUMENT_TABLES
from .models import RELATIONAL_TABLES


def make_engine(url: str) -> Engine:
    """Create an engine for `url`.

    SQLite needs `check_same_thread=False` because FastAPI runs sync
    endpoints in a threadpool. In-memory SQLite URLs additionally share one
    connection (`StaticPool`), otherwise every checkout would see an empty
    database.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, echo=False, pool_pre_ping=True)
    kwargs = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    return create_engine(url, echo=False, **kwargs)


class Database:
    """Handle on both datastores."""

    def __init__(self, relational: Engine, documents: Engine):
        self.relational = relational
        self.documents = documents

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(make_engine(settings.RELATIONAL_DB_URL), make_engine(settings.DOCUMENT_DB_URL))

    def create_all(self):
        """Create missing tables in each store.

        Intended for local development and tests; deployments against a
        managed database should run migrations instead.
        """
        SQLModel.metadata.create_all(self.relational, tables=[m.__table__ for m in RELATIONAL_TABLES])
        SQLModel.metadata.create_all(self.documents, tables=[m.__table__ for m in DOCUMENT_TABLES])

    def dispose(self):
        self.relational.dispose()
        self.documents.dispose()


def get_session(request: Request) -> Iterator[Session]:
    """Yield a relational `Session` for FastAPI dependency injection.

    The session's connection goes back to the pool when the request scope
    finishes, whatever the outcome.
    """
    with Session(request.app.state.db.relational) as session:
        yield session


def get_document_session(request: Request) -> Iterator[Session]:
    """Yield a `Session` bound to the document store."""
    with Session(request.app.state.db.documents) as session:
        yield session
