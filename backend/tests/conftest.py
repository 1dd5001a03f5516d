"""Pytest configuration for backend tests."""
import sys
import os
import itertools
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
import requests
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

# Never touch a real database or the real Open Library from tests
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("OPEN_LIBRARY_ENABLED", "false")

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from bookhaven.database import Base, get_db, enable_sqlite_savepoints  # noqa: E402
import bookhaven.models  # noqa: E402,F401
from bookhaven.models import Book, User  # noqa: E402
from bookhaven.core.security import create_access_token  # noqa: E402
from bookhaven.services.open_library import (  # noqa: E402
    OpenLibraryAdapter,
    OpenLibraryClient,
    get_open_library_adapter,
)
from bookhaven.main import app  # noqa: E402


# In-memory SQLite by default; point TEST_DATABASE_URL at a Postgres test
# database to run the same suite against Postgres.
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite://")


@pytest.fixture(scope="session")
def engine():
    if TEST_DATABASE_URL.startswith("sqlite"):
        test_engine = create_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        enable_sqlite_savepoints(test_engine)
    else:
        test_engine = create_engine(TEST_DATABASE_URL, pool_pre_ping=True)

    if not Base.metadata.tables:
        raise RuntimeError("No tables registered in Base.metadata. Did you import bookhaven.models?")

    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def db(engine) -> Session:
    """
    Session for one test, wrapped in an outer transaction that is rolled back
    afterwards. Service-level commits only release savepoints inside it.
    """
    connection = engine.connect()
    transaction = connection.begin()
    session = Session(
        bind=connection,
        autoflush=False,
        join_transaction_mode="create_savepoint",
    )

    yield session

    session.close()
    transaction.rollback()
    connection.close()


# ----------------------------
# Data helpers
# ----------------------------
_external_ids = itertools.count(1)
_usernames = itertools.count(1)


@pytest.fixture
def make_book(db: Session):
    def _make(**kwargs) -> Book:
        n = next(_external_ids)
        values = {
            "external_id": f"OL{n}LOCALW",
            "title": f"Book {n}",
            "author": f"Author {n}",
            "genre": "General",
            "rating": 0.0,
            "rating_count": 0,
        }
        values.update(kwargs)
        book = Book(**values)
        db.add(book)
        db.commit()
        db.refresh(book)
        return book
    return _make


@pytest.fixture
def make_user(db: Session):
    def _make(**kwargs) -> User:
        n = next(_usernames)
        values = {"username": f"reader{n}", "email": f"reader{n}@example.com", "full_name": f"Reader {n}"}
        values.update(kwargs)
        user = User(**values)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def test_user(make_user) -> User:
    return make_user()


@pytest.fixture
def auth_headers(test_user: User) -> Dict[str, str]:
    token = create_access_token({"sub": str(test_user.id)})
    return {"Authorization": f"Bearer {token}"}


# ----------------------------
# Fake Open Library
# ----------------------------
class FakeResponse:
    def __init__(self, payload: Any, status_code: int = 200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self) -> Any:
        return self._payload


class FakeOpenLibrarySession:
    """
    Stands in for requests.Session. Serves canned search docs, works and
    authors, and records every call so tests can assert on them.
    """

    def __init__(self):
        self.search_docs: List[Dict[str, Any]] = []
        self.works: Dict[str, Dict[str, Any]] = {}
        self.authors: Dict[str, Dict[str, Any]] = {}
        self.fail = False
        self.calls: List[Dict[str, Any]] = []

    def get(self, url: str, params: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None):
        self.calls.append({"url": url, "params": params or {}, "timeout": timeout})
        if self.fail:
            raise requests.ConnectionError("Open Library unreachable")

        path = url.split("openlibrary.test", 1)[-1]
        if path == "/search.json":
            params = params or {}
            offset = int(params.get("offset", 0))
            limit = int(params.get("limit", 20))
            docs = self.search_docs[offset:offset + limit]
            return FakeResponse({"numFound": len(self.search_docs), "start": offset, "docs": docs})
        if path.startswith("/works/"):
            work_id = path[len("/works/"):-len(".json")]
            if work_id in self.works:
                return FakeResponse(self.works[work_id])
            return FakeResponse({"error": "notfound"}, status_code=404)
        if path.startswith("/authors/"):
            author_id = path[len("/authors/"):-len(".json")]
            if author_id in self.authors:
                return FakeResponse(self.authors[author_id])
            return FakeResponse({"error": "notfound"}, status_code=404)
        return FakeResponse({}, status_code=404)

    @property
    def search_calls(self) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["url"].endswith("/search.json")]


@pytest.fixture
def ol_session() -> FakeOpenLibrarySession:
    return FakeOpenLibrarySession()


@pytest.fixture
def adapter(ol_session: FakeOpenLibrarySession) -> OpenLibraryAdapter:
    client = OpenLibraryClient(
        session=ol_session,
        base_url="https://openlibrary.test",
        covers_url="https://covers.openlibrary.test/b/id",
        timeout=1.0,
    )
    return OpenLibraryAdapter(client)


def search_doc(n: int, **kwargs) -> Dict[str, Any]:
    doc = {
        "key": f"/works/OL{n}W",
        "title": f"Remote Book {n}",
        "author_name": [f"Remote Author {n}"],
        "first_publish_year": 2000,
        "edition_count": 10,
        "subject": ["Fantasy"],
    }
    doc.update(kwargs)
    return doc


# ----------------------------
# API client
# ----------------------------
@pytest.fixture
def client(db: Session):
    """TestClient bound to the test session, with Open Library switched off."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_open_library_adapter] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


def miss_once(lookup: Callable) -> Callable:
    """Lookup that reports no row on its first call, as if a parallel writer had not committed yet."""
    calls = []

    def wrapped(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            return None
        return lookup(*args, **kwargs)

    return wrapped
