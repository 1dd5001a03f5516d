"""
Open Library integration.

OpenLibraryClient does the HTTP and validates every payload into the models
below; nothing unvalidated leaves this module. OpenLibraryAdapter turns those
records into local Book rows, deduplicated on external_id, and is what the
catalog service calls to top up short result sets.
"""
import logging
import re
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bookhaven.core.config import settings
from bookhaven.core.errors import ConflictError, ExternalSourceError
from bookhaven.models import Book
from bookhaven.utils.rounding import round_half_up

logger = logging.getLogger(__name__)

SEARCH_FIELDS = "key,title,author_name,first_publish_year,cover_i,subject,language,ebook_access,edition_count"
FREE_ACCESS_LEVELS = {"public", "borrowable"}
UNKNOWN_AUTHOR = "Unknown"

# Provisional popularity for imported books that have no local ratings yet
MAX_AGE_YEARS = 50
SEARCH_EDITION_CAP = 20
SEARCH_COUNT_MULTIPLIER = 5
WORK_REVISION_CAP = 30
WORK_COUNT_MULTIPLIER = 10
MIN_PROVISIONAL_RATING = 3.0
MAX_PROVISIONAL_RATING = 5.0


# ----------------------------
# Validated payloads
# ----------------------------
class OpenLibrarySearchDoc(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: Optional[str] = None
    title: Optional[str] = None
    author_name: List[str] = []
    first_publish_year: Optional[int] = None
    cover_i: Optional[int] = None
    subject: List[str] = []
    language: List[str] = []
    ebook_access: Optional[str] = None
    edition_count: int = 0


class OpenLibrarySearchResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    num_found: int = Field(0, alias="numFound")
    start: int = 0
    docs: List[OpenLibrarySearchDoc] = []


class OpenLibraryWork(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: Optional[str] = None
    title: Optional[str] = None
    # Either a plain string or {"type": "/type/text", "value": "..."}
    description: Union[str, Dict[str, Any], None] = None
    covers: List[int] = []
    subjects: List[str] = []
    first_publish_date: Optional[str] = None
    authors: List[Dict[str, Any]] = []
    revision: int = 0
    ebook_access: Optional[str] = None

    @property
    def description_text(self) -> Optional[str]:
        d = self.description
        if isinstance(d, dict):
            value = d.get("value")
            return value.strip() or None if isinstance(value, str) else None
        if isinstance(d, str):
            return d.strip() or None
        return None

    @property
    def author_keys(self) -> List[str]:
        keys = []
        for entry in self.authors:
            author = entry.get("author") if isinstance(entry, dict) else None
            key = author.get("key") if isinstance(author, dict) else None
            if isinstance(key, str) and key:
                keys.append(key.rstrip("/").split("/")[-1])
        return keys


class OpenLibraryAuthor(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None


# ----------------------------
# Pure helpers
# ----------------------------
def external_id_from_key(key: str) -> str:
    """'/works/OL45804W' -> 'OL45804W'"""
    return key.rstrip("/").split("/")[-1]


def _year_from_date(raw: Optional[str]) -> Optional[int]:
    if not raw:
        return None
    m = re.search(r"\b(\d{4})\b", raw)
    return int(m.group(1)) if m else None


def provisional_popularity(
    first_publish_year: Optional[int],
    count: int,
    cap: int,
    multiplier: int,
    current_year: Optional[int] = None,
) -> Tuple[float, int]:
    """
    Stand-in (rating, rating_count) for a book nobody has rated locally.

    Newer works and works with more editions (or revisions) score higher.
    An unknown publish year gets no recency boost. The first real rating
    replaces both values.
    """
    current_year = current_year or datetime.utcnow().year
    if first_publish_year is None:
        age_factor = 1.0
    else:
        age = max(current_year - first_publish_year, 0)
        age_factor = min(age, MAX_AGE_YEARS) / MAX_AGE_YEARS

    count = max(count or 0, 0)
    edition_factor = min(count, cap) / cap

    rating = round_half_up(3 + (1 - age_factor) * 1.5 + edition_factor * 0.5, 1)
    rating = min(max(rating, MIN_PROVISIONAL_RATING), MAX_PROVISIONAL_RATING)
    rating_count = int(round_half_up(count * multiplier + (1 - age_factor) * 100, 0))
    return rating, rating_count


def find_book_by_external_id(db: Session, external_id: str) -> Optional[Book]:
    return db.query(Book).filter(Book.external_id == external_id).first()


# ----------------------------
# HTTP client
# ----------------------------
class OpenLibraryClient:
    """Thin wrapper over the Open Library search, works and authors endpoints."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        base_url: Optional[str] = None,
        covers_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.session = session or requests.Session()
        self.base_url = (base_url or settings.OPEN_LIBRARY_BASE_URL).rstrip("/")
        self.covers_url = (covers_url or settings.OPEN_LIBRARY_COVERS_URL).rstrip("/")
        self.timeout = timeout or settings.OPEN_LIBRARY_TIMEOUT_SECONDS

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
            resp.raise_for_status()
            return resp.json()
        except requests.Timeout as e:
            raise ExternalSourceError(f"Open Library timed out after {self.timeout}s: {path}") from e
        except requests.RequestException as e:
            raise ExternalSourceError(f"Open Library request failed: {path}: {e}") from e
        except ValueError as e:
            raise ExternalSourceError(f"Open Library returned invalid JSON: {path}") from e

    def search(
        self,
        query: str,
        limit: int = 20,
        offset: int = 0,
        sort: Optional[str] = None,
    ) -> OpenLibrarySearchResponse:
        params: Dict[str, Any] = {
            "q": query,
            "limit": limit,
            "offset": offset,
            "fields": SEARCH_FIELDS,
        }
        if sort:
            params["sort"] = sort
        data = self._get_json("/search.json", params=params)
        try:
            return OpenLibrarySearchResponse.model_validate(data)
        except PydanticValidationError as e:
            raise ExternalSourceError(f"Unexpected Open Library search payload for {query!r}") from e

    def search_subject(self, category: str, limit: int = 20, offset: int = 0) -> OpenLibrarySearchResponse:
        subject = f'"{category}"' if " " in category else category
        return self.search(f"subject:{subject}", limit=limit, offset=offset)

    def trending(self, limit: int = 20) -> OpenLibrarySearchResponse:
        return self.search("subject:bestseller", limit=limit, offset=0, sort="new")

    def work(self, external_id: str) -> OpenLibraryWork:
        data = self._get_json(f"/works/{external_id}.json")
        try:
            return OpenLibraryWork.model_validate(data)
        except PydanticValidationError as e:
            raise ExternalSourceError(f"Unexpected Open Library work payload for {external_id}") from e

    def author_name(self, author_key: str) -> Optional[str]:
        data = self._get_json(f"/authors/{author_key}.json")
        try:
            return OpenLibraryAuthor.model_validate(data).name
        except PydanticValidationError as e:
            raise ExternalSourceError(f"Unexpected Open Library author payload for {author_key}") from e

    def cover_url(self, cover_id: Optional[int]) -> Optional[str]:
        if not cover_id or cover_id < 0:
            return None
        return f"{self.covers_url}/{cover_id}-L.jpg"

    def work_url(self, key: str) -> str:
        return f"{self.base_url}{key if key.startswith('/') else '/' + key}"


# ----------------------------
# Catalog adapter
# ----------------------------
class OpenLibraryAdapter:
    """
    Imports Open Library records into the local catalog.

    A record whose external_id is already stored is returned as the stored
    row, untouched, so imports never clobber accumulated ratings. Listing
    calls raise ExternalSourceError on failure; the caller decides how to
    degrade.
    """

    def __init__(self, client: OpenLibraryClient):
        self.client = client

    def search_external(self, db: Session, query: str, limit: int = 20, offset: int = 0) -> List[Book]:
        result = self.client.search(query, limit=limit, offset=offset)
        return self._import_docs(db, result.docs)

    def by_category_external(self, db: Session, category: str, limit: int = 20, offset: int = 0) -> List[Book]:
        result = self.client.search_subject(category, limit=limit, offset=offset)
        return self._import_docs(db, result.docs)

    def trending_external(self, db: Session, limit: int = 20) -> List[Book]:
        result = self.client.trending(limit=limit)
        return self._import_docs(db, result.docs)

    def by_external_id(self, db: Session, external_id: str) -> Optional[Book]:
        existing = find_book_by_external_id(db, external_id)
        if existing:
            return existing

        try:
            work = self.client.work(external_id)
        except ExternalSourceError as e:
            logger.warning("Could not fetch Open Library work %s: %s", external_id, e)
            return None

        if not work.title:
            logger.info("Open Library work %s has no title, not importing", external_id)
            return None

        book = self._insert_if_absent(db, self._book_from_work(external_id, work))
        db.commit()
        return book

    # -- internals --

    def _import_docs(self, db: Session, docs: Iterable[OpenLibrarySearchDoc]) -> List[Book]:
        books: List[Book] = []
        for doc in docs:
            if not doc.key or not doc.title:
                continue
            external_id = external_id_from_key(doc.key)
            if not external_id:
                continue

            existing = find_book_by_external_id(db, external_id)
            if existing:
                books.append(existing)
                continue

            description = self._fetch_description(external_id)
            candidate = self._book_from_search_doc(external_id, doc, description)
            try:
                books.append(self._insert_if_absent(db, candidate))
            except ConflictError as e:
                logger.warning("Skipping Open Library record %s: %s", external_id, e)

        db.commit()
        logger.info("Imported/matched %d Open Library records", len(books))
        return books

    def _fetch_description(self, external_id: str) -> Optional[str]:
        """Best-effort: a failed detail fetch leaves the description empty."""
        try:
            return self.client.work(external_id).description_text
        except ExternalSourceError as e:
            logger.warning("Description fetch failed for %s: %s", external_id, e)
            return None

    def _resolve_authors(self, work: OpenLibraryWork) -> str:
        names = []
        for key in work.author_keys:
            try:
                name = self.client.author_name(key)
            except ExternalSourceError as e:
                logger.warning("Author lookup failed for %s: %s", key, e)
                continue
            if name:
                names.append(name)
        return ", ".join(names) or UNKNOWN_AUTHOR

    def _book_from_search_doc(
        self,
        external_id: str,
        doc: OpenLibrarySearchDoc,
        description: Optional[str],
    ) -> Book:
        rating, rating_count = provisional_popularity(
            doc.first_publish_year,
            doc.edition_count,
            cap=SEARCH_EDITION_CAP,
            multiplier=SEARCH_COUNT_MULTIPLIER,
        )
        return Book(
            external_id=external_id,
            title=doc.title,
            author=", ".join(doc.author_name) or UNKNOWN_AUTHOR,
            description=description,
            cover_url=self.client.cover_url(doc.cover_i),
            genre=doc.subject[0] if doc.subject else None,
            is_free=doc.ebook_access in FREE_ACCESS_LEVELS,
            rating=rating,
            rating_count=rating_count,
            publish_date=str(doc.first_publish_year) if doc.first_publish_year else None,
            external_url=self.client.work_url(doc.key),
        )

    def _book_from_work(self, external_id: str, work: OpenLibraryWork) -> Book:
        rating, rating_count = provisional_popularity(
            _year_from_date(work.first_publish_date),
            work.revision,
            cap=WORK_REVISION_CAP,
            multiplier=WORK_COUNT_MULTIPLIER,
        )
        return Book(
            external_id=external_id,
            title=work.title,
            author=self._resolve_authors(work),
            description=work.description_text,
            cover_url=self.client.cover_url(work.covers[0]) if work.covers else None,
            genre=work.subjects[0] if work.subjects else None,
            is_free=work.ebook_access in FREE_ACCESS_LEVELS,
            rating=rating,
            rating_count=rating_count,
            publish_date=work.first_publish_date,
            external_url=self.client.work_url(f"/works/{external_id}"),
        )

    def _insert_if_absent(self, db: Session, candidate: Book) -> Book:
        """
        Insert under a savepoint. Losing the race on the external_id unique
        constraint means another request imported it first: use that row.
        """
        try:
            with db.begin_nested():
                db.add(candidate)
        except IntegrityError:
            existing = find_book_by_external_id(db, candidate.external_id)
            if existing is None:
                raise ConflictError(
                    f"Insert of {candidate.external_id} conflicted but no row is visible"
                )
            logger.info("Book %s was imported concurrently, reusing it", candidate.external_id)
            return existing
        return candidate


def preload_categories(
    db: Session,
    adapter: OpenLibraryAdapter,
    category_names: Iterable[str],
    per_category: int = 50,
) -> Dict[str, int]:
    """Warm the catalog for each category; one failing category does not stop the rest."""
    loaded: Dict[str, int] = {}
    for name in category_names:
        try:
            logger.info("Preloading books for category: %s", name)
            books = adapter.by_category_external(db, name, limit=per_category, offset=0)
            loaded[name] = len(books)
        except ExternalSourceError as e:
            logger.error("Error preloading books for category %s: %s", name, e)
            loaded[name] = 0
    return loaded


@lru_cache(maxsize=1)
def _default_client() -> OpenLibraryClient:
    return OpenLibraryClient()


def get_open_library_adapter() -> Optional[OpenLibraryAdapter]:
    """FastAPI dependency. None means Open Library is switched off: serve local data only."""
    if not settings.OPEN_LIBRARY_ENABLED:
        return None
    return OpenLibraryAdapter(_default_client())
