"""
Catalog reads: local-first, topped up from Open Library when a page is short.

The local store is authoritative for any book it already holds. External
failures never fail a read; the caller gets whatever the local store had.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session

from bookhaven.core.config import settings
from bookhaven.core.errors import ExternalSourceError, NotFoundError, ValidationError
from bookhaven.models import Book, Category
from bookhaven.services.open_library import OpenLibraryAdapter, find_book_by_external_id

logger = logging.getLogger(__name__)


@dataclass
class CatalogPage:
    items: List[Book] = field(default_factory=list)
    # Exact unless used_external is True, then a placeholder upper bound
    total_count_estimate: int = 0
    used_external: bool = False


# ----------------------------
# Local queries
# ----------------------------
def _category_query(db: Session, name: str) -> Query:
    return db.query(Book).filter(func.lower(Book.genre) == name.strip().lower())


def _search_query(db: Session, query: str) -> Query:
    term = f"%{query.strip()}%"
    return db.query(Book).filter(
        or_(
            Book.title.ilike(term),
            Book.author.ilike(term),
            Book.description.ilike(term),
            Book.genre.ilike(term),
        )
    )


def _merge_unique(local: List[Book], external: List[Book], limit: int) -> List[Book]:
    """Append external books not already present, by external_id (and id)."""
    seen_external_ids = {b.external_id for b in local}
    seen_ids = {b.id for b in local}
    merged = list(local)
    for book in external:
        if len(merged) >= limit:
            break
        if book.external_id in seen_external_ids or book.id in seen_ids:
            continue
        seen_external_ids.add(book.external_id)
        seen_ids.add(book.id)
        merged.append(book)
    return merged


def _local_first_page(
    base_query: Query,
    limit: int,
    offset: int,
    fetch_external: Optional[Callable[[int, int], List[Book]]],
    estimate_floor: int,
    label: str,
) -> CatalogPage:
    local = base_query.order_by(Book.id).offset(offset).limit(limit).all()
    local_total = base_query.count()

    if len(local) >= limit:
        return CatalogPage(items=local, total_count_estimate=local_total)

    if fetch_external is None:
        return CatalogPage(items=local, total_count_estimate=local_total)

    needed = limit - len(local)
    # External results fill page positions [offset + len(local), offset + limit);
    # rows imported by earlier pages already count toward local_total
    external_offset = offset + len(local)
    try:
        external = fetch_external(needed, external_offset)
    except ExternalSourceError as e:
        logger.warning("Open Library fallback failed for %s, serving local results: %s", label, e)
        return CatalogPage(items=local, total_count_estimate=local_total)

    items = _merge_unique(local, external, limit)
    logger.info(
        "%s: %d local + %d external (requested %d)",
        label, len(local), len(items) - len(local), needed,
    )
    return CatalogPage(
        items=items,
        total_count_estimate=max(local_total, estimate_floor),
        used_external=True,
    )


# ----------------------------
# Public reads
# ----------------------------
def list_books(db: Session, limit: int = 20, offset: int = 0) -> CatalogPage:
    """Plain listing: local only, exact count."""
    q = db.query(Book)
    items = q.order_by(Book.id).offset(offset).limit(limit).all()
    return CatalogPage(items=items, total_count_estimate=q.count())


def list_by_category(
    db: Session,
    adapter: Optional[OpenLibraryAdapter],
    name: str,
    limit: int = 10,
    offset: int = 0,
) -> CatalogPage:
    if not name or not name.strip():
        raise ValidationError("Category name is required")

    fetch = None
    if adapter is not None:
        def fetch(needed: int, ext_offset: int) -> List[Book]:
            return adapter.by_category_external(db, name, limit=needed, offset=ext_offset)

    return _local_first_page(
        _category_query(db, name),
        limit,
        offset,
        fetch,
        settings.CATEGORY_TOTAL_ESTIMATE,
        f"category {name!r}",
    )


def search_books(
    db: Session,
    adapter: Optional[OpenLibraryAdapter],
    query: Optional[str],
    limit: int = 20,
    offset: int = 0,
) -> CatalogPage:
    if not query or not query.strip():
        raise ValidationError("Search query is required")

    fetch = None
    if adapter is not None:
        def fetch(needed: int, ext_offset: int) -> List[Book]:
            return adapter.search_external(db, query.strip(), limit=needed, offset=ext_offset)

    return _local_first_page(
        _search_query(db, query),
        limit,
        offset,
        fetch,
        settings.SEARCH_TOTAL_ESTIMATE,
        f"search {query!r}",
    )


def _ranked_with_fallback(
    local: List[Book],
    limit: int,
    has_signal: bool,
    fetch_external: Optional[Callable[[], List[Book]]],
    label: str,
) -> List[Book]:
    if len(local) >= limit and has_signal:
        return local
    if fetch_external is None:
        return local

    try:
        external = fetch_external()
    except ExternalSourceError as e:
        logger.warning("Open Library fallback failed for %s, serving local results: %s", label, e)
        return local

    return _merge_unique(local, external, limit)


def get_trending_books(db: Session, adapter: Optional[OpenLibraryAdapter], limit: int = 10) -> List[Book]:
    """Highest rated first; Open Library bestsellers fill in while local ratings are thin."""
    local = db.query(Book).order_by(Book.rating.desc(), Book.id).limit(limit).all()
    has_signal = bool(local) and (local[0].rating or 0) > 0

    fetch = None
    if adapter is not None:
        def fetch() -> List[Book]:
            return adapter.trending_external(db, limit=limit)

    return _ranked_with_fallback(local, limit, has_signal, fetch, "trending")


def get_most_purchased_books(db: Session, adapter: Optional[OpenLibraryAdapter], limit: int = 10) -> List[Book]:
    """Most rated first; same fill rule as trending but ranked by rating_count."""
    local = db.query(Book).order_by(Book.rating_count.desc(), Book.id).limit(limit).all()
    has_signal = bool(local) and (local[0].rating_count or 0) > 0

    fetch = None
    if adapter is not None:
        def fetch() -> List[Book]:
            return adapter.search_external(db, "bestsellers", limit=limit, offset=0)

    return _ranked_with_fallback(local, limit, has_signal, fetch, "most-purchased")


def get_book(db: Session, book_id: int) -> Book:
    book = db.query(Book).filter(Book.id == book_id).first()
    if not book:
        raise NotFoundError("Book not found")
    return book


def get_book_by_external_id(
    db: Session,
    adapter: Optional[OpenLibraryAdapter],
    external_id: str,
) -> Book:
    book = find_book_by_external_id(db, external_id)
    if book:
        return book
    if adapter is not None:
        book = adapter.by_external_id(db, external_id)
    if not book:
        raise NotFoundError("Book not found")
    return book


def list_categories(db: Session) -> List[Category]:
    return db.query(Category).order_by(Category.name).all()
