"""
Rule-based recommendations.

Genre and author preferences are weighted from a user's ratings, saves and
comments, then topped up from trending. Nothing is cached; every call reads
the stored interactions again.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from sqlalchemy import or_
from sqlalchemy.orm import Session

from bookhaven.models import Book, UserRating, SavedBook, BookComment
from bookhaven.services.catalog import get_trending_books
from bookhaven.services.open_library import OpenLibraryAdapter

logger = logging.getLogger(__name__)

# A 4 or 5 star rating counts double toward genre/author preference
HIGH_RATING_THRESHOLD = 4
HIGH_RATING_WEIGHT = 2
DEFAULT_WEIGHT = 1

TOP_GENRES = 3
TOP_AUTHORS = 3

# Trending is over-fetched when topping up, since interacted books get filtered out
TRENDING_TOPUP_FACTOR = 2


@dataclass
class InteractionSignals:
    """Everything a user has touched, in encounter order (ratings first, highest first)."""
    ratings: Dict[int, int] = field(default_factory=dict)  # book_id -> value
    saved: List[int] = field(default_factory=list)
    commented: List[int] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.ratings and not self.saved and not self.commented

    def interacted_ids(self) -> List[int]:
        ordered: List[int] = []
        seen: Set[int] = set()
        for book_id in list(self.ratings) + self.saved + self.commented:
            if book_id not in seen:
                seen.add(book_id)
                ordered.append(book_id)
        return ordered


@dataclass
class UserPreferences:
    top_genres: List[str] = field(default_factory=list)
    top_authors: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.top_genres and not self.top_authors


def _get_signals(db: Session, user_id: int) -> InteractionSignals:
    rated = (
        db.query(UserRating.book_id, UserRating.value)
        .filter(UserRating.user_id == user_id)
        .order_by(UserRating.value.desc(), UserRating.id)
        .all()
    )
    saved = (
        db.query(SavedBook.book_id)
        .filter(SavedBook.user_id == user_id)
        .order_by(SavedBook.id)
        .all()
    )
    commented = (
        db.query(BookComment.book_id)
        .filter(BookComment.user_id == user_id)
        .order_by(BookComment.id)
        .all()
    )
    return InteractionSignals(
        ratings={book_id: value for book_id, value in rated},
        saved=[row.book_id for row in saved],
        commented=[row.book_id for row in commented],
    )


def _top_weighted(weights: Dict[str, int], n: int) -> List[str]:
    # sorted() is stable and dicts keep insertion order, so ties go to whichever was seen first
    ranked = sorted(weights.items(), key=lambda item: item[1], reverse=True)
    return [name for name, _ in ranked if name][:n]


def infer_preferences(books: List[Book], ratings: Dict[int, int]) -> UserPreferences:
    """
    Weighted genre and author frequency over the books a user interacted with.

    Each book counts 2 if the user rated it 4 or higher, otherwise 1 (saves
    and comments without a rating count 1). Blank genres/authors are ignored.
    """
    genre_weights: Dict[str, int] = {}
    author_weights: Dict[str, int] = {}

    for book in books:
        rating = ratings.get(book.id)
        weight = HIGH_RATING_WEIGHT if rating is not None and rating >= HIGH_RATING_THRESHOLD else DEFAULT_WEIGHT

        genre = (book.genre or "").strip()
        if genre:
            genre_weights[genre] = genre_weights.get(genre, 0) + weight

        author = (book.author or "").strip()
        if author:
            author_weights[author] = author_weights.get(author, 0) + weight

    return UserPreferences(
        top_genres=_top_weighted(genre_weights, TOP_GENRES),
        top_authors=_top_weighted(author_weights, TOP_AUTHORS),
    )


def _load_books_in_order(db: Session, book_ids: List[int]) -> List[Book]:
    if not book_ids:
        return []
    rows = db.query(Book).filter(Book.id.in_(book_ids)).all()
    by_id = {b.id: b for b in rows}
    return [by_id[i] for i in book_ids if i in by_id]


def _preference_matches(
    db: Session,
    prefs: UserPreferences,
    exclude_ids: Set[int],
    limit: int,
) -> List[Book]:
    conditions = []
    if prefs.top_genres:
        conditions.append(Book.genre.in_(prefs.top_genres))
    if prefs.top_authors:
        conditions.append(Book.author.in_(prefs.top_authors))

    q = db.query(Book).filter(or_(*conditions))
    if exclude_ids:
        q = q.filter(Book.id.notin_(exclude_ids))
    return q.order_by(Book.rating.desc(), Book.id).limit(limit).all()


def recommend(
    db: Session,
    adapter: Optional[OpenLibraryAdapter],
    user_id: int,
    limit: int = 10,
) -> List[Book]:
    """
    Books the user is likely to enjoy and has not rated, saved or commented on.

    No interaction history, or history without any genre/author metadata,
    returns exactly get_trending_books(limit). Otherwise books matching the
    user's top genres or authors come first (best rated first), topped up
    from trending. Recomputed from stored state on every call.
    """
    signals = _get_signals(db, user_id)
    if signals.is_empty:
        logger.info("User %s has no interaction history, returning trending books", user_id)
        return get_trending_books(db, adapter, limit)

    interacted_ids = signals.interacted_ids()
    excluded: Set[int] = set(interacted_ids)

    interacted_books = _load_books_in_order(db, interacted_ids)
    prefs = infer_preferences(interacted_books, signals.ratings)
    logger.info(
        "User %s top genres=%s top authors=%s",
        user_id, prefs.top_genres, prefs.top_authors,
    )

    if prefs.is_empty:
        logger.info("Could not identify preferences for user %s, returning trending books", user_id)
        return get_trending_books(db, adapter, limit)

    picks = _preference_matches(db, prefs, excluded, limit)

    if len(picks) < limit:
        logger.info(
            "Only %d preference matches for user %s, supplementing with trending books",
            len(picks), user_id,
        )
        picked_ids = {b.id for b in picks}
        for book in get_trending_books(db, adapter, limit * TRENDING_TOPUP_FACTOR):
            if len(picks) >= limit:
                break
            if book.id in excluded or book.id in picked_ids:
                continue
            picked_ids.add(book.id)
            picks.append(book)

    return picks
