"""
Rating service: the only writer of Book.rating and Book.rating_count once a
book is in the catalog.

Every write recomputes the aggregate from the full set of user_ratings rows
for the book. There is no running-average patching.
"""
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from bookhaven.core.errors import NotFoundError, PersistenceError, ValidationError
from bookhaven.models import Book, UserRating
from bookhaven.utils.rounding import round_half_up

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


def validate_rating_value(value) -> int:
    # bool is an int subclass; True must not count as a 1-star rating
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Rating must be an integer between {MIN_RATING} and {MAX_RATING}")
    if value < MIN_RATING or value > MAX_RATING:
        raise ValidationError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
    return value


def _lock_book(db: Session, book_id: int) -> Optional[Book]:
    """
    Row lock on the book so concurrent raters of the same book recompute one
    after the other. SQLite ignores FOR UPDATE; its writes are serialized anyway.
    """
    return db.query(Book).filter(Book.id == book_id).with_for_update().first()


def _find_rating(db: Session, user_id: int, book_id: int) -> Optional[UserRating]:
    return db.query(UserRating).filter(
        UserRating.user_id == user_id,
        UserRating.book_id == book_id,
    ).first()


def _upsert_rating(db: Session, user_id: int, book_id: int, value: int) -> UserRating:
    existing = _find_rating(db, user_id, book_id)
    if existing:
        existing.value = value
        existing.rated_at = datetime.utcnow()
        db.flush()
        return existing

    row = UserRating(user_id=user_id, book_id=book_id, value=value, rated_at=datetime.utcnow())
    try:
        with db.begin_nested():
            db.add(row)
    except IntegrityError:
        # Same user rated the same book in a parallel request; theirs is the row to update
        existing = _find_rating(db, user_id, book_id)
        if existing is None:
            raise
        logger.info("Concurrent first rating for user=%s book=%s, updating instead", user_id, book_id)
        existing.value = value
        existing.rated_at = datetime.utcnow()
        db.flush()
        return existing
    return row


def recompute_book_rating(db: Session, book: Book) -> Book:
    """Set rating/rating_count from all user_ratings rows of this book."""
    avg_value, count = db.query(
        func.avg(UserRating.value),
        func.count(UserRating.id),
    ).filter(UserRating.book_id == book.id).one()

    count = int(count or 0)
    if count == 0:
        # Nothing to aggregate; leave whatever the import assigned
        return book

    book.rating = round_half_up(float(avg_value), 1)
    book.rating_count = count
    db.flush()
    return book


def rate(db: Session, user_id: int, book_id: int, value) -> Tuple[UserRating, Book]:
    """
    Record (or overwrite) a user's 1-5 rating and refresh the book aggregate
    in one transaction.

    Raises ValidationError before touching the database when value is out of
    range, NotFoundError for an unknown book, PersistenceError if the write
    fails. A failed write is never swallowed.
    """
    value = validate_rating_value(value)

    try:
        book = _lock_book(db, book_id)
        if not book:
            raise NotFoundError("Book not found")

        rating = _upsert_rating(db, user_id, book_id, value)
        recompute_book_rating(db, book)
        db.commit()
    except NotFoundError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            "Failed to record rating: user_id=%s, book_id=%s, value=%s, error=%s",
            user_id, book_id, value, str(e),
            exc_info=True,
        )
        raise PersistenceError("Failed to record rating") from e

    db.refresh(rating)
    db.refresh(book)
    logger.info(
        "Rated book %s by user %s: value=%s -> aggregate %.1f over %d",
        book_id, user_id, value, book.rating, book.rating_count,
    )
    return rating, book


def get_user_rating(db: Session, user_id: int, book_id: int) -> Optional[UserRating]:
    return _find_rating(db, user_id, book_id)


def get_user_ratings(db: Session, user_id: int) -> List[UserRating]:
    """All of a user's ratings with their books loaded, highest first."""
    return (
        db.query(UserRating)
        .options(joinedload(UserRating.book))
        .filter(UserRating.user_id == user_id)
        .order_by(UserRating.value.desc(), UserRating.rated_at.desc())
        .all()
    )
