"""
Saved books and comments.

These are plain CRUD; the recommendation engine reads them as signals.
"""
import logging
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from bookhaven.core.errors import ConflictError, ValidationError
from bookhaven.models import Book, BookComment, SavedBook
from bookhaven.services.catalog import get_book

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 5000


def is_book_saved(db: Session, user_id: int, book_id: int) -> bool:
    return db.query(SavedBook.id).filter(
        SavedBook.user_id == user_id,
        SavedBook.book_id == book_id,
    ).first() is not None


def save_book(db: Session, user_id: int, book_id: int) -> SavedBook:
    """Save a book once. A second save by the same user is a ConflictError (409)."""
    get_book(db, book_id)

    if is_book_saved(db, user_id, book_id):
        raise ConflictError("Book is already saved")

    saved = SavedBook(user_id=user_id, book_id=book_id)
    try:
        db.add(saved)
        db.commit()
    except IntegrityError:
        # Handle race condition where duplicate is inserted between check and insert
        db.rollback()
        logger.debug("Duplicate save (race condition): user_id=%s, book_id=%s", user_id, book_id)
        raise ConflictError("Book is already saved")

    db.refresh(saved)
    return saved


def remove_saved_book(db: Session, user_id: int, book_id: int) -> None:
    """Idempotent: removing a book that is not saved is not an error."""
    db.query(SavedBook).filter(
        SavedBook.user_id == user_id,
        SavedBook.book_id == book_id,
    ).delete(synchronize_session=False)
    db.commit()


def get_saved_books(db: Session, user_id: int) -> List[Book]:
    return (
        db.query(Book)
        .join(SavedBook, SavedBook.book_id == Book.id)
        .filter(SavedBook.user_id == user_id)
        .order_by(SavedBook.saved_at.desc(), SavedBook.id.desc())
        .all()
    )


def get_book_comments(db: Session, book_id: int) -> List[BookComment]:
    return (
        db.query(BookComment)
        .options(joinedload(BookComment.user))
        .filter(BookComment.book_id == book_id)
        .order_by(BookComment.created_at.desc(), BookComment.id.desc())
        .all()
    )


def add_comment(db: Session, user_id: int, book_id: int, text: str) -> BookComment:
    text = (text or "").strip()
    if not text:
        raise ValidationError("Comment text is required")
    if len(text) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"Comment must be at most {MAX_COMMENT_LENGTH} characters")

    get_book(db, book_id)

    comment = BookComment(user_id=user_id, book_id=book_id, text=text)
    db.add(comment)
    db.commit()
    db.refresh(comment)
    return comment
