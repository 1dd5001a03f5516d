from fastapi import APIRouter, Depends, Query, HTTPException, status
from sqlalchemy.orm import Session
from typing import Optional, List
import logging

from bookhaven.database import get_db
from bookhaven.core.auth import get_current_user, get_optional_user
from bookhaven.core.errors import BookHavenError
from bookhaven.models import User
from bookhaven.schemas.book import (
    BookResponse,
    BookDetailResponse,
    PaginatedBooksResponse,
    PaginationInfo,
)
from bookhaven.schemas.user_book import (
    RateBookRequest,
    RateBookResponse,
    UserRatingResponse,
    SavedBookResponse,
    CommentCreate,
    CommentResponse,
)
from bookhaven.services import catalog, ratings, library_service
from bookhaven.services.catalog import CatalogPage
from bookhaven.services.open_library import OpenLibraryAdapter, get_open_library_adapter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/books", tags=["books"])

APPROXIMATE_TOTAL_NOTE = (
    "pagination.totalBooks is exact when every result came from the local catalog. "
    "When a short page was topped up from Open Library it is an estimated upper bound, "
    "so totalPages and hasNextPage are approximate."
)


def _paginated(page: CatalogPage, limit: int, offset: int) -> PaginatedBooksResponse:
    return PaginatedBooksResponse(
        books=[BookResponse.model_validate(b) for b in page.items],
        pagination=PaginationInfo.build(page.total_count_estimate, limit, offset),
    )


@router.get("", response_model=PaginatedBooksResponse)
def get_books(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Paginated list of books in the local catalog."""
    page = catalog.list_books(db, limit=limit, offset=offset)
    return _paginated(page, limit, offset)


@router.get("/search", response_model=PaginatedBooksResponse, description=APPROXIMATE_TOTAL_NOTE)
def search_books(
    q: Optional[str] = Query(None, description="Search in title, author, description or genre"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    adapter: Optional[OpenLibraryAdapter] = Depends(get_open_library_adapter),
):
    """Search the catalog, topping up from Open Library when local matches run short."""
    page = catalog.search_books(db, adapter, q, limit=limit, offset=offset)
    logger.info(
        "Search %r returned %d books (external=%s)",
        q, len(page.items), page.used_external,
    )
    return _paginated(page, limit, offset)


@router.get("/category/{name}", response_model=PaginatedBooksResponse, description=APPROXIMATE_TOTAL_NOTE)
def get_books_by_category(
    name: str,
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    adapter: Optional[OpenLibraryAdapter] = Depends(get_open_library_adapter),
):
    """Books whose genre matches the category (case-insensitive)."""
    page = catalog.list_by_category(db, adapter, name, limit=limit, offset=offset)
    return _paginated(page, limit, offset)


@router.get("/trending", response_model=List[BookResponse])
def get_trending_books(
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    adapter: Optional[OpenLibraryAdapter] = Depends(get_open_library_adapter),
):
    return catalog.get_trending_books(db, adapter, limit=limit)


@router.get("/most-purchased", response_model=List[BookResponse])
def get_most_purchased_books(
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    adapter: Optional[OpenLibraryAdapter] = Depends(get_open_library_adapter),
):
    return catalog.get_most_purchased_books(db, adapter, limit=limit)


@router.get("/external/{external_id}", response_model=BookResponse)
def get_book_by_external_id(
    external_id: str,
    db: Session = Depends(get_db),
    adapter: Optional[OpenLibraryAdapter] = Depends(get_open_library_adapter),
):
    """Look up a book by Open Library work id, importing it on first sight."""
    return catalog.get_book_by_external_id(db, adapter, external_id)


@router.get("/{book_id}", response_model=BookDetailResponse)
def get_book(
    book_id: int,
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """Full details of a book, plus whether the current user saved it."""
    book = catalog.get_book(db, book_id)
    is_saved = library_service.is_book_saved(db, user.id, book.id) if user else False
    detail = BookDetailResponse.model_validate(book)
    detail.is_saved = is_saved
    return detail


@router.post("/{book_id}/rate", response_model=RateBookResponse)
def rate_book(
    book_id: int,
    payload: RateBookRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Rate a book 1-5. Re-rating replaces the user's previous rating."""
    try:
        rating, book = ratings.rate(db, user.id, book_id, payload.rating)
    except BookHavenError:
        raise
    except Exception:
        logger.exception("Failed to rate book: book_id=%s, user_id=%s", book_id, user.id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to rate book",
        )
    return RateBookResponse(
        rating=UserRatingResponse.from_model(rating),
        book=BookResponse.model_validate(book),
    )


@router.get("/{book_id}/rating", response_model=Optional[UserRatingResponse])
def get_my_rating(
    book_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """The current user's rating of this book, or null."""
    row = ratings.get_user_rating(db, user.id, book_id)
    return UserRatingResponse.from_model(row) if row else None


@router.get("/{book_id}/comments", response_model=List[CommentResponse])
def get_comments(book_id: int, db: Session = Depends(get_db)):
    return library_service.get_book_comments(db, book_id)


@router.post("/{book_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
def post_comment(
    book_id: int,
    payload: CommentCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    comment = library_service.add_comment(db, user.id, book_id, payload.text)
    return CommentResponse(
        id=comment.id,
        user_id=comment.user_id,
        book_id=comment.book_id,
        text=comment.text,
        created_at=comment.created_at,
        user={"id": user.id, "username": user.username, "full_name": user.full_name},
    )


@router.post("/{book_id}/save", response_model=SavedBookResponse, status_code=status.HTTP_201_CREATED)
def save_book(
    book_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Save a book to the user's list. 409 if it is already there."""
    return library_service.save_book(db, user.id, book_id)


@router.delete("/{book_id}/save")
def unsave_book(
    book_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    library_service.remove_saved_book(db, user.id, book_id)
    return {"message": "Book removed from saved books"}
