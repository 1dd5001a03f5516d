from typing import Optional
from datetime import datetime

from pydantic import StrictInt

from bookhaven.schemas.book import CamelModel, BookResponse


class RateBookRequest(CamelModel):
    # Strict so true, "5" and 4.0 are 422; the range (400) is checked by the rating service
    rating: StrictInt


class UserRatingResponse(CamelModel):
    id: int
    user_id: int
    book_id: int
    rating: int
    rated_at: datetime

    @classmethod
    def from_model(cls, row) -> "UserRatingResponse":
        return cls(
            id=row.id,
            user_id=row.user_id,
            book_id=row.book_id,
            rating=row.value,
            rated_at=row.rated_at,
        )


class UserRatingWithBook(UserRatingResponse):
    book: Optional[BookResponse] = None

    @classmethod
    def from_model(cls, row) -> "UserRatingWithBook":
        base = UserRatingResponse.from_model(row)
        book = BookResponse.model_validate(row.book) if row.book is not None else None
        return cls(**base.model_dump(), book=book)


class RateBookResponse(CamelModel):
    rating: UserRatingResponse
    book: BookResponse


class SavedBookResponse(CamelModel):
    id: int
    user_id: int
    book_id: int
    saved_at: datetime


class CommentCreate(CamelModel):
    text: str


class CommentAuthor(CamelModel):
    id: int
    username: str
    full_name: Optional[str] = None


class CommentResponse(CamelModel):
    id: int
    user_id: int
    book_id: int
    text: str
    created_at: datetime
    user: Optional[CommentAuthor] = None
