from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bookhaven.database import get_db
from bookhaven.core.auth import get_current_user
from bookhaven.models import User
from bookhaven.schemas.book import BookResponse
from bookhaven.schemas.user_book import UserRatingWithBook
from bookhaven.services import library_service, ratings

router = APIRouter(tags=["user-books"])


@router.get("/saved-books", response_model=List[BookResponse])
def get_saved_books(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Books the current user saved, most recent first."""
    return library_service.get_saved_books(db, user.id)


@router.get("/user/ratings", response_model=List[UserRatingWithBook])
def get_user_ratings(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Every rating the current user has given, with the rated book."""
    return [UserRatingWithBook.from_model(row) for row in ratings.get_user_ratings(db, user.id)]
