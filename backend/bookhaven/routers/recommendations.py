from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from bookhaven.database import get_db
from bookhaven.core.auth import get_current_user
from bookhaven.core.config import settings
from bookhaven.models import User
from bookhaven.schemas.book import BookResponse
from bookhaven.services import recommendation_engine
from bookhaven.services.open_library import OpenLibraryAdapter, get_open_library_adapter
from bookhaven.utils.timing import now_ms, log_elapsed

logger = logging.getLogger(__name__)

router = APIRouter(tags=["recommendations"])


@router.get("/recommendations", response_model=List[BookResponse])
def get_recommendations(
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    adapter: Optional[OpenLibraryAdapter] = Depends(get_open_library_adapter),
):
    """
    Personalized picks for the current user.

    Never includes a book the user already rated, saved or commented on.
    Users without any history get the trending list.
    """
    t0 = now_ms()
    logger.info("Fetching recommendations for user %s (limit=%d)", user.id, limit)

    books = recommendation_engine.recommend(db, adapter, user.id, limit=limit)

    if settings.DEBUG:
        log_elapsed(t0, f"user={user.id} recommendations", logger)
    logger.info("Returning %d recommendations for user %s", len(books), user.id)
    return books
