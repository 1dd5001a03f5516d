from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bookhaven.database import get_db
from bookhaven.schemas.book import CategoryResponse
from bookhaven.services import catalog

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("", response_model=List[CategoryResponse])
def get_categories(db: Session = Depends(get_db)):
    """All browsable categories, alphabetically."""
    return catalog.list_categories(db)
