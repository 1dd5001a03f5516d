import math
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional, List


class CamelModel(BaseModel):
    """Response models serialize as camelCase for the web client."""
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class BookResponse(CamelModel):
    id: int
    external_id: str
    title: str
    author: str
    description: Optional[str] = None
    cover_url: Optional[str] = None
    genre: Optional[str] = None
    is_free: bool = False
    rating: float = 0.0
    rating_count: int = 0
    publish_date: Optional[str] = None
    external_url: Optional[str] = None


class BookDetailResponse(BookResponse):
    is_saved: bool = False


class PaginationInfo(CamelModel):
    """
    Page metadata for book listings.

    total_books is exact for local-only results. When a page was topped up
    from Open Library it is a placeholder upper bound, so total_pages and
    has_next_page are approximate too.
    """
    total_books: int
    total_pages: int
    current_page: int
    limit: int
    offset: int
    has_next_page: bool
    has_prev_page: bool
    next_page_offset: Optional[int] = None
    prev_page_offset: Optional[int] = None

    @classmethod
    def build(cls, total: int, limit: int, offset: int) -> "PaginationInfo":
        total_pages = math.ceil(total / limit) if limit else 0
        current_page = offset // limit + 1 if limit else 1
        has_next_page = current_page < total_pages
        has_prev_page = current_page > 1
        return cls(
            total_books=total,
            total_pages=total_pages,
            current_page=current_page,
            limit=limit,
            offset=offset,
            has_next_page=has_next_page,
            has_prev_page=has_prev_page,
            next_page_offset=offset + limit if has_next_page else None,
            prev_page_offset=max(0, offset - limit) if has_prev_page else None,
        )


class PaginatedBooksResponse(CamelModel):
    books: List[BookResponse]
    pagination: PaginationInfo


class CategoryResponse(CamelModel):
    id: int
    name: str
    icon: Optional[str] = None
    color: Optional[str] = None
    book_count: int = 0
