from sqlalchemy import Column, String, Integer, Text, Boolean, DateTime, Float, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import sqlalchemy as sa
from bookhaven.database import Base


class User(Base):
    """Owned by the auth service; the catalog only reads it."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String, unique=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    ratings = relationship("UserRating", back_populates="user")
    saved_books = relationship("SavedBook", back_populates="user")
    comments = relationship("BookComment", back_populates="user")


class Book(Base):
    __tablename__ = "books"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Open Library work id, e.g. "OL45804W"
    external_id = Column(String, unique=True, nullable=False, index=True)
    title = Column(String, nullable=False)
    author = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    cover_url = Column(String, nullable=True)
    genre = Column(String, nullable=True, index=True)
    is_free = Column(Boolean, nullable=False, default=False)
    # Aggregates: provisional at import, recomputed from user_ratings afterwards
    rating = Column(Float, nullable=False, default=0.0)
    rating_count = Column(Integer, nullable=False, default=0)
    publish_date = Column(String, nullable=True)
    external_url = Column(String, nullable=True)

    # Relationships
    ratings = relationship("UserRating", back_populates="book")
    saved_by = relationship("SavedBook", back_populates="book")
    comments = relationship("BookComment", back_populates="book")

    __table_args__ = (
        CheckConstraint("rating >= 0 AND rating <= 5", name="ck_books_rating_range"),
        CheckConstraint("rating_count >= 0", name="ck_books_rating_count_nonneg"),
    )


class UserRating(Base):
    """One row per (user, book); re-rating overwrites value and rated_at."""
    __tablename__ = "user_ratings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    value = Column(Integer, nullable=False)
    rated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="ratings")
    book = relationship("Book", back_populates="ratings")

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="uq_user_ratings_user_book"),
        CheckConstraint("value >= 1 AND value <= 5", name="ck_user_ratings_value_range"),
    )


class SavedBook(Base):
    __tablename__ = "saved_books"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    saved_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="saved_books")
    book = relationship("Book", back_populates="saved_by")

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="uq_saved_books_user_book"),
    )


class BookComment(Base):
    __tablename__ = "book_comments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        server_default=sa.func.now(),
        nullable=False,
    )

    # Relationships
    user = relationship("User", back_populates="comments")
    book = relationship("Book", back_populates="comments")


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, unique=True, nullable=False)
    icon = Column(String, nullable=True)
    color = Column(String, nullable=True)
    book_count = Column(Integer, nullable=False, default=0)  # display only, not kept in sync
