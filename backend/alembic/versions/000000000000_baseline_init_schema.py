"""baseline_init_schema

Revision ID: 000000000000
Revises:
Create Date: 2026-10-17 00:00:00.000000

This is the baseline migration that creates the catalog, rating and
library tables. All other migrations should depend on this revision.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '000000000000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('username', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('username', name='uq_users_username'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'books',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('external_id', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('author', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('cover_url', sa.String(), nullable=True),
        sa.Column('genre', sa.String(), nullable=True),
        sa.Column('is_free', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('rating', sa.Float(), nullable=False, server_default='0'),
        sa.Column('rating_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('publish_date', sa.String(), nullable=True),
        sa.Column('external_url', sa.String(), nullable=True),
        sa.CheckConstraint('rating >= 0 AND rating <= 5', name='ck_books_rating_range'),
        sa.CheckConstraint('rating_count >= 0', name='ck_books_rating_count_nonneg'),
    )
    op.create_index('ix_books_external_id', 'books', ['external_id'], unique=True)
    op.create_index('ix_books_genre', 'books', ['genre'])

    op.create_table(
        'user_ratings',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('book_id', sa.Integer(), sa.ForeignKey('books.id'), nullable=False),
        sa.Column('value', sa.Integer(), nullable=False),
        sa.Column('rated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('user_id', 'book_id', name='uq_user_ratings_user_book'),
        sa.CheckConstraint('value >= 1 AND value <= 5', name='ck_user_ratings_value_range'),
    )
    op.create_index('ix_user_ratings_user_id', 'user_ratings', ['user_id'])
    op.create_index('ix_user_ratings_book_id', 'user_ratings', ['book_id'])

    op.create_table(
        'saved_books',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('book_id', sa.Integer(), sa.ForeignKey('books.id'), nullable=False),
        sa.Column('saved_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('user_id', 'book_id', name='uq_saved_books_user_book'),
    )
    op.create_index('ix_saved_books_user_id', 'saved_books', ['user_id'])
    op.create_index('ix_saved_books_book_id', 'saved_books', ['book_id'])

    op.create_table(
        'book_comments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('book_id', sa.Integer(), sa.ForeignKey('books.id'), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_book_comments_user_id', 'book_comments', ['user_id'])
    op.create_index('ix_book_comments_book_id', 'book_comments', ['book_id'])

    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('icon', sa.String(), nullable=True),
        sa.Column('color', sa.String(), nullable=True),
        sa.Column('book_count', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint('name', name='uq_categories_name'),
    )


def downgrade() -> None:
    op.drop_table('categories')
    op.drop_index('ix_book_comments_book_id', table_name='book_comments')
    op.drop_index('ix_book_comments_user_id', table_name='book_comments')
    op.drop_table('book_comments')
    op.drop_index('ix_saved_books_book_id', table_name='saved_books')
    op.drop_index('ix_saved_books_user_id', table_name='saved_books')
    op.drop_table('saved_books')
    op.drop_index('ix_user_ratings_book_id', table_name='user_ratings')
    op.drop_index('ix_user_ratings_user_id', table_name='user_ratings')
    op.drop_table('user_ratings')
    op.drop_index('ix_books_genre', table_name='books')
    op.drop_index('ix_books_external_id', table_name='books')
    op.drop_table('books')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
