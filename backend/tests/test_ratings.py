"""Rating service: per-user upsert and the book aggregate recomputed from all ratings."""
import pytest
from sqlalchemy.orm import Session

from bookhaven.core.errors import NotFoundError, PersistenceError, ValidationError
from bookhaven.models import UserRating
from bookhaven.services import ratings
from bookhaven.utils.rounding import round_half_up

from conftest import miss_once


def _rating_rows(db: Session, book_id: int):
    return db.query(UserRating).filter(UserRating.book_id == book_id).all()


def test_first_rating_replaces_provisional_values(db, make_book, make_user):
    book = make_book(rating=4.7, rating_count=350)
    user = make_user()

    rating, updated = ratings.rate(db, user.id, book.id, 2)

    assert rating.value == 2
    assert updated.rating == 2.0
    assert updated.rating_count == 1


def test_two_users_average(db, make_book, make_user):
    book = make_book()
    alice, bob = make_user(), make_user()

    ratings.rate(db, alice.id, book.id, 4)
    _, updated = ratings.rate(db, bob.id, book.id, 2)

    assert updated.rating == 3.0
    assert updated.rating_count == 2


def test_rerating_overwrites_instead_of_adding(db, make_book, make_user):
    book = make_book()
    user = make_user()

    ratings.rate(db, user.id, book.id, 5)
    _, updated = ratings.rate(db, user.id, book.id, 1)

    rows = _rating_rows(db, book.id)
    assert len(rows) == 1
    assert rows[0].value == 1
    assert updated.rating == 1.0
    assert updated.rating_count == 1


def test_aggregate_matches_all_ratings_after_mixed_writes(db, make_book, make_user):
    book = make_book()
    users = [make_user() for _ in range(4)]

    ratings.rate(db, users[0].id, book.id, 3)
    ratings.rate(db, users[1].id, book.id, 4)
    ratings.rate(db, users[2].id, book.id, 4)
    ratings.rate(db, users[0].id, book.id, 4)
    _, updated = ratings.rate(db, users[3].id, book.id, 3)

    values = [r.value for r in _rating_rows(db, book.id)]
    assert updated.rating_count == len(values) == 4
    assert updated.rating == round_half_up(sum(values) / len(values), 1)
    assert updated.rating == 3.8  # 15 / 4 = 3.75 rounds half up


def test_one_decimal_rounding(db, make_book, make_user):
    book = make_book()
    users = [make_user() for _ in range(3)]

    for user, value in zip(users, (5, 4, 4)):
        _, updated = ratings.rate(db, user.id, book.id, value)

    assert updated.rating == 4.3


@pytest.mark.parametrize("value", [0, 6, -1, True, "5", 4.5, None])
def test_invalid_value_writes_nothing(db, make_book, make_user, value):
    book = make_book(rating=4.2, rating_count=120)
    user = make_user()

    with pytest.raises(ValidationError):
        ratings.rate(db, user.id, book.id, value)

    db.refresh(book)
    assert _rating_rows(db, book.id) == []
    assert book.rating == 4.2
    assert book.rating_count == 120


def test_unknown_book_is_not_found(db, make_user):
    user = make_user()
    with pytest.raises(NotFoundError):
        ratings.rate(db, user.id, 999999, 3)


def test_concurrent_first_rating_updates_the_existing_row(db, make_book, make_user, monkeypatch):
    book = make_book()
    user = make_user()
    ratings.rate(db, user.id, book.id, 2)
    # The lookup misses the row once, so the insert hits the unique constraint
    monkeypatch.setattr(ratings, "_find_rating", miss_once(ratings._find_rating))

    rating, updated = ratings.rate(db, user.id, book.id, 5)

    rows = _rating_rows(db, book.id)
    assert len(rows) == 1
    assert rows[0].id == rating.id
    assert rating.value == 5
    assert updated.rating == 5.0
    assert updated.rating_count == 1


def test_conflict_with_no_visible_rating_is_a_persistence_error(db, make_book, make_user, monkeypatch):
    book = make_book()
    user = make_user()
    ratings.rate(db, user.id, book.id, 2)
    monkeypatch.setattr(ratings, "_find_rating", lambda db_, user_id, book_id: None)

    with pytest.raises(PersistenceError):
        ratings.rate(db, user.id, book.id, 5)

    rows = _rating_rows(db, book.id)
    assert [r.value for r in rows] == [2]


def test_recompute_without_ratings_keeps_import_values(db, make_book):
    book = make_book(rating=3.9, rating_count=75)
    ratings.recompute_book_rating(db, book)
    assert book.rating == 3.9
    assert book.rating_count == 75


def test_get_user_ratings_highest_first(db, make_book, make_user):
    user = make_user()
    low, high = make_book(), make_book()
    ratings.rate(db, user.id, low.id, 2)
    ratings.rate(db, user.id, high.id, 5)

    rows = ratings.get_user_ratings(db, user.id)

    assert [r.book_id for r in rows] == [high.id, low.id]
    assert rows[0].book.title == high.title
    assert ratings.get_user_rating(db, user.id, low.id).value == 2
    assert ratings.get_user_rating(db, user.id, 424242) is None


def test_round_half_up():
    assert round_half_up(3.25) == 3.3
    assert round_half_up(3.75) == 3.8
    assert round_half_up(10 / 3) == 3.3
    assert round_half_up(2.5, 0) == 3.0
