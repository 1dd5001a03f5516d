"""Recommendation engine: preference inference, exclusion and trending fallback."""
from bookhaven.models import BookComment, SavedBook
from bookhaven.services import catalog, ratings
from bookhaven.services.recommendation_engine import infer_preferences, recommend


def _save(db, user, book):
    db.add(SavedBook(user_id=user.id, book_id=book.id))
    db.commit()


def _comment(db, user, book, text="Loved it"):
    db.add(BookComment(user_id=user.id, book_id=book.id, text=text))
    db.commit()


def test_no_history_returns_trending(db, make_book, make_user):
    for r in (4.1, 3.2, 4.9, 2.0):
        make_book(rating=r)
    user = make_user()

    picks = recommend(db, None, user.id, limit=3)

    assert [b.id for b in picks] == [b.id for b in catalog.get_trending_books(db, None, 3)]


def test_fantasy_reader_gets_unread_fantasy_first(db, make_book, make_user):
    user = make_user()
    read_1 = make_book(genre="Fantasy", author="Ursula Le Guin", rating=4.5)
    read_2 = make_book(genre="Fantasy", author="Robin Hobb", rating=4.4)
    fantasy_a = make_book(genre="Fantasy", author="Someone New", rating=4.0)
    fantasy_b = make_book(genre="Fantasy", author="Another", rating=4.6)
    scifi = make_book(genre="Science Fiction", author="Iain Banks", rating=4.9)

    ratings.rate(db, user.id, read_1.id, 5)
    ratings.rate(db, user.id, read_2.id, 4)

    picks = recommend(db, None, user.id, limit=3)
    ids = [b.id for b in picks]

    assert ids[:2] == [fantasy_b.id, fantasy_a.id]
    assert ids[2] == scifi.id  # topped up from trending
    assert read_1.id not in ids and read_2.id not in ids


def test_interacted_books_are_never_recommended(db, make_book, make_user):
    user = make_user()
    rated = make_book(genre="History", rating=4.0)
    saved = make_book(genre="History", rating=4.9)
    commented = make_book(genre="History", rating=4.8)
    others = [make_book(genre="History", rating=3.0 + i / 10) for i in range(3)]
    for _ in range(5):
        make_book(genre="Cooking", rating=5.0)

    ratings.rate(db, user.id, rated.id, 2)
    _save(db, user, saved)
    _comment(db, user, commented)

    picks = recommend(db, None, user.id, limit=10)
    ids = {b.id for b in picks}

    assert not ids & {rated.id, saved.id, commented.id}
    assert {b.id for b in others} <= ids
    assert len(picks) == 8  # every remaining book, nothing repeated


def test_history_without_metadata_falls_back_to_trending(db, make_book, make_user):
    user = make_user()
    blank = make_book(genre=None, author="")
    make_book(rating=4.0)
    _save(db, user, blank)

    picks = recommend(db, None, user.id, limit=5)

    assert [b.id for b in picks] == [b.id for b in catalog.get_trending_books(db, None, 5)]


def test_infer_preferences_weights_high_ratings_double(make_book):
    loved = make_book(genre="Horror", author="A")
    meh_1 = make_book(genre="Poetry", author="B")
    meh_2 = make_book(genre="Travel", author="C")

    prefs = infer_preferences([meh_1, meh_2, loved], {loved.id: 5, meh_1.id: 3})

    assert prefs.top_genres[0] == "Horror"
    assert prefs.top_authors[0] == "A"


def test_infer_preferences_keeps_top_three_and_first_seen_on_ties(make_book):
    books = [make_book(genre=g, author=f"Author {g}") for g in ("A", "B", "C", "D")]

    prefs = infer_preferences(books, {})

    assert prefs.top_genres == ["A", "B", "C"]
    assert len(prefs.top_authors) == 3


def test_rated_and_saved_fantasy_book_ranks_fantasy_first(db, make_book, make_user):
    user = make_user()
    liked = make_book(genre="Fantasy", rating=0.0)
    candidate = make_book(genre="Fantasy", rating=0.0)
    scifi = make_book(genre="Sci-Fi", rating=0.0)

    ratings.rate(db, user.id, liked.id, 5)
    _save(db, user, liked)

    picks = recommend(db, None, user.id, limit=5)
    ids = [b.id for b in picks]

    assert liked.id not in ids
    assert ids.index(candidate.id) < ids.index(scifi.id)
