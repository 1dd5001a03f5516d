# backend/bookhaven/scripts/seed_books.py

"""
Seed categories, sample books and a demo user from a JSON file.

Usage examples:

  cd backend
  python -m bookhaven.scripts.seed_books

  # Seed a different file
  python -m bookhaven.scripts.seed_books --file path/to/catalog.json

Existing books (matched by external_id) are refreshed in place, except for
rating/rating_count once anyone has rated them locally.
"""

import argparse
import json
from pathlib import Path

from sqlalchemy.orm import Session

from bookhaven.database import SessionLocal, init_db
from bookhaven import models
from bookhaven.services.open_library import OpenLibraryClient

BASE_DIR = Path(__file__).resolve().parent.parent

DEFAULT_FILE = BASE_DIR / "data" / "seed_catalog.json"

BOOK_FIELDS = ("title", "author", "description", "genre", "is_free", "publish_date")


def _record_path(external_id: str) -> str:
    # Open Library ids ending in W are works, M are editions
    return f"/works/{external_id}" if external_id.endswith("W") else f"/books/{external_id}"


def _load_seed_file(path: Path) -> dict:
    if not path.exists():
        raise FileNotFoundError(f"Seed file not found: {path}")

    print(f"[seed_books] Loading seed data from: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Expected an object with categories/books/users in {path}, got {type(data)}")
    return data


def _seed_categories(db: Session, rows: list[dict]) -> int:
    created = 0
    for c in rows:
        name = (c.get("name") or "").strip()
        if not name:
            continue
        existing = db.query(models.Category).filter(models.Category.name == name).one_or_none()
        if existing:
            existing.icon = c.get("icon")
            existing.color = c.get("color")
            existing.book_count = c.get("book_count") or 0
            continue
        db.add(models.Category(
            name=name,
            icon=c.get("icon"),
            color=c.get("color"),
            book_count=c.get("book_count") or 0,
        ))
        created += 1
    return created


def _seed_books(db: Session, rows: list[dict]) -> tuple[int, int, int]:
    client = OpenLibraryClient()
    created = updated = skipped = 0

    for b in rows:
        external_id = (b.get("external_id") or "").strip()
        title = (b.get("title") or "").strip()
        if not external_id or not title:
            skipped += 1
            continue

        values = {field: b.get(field) for field in BOOK_FIELDS}
        values["title"] = title
        values["author"] = (b.get("author") or "").strip() or "Unknown Author"
        values["is_free"] = bool(values["is_free"])

        existing = db.query(models.Book).filter(models.Book.external_id == external_id).one_or_none()
        if existing:
            for field, value in values.items():
                setattr(existing, field, value)
            # Local ratings own these once they exist
            if not existing.ratings:
                existing.rating = float(b.get("rating") or 0)
                existing.rating_count = int(b.get("rating_count") or 0)
            updated += 1
            continue

        db.add(models.Book(
            external_id=external_id,
            cover_url=b.get("cover_url"),
            external_url=b.get("external_url") or client.work_url(_record_path(external_id)),
            rating=float(b.get("rating") or 0),
            rating_count=int(b.get("rating_count") or 0),
            **values,
        ))
        created += 1

    return created, updated, skipped


def _seed_users(db: Session, rows: list[dict]) -> int:
    created = 0
    for u in rows:
        username = (u.get("username") or "").strip()
        if not username:
            continue
        if db.query(models.User).filter(models.User.username == username).one_or_none():
            continue
        db.add(models.User(username=username, email=u.get("email"), full_name=u.get("full_name")))
        created += 1
    return created


def seed(path: Path) -> None:
    data = _load_seed_file(path)
    init_db()

    db: Session = SessionLocal()
    try:
        categories = _seed_categories(db, data.get("categories") or [])
        created, updated, skipped = _seed_books(db, data.get("books") or [])
        users = _seed_users(db, data.get("users") or [])
        db.commit()
        print(
            f"[seed_books] Seed complete. Categories created={categories}, "
            f"Books created={created}, updated={updated}, skipped={skipped}, Users created={users}"
        )
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Seed the BookHaven catalog from a JSON file.")
    parser.add_argument(
        "--file",
        "-f",
        dest="file",
        help="Path to a JSON seed file. Defaults to data/seed_catalog.json.",
    )
    args = parser.parse_args()

    path = Path(args.file).resolve() if args.file else DEFAULT_FILE
    seed(path)


if __name__ == "__main__":
    main()
