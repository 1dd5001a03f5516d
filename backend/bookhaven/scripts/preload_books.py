# backend/bookhaven/scripts/preload_books.py

"""
Warm the local catalog with Open Library books for each category.

Usage:

  cd backend
  python -m bookhaven.scripts.preload_books
  python -m bookhaven.scripts.preload_books --category Fantasy --per-category 20
"""

import argparse
import logging

from bookhaven.database import SessionLocal, init_db
from bookhaven import models
from bookhaven.services.open_library import OpenLibraryAdapter, OpenLibraryClient, preload_categories

logger = logging.getLogger("bookhaven.preload")


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    parser = argparse.ArgumentParser(description="Preload Open Library books into the local catalog.")
    parser.add_argument(
        "--category",
        "-c",
        action="append",
        dest="categories",
        help="Category to preload. Can be given several times. Defaults to every stored category.",
    )
    parser.add_argument("--per-category", type=int, default=50)
    args = parser.parse_args()

    init_db()
    db = SessionLocal()
    try:
        names = args.categories or [c.name for c in db.query(models.Category).order_by(models.Category.name)]
        if not names:
            logger.warning("No categories to preload. Run bookhaven.scripts.seed_books first or pass --category.")
            return

        adapter = OpenLibraryAdapter(OpenLibraryClient())
        loaded = preload_categories(db, adapter, names, per_category=args.per_category)
        for name, count in loaded.items():
            logger.info("Loaded %d books for %s", count, name)
        logger.info("Preloaded %d books across %d categories", sum(loaded.values()), len(loaded))
    finally:
        db.close()


if __name__ == "__main__":
    main()
