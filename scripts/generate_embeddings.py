#!/usr/bin/env python3
"""Compute embeddings for stored medications that do not have one yet."""

from __future__ import annotations

import argparse
import logging

from pillsight.ingest import generate_missing_embeddings
from pillsight.store import SQLiteRepository


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Backfill PillSight medication embeddings.")
    parser.add_argument("--db", default="pillsight.db", help="Path to SQLite database file.")
    parser.add_argument(
        "--progress-every",
        type=int,
        default=100,
        help="Log progress after this many medications.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    repository = SQLiteRepository(args.db)
    try:
        processed = generate_missing_embeddings(repository, progress_every=args.progress_every)
        remaining = len(repository.missing_embeddings())
    finally:
        repository.close()
    print(f"Generated embeddings for {processed} medications ({remaining} still missing)")


if __name__ == "__main__":
    main()
