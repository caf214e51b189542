"""PillSight command-line interface."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from urllib.error import URLError
from urllib.request import urlopen

from pillsight.ingest import generate_missing_embeddings, import_medications
from pillsight.main import run as run_api
from pillsight.store import SQLiteRepository
from pillsight.vector import EMBEDDING_DIM, cosine_similarity, encode, tokenize, vector_norm


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="PillSight operations CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve-api", help="Run PillSight API server")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8080)
    serve.add_argument(
        "--log-level", default="info", choices=["debug", "info", "warning", "error"]
    )

    sqlite = subparsers.add_parser("init-sqlite", help="Initialize SQLite database")
    sqlite.add_argument("--db", default="pillsight.db")

    importer = subparsers.add_parser("import", help="Import medications from a JSON file")
    importer.add_argument("--db", default="pillsight.db")
    importer.add_argument("--input", required=True)
    importer.add_argument(
        "--skip-embeddings",
        action="store_true",
        help="Store documents without vectors; run generate-embeddings later",
    )

    embeddings = subparsers.add_parser(
        "generate-embeddings",
        help="Compute vectors for stored medications that have none",
    )
    embeddings.add_argument("--db", default="pillsight.db")
    embeddings.add_argument("--progress-every", type=int, default=100)

    encoder = subparsers.add_parser("encode", help="Print the embedding of a text")
    encoder.add_argument("--text", required=True)
    encoder.add_argument("--full", action="store_true", help="Print all components")

    similarity = subparsers.add_parser("similarity", help="Score two texts against each other")
    similarity.add_argument("left")
    similarity.add_argument("right")

    health = subparsers.add_parser("health", help="Run HTTP health check")
    health.add_argument("--url", default="http://localhost:8080/healthz")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if args.command == "serve-api":
        run_api(host=args.host, port=args.port, log_level=args.log_level)
        return 0

    if args.command == "init-sqlite":
        repository = SQLiteRepository(args.db)
        try:
            indexes = repository.indexes()
        finally:
            repository.close()
        print(f"Initialized SQLite DB at {args.db} ({len(indexes)} indexes)")
        return 0

    if args.command == "import":
        repository = SQLiteRepository(args.db)
        try:
            imported = import_medications(
                repository, args.input, embed=not args.skip_embeddings
            )
        except (OSError, ValueError) as exc:
            print(f"Import failed: {exc}", file=sys.stderr)
            return 1
        finally:
            repository.close()
        print(f"Imported {imported} medications into {args.db}")
        return 0

    if args.command == "generate-embeddings":
        repository = SQLiteRepository(args.db)
        try:
            processed = generate_missing_embeddings(
                repository, progress_every=args.progress_every
            )
        finally:
            repository.close()
        print(f"Generated embeddings for {processed} medications")
        return 0

    if args.command == "encode":
        vector = encode(args.text)
        payload: dict[str, object] = {
            "tokens": tokenize(args.text),
            "dimension": EMBEDDING_DIM,
            "norm": round(vector_norm(vector), 6),
            "head": [round(value, 6) for value in vector[:8]],
        }
        if args.full:
            payload["vector"] = vector
        print(json.dumps(payload, indent=2))
        return 0

    if args.command == "similarity":
        score = cosine_similarity(encode(args.left), encode(args.right))
        print(json.dumps({"left": args.left, "right": args.right, "similarity": score}))
        return 0

    if args.command == "health":
        try:
            with urlopen(args.url, timeout=5) as response:
                payload_text = response.read().decode("utf-8")
            print(payload_text)
            return 0
        except URLError as exc:
            print(f"Health check failed: {exc}", file=sys.stderr)
            return 1

    parser.error(f"Unsupported command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
