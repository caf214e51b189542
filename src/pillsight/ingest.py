"""Medication dataset import and embedding backfill."""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

from pydantic import ValidationError

from pillsight.models import MedicationInput
from pillsight.service import embedding_text
from pillsight.store import MedicationRepository
from pillsight.vector import encode

LOGGER = logging.getLogger("pillsight.ingest")


def load_medications(path: str | Path) -> list[MedicationInput]:
    """Read medications from a JSON array or a ``{"medications": [...]}`` object."""
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("medications")
    if not isinstance(payload, list):
        raise ValueError("medication dataset must be a JSON array")

    items: list[MedicationInput] = []
    for index, entry in enumerate(payload):
        try:
            items.append(MedicationInput.model_validate(entry))
        except ValidationError as exc:
            raise ValueError(f"invalid medication at index {index}: {exc}") from exc
    return items


def import_medications(
    repository: MedicationRepository, path: str | Path, embed: bool = True
) -> int:
    items = load_medications(path)
    medication_ids = repository.add(items, embed=embed)
    LOGGER.info("imported %d medications from %s", len(medication_ids), path)
    return len(medication_ids)


def generate_missing_embeddings(
    repository: MedicationRepository, progress_every: int = 100
) -> int:
    pending = repository.missing_embeddings()
    LOGGER.info("found %d medications without embeddings", len(pending))

    processed = 0
    for record in pending:
        try:
            stored = repository.set_embedding(
                record.medication_id, encode(embedding_text(record))
            )
        except (sqlite3.Error, ValueError):
            LOGGER.exception("failed to embed medication %s", record.medication_id)
            continue
        if not stored:
            LOGGER.error(
                "medication %s disappeared before its embedding was stored",
                record.medication_id,
            )
            continue
        processed += 1
        if progress_every > 0 and processed % progress_every == 0:
            LOGGER.info("processed %d/%d medications", processed, len(pending))

    LOGGER.info("generated embeddings for %d medications", processed)
    return processed
