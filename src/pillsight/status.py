"""Database statistics and system status checks."""

from __future__ import annotations

import logging
import math
import sqlite3

from pillsight.ai import AIService
from pillsight.models import DatabaseStats, FormShare, PopularSearch, SystemStatus
from pillsight.speech import SpeechService
from pillsight.store import MedicationRepository
from pillsight.vector import cosine_similarity, encode

LOGGER = logging.getLogger("pillsight.status")

POPULAR_SEARCHES = ("pain relief", "headache", "fever", "allergy", "blood pressure")


def database_stats(repository: MedicationRepository) -> DatabaseStats:
    total = repository.count()
    distribution = [
        FormShare(
            form=form,
            count=count,
            percentage=(count / total) * 100.0 if total else 0.0,
        )
        for form, count in repository.form_distribution(limit=10)
    ]
    popular = [
        PopularSearch(query=phrase, count=repository.count_description_matches(phrase))
        for phrase in POPULAR_SEARCHES
    ]
    return DatabaseStats(
        total_medications=total,
        form_distribution=distribution,
        popular_searches=popular,
    )


def encoder_healthy() -> bool:
    first = encode("test")
    second = encode("test2")
    similarity = cosine_similarity(first, second)
    return len(first) > 0 and math.isfinite(similarity)


def system_status(
    repository: MedicationRepository,
    ai: AIService,
    speech: SpeechService,
) -> SystemStatus:
    status = SystemStatus()

    try:
        status.database = repository.ping()
    except sqlite3.Error as exc:
        LOGGER.warning("database check failed: %s", exc)

    try:
        status.ai_model = encoder_healthy()
    except ValueError as exc:
        LOGGER.warning("embedding encoder check failed: %s", exc)

    status.generative_ai = ai.available
    status.speech_to_text = speech.speech_to_text_available
    status.text_to_speech = speech.text_to_speech_available
    status.google_cloud = status.speech_to_text or status.text_to_speech

    LOGGER.info("system status %s", status.model_dump())
    return status
