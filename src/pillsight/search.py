"""Medication search: semantic ranking with keyword fallback and AI explanations."""

from __future__ import annotations

import json
import logging
import sqlite3
from time import perf_counter
from uuid import uuid4

import anyio

from pillsight.ai import AIService
from pillsight.models import SearchMode, SearchResponse, SearchResult
from pillsight.observability import MetricsStore, duration_ms
from pillsight.service import match_confidence
from pillsight.settings import Settings
from pillsight.store import MedicationRepository, ScoredMedication
from pillsight.vector import DimensionMismatchError, encode

LOGGER = logging.getLogger("pillsight.search")

NO_MATCHES = "No matching medications found."
EXPLANATION_TIMED_OUT = "AI explanation unavailable at the moment."


def _to_result(item: ScoredMedication) -> SearchResult:
    return SearchResult(
        medication_id=item.record.medication_id,
        drug=item.record.drug,
        gpt4_form=item.record.gpt4_form,
        description=item.record.description,
        similarity_score=item.similarity_score,
        match_confidence=match_confidence(item.similarity_score),
        search_mode=item.mode,
    )


class SearchService:
    def __init__(
        self,
        repository: MedicationRepository,
        ai: AIService,
        metrics: MetricsStore,
        settings: Settings,
    ) -> None:
        self._repository = repository
        self._ai = ai
        self._metrics = metrics
        self._settings = settings

    def rank(self, query: str, limit: int) -> tuple[list[ScoredMedication], str | None]:
        """Return ranked matches and the reason text search was used, if it was."""
        with self._metrics.timed("search.encode"):
            query_vector = encode(query)

        fallback_reason: str | None = None
        with self._metrics.timed("search.store"):
            try:
                scored = self._repository.semantic_search(
                    query_vector, limit, self._settings.semantic_min_similarity
                )
            except (DimensionMismatchError, sqlite3.Error) as exc:
                LOGGER.warning("semantic search failed, falling back to text search: %s", exc)
                scored = []
                fallback_reason = "semantic_error"
            if not scored:
                fallback_reason = fallback_reason or "no_semantic_match"
                scored = self._repository.text_search(query, limit)
        return scored, fallback_reason

    async def _explain(self, result: SearchResult) -> None:
        with anyio.move_on_after(self._settings.explanation_timeout_seconds) as scope:
            result.ai_explanation = await self._ai.explain(result.drug, result.gpt4_form)
        if scope.cancelled_caught:
            LOGGER.warning("explanation timed out for %s", result.drug)
            result.ai_explanation = EXPLANATION_TIMED_OUT

    async def _attach_explanations(self, results: list[SearchResult]) -> None:
        async with anyio.create_task_group() as group:
            for result in results:
                group.start_soon(self._explain, result)

    async def search(self, query: str, limit: int | None = None) -> SearchResponse:
        started = perf_counter()
        effective_limit = limit or self._settings.search_limit
        scored, fallback_reason = self.rank(query, effective_limit)
        mode = SearchMode.TEXT if fallback_reason is not None else SearchMode.SEMANTIC
        self._metrics.record_search(mode.value, fallback_reason)
        results = [_to_result(item) for item in scored]

        if results and self._settings.explanations_enabled:
            explain_started = perf_counter()
            await self._attach_explanations(results)
            self._metrics.record_stage("search.explain", duration_ms(explain_started))

        response = SearchResponse(
            results=results,
            message=None if results else NO_MATCHES,
            warning=(
                "AI explanations are temporarily unavailable."
                if results and self._settings.explanations_enabled and not self._ai.available
                else None
            ),
            trace_id=f"srch_{uuid4().hex[:8]}",
        )
        LOGGER.info(
            "search_trace %s",
            json.dumps(
                {
                    "trace_id": response.trace_id,
                    "query_chars": len(query),
                    "mode": mode.value,
                    "fallback_reason": fallback_reason,
                    "results": len(results),
                    "total_ms": round(duration_ms(started), 2),
                },
                sort_keys=True,
            ),
        )
        return response
