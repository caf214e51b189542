"""Cross-country medication comparison and the grounded chat assistant."""

from __future__ import annotations

import logging

from pillsight.ai import AIService
from pillsight.models import (
    ChatMedication,
    ChatRequest,
    ChatResponse,
    CompareRequest,
    CompareResponse,
)
from pillsight.store import MedicationRepository

LOGGER = logging.getLogger("pillsight.assistant")

CHAT_GROUNDING_LIMIT = 5


class AssistantService:
    def __init__(self, repository: MedicationRepository, ai: AIService) -> None:
        self._repository = repository
        self._ai = ai

    async def compare(self, request: CompareRequest) -> CompareResponse:
        """Find the local name of a drug, preferring stored data over the model."""
        match = self._repository.find_equivalent(
            drug_name=request.drug_name,
            form=request.form,
            country=request.country,
        )
        if match is not None:
            LOGGER.info("equivalent for %s found in database: %s", request.drug_name, match.drug)
            return CompareResponse(
                original_drug=request.drug_name,
                original_form=request.form,
                target_country=request.country,
                equivalent=match.drug,
                source="database",
            )

        LOGGER.info("no stored equivalent for %s, asking the model", request.drug_name)
        equivalent, explanation = await self._ai.compare(
            request.drug_name, request.form, request.country
        )
        return CompareResponse(
            original_drug=request.drug_name,
            original_form=request.form,
            target_country=request.country,
            equivalent=equivalent,
            explanation=explanation,
            source="ai",
        )

    async def chat(self, request: ChatRequest) -> ChatResponse:
        medications = self._repository.contains_search(request.message, CHAT_GROUNDING_LIMIT)
        message = await self._ai.chat(request.message, request.conversation, medications)
        return ChatResponse(
            message=message,
            medications=[
                ChatMedication(drug=med.drug, form=med.gpt4_form, description=med.description)
                for med in medications
            ],
        )
