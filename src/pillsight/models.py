"""API and domain models for PillSight."""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field


class MatchConfidence(StrEnum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class SearchMode(StrEnum):
    SEMANTIC = "semantic"
    TEXT = "text"


class MedicationInput(BaseModel):
    drug: str = Field(min_length=1, max_length=256)
    gpt4_form: str = Field(default="", max_length=256)
    description: str = Field(default="", max_length=8000)
    category: str | None = Field(default=None, max_length=256)
    common_uses: str | None = Field(default=None, max_length=2000)
    country: str | None = Field(default=None, max_length=128)


class Medication(BaseModel):
    medication_id: str
    drug: str
    gpt4_form: str
    description: str
    category: str | None = None
    common_uses: str | None = None
    country: str | None = None
    has_embedding: bool = False


class SearchRequest(BaseModel):
    query: str = Field(min_length=1, max_length=1024)
    limit: int | None = Field(default=None, ge=1, le=50)


class SearchResult(BaseModel):
    medication_id: str
    drug: str
    gpt4_form: str
    description: str
    similarity_score: float = Field(ge=0.0, le=100.0)
    match_confidence: MatchConfidence
    search_mode: SearchMode
    ai_explanation: str | None = None


class SearchResponse(BaseModel):
    results: list[SearchResult]
    message: str | None = None
    warning: str | None = None
    trace_id: str


class CompareRequest(BaseModel):
    drug_name: str = Field(min_length=1, max_length=256)
    form: str = Field(min_length=1, max_length=256)
    country: str = Field(min_length=1, max_length=128)


class CompareResponse(BaseModel):
    original_drug: str
    original_form: str
    target_country: str
    equivalent: str
    explanation: str | None = None
    source: Literal["database", "ai"]


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(min_length=1, max_length=8000)


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=4000)
    conversation: list[ChatMessage] = Field(default_factory=list, max_length=50)


class ChatMedication(BaseModel):
    drug: str
    form: str
    description: str


class ChatResponse(BaseModel):
    message: str
    medications: list[ChatMedication]


class TextToSpeechRequest(BaseModel):
    text: str = Field(min_length=1, max_length=20000)


class TranscriptResponse(BaseModel):
    transcript: str
    source: Literal["google-cloud", "mock"]
    confidence: Literal["high", "demo"]
    enhanced_response: str | None = None


class FormShare(BaseModel):
    form: str
    count: int
    percentage: float


class PopularSearch(BaseModel):
    query: str
    count: int


class DatabaseStats(BaseModel):
    total_medications: int
    form_distribution: list[FormShare]
    popular_searches: list[PopularSearch]


class SystemStatus(BaseModel):
    database: bool = False
    ai_model: bool = False
    google_cloud: bool = False
    speech_to_text: bool = False
    text_to_speech: bool = False
    generative_ai: bool = False
    webrtc: bool = False
