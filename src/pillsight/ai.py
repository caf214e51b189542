"""Generative AI explanations, comparisons and chat for PillSight."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from typing import Any

import httpx

from pillsight.models import ChatMessage, Medication
from pillsight.service import estimate_tokens
from pillsight.settings import DEFAULT_GEMINI_BASE_URL

LOGGER = logging.getLogger("pillsight.ai")

GENERATION_CONFIG: dict[str, Any] = {
    "maxOutputTokens": 2048,
    "temperature": 0.4,
    "topP": 0.8,
    "topK": 40,
}

EXPLANATION_UNAVAILABLE = "AI explanations are temporarily unavailable. Please try again later."
AUDIO_UNAVAILABLE = "Audio processing is temporarily unavailable. Please try again later."
QUOTA_EXCEEDED = "AI service quota exceeded. Please try again later."
CONFIGURATION_ISSUE = "AI service configuration issue. Please contact support."
EXPLANATION_FAILED = "Unable to generate AI explanation at the moment. Please try again later."
AUDIO_FAILED = "Unable to process audio query at the moment. Please try again later."

_NUMBERED_HEADING = re.compile(r"^([12]\. )(.*?):", re.MULTILINE)
_BULLET = re.compile(r"^[•●]", re.MULTILINE)


class GenerativeAIError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AIUnavailableError(RuntimeError):
    """Raised when no generative model is configured."""


class AIResponseFormatError(ValueError):
    """Raised when a model answer cannot be parsed into the expected shape."""


class GeminiClient:
    """Async client for the Generative Language ``generateContent`` endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash-001",
        base_url: str = DEFAULT_GEMINI_BASE_URL,
        timeout_seconds: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.model = model
        self._url = f"{base_url.rstrip('/')}/models/{model}:generateContent"
        self._headers = {"x-goog-api-key": api_key}
        self._http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    async def generate(
        self,
        prompt: str,
        history: Sequence[dict[str, Any]] | None = None,
        inline_audio: tuple[str, str] | None = None,
    ) -> str:
        parts: list[dict[str, Any]] = [{"text": prompt}]
        if inline_audio is not None:
            data, mime_type = inline_audio
            parts.append({"inlineData": {"data": data, "mimeType": mime_type}})
        payload = {
            "contents": [*(history or []), {"role": "user", "parts": parts}],
            "generationConfig": GENERATION_CONFIG,
        }

        try:
            response = await self._http.post(self._url, json=payload, headers=self._headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise GenerativeAIError(
                f"generative API returned {exc.response.status_code}: "
                f"{_error_message(exc.response)}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise GenerativeAIError(f"generative API request failed: {exc}") from exc

        try:
            return str(response.json()["candidates"][0]["content"]["parts"][0]["text"])
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise GenerativeAIError("Invalid AI response structure") from exc

    async def aclose(self) -> None:
        await self._http.aclose()


def _error_message(response: httpx.Response) -> str:
    try:
        error = response.json().get("error", {})
    except ValueError:
        return response.text[:200]
    if isinstance(error, dict):
        return f"{error.get('status', '')} {error.get('message', '')}".strip()
    return str(error)


def format_explanation(text: str) -> str:
    text = _NUMBERED_HEADING.sub(r"### \2:", text)
    return _BULLET.sub("-", text).strip()


def extract_json_object(text: str) -> dict[str, Any]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        raise AIResponseFormatError("The AI response was not in the expected format")
    try:
        payload = json.loads(text[start : end + 1])
    except json.JSONDecodeError as exc:
        raise AIResponseFormatError("The AI response was not in the expected format") from exc
    if not isinstance(payload, dict):
        raise AIResponseFormatError("The AI response was not in the expected format")
    return payload


def _failure_message(exc: GenerativeAIError, fallback: str) -> str:
    lowered = str(exc).lower()
    if exc.status_code == 429 or "quota" in lowered or "resource_exhausted" in lowered:
        return QUOTA_EXCEEDED
    if exc.status_code == 403 or "permission" in lowered:
        return CONFIGURATION_ISSUE
    return fallback


def explanation_prompt(drug: str, form: str) -> str:
    return f"""As a healthcare AI assistant, provide two clear explanations for {drug} ({form}):

1. Technical (Healthcare Professional) Explanation:
• Mechanism of action and pharmacological class
• Primary therapeutic effects and indications
• Key clinical considerations and contraindications

2. Patient-Friendly Explanation:
• What the medication does in simple terms
• Common uses and benefits
• Important things to remember

Format the response with clear headings and bullet points. Keep explanations concise but informative. Include only verified medical information."""


def audio_prompt(transcript: str) -> str:
    return f"""As a healthcare AI assistant, analyze this audio query about medication and provide a clear, helpful response.
Consider both the audio content and the transcribed text: "{transcript}"

Provide:
1. A direct answer to the query
2. Any relevant medication information
3. Important safety considerations

Keep the response clear, accurate, and focused on verified medical information."""


def compare_prompt(drug_name: str, form: str, country: str) -> str:
    return f"""As a pharmaceutical expert, I need the equivalent name for {drug_name} ({form}) in {country}.

Important:
1. Only provide the equivalent medication name that is commonly used in {country}
2. If it's the same name, explain any differences in branding or usage
3. Focus on accuracy and common local usage

Format the response as a JSON object with this exact structure:
{{
  "equivalent": "medication name in {country}",
  "explanation": "A brief explanation of the equivalence and any important notes about local usage"
}}

Ensure:
- The equivalent name is commonly recognized in {country}
- The explanation is clear and concise
- The JSON is valid and follows the exact structure above
- Only include verified information"""


SELF_TEST_PROMPT = """As a pharmaceutical expert, provide equivalent medications for Panadol (tablet) commonly used in UK.
Focus on:
1. Common brand names in different markets
2. Generic alternatives
3. Market availability

Format the response as a JSON object with this structure:
{
  "equivalents": [
    {
      "name": "medication name",
      "market": "country name",
      "availability": "Available/Limited/Unavailable"
    }
  ]
}

Only include verified medications and ensure the JSON is valid."""


def chat_context(message: str, medications: Sequence[Medication]) -> str:
    """System framing for one chat turn; earlier turns travel as structured history."""
    database = "\n".join(
        f"- {med.drug} ({med.gpt4_form}): {med.description}" for med in medications
    )
    return f"""You are MarmarAI, a medical assistant specialized in medication information and guidance. Your purpose is to help users understand medications while ensuring safety and proper medical guidance.

Role and Limitations:
- You are NOT a doctor and cannot diagnose conditions or prescribe medications
- You can ONLY provide information about medications in the authorized database
- You must ALWAYS encourage consulting healthcare professionals for medical decisions

Available Medications Database:
{database}

Core Guidelines:
1. Safety First:
   - NEVER recommend medications without understanding the user's situation
   - ALWAYS ask about allergies and current medications before suggestions
   - If symptoms are severe or concerning, IMMEDIATELY advise seeking medical attention

2. Medication Information:
   - ONLY suggest medications from the provided database
   - Include dosage forms, common uses, and important warnings
   - Explain potential side effects and drug interactions
   - Use clear, non-technical language when possible

3. Interaction Protocol:
   - Ask clarifying questions when symptoms or needs are unclear
   - Maintain a professional yet empathetic tone
   - Structure responses clearly using markdown formatting
   - Use bullet points and sections for better readability

4. Required Disclaimers:
   - Include a medical disclaimer in responses with medication information
   - Emphasize the importance of professional medical advice
   - Clarify that information is for educational purposes only

Current user message: {message}

Remember: Your primary goal is to educate and guide users to make informed decisions while ensuring their safety through proper medical consultation."""


class AIService:
    def __init__(self, client: GeminiClient | None) -> None:
        self._client = client

    @property
    def available(self) -> bool:
        return self._client is not None

    def _require_client(self) -> GeminiClient:
        if self._client is None:
            raise AIUnavailableError("generative AI is not configured")
        return self._client

    async def explain(self, drug: str, form: str) -> str:
        if self._client is None:
            return EXPLANATION_UNAVAILABLE
        try:
            text = await self._client.generate(explanation_prompt(drug, form))
        except GenerativeAIError as exc:
            LOGGER.error("explanation failed for %s: %s", drug, exc)
            return _failure_message(exc, EXPLANATION_FAILED)
        LOGGER.info("generated explanation for %s (~%d tokens)", drug, estimate_tokens(text))
        return format_explanation(text)

    async def explain_audio(
        self, audio_base64: str, transcript: str, mime_type: str = "audio/wav"
    ) -> str:
        if self._client is None:
            return AUDIO_UNAVAILABLE
        try:
            return await self._client.generate(
                audio_prompt(transcript), inline_audio=(audio_base64, mime_type)
            )
        except GenerativeAIError as exc:
            LOGGER.error("audio explanation failed: %s", exc)
            return _failure_message(exc, AUDIO_FAILED)

    async def compare(self, drug_name: str, form: str, country: str) -> tuple[str, str | None]:
        client = self._require_client()
        text = await client.generate(compare_prompt(drug_name, form, country))
        payload = extract_json_object(text)
        equivalent = payload.get("equivalent")
        if not isinstance(equivalent, str) or not equivalent.strip():
            raise AIResponseFormatError("The AI response did not name an equivalent")
        explanation = payload.get("explanation")
        return equivalent.strip(), str(explanation) if explanation is not None else None

    async def chat(
        self,
        message: str,
        conversation: Sequence[ChatMessage],
        medications: Sequence[Medication],
    ) -> str:
        client = self._require_client()
        history = [
            {
                "role": "model" if msg.role == "assistant" else "user",
                "parts": [{"text": msg.content}],
            }
            for msg in conversation
        ]
        return await client.generate(
            chat_context(message, medications), history=history
        )

    async def self_test(self) -> dict[str, Any]:
        client = self._require_client()
        text = await client.generate(SELF_TEST_PROMPT)
        try:
            parsed: dict[str, Any] | None = extract_json_object(text)
        except AIResponseFormatError:
            parsed = None
        return {"model": client.model, "raw": text, "parsed": parsed}
