"""Speech-to-text and text-to-speech over the Google Cloud REST APIs."""

from __future__ import annotations

import base64
import logging
import random
import re
from typing import Any

import httpx

LOGGER = logging.getLogger("pillsight.speech")

SPEECH_URL = "https://speech.googleapis.com/v1/speech:recognize"
TTS_URL = "https://texttospeech.googleapis.com/v1/text:synthesize"
MAX_TTS_CHARS = 5000

MOCK_TRANSCRIPTS = (
    "I need pain relief medication for my headache",
    "Find something for fever and body aches",
    "Search for allergy medicine that won't make me drowsy",
    "What helps with stomach pain and nausea",
    "I'm looking for blood pressure medication",
    "Can you find anti-inflammatory drugs",
    "I need something for cold and flu symptoms",
    "Search for sleep aid medication",
)

_TTS_DISALLOWED = re.compile(r"[^\w\s.,!?-]")


class SpeechError(RuntimeError):
    pass


def audio_encoding(mime_type: str) -> str:
    lowered = mime_type.lower()
    if "wav" in lowered:
        return "LINEAR16"
    if "mp3" in lowered:
        return "MP3"
    if "flac" in lowered:
        return "FLAC"
    return "WEBM_OPUS"


def clean_tts_text(text: str) -> str:
    return _TTS_DISALLOWED.sub("", text)[:MAX_TTS_CHARS]


class GoogleSpeechClient:
    def __init__(
        self,
        api_key: str,
        timeout_seconds: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._headers = {"x-goog-api-key": api_key}
        self._http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    async def _post(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._http.post(url, json=payload, headers=self._headers)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            raise SpeechError(
                f"speech API returned {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise SpeechError(f"speech API request failed: {exc}") from exc
        if not isinstance(body, dict):
            raise SpeechError("speech API returned an unexpected payload")
        return body

    async def transcribe(self, audio: bytes, mime_type: str) -> str:
        encoding = audio_encoding(mime_type)
        payload = {
            "audio": {"content": base64.b64encode(audio).decode("ascii")},
            "config": {
                "encoding": encoding,
                "sampleRateHertz": 16000,
                "languageCode": "en-US",
                "enableAutomaticPunctuation": True,
                "model": "medical_conversation",
                "useEnhanced": True,
                "alternativeLanguageCodes": ["en-GB", "en-AU"],
            },
        }
        LOGGER.info("sending %d bytes to speech-to-text (%s, 16000Hz)", len(audio), encoding)
        body = await self._post(SPEECH_URL, payload)

        results = body.get("results") or []
        if not results:
            raise SpeechError("No speech detected in audio")
        transcripts = [
            str(alternatives[0].get("transcript", ""))
            for alternatives in (result.get("alternatives") or [] for result in results)
            if alternatives
        ]
        transcription = " ".join(part for part in transcripts if part).strip()
        if not transcription:
            raise SpeechError("Empty transcription result")
        return transcription

    async def synthesize(self, text: str) -> bytes:
        payload = {
            "input": {"text": clean_tts_text(text)},
            "voice": {
                "languageCode": "en-US",
                "name": "en-US-Neural2-F",
                "ssmlGender": "FEMALE",
            },
            "audioConfig": {
                "audioEncoding": "MP3",
                "speakingRate": 0.9,
                "pitch": 0.0,
                "volumeGainDb": 0.0,
                "effectsProfileId": ["headphone-class-device"],
            },
        }
        body = await self._post(TTS_URL, payload)
        content = body.get("audioContent")
        if not content:
            raise SpeechError("No audio content generated")
        return base64.b64decode(content)

    async def aclose(self) -> None:
        await self._http.aclose()


class SpeechService:
    def __init__(self, client: GoogleSpeechClient | None, rng: random.Random | None = None) -> None:
        self._client = client
        self._rng = rng or random.Random()

    @property
    def speech_to_text_available(self) -> bool:
        return self._client is not None

    @property
    def text_to_speech_available(self) -> bool:
        return self._client is not None

    async def transcribe(self, audio: bytes, mime_type: str) -> tuple[str, str, str]:
        """Return ``(transcript, source, confidence)``.

        Falls back to a canned demo transcript when the speech API is not
        configured or fails.
        """
        if self._client is not None:
            try:
                transcript = await self._client.transcribe(audio, mime_type)
                return transcript, "google-cloud", "high"
            except SpeechError as exc:
                LOGGER.warning("speech-to-text failed, using demo transcript: %s", exc)
        return self._rng.choice(MOCK_TRANSCRIPTS), "mock", "demo"

    async def synthesize(self, text: str) -> bytes | None:
        if self._client is None:
            return None
        try:
            return await self._client.synthesize(text)
        except SpeechError as exc:
            LOGGER.warning("text-to-speech failed: %s", exc)
            return None
