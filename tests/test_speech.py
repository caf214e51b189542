from __future__ import annotations

import base64
import json
import random
from typing import Any

import httpx
import pytest

from pillsight.speech import (
    MAX_TTS_CHARS,
    MOCK_TRANSCRIPTS,
    SPEECH_URL,
    TTS_URL,
    GoogleSpeechClient,
    SpeechService,
    audio_encoding,
    clean_tts_text,
)


def _client(
    body: dict[str, Any],
    status_code: int = 200,
    captured: list[httpx.Request] | None = None,
) -> GoogleSpeechClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if captured is not None:
            captured.append(request)
        return httpx.Response(status_code, json=body)

    return GoogleSpeechClient(
        api_key="speech-key",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.mark.parametrize(
    ("mime_type", "expected"),
    [
        ("audio/wav", "LINEAR16"),
        ("audio/x-wav", "LINEAR16"),
        ("audio/mp3", "MP3"),
        ("audio/flac", "FLAC"),
        ("audio/webm;codecs=opus", "WEBM_OPUS"),
        ("application/octet-stream", "WEBM_OPUS"),
    ],
)
def test_audio_encoding(mime_type: str, expected: str) -> None:
    assert audio_encoding(mime_type) == expected


def test_clean_tts_text() -> None:
    assert clean_tts_text("Hi <b>there</b> @ 5%!") == "Hi bthereb  5!"
    assert len(clean_tts_text("a" * (MAX_TTS_CHARS + 10))) == MAX_TTS_CHARS


@pytest.mark.anyio
async def test_transcribe_joins_alternatives() -> None:
    captured: list[httpx.Request] = []
    client = _client(
        {
            "results": [
                {"alternatives": [{"transcript": "pain relief"}]},
                {"alternatives": [{"transcript": "for headache"}]},
            ]
        },
        captured=captured,
    )
    service = SpeechService(client)

    result = await service.transcribe(b"RIFF-audio", "audio/wav")
    await client.aclose()

    assert result == ("pain relief for headache", "google-cloud", "high")
    request = captured[0]
    assert str(request.url) == SPEECH_URL
    assert request.headers["x-goog-api-key"] == "speech-key"
    payload = json.loads(request.content)
    assert payload["config"]["encoding"] == "LINEAR16"
    assert payload["config"]["sampleRateHertz"] == 16000
    assert payload["audio"]["content"] == base64.b64encode(b"RIFF-audio").decode("ascii")


@pytest.mark.anyio
async def test_transcribe_falls_back_to_demo_transcript() -> None:
    client = _client({"results": []})
    service = SpeechService(client, rng=random.Random(7))

    transcript, source, confidence = await service.transcribe(b"silence", "audio/webm")
    await client.aclose()

    assert transcript in MOCK_TRANSCRIPTS
    assert (source, confidence) == ("mock", "demo")


@pytest.mark.anyio
async def test_transcribe_without_client_uses_seeded_choice() -> None:
    first = await SpeechService(None, rng=random.Random(3)).transcribe(b"x", "audio/webm")
    second = await SpeechService(None, rng=random.Random(3)).transcribe(b"x", "audio/webm")
    assert first == second
    assert first[1:] == ("mock", "demo")


@pytest.mark.anyio
async def test_synthesize_decodes_audio() -> None:
    captured: list[httpx.Request] = []
    client = _client(
        {"audioContent": base64.b64encode(b"ID3-mp3-bytes").decode("ascii")},
        captured=captured,
    )
    service = SpeechService(client)

    audio = await service.synthesize("Take <one> tablet")
    await client.aclose()

    assert audio == b"ID3-mp3-bytes"
    assert str(captured[0].url) == TTS_URL
    payload = json.loads(captured[0].content)
    assert payload["input"]["text"] == "Take one tablet"
    assert payload["audioConfig"]["audioEncoding"] == "MP3"


@pytest.mark.anyio
async def test_synthesize_failures_return_none() -> None:
    empty = _client({})
    assert await SpeechService(empty).synthesize("hello") is None
    await empty.aclose()

    failing = _client({"error": {"message": "denied"}}, status_code=403)
    assert await SpeechService(failing).synthesize("hello") is None
    await failing.aclose()

    service = SpeechService(None)
    assert service.text_to_speech_available is False
    assert await service.synthesize("hello") is None
