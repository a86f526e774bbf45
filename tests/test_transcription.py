"""
Tests for Whisper transcription and caption grouping.

The OpenAI API is replaced by httpx.MockTransport.
"""

import httpx
import pytest

from storycut.exceptions import TranscriptionError
from storycut.schemas.transcription import Transcription, TranscriptionWord
from storycut.services.transcription_service import (
    TranscriptionService,
    captions_from_transcription,
)

WHISPER_RESPONSE = {
    "text": " Hello there, general Kenobi.",
    "language": "english",
    "duration": 2.48,
    "words": [
        {"word": "Hello", "start": 0.0, "end": 0.42},
        {"word": "there,", "start": 0.42, "end": 0.8},
        {"word": "general", "start": 1.1, "end": 1.6},
        {"word": "Kenobi.", "start": 1.6, "end": 2.3},
    ],
    "segments": [
        {"id": 0, "start": 0.0, "end": 2.48, "text": " Hello there, general Kenobi.", "avg_logprob": -0.21},
    ],
}


def make_service(handler, api_key="sk-test") -> TranscriptionService:
    return TranscriptionService(
        api_key=api_key,
        model_name="whisper-1",
        timeout_s=5,
        transport=httpx.MockTransport(handler),
    )


class TestTranscriptionService:
    """Tests for the Whisper API call and unit conversion."""

    def test_converts_seconds_to_ms(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=WHISPER_RESPONSE)

        result = make_service(handler).transcribe(b"audio", "audio/mpeg", "clip.mp3")

        assert result.text == "Hello there, general Kenobi."
        assert result.duration_ms == 2480
        assert [(w.word, w.start_ms, w.end_ms) for w in result.words] == [
            ("Hello", 0, 420),
            ("there,", 420, 800),
            ("general", 1100, 1600),
            ("Kenobi.", 1600, 2300),
        ]
        assert result.segments[0].end_ms == 2480
        assert result.segments[0].text == "Hello there, general Kenobi."

    def test_sends_verbose_json_with_word_granularity(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = request.content
            return httpx.Response(200, json=WHISPER_RESPONSE)

        make_service(handler).transcribe(b"audio", "audio/mpeg", "clip.mp3", language="EN")

        body = captured["body"]
        assert captured["auth"] == "Bearer sk-test"
        assert b"verbose_json" in body
        assert b'name="timestamp_granularities[]"\r\n\r\nword' in body
        assert b'name="timestamp_granularities[]"\r\n\r\nsegment' in body
        assert b'name="language"\r\n\r\nen' in body
        assert b'filename="clip.mp3"' in body

    def test_missing_api_key(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("should not be called")

        with pytest.raises(TranscriptionError) as exc_info:
            make_service(handler, api_key="").transcribe(b"audio", "audio/mpeg")
        assert exc_info.value.status_code == 500

    def test_api_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(413, text="file too large")

        with pytest.raises(TranscriptionError) as exc_info:
            make_service(handler).transcribe(b"audio", "audio/mpeg")
        assert "413" in exc_info.value.message

    def test_transport_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("no route", request=request)

        with pytest.raises(TranscriptionError):
            make_service(handler).transcribe(b"audio", "audio/mpeg")


class TestCaptionsFromTranscription:
    """Tests for grouping words into caption items."""

    def _transcription(self, count: int) -> Transcription:
        return Transcription(words=[
            TranscriptionWord(word=f"w{i}", start_ms=i * 500, end_ms=i * 500 + 400) for i in range(count)
        ])

    def test_groups_words(self):
        captions = captions_from_transcription(self._transcription(8), words_per_caption=3, item_id_prefix="cap")

        assert [c.id for c in captions] == ["cap-0", "cap-1", "cap-2"]
        assert captions[0].details.text == "w0 w1 w2"
        assert (captions[0].display.from_, captions[0].display.to) == (0, 1400)
        assert (captions[2].display.from_, captions[2].display.to) == (3000, 3900)
        assert [w.start for w in captions[1].details.words] == [1500, 2000, 2500]

    def test_zero_length_words_still_get_a_slot(self):
        transcription = Transcription(words=[TranscriptionWord(word="uh", start_ms=100, end_ms=100)])
        caption = captions_from_transcription(transcription)[0]
        assert caption.display.to > caption.display.from_
        assert caption.details.words[0].end > caption.details.words[0].start

    def test_no_words(self):
        assert captions_from_transcription(Transcription()) == []

    def test_rejects_non_positive_group_size(self):
        with pytest.raises(ValueError):
            captions_from_transcription(self._transcription(2), words_per_caption=0)
