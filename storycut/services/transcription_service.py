"""
Transcription service using OpenAI Whisper API.

Produces word-level timings in milliseconds and groups them into caption
track items.
"""

import logging
import uuid

import httpx

from storycut.config import get_settings
from storycut.exceptions import TranscriptionError
from storycut.schemas.track_item import CaptionDetails, CaptionItem, CaptionWord, Display
from storycut.schemas.transcription import (
    Transcription,
    TranscriptionSegment,
    TranscriptionWord,
)

logger = logging.getLogger(__name__)

WHISPER_URL = "https://api.openai.com/v1/audio/transcriptions"


def _to_ms(seconds: float | int | None) -> int:
    if seconds is None:
        return 0
    return max(int(round(float(seconds) * 1000)), 0)


class TranscriptionService:
    """
    Service for transcribing audio/video bytes with OpenAI Whisper.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model_name: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Args:
            api_key: OpenAI key; defaults to settings.openai_api_key
            model_name: Whisper model (whisper-1)
            timeout_s: Request timeout
            transport: Optional httpx transport, used by tests
        """
        self.settings = get_settings()
        self.api_key = api_key if api_key is not None else self.settings.openai_api_key
        self.model_name = model_name or self.settings.transcription_model
        self.timeout_s = timeout_s or self.settings.transcription_timeout_s
        self._transport = transport

    def transcribe(
        self,
        media: bytes,
        mime_type: str,
        filename: str = "media.mp3",
        language: str | None = None,
    ) -> Transcription:
        """Transcribe media and return word/segment timings in ms.

        Raises:
            TranscriptionError: missing API key, transport failure, or a
                non-200 response from the API.
        """
        payload = self._call_openai_api(media, mime_type, filename, language)
        transcription = self._convert(payload)
        logger.info(
            f"Transcribed {filename}: {len(transcription.words)} words, "
            f"{len(transcription.segments)} segments, {transcription.duration_ms}ms"
        )
        return transcription

    def _call_openai_api(
        self,
        media: bytes,
        mime_type: str,
        filename: str,
        language: str | None,
    ) -> dict:
        """Call OpenAI Whisper API for transcription."""
        if not self.api_key:
            raise TranscriptionError("OPENAI_API_KEY not configured", status_code=500)

        data: dict[str, str | list[str]] = {
            "model": self.model_name,
            "response_format": "verbose_json",
            "timestamp_granularities[]": ["word", "segment"],
        }
        if language:
            data["language"] = language.lower()

        try:
            with httpx.Client(timeout=self.timeout_s, transport=self._transport) as client:
                response = client.post(
                    WHISPER_URL,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    files={"file": (filename, media, mime_type)},
                    data=data,
                )
        except httpx.HTTPError as e:
            raise TranscriptionError(f"OpenAI API request failed: {e}") from e

        if response.status_code != 200:
            raise TranscriptionError(
                f"OpenAI API error: {response.status_code} - {response.text[:500]}"
            )
        return response.json()

    def _convert(self, payload: dict) -> Transcription:
        """Convert the verbose_json payload (seconds) to our format (ms)."""
        words = [
            TranscriptionWord(
                word=w["word"].strip(),
                start_ms=_to_ms(w.get("start")),
                end_ms=_to_ms(w.get("end")),
                confidence=1.0,  # Whisper doesn't provide word-level confidence
            )
            for w in payload.get("words") or []
            if w.get("word", "").strip()
        ]
        segments = [
            TranscriptionSegment(
                id=seg.get("id", index),
                start_ms=_to_ms(seg.get("start")),
                end_ms=_to_ms(seg.get("end")),
                text=(seg.get("text") or "").strip(),
                avg_logprob=seg.get("avg_logprob"),
            )
            for index, seg in enumerate(payload.get("segments") or [])
        ]
        return Transcription(
            text=(payload.get("text") or "").strip(),
            language=payload.get("language"),
            duration_ms=_to_ms(payload.get("duration")),
            words=words,
            segments=segments,
        )


def captions_from_transcription(
    transcription: Transcription,
    words_per_caption: int = 6,
    item_id_prefix: str | None = None,
) -> list[CaptionItem]:
    """Group words into caption items spanning their first to last word."""
    if words_per_caption <= 0:
        raise ValueError("words_per_caption must be positive")

    prefix = item_id_prefix or f"caption-{uuid.uuid4().hex[:8]}"
    captions: list[CaptionItem] = []
    for index in range(0, len(transcription.words), words_per_caption):
        group = transcription.words[index:index + words_per_caption]
        start = min(w.start_ms for w in group)
        end = max(w.end_ms for w in group)
        if end <= start:
            # Zero-length word timings still need a visible slot
            end = start + 1

        captions.append(CaptionItem(
            id=f"{prefix}-{len(captions)}",
            display=Display(from_=start, to=end),
            details=CaptionDetails(
                text=" ".join(w.word for w in group),
                words=[
                    CaptionWord(word=w.word, start=w.start_ms, end=max(w.end_ms, w.start_ms + 1))
                    for w in group
                ],
            ),
        ))
    return captions
