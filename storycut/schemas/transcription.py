from pydantic import BaseModel, Field

from storycut.schemas.track_item import CaptionItem


class TranscriptionWord(BaseModel):
    word: str
    start_ms: int
    end_ms: int
    confidence: float = 1.0


class TranscriptionSegment(BaseModel):
    id: int | str
    start_ms: int
    end_ms: int
    text: str
    avg_logprob: float | None = None


class Transcription(BaseModel):
    """Word and segment timings in milliseconds from the start of the media."""

    text: str = ""
    language: str | None = None
    duration_ms: int = 0
    words: list[TranscriptionWord] = Field(default_factory=list)
    segments: list[TranscriptionSegment] = Field(default_factory=list)


class TranscribeResponse(BaseModel):
    success: bool = True
    transcription: Transcription
    captions: list[CaptionItem] = Field(default_factory=list)
