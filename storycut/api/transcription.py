"""
Transcription API endpoints.

Provides:
- POST /transcribe - Transcribe uploaded media and build caption items
"""

import logging

from fastapi import APIRouter, File, Form, HTTPException, UploadFile, status

from storycut.api.deps import Transcriber
from storycut.schemas.transcription import TranscribeResponse
from storycut.services.storage_service import guess_content_type
from storycut.services.transcription_service import captions_from_transcription

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/transcribe", response_model=TranscribeResponse)
def transcribe(
    service: Transcriber,
    file: UploadFile = File(...),
    language: str | None = Form(default=None),
    words_per_caption: int = Form(default=6, gt=0, alias="wordsPerCaption"),
) -> TranscribeResponse:
    """Transcribe an uploaded audio/video file with word-level timings."""
    media = file.file.read()
    if not media:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No file data provided",
        )

    filename = file.filename or "media.mp3"
    mime_type = file.content_type or guess_content_type(filename)
    if mime_type == "application/octet-stream":
        mime_type = guess_content_type(filename)

    logger.info(f"Starting transcription for file: {filename} ({len(media)} bytes)")
    transcription = service.transcribe(media, mime_type, filename, language)
    captions = captions_from_transcription(transcription, words_per_caption)
    return TranscribeResponse(transcription=transcription, captions=captions)
