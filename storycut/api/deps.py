from typing import Annotated

from fastapi import Depends

from storycut.services.audio_cache import AudioDataCache, get_audio_cache
from storycut.services.export_service import ExportService
from storycut.services.render_orchestrator import (
    InfrastructureCache,
    RenderOrchestrator,
    get_infrastructure_cache,
    get_render_orchestrator,
)
from storycut.services.storage_service import StorageService, get_storage_service
from storycut.services.transcription_service import TranscriptionService


def get_transcription_service() -> TranscriptionService:
    return TranscriptionService()


Orchestrator = Annotated[RenderOrchestrator, Depends(get_render_orchestrator)]
InfraCache = Annotated[InfrastructureCache, Depends(get_infrastructure_cache)]
AudioCache = Annotated[AudioDataCache, Depends(get_audio_cache)]
Storage = Annotated[StorageService, Depends(get_storage_service)]
Transcriber = Annotated[TranscriptionService, Depends(get_transcription_service)]


def get_export_service(orchestrator: Orchestrator, storage: Storage) -> ExportService:
    return ExportService(orchestrator, storage)


Exporter = Annotated[ExportService, Depends(get_export_service)]
