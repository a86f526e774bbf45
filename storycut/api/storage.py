"""Local storage API endpoints for development."""

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import FileResponse

from storycut.api.deps import Storage
from storycut.services.storage_service import LocalStorageService, guess_content_type

router = APIRouter()


@router.get("/files/{storage_key:path}")
async def get_file(storage_key: str, storage: Storage):
    """Serve uploaded media so the render provider can fetch it."""
    if not isinstance(storage, LocalStorageService):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Local storage not enabled",
        )

    file_path = storage.get_file_path(storage_key)
    if file_path is None or not file_path.is_file():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="File not found",
        )

    return FileResponse(
        path=str(file_path),
        media_type=guess_content_type(file_path.name),
        filename=file_path.name,
    )
