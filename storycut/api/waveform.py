"""Waveform visualization endpoints backed by the audio cache."""

from typing import Any

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from storycut.api.deps import AudioCache

router = APIRouter(prefix="/waveform")


class WaveformItemsRequest(BaseModel):
    items: list[Any] = Field(default_factory=list)
    fps: int | None = Field(default=None, gt=0, le=120)


class WaveformFrameResponse(BaseModel):
    frame: int
    samples: list[float]


@router.post("/items")
async def set_waveform_items(body: WaveformItemsRequest, cache: AudioCache) -> dict[str, Any]:
    """Replace the tracked audio-bearing items. Decoding runs in the background."""
    if body.fps is not None and body.fps != cache.fps:
        cache.set_fps(body.fps)
    cache.set_items(body.items)
    return cache.stats()


@router.put("/items/{item_id}")
async def update_waveform_item(item_id: str, item: dict[str, Any], cache: AudioCache) -> dict[str, Any]:
    if item.get("id") != item_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Item id does not match the path",
        )
    cache.update_item(item)
    return cache.stats()


@router.delete("/items/{item_id}")
async def remove_waveform_item(item_id: str, cache: AudioCache) -> dict[str, Any]:
    cache.remove_item(item_id)
    return cache.stats()


@router.get("/{frame}", response_model=WaveformFrameResponse)
async def get_waveform_frame(frame: int, cache: AudioCache) -> WaveformFrameResponse:
    """Combined amplitude-per-bucket vector for a timeline frame."""
    return WaveformFrameResponse(frame=frame, samples=cache.get_audio_data_for_frame(frame))
