"""Project document schema (the exported JSON project file)."""

import json
import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class CanvasSize(BaseModel):
    width: int = 1080
    height: int = 1920

    @field_validator("width", "height")
    @classmethod
    def validate_dimensions(cls, v: int) -> int:
        if v < 1 or v > 7680:
            raise ValueError("Dimensions must be between 1 and 7680")
        return v


class Background(BaseModel):
    type: Literal["color", "image"] = "color"
    value: str = "transparent"


class Track(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    type: str | None = None
    items: list[Any] = Field(default_factory=list)


class ProjectDesign(BaseModel):
    """An editor project: canvas, background and the track item map.

    Track items are kept as raw mappings so that a document containing
    malformed items still loads; validation happens when a render plan is built.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = ""
    size: CanvasSize = Field(default_factory=CanvasSize)
    fps: int = Field(default=30, gt=0, le=120)
    background: Background = Field(default_factory=Background)
    track_items_map: dict[str, Any] | None = Field(default=None, alias="trackItemsMap")
    tracks: list[Track] | None = None

    def collect_track_items(self) -> list[Any]:
        """All raw track items, preferring the id map over per-track lists."""
        if self.track_items_map:
            items = list(self.track_items_map.values())
            logger.debug(f"Using trackItemsMap, found {len(items)} items")
            return items
        if self.tracks:
            items = [item for track in self.tracks for item in track.items]
            logger.debug(f"Using tracks.items, found {len(items)} items")
            return items
        return []

    def duration_ms(self) -> float:
        """End of the last item on the timeline."""
        end = 0.0
        for item in self.collect_track_items():
            display = item.get("display") if isinstance(item, dict) else None
            to = display.get("to") if isinstance(display, dict) else None
            if isinstance(to, (int, float)) and not isinstance(to, bool):
                end = max(end, to)
        return end

    def to_json(self) -> str:
        """Serialize as the downloadable JSON project file."""
        return json.dumps(
            self.model_dump(by_alias=True, exclude_none=True),
            indent=2,
            ensure_ascii=False,
        )
