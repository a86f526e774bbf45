"""Timeline validation and composition.

Turns an arbitrary, possibly malformed list of track items into the ordered,
frame-converted render plan handed to the rendering engine. The projection is
pure: the preview and the offline renderer get identical plans for identical
input.

Z-order (bottom to top):
0: video / audio
1: image
2: text
3: caption
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any

from storycut.exceptions import TrackItemValidationError
from storycut.render.timing import SourceWindow, frame_placement
from storycut.schemas.project import Background
from storycut.schemas.track_item import (
    TYPE_PRIORITY,
    TrackItem,
    dump_track_item,
    parse_track_item,
    type_priority,
)

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def check_track_item(raw: Any) -> None:
    """Raise TrackItemValidationError if the raw item cannot be placed on the timeline."""
    if not isinstance(raw, dict):
        raise TrackItemValidationError(f"not an object ({type(raw).__name__})")

    item_id = raw.get("id")
    item_type = raw.get("type")
    if not item_id or not isinstance(item_id, str):
        raise TrackItemValidationError("missing id")
    if not item_type:
        raise TrackItemValidationError("missing type", item_id)
    if item_type not in TYPE_PRIORITY:
        raise TrackItemValidationError(f"unrecognized type {item_type!r}", item_id)

    display = raw.get("display")
    if not isinstance(display, dict):
        raise TrackItemValidationError("missing display", item_id)

    start, end = display.get("from"), display.get("to")
    if not _is_number(start) or not _is_number(end):
        raise TrackItemValidationError(f"invalid display values from={start!r} to={end!r}", item_id)
    if start < 0 or end <= start:
        raise TrackItemValidationError(f"invalid display range from={start} to={end}", item_id)


def validate_track_items(raw_items: list[Any]) -> list[TrackItem]:
    """Keep the items that can be rendered, in their original order.

    Invalid items are dropped with a warning; this never raises.
    """
    valid: list[TrackItem] = []
    for index, raw in enumerate(raw_items):
        if hasattr(raw, "model_dump"):
            raw = dump_track_item(raw)
        try:
            check_track_item(raw)
        except TrackItemValidationError as e:
            logger.warning(f"Dropping track item #{index}: {e.message}")
            continue

        item = parse_track_item(raw)
        if item is None:
            logger.warning(f"Dropping track item #{index} ({raw['id']}): invalid details")
            continue
        valid.append(item)

    logger.info(
        f"Track item validation: total={len(raw_items)} valid={len(valid)} "
        f"invalid={len(raw_items) - len(valid)}"
    )
    return valid


def sort_by_z_order(items: list[TrackItem]) -> list[TrackItem]:
    """Stable sort so video/audio render beneath image, text and captions."""
    return sorted(items, key=lambda item: type_priority(item.type))


@dataclass(frozen=True)
class RenderPlanEntry:
    """One item placed on the frame grid."""

    item: TrackItem
    from_frame: int
    duration_in_frames: int
    source: SourceWindow
    playback_rate: float = 1.0

    @property
    def item_id(self) -> str:
        return self.item.id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.item.id,
            "type": self.item.type,
            "fromFrame": self.from_frame,
            "durationInFrames": self.duration_in_frames,
            "startFrom": self.source.start_from_frame,
            "endAt": self.source.end_at_frame,
            "playbackRate": self.playback_rate,
        }


def build_render_plan(raw_items: list[Any], fps: float) -> list[RenderPlanEntry]:
    """Validate, order and convert items into render plan entries."""
    plan: list[RenderPlanEntry] = []
    for item in sort_by_z_order(validate_track_items(raw_items)):
        placement = frame_placement(item, fps)
        if placement.duration_in_frames <= 0:
            # Sub-frame display windows collapse to zero under floor
            logger.warning(f"Track item {item.id} has invalid duration: {placement.duration_in_frames} frames")
            continue
        plan.append(
            RenderPlanEntry(
                item=item,
                from_frame=placement.from_frame,
                duration_in_frames=placement.duration_in_frames,
                source=placement.source,
                playback_rate=placement.playback_rate,
            )
        )
    return plan


@dataclass
class TimelineCompositor:
    """Builds render plans and render-engine props for one canvas."""

    fps: int = 30
    width: int = 1080
    height: int = 1920
    background: Background = field(default_factory=Background)

    def plan(self, raw_items: list[Any]) -> list[RenderPlanEntry]:
        return build_render_plan(raw_items, self.fps)

    def duration_in_frames(self, plan: list[RenderPlanEntry]) -> int:
        return max((entry.from_frame + entry.duration_in_frames for entry in plan), default=0)

    def composition_props(
        self,
        raw_items: list[Any],
        duration_in_seconds: float | None = None,
    ) -> dict[str, Any]:
        """Typed props object for the render bundle's composition.

        Only items that survive the plan are sent, already in z-order.
        """
        plan = self.plan(raw_items)
        if duration_in_seconds is None:
            duration_in_seconds = max(
                (entry.item.display.to for entry in plan),
                default=0,
            ) / 1000
        return {
            "trackItems": [dump_track_item(entry.item) for entry in plan],
            "background": self.background.model_dump(),
            "videoWidth": self.width,
            "videoHeight": self.height,
            "fps": self.fps,
            "durationInSeconds": duration_in_seconds,
        }

