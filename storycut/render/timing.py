"""Millisecond to frame conversion.

All conversions truncate (floor) and never round, so that neighbouring items
stay frame-contiguous.
"""

import math
from dataclasses import dataclass

from storycut.schemas.track_item import (
    AudioItem,
    Display,
    Milliseconds,
    TrackItem,
    Trim,
    VideoItem,
)


@dataclass(frozen=True)
class SourceWindow:
    """Frames of the source media to play. ``end_at_frame=None`` plays to the natural end."""

    start_from_frame: int
    end_at_frame: int | None

    def to_dict(self) -> dict:
        return {"startFrom": self.start_from_frame, "endAt": self.end_at_frame}


@dataclass(frozen=True)
class FramePlacement:
    """Frame-domain placement of one item on the master timeline."""

    from_frame: int
    duration_in_frames: int
    source: SourceWindow
    playback_rate: float = 1.0

    @property
    def to_frame(self) -> int:
        return self.from_frame + self.duration_in_frames

    def contains(self, frame: int) -> bool:
        return self.from_frame <= frame < self.to_frame


def ms_to_frame(ms: Milliseconds, fps: float) -> int:
    return math.floor(ms / 1000 * fps)


def display_frames(display: Display, fps: float) -> tuple[int, int]:
    """(from_frame, duration_in_frames) on the master timeline."""
    from_frame = ms_to_frame(display.from_, fps)
    to_frame = ms_to_frame(display.to, fps)
    return from_frame, to_frame - from_frame


def source_window(display: Display, trim: Trim | None, fps: float) -> SourceWindow:
    """Which frames of the source media play.

    Without a trim the source plays for exactly the display duration, so an
    untrimmed clip never outlasts its slot on the timeline.
    """
    if trim is not None and trim.has_bounds:
        start = ms_to_frame(trim.from_, fps) if trim.from_ else 0
        end = ms_to_frame(trim.to, fps) if trim.to is not None else None
        return SourceWindow(start_from_frame=start, end_at_frame=end)

    return SourceWindow(
        start_from_frame=0,
        end_at_frame=ms_to_frame(display.to - display.from_, fps),
    )


def frame_placement(item: TrackItem, fps: float) -> FramePlacement:
    from_frame, duration = display_frames(item.display, fps)
    if isinstance(item, (VideoItem, AudioItem)):
        return FramePlacement(
            from_frame=from_frame,
            duration_in_frames=duration,
            source=source_window(item.display, item.trim, fps),
            playback_rate=item.playback_rate,
        )
    return FramePlacement(
        from_frame=from_frame,
        duration_in_frames=duration,
        source=source_window(item.display, None, fps),
    )
