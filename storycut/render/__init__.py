from storycut.render.audio_data import DecodedAudio, FFmpegAudioDecoder, visualize_audio
from storycut.render.compositor import (
    RenderPlanEntry,
    TimelineCompositor,
    build_render_plan,
    validate_track_items,
)
from storycut.render.timing import frame_placement, ms_to_frame, source_window

__all__ = [
    "DecodedAudio",
    "FFmpegAudioDecoder",
    "visualize_audio",
    "RenderPlanEntry",
    "TimelineCompositor",
    "build_render_plan",
    "validate_track_items",
    "frame_placement",
    "ms_to_frame",
    "source_window",
]
