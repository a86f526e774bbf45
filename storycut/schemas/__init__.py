from storycut.schemas.project import Background, CanvasSize, ProjectDesign
from storycut.schemas.render import RenderJob, RenderOptions, RenderRequest, RenderStatus
from storycut.schemas.track_item import (
    AudioItem,
    CaptionItem,
    ImageItem,
    TextItem,
    TrackItem,
    VideoItem,
    parse_track_item,
)
from storycut.schemas.transcription import Transcription

__all__ = [
    "Background",
    "CanvasSize",
    "ProjectDesign",
    "TrackItem",
    "VideoItem",
    "AudioItem",
    "ImageItem",
    "TextItem",
    "CaptionItem",
    "parse_track_item",
    "RenderJob",
    "RenderOptions",
    "RenderRequest",
    "RenderStatus",
    "Transcription",
]
