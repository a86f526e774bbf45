"""Track item schemas.

A track item is one of five variants sharing a temporal envelope (``display``).
The JSON shape mirrors the editor's camelCase document, so every model
accepts both snake_case and camelCase input and dumps by alias.
"""

import logging
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

Milliseconds = int | float


class TrackItemType(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"
    IMAGE = "image"
    TEXT = "text"
    CAPTION = "caption"


# z-order: lower renders first (underneath)
TYPE_PRIORITY: dict[str, int] = {
    TrackItemType.VIDEO.value: 0,
    TrackItemType.AUDIO.value: 0,
    TrackItemType.IMAGE.value: 1,
    TrackItemType.TEXT.value: 2,
    TrackItemType.CAPTION.value: 3,
}
UNKNOWN_TYPE_PRIORITY = 99

AUDIO_BEARING_TYPES = frozenset({TrackItemType.VIDEO.value, TrackItemType.AUDIO.value})


def type_priority(item_type: str | None) -> int:
    """Z-order priority for a type tag; unrecognized types sort last."""
    if item_type is None:
        return UNKNOWN_TYPE_PRIORITY
    return TYPE_PRIORITY.get(item_type, UNKNOWN_TYPE_PRIORITY)


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow", allow_inf_nan=False)


# =============================================================================
# Temporal envelope
# =============================================================================


class Display(_Schema):
    """Where the item sits on the master timeline (ms)."""

    from_: Milliseconds = Field(alias="from")
    to: Milliseconds

    @property
    def duration_ms(self) -> Milliseconds:
        return self.to - self.from_

    def is_valid(self) -> bool:
        return self.to > self.from_ >= 0


class Trim(_Schema):
    """Which portion of the source media plays (ms)."""

    from_: Milliseconds | None = Field(default=None, alias="from")
    to: Milliseconds | None = None

    @property
    def has_bounds(self) -> bool:
        return self.from_ is not None or self.to is not None


# =============================================================================
# Details
# =============================================================================


class Crop(_Schema):
    x: float = 0
    y: float = 0
    width: float
    height: float


class BoxShadow(_Schema):
    x: float = 0
    y: float = 0
    blur: float = 0
    color: str = "#000000"


class VideoDetails(_Schema):
    src: str
    width: float = 0
    height: float = 0
    volume: float = 100
    x: float = 0
    y: float = 0
    rotation: float = 0
    crop: Crop | None = None


class AudioDetails(_Schema):
    src: str
    volume: float = 100


class ImageDetails(_Schema):
    src: str
    width: float = 0
    height: float = 0
    x: float = 0
    y: float = 0
    rotation: float = 0
    crop: Crop | None = None


class TextDetails(_Schema):
    text: str = ""
    font_size: float = Field(default=48, alias="fontSize")
    font_family: str = Field(default="Roboto", alias="fontFamily")
    font_url: str | None = Field(default=None, alias="fontUrl")
    color: str = "#ffffff"
    x: float | None = None
    y: float | None = None
    width: float | None = None
    height: float | None = None
    text_align: Literal["left", "center", "right"] | None = Field(default=None, alias="textAlign")
    word_wrap: str | None = Field(default=None, alias="wordWrap")
    border_width: float | None = Field(default=None, alias="borderWidth")
    border_color: str | None = Field(default=None, alias="borderColor")
    box_shadow: BoxShadow | None = Field(default=None, alias="boxShadow")


class CaptionWord(_Schema):
    """A single word with absolute timeline timing in ms."""

    word: str
    start: Milliseconds
    end: Milliseconds
    is_keyword: bool | None = Field(
        default=None,
        validation_alias=AliasChoices("is_keyword", "isKeyword"),
        serialization_alias="is_keyword",
    )


class CaptionDetails(TextDetails):
    words: list[CaptionWord] = Field(default_factory=list)
    active_color: str | None = Field(default=None, alias="activeColor")
    active_fill_color: str | None = Field(default=None, alias="activeFillColor")
    appeared_color: str | None = Field(default=None, alias="appearedColor")
    background_color: str | None = Field(default=None, alias="backgroundColor")
    is_keyword_color: str | None = Field(default=None, alias="isKeywordColor")
    preserved_color_key_word: bool | None = Field(default=None, alias="preservedColorKeyWord")
    lines_per_caption: int | None = Field(default=None, alias="linesPerCaption")
    animation: str | None = None


# =============================================================================
# Variants
# =============================================================================


class _TrackItemBase(_Schema):
    id: str = Field(min_length=1)
    display: Display
    animations: list[Any] | None = None


class VideoItem(_TrackItemBase):
    type: Literal["video"] = Field(default="video", frozen=True)
    details: VideoDetails
    trim: Trim | None = None
    playback_rate: float = Field(default=1.0, alias="playbackRate", gt=0)


class AudioItem(_TrackItemBase):
    type: Literal["audio"] = Field(default="audio", frozen=True)
    details: AudioDetails
    trim: Trim | None = None
    playback_rate: float = Field(default=1.0, alias="playbackRate", gt=0)


class ImageItem(_TrackItemBase):
    type: Literal["image"] = Field(default="image", frozen=True)
    details: ImageDetails


class TextItem(_TrackItemBase):
    type: Literal["text"] = Field(default="text", frozen=True)
    details: TextDetails


class CaptionItem(_TrackItemBase):
    type: Literal["caption"] = Field(default="caption", frozen=True)
    details: CaptionDetails


TrackItem = Annotated[
    Union[VideoItem, AudioItem, ImageItem, TextItem, CaptionItem],
    Field(discriminator="type"),
]
AudioBearingItem = VideoItem | AudioItem

_track_item_adapter: TypeAdapter[TrackItem] = TypeAdapter(TrackItem)


def parse_track_item(raw: Any) -> TrackItem | None:
    """Parse a raw mapping into its variant.

    Returns None (and logs) for unrecognized types or malformed payloads so
    that ingestion of external documents never raises.
    """
    if isinstance(raw, BaseModel):
        raw = raw.model_dump(by_alias=True)
    if not isinstance(raw, dict):
        logger.warning(f"Track item is not an object: {type(raw).__name__}")
        return None

    item_type = raw.get("type")
    if item_type not in TYPE_PRIORITY:
        logger.warning(f"Unrecognized track item type {item_type!r} (id={raw.get('id')!r})")
        return None

    try:
        return _track_item_adapter.validate_python(raw)
    except ValidationError as e:
        logger.warning(
            f"Malformed {item_type} track item {raw.get('id')!r}: {e.error_count()} error(s): "
            f"{e.errors()[0].get('msg')}"
        )
        return None


def dump_track_item(item: TrackItem) -> dict[str, Any]:
    """Serialize to the editor/render-engine JSON shape."""
    return item.model_dump(by_alias=True, exclude_none=True)


def media_source(item: TrackItem) -> str | None:
    """Source URI for media-backed items, None for text and captions."""
    if isinstance(item, (VideoItem, AudioItem, ImageItem)):
        return item.details.src
    if isinstance(item, (TextItem, CaptionItem)):
        return None
    raise TypeError(f"Unhandled track item variant: {type(item).__name__}")


def with_media_source(item: TrackItem, src: str) -> TrackItem:
    """Copy of a media-backed item pointing at a different source."""
    if isinstance(item, (VideoItem, AudioItem, ImageItem)):
        details = item.details.model_copy(update={"src": src})
        return item.model_copy(update={"details": details})
    return item


def is_audio_bearing(item: TrackItem) -> bool:
    return isinstance(item, (VideoItem, AudioItem))
