"""Audio visualization cache for the editor's waveform display.

Holds decoded audio per track item and memoizes combined per-frame
visualization vectors.

Two independent stores:
- decoded audio, keyed by item id, bounded by size (LRU) and age (TTL);
  both cleanup passes run on every write, never on a timer
- per-frame results, keyed by frame number, bounded by count (oldest
  inserted evicted) and cleared wholesale whenever the item set changes

Decoding runs detached on an executor; its result is observed on the next
query. A decode failure makes the item silent and is logged once per source.
"""

import logging
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from storycut.config import get_settings
from storycut.exceptions import AudioDecodeError, DecodeFailure
from storycut.render.audio_data import DecodedAudio, FFmpegAudioDecoder, combine_max, visualize_audio
from storycut.render.timing import frame_placement
from storycut.schemas.track_item import AudioBearingItem, is_audio_bearing, media_source, parse_track_item

logger = logging.getLogger(__name__)

# Failure categories that are expected in normal operation
SKIPPABLE_FAILURES = frozenset({
    DecodeFailure.UNSUPPORTED_CODEC,
    DecodeFailure.NETWORK_BLOCKED,
    DecodeFailure.DECODE_TIMEOUT,
})


@dataclass
class AudioCacheEntry:
    data: DecodedAudio
    last_accessed: float


class AudioDataCache:
    """Per-item decoded audio plus a per-frame visualization memo."""

    def __init__(
        self,
        fps: int = 30,
        number_of_samples: int | None = None,
        max_cache_size: int | None = None,
        cache_ttl_s: float | None = None,
        frame_cache_size: int | None = None,
        decoder: Callable[[str], DecodedAudio] | None = None,
        visualizer: Callable[[DecodedAudio, float, float, int], list[float]] = visualize_audio,
        executor: Executor | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = get_settings()
        self.fps = fps
        self.number_of_samples = number_of_samples or settings.audio_visualization_samples
        self.max_cache_size = max_cache_size or settings.audio_cache_max_entries
        self.cache_ttl_s = cache_ttl_s or settings.audio_cache_ttl_s
        self.frame_cache_size = frame_cache_size or settings.audio_frame_cache_size

        self._decoder = decoder or FFmpegAudioDecoder()
        self._visualizer = visualizer
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="audio-decode")
        self._clock = clock

        self._items: list[AudioBearingItem] = []
        self._audio_datas: dict[str, AudioCacheEntry] = {}
        self._frame_cache: dict[int, list[float]] = {}
        self._suppressed_sources: set[str] = set()
        self._pending: dict[str, Future] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Item tracking
    # ------------------------------------------------------------------

    @property
    def items(self) -> list[AudioBearingItem]:
        return list(self._items)

    def set_fps(self, fps: int) -> None:
        with self._lock:
            self.fps = fps
            self._frame_cache.clear()

    def set_items(self, items: Iterable[Any]) -> None:
        """Replace the tracked item set.

        Removed ids lose their decoded audio; new ids start decoding in the
        background.
        """
        new_items = _coerce_items(items)
        with self._lock:
            new_ids = {item.id for item in new_items}
            current_ids = {item.id for item in self._items}

            for item_id in current_ids - new_ids:
                self._remove(item_id)

            self._items = new_items
            for item in new_items:
                if item.id not in current_ids:
                    src = media_source(item)
                    if src:
                        self._schedule_decode(item.id, src)

            self._frame_cache.clear()

    def update_item(self, new_item: Any) -> None:
        """Replace a tracked item in place; re-decode only if its source changed."""
        coerced = _coerce_items([new_item])
        if not coerced:
            return
        new_item = coerced[0]

        with self._lock:
            for index, item in enumerate(self._items):
                if item.id != new_item.id:
                    continue
                new_src = media_source(new_item)
                self._items[index] = new_item
                if media_source(item) != new_src:
                    self._audio_datas.pop(item.id, None)
                    if new_src:
                        self._schedule_decode(item.id, new_src)
                break
            else:
                logger.debug(f"update_item ignored untracked id {new_item.id}")
                return

            self._frame_cache.clear()

    def validate_update_items(self, items: Iterable[Any]) -> None:
        """Apply update_item for every tracked item whose value changed."""
        tracked = {item.id: item for item in self._items}
        for item in _coerce_items(items):
            current = tracked.get(item.id)
            if current is not None and current != item:
                self.update_item(item)

    def remove_item(self, item_id: str) -> None:
        with self._lock:
            self._items = [item for item in self._items if item.id != item_id]
            self._remove(item_id)

    def _remove(self, item_id: str) -> None:
        self._audio_datas.pop(item_id, None)
        self._frame_cache.clear()

    # ------------------------------------------------------------------
    # Decoding
    # ------------------------------------------------------------------

    def _schedule_decode(self, item_id: str, src: str) -> None:
        if src in self._suppressed_sources:
            return
        logger.info(f"Loading audio data for {src}")
        future = self._executor.submit(self._load_audio_data, src, item_id)
        self._pending[item_id] = future
        future.add_done_callback(lambda done: self._discard_pending(item_id, done))

    def _discard_pending(self, item_id: str, future: Future) -> None:
        with self._lock:
            # A newer decode for the same item may have replaced this one
            if self._pending.get(item_id) is future:
                del self._pending[item_id]

    def _load_audio_data(self, src: str, item_id: str) -> None:
        try:
            data = self._decoder(src)
        except AudioDecodeError as e:
            self._log_decode_failure(src, e)
            return
        except Exception as e:
            # Visualization is best-effort: anything else is treated as an unknown decode failure
            self._log_decode_failure(src, AudioDecodeError(src, DecodeFailure.UNKNOWN, repr(e)))
            return

        with self._lock:
            still_tracked = any(
                item.id == item_id and media_source(item) == src for item in self._items
            )
            if not still_tracked:
                logger.debug(f"Discarding decoded audio for {item_id}: source changed or item removed")
                return
            self._store_decoded(item_id, data)

    def _store_decoded(self, item_id: str, data: DecodedAudio) -> None:
        with self._lock:
            self._audio_datas[item_id] = AudioCacheEntry(data=data, last_accessed=self._clock())
            self._cleanup_cache()
            # Frames memoized while decoding was in flight were computed as silence
            self._frame_cache.clear()

    def _log_decode_failure(self, src: str, error: AudioDecodeError) -> None:
        with self._lock:
            if src in self._suppressed_sources:
                return
            self._suppressed_sources.add(src)

        if error.category in SKIPPABLE_FAILURES:
            logger.warning(f"Skipping audio analysis for {src} due to: {error.message}")
        else:
            # TODO: escalate once the same unknown failure repeats across sources
            logger.warning(f"Skipping audio analysis for {src} due to unknown error: {error.message}")

    def wait_for_pending(self, timeout: float | None = None) -> None:
        """Block until scheduled decodes have finished (or timeout)."""
        with self._lock:
            futures = list(self._pending.values())
        if futures:
            wait(futures, timeout=timeout)

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def _cleanup_cache(self) -> None:
        """LRU down to the cap, then an independent TTL sweep (called under lock)."""
        now = self._clock()
        entries = list(self._audio_datas.items())

        if len(entries) > self.max_cache_size:
            by_age = sorted(entries, key=lambda kv: kv[1].last_accessed)
            for item_id, _ in by_age[: len(entries) - self.max_cache_size]:
                del self._audio_datas[item_id]

        for item_id, entry in entries:
            if now - entry.last_accessed > self.cache_ttl_s:
                self._audio_datas.pop(item_id, None)

    def cached_item_ids(self) -> list[str]:
        return list(self._audio_datas)

    # ------------------------------------------------------------------
    # Frame queries
    # ------------------------------------------------------------------

    def get_audio_data_for_frame(self, frame: int) -> list[float]:
        """Combined visualization vector for a master-timeline frame."""
        cached = self._frame_cache.get(frame)
        if cached is not None:
            return list(cached)

        with self._lock:
            silence = [0.0] * self.number_of_samples
            values: list[list[float]] = []
            for item in self._items:
                entry = self._audio_datas.get(item.id)
                if entry is None:
                    values.append(silence)
                    continue

                placement = frame_placement(item, self.fps)
                if not placement.contains(frame):
                    values.append(silence)
                    continue

                source_frame = frame - placement.from_frame + placement.source.start_from_frame
                values.append(
                    self._visualizer(entry.data, source_frame, self.fps, self.number_of_samples)
                )
                entry.last_accessed = self._clock()

            result = combine_max(values, self.number_of_samples)

            self._frame_cache[frame] = result
            if len(self._frame_cache) > self.frame_cache_size:
                oldest = next(iter(self._frame_cache))
                del self._frame_cache[oldest]

        return list(result)

    def memoized_frames(self) -> list[int]:
        return list(self._frame_cache)

    def stats(self) -> dict[str, Any]:
        return {
            "fps": self.fps,
            "items": len(self._items),
            "decoded": len(self._audio_datas),
            "memoized_frames": len(self._frame_cache),
            "suppressed_sources": len(self._suppressed_sources),
            "pending_decodes": len(self._pending),
        }


def _coerce_items(items: Iterable[Any]) -> list[AudioBearingItem]:
    """Parse raw items and keep only audio-bearing ones."""
    coerced: list[AudioBearingItem] = []
    for raw in items:
        item = raw if is_audio_bearing(raw) else parse_track_item(raw)
        if item is not None and is_audio_bearing(item):
            coerced.append(item)
    return coerced


@lru_cache
def get_audio_cache() -> AudioDataCache:
    """Process-wide cache used by the waveform API."""
    settings = get_settings()
    return AudioDataCache(fps=settings.render_fps)
