"""Audio decoding and per-frame visualization.

Decoding pipes the source bytes through FFmpeg to mono float32 PCM. Sampling
computes a windowed FFT around the frame time and returns one amplitude per
frequency bucket, normalised to [0, 1], for waveform display.
"""

import logging
import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import httpx
import numpy as np

from storycut.config import get_settings
from storycut.exceptions import AudioDecodeError, DecodeFailure, TransportError
from storycut.services.storage_service import fetch_media

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecodedAudio:
    """Mono PCM samples for one source."""

    samples: np.ndarray  # float32, range [-1, 1]
    sample_rate: int

    @property
    def duration_s(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return len(self.samples) / self.sample_rate


def _read_source(src: str, timeout_s: float) -> bytes:
    if src.startswith(("http://", "https://")):
        return fetch_media(src, timeout_s=timeout_s)
    return Path(src).read_bytes()


class FFmpegAudioDecoder:
    """Decode any FFmpeg-readable media to mono PCM."""

    def __init__(
        self,
        ffmpeg_path: str | None = None,
        sample_rate: int | None = None,
        timeout_s: float | None = None,
        read_source: Callable[[str, float], bytes] | None = None,
    ):
        settings = get_settings()
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path
        self.sample_rate = sample_rate or settings.audio_decode_sample_rate
        self.timeout_s = timeout_s or settings.audio_decode_timeout_s
        self._read_source = read_source or _read_source

    def __call__(self, src: str) -> DecodedAudio:
        return self.decode(src)

    def decode(self, src: str) -> DecodedAudio:
        """Decode a source.

        Raises:
            AudioDecodeError: categorised as network, codec, timeout or unknown.
        """
        try:
            data = self._read_source(src, self.timeout_s)
        except TransportError as e:
            category = DecodeFailure.DECODE_TIMEOUT if e.timed_out else DecodeFailure.NETWORK_BLOCKED
            raise AudioDecodeError(src, category, e.message) from e
        except httpx.TimeoutException as e:
            raise AudioDecodeError(src, DecodeFailure.DECODE_TIMEOUT, str(e)) from e
        except httpx.HTTPError as e:
            raise AudioDecodeError(src, DecodeFailure.NETWORK_BLOCKED, str(e)) from e
        except OSError as e:
            raise AudioDecodeError(src, DecodeFailure.NETWORK_BLOCKED, str(e)) from e

        cmd = [
            self.ffmpeg_path,
            "-v", "error",
            "-i", "pipe:0",
            "-vn",  # No video
            "-f", "f32le",
            "-ac", "1",  # Mono
            "-ar", str(self.sample_rate),
            "pipe:1",
        ]
        try:
            result = subprocess.run(cmd, input=data, capture_output=True, timeout=self.timeout_s)
        except subprocess.TimeoutExpired as e:
            raise AudioDecodeError(src, DecodeFailure.DECODE_TIMEOUT, f"after {self.timeout_s}s") from e
        except OSError as e:
            raise AudioDecodeError(src, DecodeFailure.UNKNOWN, str(e)) from e

        if result.returncode != 0 or not result.stdout:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise AudioDecodeError(src, DecodeFailure.UNSUPPORTED_CODEC, stderr[-300:])

        samples = np.frombuffer(result.stdout, dtype=np.float32)
        logger.debug(f"Decoded {src}: {len(samples)} samples @ {self.sample_rate}Hz")
        return DecodedAudio(samples=samples, sample_rate=self.sample_rate)


def visualize_audio(
    decoded: DecodedAudio,
    frame: float,
    fps: float,
    number_of_samples: int = 512,
) -> list[float]:
    """Amplitude per frequency bucket at ``frame`` of the source.

    Frames before the start or past the end of the source are silent.
    """
    silence = [0.0] * number_of_samples
    if frame < 0 or fps <= 0 or decoded.sample_rate <= 0:
        return silence

    window_size = number_of_samples * 2
    start = int(frame / fps * decoded.sample_rate)
    if start >= len(decoded.samples):
        return silence

    segment = decoded.samples[start:start + window_size]
    if len(segment) < window_size:
        segment = np.pad(segment, (0, window_size - len(segment)))

    window = np.hanning(window_size)
    spectrum = np.abs(np.fft.rfft(segment * window))[:number_of_samples]
    # Full-scale sine in one bin peaks at sum(window) / 2
    spectrum = spectrum / (window.sum() / 2)
    return np.clip(spectrum, 0.0, 1.0).astype(float).tolist()


def combine_max(sources: list[list[float]], length: int) -> list[float]:
    """Per-bucket maximum; silent sources never lower an audible one."""
    if not sources:
        return [0.0] * length
    stacked = np.asarray(sources, dtype=float).reshape(len(sources), length)
    return np.maximum(stacked.max(axis=0), 0.0).tolist()
