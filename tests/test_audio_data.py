"""
Tests for audio decoding and per-frame visualization.

FFmpeg is never invoked: subprocess.run is patched.
"""

import subprocess
from unittest.mock import patch

import httpx
import numpy as np
import pytest

from storycut.exceptions import AudioDecodeError, DecodeFailure, TransportError
from storycut.render.audio_data import (
    DecodedAudio,
    FFmpegAudioDecoder,
    combine_max,
    visualize_audio,
)

SAMPLE_RATE = 8000


def _sine(freq: float, seconds: float = 2.0, amplitude: float = 0.8) -> DecodedAudio:
    t = np.arange(int(SAMPLE_RATE * seconds)) / SAMPLE_RATE
    return DecodedAudio(
        samples=(amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32),
        sample_rate=SAMPLE_RATE,
    )


class TestVisualizeAudio:
    """Tests for the windowed FFT sampler."""

    def test_returns_requested_length(self):
        assert len(visualize_audio(_sine(440), 0, 30, 512)) == 512
        assert len(visualize_audio(_sine(440), 0, 30, 64)) == 64

    def test_peak_lands_in_signal_bucket(self):
        # 1024-point window at 8kHz: bucket 64 is centred on 500Hz
        values = visualize_audio(_sine(500), 10, 30, 512)
        assert int(np.argmax(values)) == 64
        assert values[64] == pytest.approx(0.8, abs=0.05)

    def test_values_are_clipped_to_unit_range(self):
        values = visualize_audio(_sine(500, amplitude=4.0), 0, 30, 512)
        assert max(values) <= 1.0
        assert min(values) >= 0.0

    def test_silence_outside_source(self):
        decoded = _sine(500, seconds=1.0)
        assert visualize_audio(decoded, -1, 30, 16) == [0.0] * 16
        assert visualize_audio(decoded, 30, 30, 16) == [0.0] * 16

    def test_invalid_fps_is_silent(self):
        assert visualize_audio(_sine(500), 0, 0, 8) == [0.0] * 8

    def test_duration(self):
        assert _sine(500, seconds=1.5).duration_s == pytest.approx(1.5)


class TestCombineMax:
    """Tests for bucket-wise combination."""

    def test_takes_maximum_per_bucket(self):
        assert combine_max([[0.1, 0.9, 0.0], [0.5, 0.2, 0.0]], 3) == [0.5, 0.9, 0.0]

    def test_silence_never_lowers_loudness(self):
        loud = [0.3, 0.7]
        assert combine_max([loud, [0.0, 0.0], [0.0, 0.0]], 2) == loud

    def test_no_sources_is_silence(self):
        assert combine_max([], 4) == [0.0, 0.0, 0.0, 0.0]


class TestFFmpegAudioDecoder:
    """Tests for decode failure classification."""

    def _decoder(self, read_source=None):
        return FFmpegAudioDecoder(
            ffmpeg_path="ffmpeg",
            sample_rate=SAMPLE_RATE,
            timeout_s=5,
            read_source=read_source or (lambda src, timeout: b"media-bytes"),
        )

    def test_decodes_pcm_from_ffmpeg(self):
        pcm = np.array([0.0, 0.5, -0.5], dtype=np.float32).tobytes()
        completed = subprocess.CompletedProcess(args=[], returncode=0, stdout=pcm, stderr=b"")
        with patch("storycut.render.audio_data.subprocess.run", return_value=completed) as mock_run:
            decoded = self._decoder()("https://cdn.example.com/a.mp3")

        assert decoded.sample_rate == SAMPLE_RATE
        assert decoded.samples.tolist() == [0.0, 0.5, -0.5]
        cmd = mock_run.call_args.args[0]
        assert cmd[:2] == ["ffmpeg", "-v"]
        assert "f32le" in cmd
        assert mock_run.call_args.kwargs["input"] == b"media-bytes"

    def test_ffmpeg_error_is_unsupported_codec(self):
        completed = subprocess.CompletedProcess(
            args=[], returncode=1, stdout=b"", stderr=b"Invalid data found when processing input"
        )
        with patch("storycut.render.audio_data.subprocess.run", return_value=completed):
            with pytest.raises(AudioDecodeError) as exc_info:
                self._decoder()("https://cdn.example.com/a.xyz")

        assert exc_info.value.category == DecodeFailure.UNSUPPORTED_CODEC
        assert "Invalid data" in exc_info.value.message

    def test_ffmpeg_timeout(self):
        with patch(
            "storycut.render.audio_data.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="ffmpeg", timeout=5),
        ):
            with pytest.raises(AudioDecodeError) as exc_info:
                self._decoder()("https://cdn.example.com/a.mp3")
        assert exc_info.value.category == DecodeFailure.DECODE_TIMEOUT

    def test_missing_ffmpeg_is_unknown(self):
        with patch("storycut.render.audio_data.subprocess.run", side_effect=FileNotFoundError("ffmpeg")):
            with pytest.raises(AudioDecodeError) as exc_info:
                self._decoder()("https://cdn.example.com/a.mp3")
        assert exc_info.value.category == DecodeFailure.UNKNOWN

    @pytest.mark.parametrize(
        "error,category",
        [
            (TransportError("refused"), DecodeFailure.NETWORK_BLOCKED),
            (TransportError("slow", timed_out=True), DecodeFailure.DECODE_TIMEOUT),
            (httpx.ReadTimeout("slow"), DecodeFailure.DECODE_TIMEOUT),
            (httpx.ConnectError("refused"), DecodeFailure.NETWORK_BLOCKED),
            (FileNotFoundError("/nope.mp3"), DecodeFailure.NETWORK_BLOCKED),
        ],
    )
    def test_fetch_failures(self, error, category):
        def read_source(src, timeout):
            raise error

        with pytest.raises(AudioDecodeError) as exc_info:
            self._decoder(read_source)("https://cdn.example.com/a.mp3")
        assert exc_info.value.category == category
        assert exc_info.value.src == "https://cdn.example.com/a.mp3"
