"""
Pytest fixtures for storycut tests.

Nothing here touches the network, FFmpeg or the wall clock: the audio
decoder, the render provider and the polling sleep are all injected fakes.
"""

from concurrent.futures import Executor, Future

import numpy as np
import pytest

from storycut.config import Settings
from storycut.render.audio_data import DecodedAudio
from storycut.schemas.render import (
    FunctionDeployment,
    FunctionInfo,
    RemoteRenderProgress,
    RenderSubmission,
    SiteDeployment,
    SiteInfo,
)

SAMPLE_RATE = 8000


# =============================================================================
# Track item builders
# =============================================================================


def video_item(item_id: str, start: float, end: float, src: str = "https://cdn.example.com/a.mp4", **extra) -> dict:
    item = {
        "id": item_id,
        "type": "video",
        "display": {"from": start, "to": end},
        "details": {"src": src},
    }
    item.update(extra)
    return item


def audio_item(item_id: str, start: float, end: float, src: str = "https://cdn.example.com/a.mp3", **extra) -> dict:
    item = {
        "id": item_id,
        "type": "audio",
        "display": {"from": start, "to": end},
        "details": {"src": src},
    }
    item.update(extra)
    return item


def caption_item(item_id: str, start: float, end: float, text: str = "hello world") -> dict:
    return {
        "id": item_id,
        "type": "caption",
        "display": {"from": start, "to": end},
        "details": {
            "text": text,
            "words": [
                {"word": "hello", "start": start, "end": start + 200},
                {"word": "world", "start": start + 200, "end": start + 400, "isKeyword": True},
            ],
        },
    }


def text_item(item_id: str, start: float, end: float, text: str = "Title") -> dict:
    return {
        "id": item_id,
        "type": "text",
        "display": {"from": start, "to": end},
        "details": {"text": text, "fontSize": 64},
    }


def image_item(item_id: str, start: float, end: float, src: str = "https://cdn.example.com/a.png") -> dict:
    return {
        "id": item_id,
        "type": "image",
        "display": {"from": start, "to": end},
        "details": {"src": src},
    }


# =============================================================================
# Audio cache collaborators
# =============================================================================


class SyncExecutor(Executor):
    """Runs submitted work immediately on the calling thread."""

    def submit(self, fn, /, *args, **kwargs):
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as e:
            future.set_exception(e)
        return future


class DeferredExecutor(Executor):
    """Holds submitted work until run_all() is called."""

    def __init__(self):
        self.queue = []

    def submit(self, fn, /, *args, **kwargs):
        future: Future = Future()
        self.queue.append((future, fn, args, kwargs))
        return future

    def run_all(self):
        queue, self.queue = self.queue, []
        for future, fn, args, kwargs in queue:
            future.set_result(fn(*args, **kwargs))


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDecoder:
    """Returns one second of a loud sine per source and records calls."""

    def __init__(self, failures: dict | None = None):
        self.calls: list[str] = []
        self.failures = failures or {}

    def __call__(self, src: str) -> DecodedAudio:
        self.calls.append(src)
        if src in self.failures:
            raise self.failures[src]
        t = np.arange(SAMPLE_RATE * 10) / SAMPLE_RATE
        samples = (0.8 * np.sin(2 * np.pi * 440 * t)).astype(np.float32)
        return DecodedAudio(samples=samples, sample_rate=SAMPLE_RATE)


def constant_visualizer(decoded, frame, fps, number_of_samples):
    return [1.0] * number_of_samples


@pytest.fixture
def sync_executor() -> SyncExecutor:
    return SyncExecutor()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_decoder() -> FakeDecoder:
    return FakeDecoder()


# =============================================================================
# Render provider
# =============================================================================


class FakeRenderProvider:
    """In-memory RenderProvider that records every call."""

    def __init__(
        self,
        functions: list[FunctionInfo] | None = None,
        sites: list[SiteInfo] | None = None,
        progress: list[RemoteRenderProgress] | None = None,
    ):
        self.calls: list[str] = []
        self.functions = functions if functions is not None else []
        self.sites = sites if sites is not None else []
        self.progress = list(progress or [])
        self.submitted = []
        self.bucket_failures = 0

    async def ensure_bucket(self, region):
        self.calls.append("ensure_bucket")
        if self.bucket_failures:
            from storycut.exceptions import TransportError

            self.bucket_failures -= 1
            raise TransportError("bucket endpoint unavailable")
        return "storycut-renders-abc"

    async def list_compatible_functions(self, region):
        self.calls.append("list_compatible_functions")
        return list(self.functions)

    async def deploy_function(self, region, architecture, memory_mb, timeout_s):
        self.calls.append("deploy_function")
        name = f"render-fn-{memory_mb}mb-{timeout_s}sec"
        self.functions.append(FunctionInfo(function_name=name, version="4.0.0"))
        return FunctionDeployment(function_name=name, already_existed=False)

    async def list_sites(self, region, bucket_name):
        self.calls.append("list_sites")
        return list(self.sites)

    async def deploy_bundle(self, region, bucket_name, entry_point, site_name):
        self.calls.append("deploy_bundle")
        serve_url = f"https://{bucket_name}.s3.amazonaws.com/sites/{site_name}/index.html"
        self.sites.append(SiteInfo(id=site_name, serve_url=serve_url))
        return SiteDeployment(serve_url=serve_url, site_name=site_name)

    async def submit_render(self, region, request):
        self.calls.append("submit_render")
        self.submitted.append(request)
        return RenderSubmission(render_id=f"render-{len(self.submitted)}", bucket_name="storycut-renders-abc")

    async def poll_render(self, region, render_id, bucket_name, function_name):
        self.calls.append("poll_render")
        if len(self.progress) > 1:
            return self.progress.pop(0)
        return self.progress[0]


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def fake_provider() -> FakeRenderProvider:
    return FakeRenderProvider()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        render_region="us-east-1",
        render_poll_interval_s=2.5,
        bootstrap_max_attempts=3,
        bootstrap_backoff_s=0.5,
        local_storage_path=str(tmp_path / "storage"),
        uploads_dir=str(tmp_path / "_uploads"),
        public_base_url="http://testserver",
        openai_api_key="sk-test",
    )
