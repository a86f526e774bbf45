"""Render job orchestration on the remote compute provider.

Per job: bootstrap infrastructure (bucket -> function -> site), submit the
composition props, then poll until the job is Completed or Failed.

Bootstrap results are cached in an InfrastructureCache keyed by
(bucket_name, site_name), so repeated exports skip all three steps until the
cache is invalidated or a bootstrap is forced.
"""

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, TypeVar

from storycut.config import Settings, get_settings
from storycut.exceptions import (
    InfrastructureError,
    RemoteRenderFailure,
    SubmissionError,
    TransportError,
)
from storycut.schemas.render import (
    RemoteRenderProgress,
    RenderJob,
    RenderOptions,
    RenderStatus,
    SubmitRenderRequest,
)
from storycut.services.render_provider import HttpRenderProvider, RenderProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[RenderJob], Any]

# Remote status strings that mean "still running"
_RUNNING_STATUSES = frozenset({"pending", "processing", "rendering", "queued"})
_FAILED_STATUSES = frozenset({"failed", "error"})


@dataclass(frozen=True)
class InfrastructureHandle:
    """Resolved bucket, function and site for submitting renders."""

    bucket_name: str
    function_name: str
    serve_url: str
    site_name: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.bucket_name, self.site_name)

    def to_dict(self) -> dict[str, str]:
        return {
            "bucketName": self.bucket_name,
            "functionName": self.function_name,
            "serveUrl": self.serve_url,
            "siteName": self.site_name,
        }


class InfrastructureCache:
    """Bootstrap results keyed by (bucket_name, site_name).

    Entries never expire; they are removed only by invalidate(). The cache is
    shared by every orchestrator in the process, so it also carries the lock
    that serializes bootstraps.
    """

    def __init__(self) -> None:
        self._handles: dict[tuple[str, str], InfrastructureHandle] = {}
        self._lock = threading.Lock()
        self.bootstrap_lock = asyncio.Lock()

    def get(self, bucket_name: str, site_name: str) -> InfrastructureHandle | None:
        with self._lock:
            return self._handles.get((bucket_name, site_name))

    def get_any_for_site(self, site_name: str) -> InfrastructureHandle | None:
        """Lookup before the bucket name is known."""
        with self._lock:
            for (_, cached_site), handle in self._handles.items():
                if cached_site == site_name:
                    return handle
        return None

    def put(self, handle: InfrastructureHandle) -> None:
        with self._lock:
            self._handles[handle.key] = handle

    def invalidate(self, key: tuple[str, str] | None = None) -> None:
        """Drop one entry, or everything when no key is given."""
        with self._lock:
            if key is None:
                self._handles.clear()
            else:
                self._handles.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)


def map_remote_status(progress: RemoteRenderProgress) -> RenderStatus:
    """Map a provider progress report onto RenderStatus.

    Unrecognized status strings are treated as still running.
    """
    status = (progress.status or "").lower()
    if progress.fatal_error_encountered or status in _FAILED_STATUSES:
        return RenderStatus.FAILED
    if progress.done or status in ("done", "completed"):
        return RenderStatus.COMPLETED
    if status and status not in _RUNNING_STATUSES:
        logger.debug(f"Unrecognized remote render status '{progress.status}', treating as processing")
    return RenderStatus.PROCESSING


def apply_progress(job: RenderJob, progress: RemoteRenderProgress) -> RenderJob:
    """Fold one poll result into the job."""
    job.status = map_remote_status(progress)
    job.progress = min(max(float(progress.overall_progress), 0.0), 1.0)
    if job.status == RenderStatus.COMPLETED:
        job.progress = 1.0
        job.output_url = progress.output_file
    elif job.status == RenderStatus.FAILED:
        job.errors = [error.describe() for error in progress.errors]
    return job


def _collect_sources(value: Any) -> list[str]:
    """Every ``src`` string nested anywhere in the props."""
    sources: list[str] = []
    if isinstance(value, dict):
        for key, child in value.items():
            if key == "src" and isinstance(child, str):
                sources.append(child)
            else:
                sources.extend(_collect_sources(child))
    elif isinstance(value, list):
        for child in value:
            sources.extend(_collect_sources(child))
    return sources


def _is_fully_qualified(src: str) -> bool:
    return src.startswith(("http://", "https://"))


def ensure_public_sources(props: dict[str, Any]) -> None:
    """Raise SubmissionError if any media source is not a fully qualified URL."""
    local_sources = [src for src in _collect_sources(props) if not _is_fully_qualified(src)]
    if local_sources:
        raise SubmissionError(
            f"Media sources must be public URLs before rendering: {', '.join(local_sources[:5])}"
        )


class RenderOrchestrator:
    """Bootstrap, submit and poll remote renders."""

    def __init__(
        self,
        provider: RenderProvider,
        cache: InfrastructureCache | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.provider = provider
        self.cache = cache if cache is not None else InfrastructureCache()
        self.settings = settings or get_settings()
        self._sleep = sleep

    @property
    def region(self) -> str:
        return self.settings.render_region

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    async def bootstrap(self, site_name: str | None = None, force: bool = False) -> InfrastructureHandle:
        """Ensure bucket, function and site exist; return the cached handle.

        Args:
            site_name: Bundle to reuse or deploy. Defaults to settings.render_site_name.
            force: Skip the cache and re-run every step.

        Raises:
            InfrastructureError: a step kept failing after all retries.
        """
        site_name = site_name or self.settings.render_site_name

        async with self.cache.bootstrap_lock:
            if not force:
                cached = self.cache.get_any_for_site(site_name)
                if cached is not None:
                    logger.debug(f"Using cached infrastructure for site {site_name}")
                    return cached

            bucket_name = await self._with_retries("bucket", self._ensure_bucket)

            if not force:
                cached = self.cache.get(bucket_name, site_name)
                if cached is not None:
                    return cached

            function_name = await self._with_retries("function", self._ensure_function)
            serve_url, resolved_site = await self._with_retries(
                "site", lambda: self._ensure_site(bucket_name, site_name)
            )

            handle = InfrastructureHandle(
                bucket_name=bucket_name,
                function_name=function_name,
                serve_url=serve_url,
                site_name=resolved_site,
            )
            self.cache.put(handle)
            if resolved_site != site_name:
                # Also reachable under the requested name
                self.cache.put(
                    InfrastructureHandle(bucket_name, function_name, serve_url, site_name)
                )
            logger.info(
                f"Render infrastructure ready: bucket={bucket_name} "
                f"function={function_name} site={resolved_site}"
            )
            return handle

    async def _with_retries(self, step: str, action: Callable[[], Awaitable[T]]) -> T:
        attempts = max(1, self.settings.bootstrap_max_attempts)
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                return await action()
            except (TransportError, InfrastructureError) as e:
                last_error = e
                logger.warning(f"Bootstrap step '{step}' failed (attempt {attempt}/{attempts}): {e}")
                if attempt < attempts:
                    await self._sleep(self.settings.bootstrap_backoff_s * 2 ** (attempt - 1))
        raise InfrastructureError(step, str(last_error)) from last_error

    async def _ensure_bucket(self) -> str:
        bucket_name = await self.provider.ensure_bucket(self.region)
        if not bucket_name:
            raise InfrastructureError("bucket", "provider returned no bucket name")
        return bucket_name

    async def _ensure_function(self) -> str:
        functions = await self.provider.list_compatible_functions(self.region)
        if functions:
            logger.info(f"Reusing compatible render function {functions[0].function_name}")
            return functions[0].function_name

        deployment = await self.provider.deploy_function(
            self.region,
            self.settings.render_function_architecture,
            self.settings.render_function_memory_mb,
            self.settings.render_function_timeout_s,
        )
        logger.info(
            f"Deployed render function {deployment.function_name} "
            f"(already existed: {deployment.already_existed})"
        )
        return deployment.function_name

    async def _ensure_site(self, bucket_name: str, site_name: str) -> tuple[str, str]:
        sites = await self.provider.list_sites(self.region, bucket_name)
        for site in sites:
            if site.id == site_name:
                logger.info(f"Reusing deployed site {site_name}")
                return site.serve_url, site.id

        deployment = await self.provider.deploy_bundle(
            self.region,
            bucket_name,
            self.settings.render_entry_point,
            site_name,
        )
        logger.info(f"Deployed site {deployment.site_name} at {deployment.serve_url}")
        return deployment.serve_url, deployment.site_name

    # ------------------------------------------------------------------
    # Submission and polling
    # ------------------------------------------------------------------

    async def submit(
        self,
        props: dict[str, Any],
        options: RenderOptions | None = None,
        handle: InfrastructureHandle | None = None,
    ) -> RenderJob:
        """Submit composition props and return a Pending job.

        Raises:
            SubmissionError: a media source is not a fully qualified URL, or
                the provider rejected the payload.
        """
        options = options or RenderOptions()
        ensure_public_sources(props)

        if handle is None:
            handle = await self.bootstrap()

        request = SubmitRenderRequest(
            function_name=handle.function_name,
            serve_url=handle.serve_url,
            composition=options.composition or self.settings.render_composition,
            input_props=props,
            codec=options.codec,
            image_format=options.image_format,
            max_retries=options.max_retries,
            frames_per_lambda=options.frames_per_lambda,
            privacy=options.privacy,
            out_name=options.out_name,
        )
        submission = await self.provider.submit_render(self.region, request)
        logger.info(f"Submitted render {submission.render_id} to {handle.function_name}")

        return RenderJob(
            render_id=submission.render_id,
            bucket_name=submission.bucket_name,
            function_name=handle.function_name,
            site_name=handle.site_name,
        )

    async def check_progress(self, job: RenderJob) -> RenderJob:
        """One poll tick."""
        progress = await self.provider.poll_render(
            self.region, job.render_id, job.bucket_name, job.function_name
        )
        return apply_progress(job, progress)

    async def poll(
        self,
        job: RenderJob,
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RenderJob:
        """Poll until the job is terminal.

        Ticks are sequential: the next one is scheduled only after the
        previous poll resolves. Setting ``cancel_event`` stops before the
        next tick and returns the job as last observed.

        Raises:
            RemoteRenderFailure: the job ended Failed.
        """
        interval = self.settings.render_poll_interval_s
        while True:
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Polling for render {job.render_id} cancelled")
                return job

            await self.check_progress(job)
            if on_progress is not None:
                result = on_progress(job)
                if asyncio.iscoroutine(result):
                    await result

            if job.status == RenderStatus.COMPLETED:
                logger.info(f"Render {job.render_id} completed: {job.output_url}")
                return job
            if job.status == RenderStatus.FAILED:
                logger.error(f"Render {job.render_id} failed: {job.errors}")
                raise RemoteRenderFailure(job.errors, render_id=job.render_id)

            await self._sleep(interval)

    async def render(
        self,
        props: dict[str, Any],
        options: RenderOptions | None = None,
        on_progress: ProgressCallback | None = None,
        site_name: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RenderJob:
        """Bootstrap, submit and poll to a terminal state."""
        ensure_public_sources(props)
        handle = await self.bootstrap(site_name)
        job = await self.submit(props, options, handle)
        if on_progress is not None:
            result = on_progress(job)
            if asyncio.iscoroutine(result):
                await result
        return await self.poll(job, on_progress, cancel_event)


@lru_cache
def get_infrastructure_cache() -> InfrastructureCache:
    return InfrastructureCache()


def get_render_orchestrator() -> RenderOrchestrator:
    """Orchestrator sharing the process-wide infrastructure cache."""
    return RenderOrchestrator(HttpRenderProvider(), get_infrastructure_cache())
