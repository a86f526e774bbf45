"""Render API endpoints.

Submission returns as soon as the provider accepts the job; the editor then
polls GET /render/progress every few seconds until a terminal status.
"""

import logging

from fastapi import APIRouter, Query, status

from storycut.api.deps import InfraCache, Orchestrator
from storycut.render.compositor import TimelineCompositor
from storycut.schemas.render import (
    FunctionInfo,
    InfrastructureRequest,
    InfrastructureResponse,
    RenderJob,
    RenderProgressResponse,
    RenderRequest,
    RenderStartResponse,
    RenderStatus,
)
from storycut.services.render_orchestrator import ensure_public_sources

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/render",
    response_model=RenderStartResponse,
    status_code=status.HTTP_201_CREATED,
)
async def start_render(body: RenderRequest, orchestrator: Orchestrator) -> RenderStartResponse:
    """
    Start a render on the compute provider.

    Builds the composition props from the track items, checks every media
    source is a public URL, then bootstraps infrastructure (cached after the
    first call) and submits.
    """
    compositor = TimelineCompositor(
        fps=body.fps,
        width=body.video_width,
        height=body.video_height,
        background=body.background,
    )
    props = compositor.composition_props(body.track_items, body.duration_in_seconds)
    logger.info(
        f"Render requested: {len(body.track_items)} items ({len(props['trackItems'])} renderable), "
        f"{body.video_width}x{body.video_height} @ {body.fps}fps, {body.duration_in_seconds}s"
    )

    ensure_public_sources(props)
    handle = await orchestrator.bootstrap(body.site_name)
    job = await orchestrator.submit(props, body.options(), handle)

    return RenderStartResponse(
        render_id=job.render_id,
        bucket_name=job.bucket_name,
        function_name=job.function_name,
        site_name=job.site_name,
    )


@router.get("/render/progress", response_model=RenderProgressResponse)
async def get_render_progress(
    orchestrator: Orchestrator,
    render_id: str = Query(alias="renderId"),
    bucket_name: str = Query(alias="bucketName"),
    function_name: str = Query(alias="functionName"),
) -> RenderProgressResponse:
    """Poll a submitted render once."""
    job = RenderJob(render_id=render_id, bucket_name=bucket_name, function_name=function_name)
    await orchestrator.check_progress(job)

    return RenderProgressResponse(
        status=job.status,
        progress=job.progress,
        output_url=job.output_url,
        errors=job.errors,
        fatal_error_encountered=job.status == RenderStatus.FAILED,
    )


@router.put("/render/infrastructure", response_model=InfrastructureResponse)
async def setup_infrastructure(body: InfrastructureRequest, orchestrator: Orchestrator) -> InfrastructureResponse:
    """Ensure bucket, function and site exist ahead of the first export."""
    handle = await orchestrator.bootstrap(body.site_name, force=body.force)
    return InfrastructureResponse(
        bucket_name=handle.bucket_name,
        function_name=handle.function_name,
        serve_url=handle.serve_url,
        site_name=handle.site_name,
    )


@router.delete("/render/infrastructure")
async def invalidate_infrastructure(cache: InfraCache) -> dict:
    """Forget cached infrastructure so the next render bootstraps again."""
    invalidated = len(cache)
    cache.invalidate()
    logger.info(f"Invalidated {invalidated} cached infrastructure handle(s)")
    return {"success": True, "invalidated": invalidated}


@router.get("/render/functions", response_model=list[FunctionInfo])
async def list_functions(orchestrator: Orchestrator) -> list[FunctionInfo]:
    """Deployed render functions compatible with the current renderer version."""
    return await orchestrator.provider.list_compatible_functions(orchestrator.region)
