"""Project export endpoints."""

import logging

from fastapi import APIRouter
from fastapi.responses import Response

from storycut.api.deps import Exporter
from storycut.schemas.project import ProjectDesign
from storycut.schemas.render import RenderJob

router = APIRouter(prefix="/export")
logger = logging.getLogger(__name__)


@router.post("/json")
async def export_json(design: ProjectDesign, exporter: Exporter) -> Response:
    """Download the project as a JSON document."""
    filename = f"{design.id or 'project'}.json"
    return Response(
        content=exporter.export_json(design),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/mp4", response_model=RenderJob)
async def export_mp4(design: ProjectDesign, exporter: Exporter) -> RenderJob:
    """
    Render the project to MP4 and wait for the result.

    Local uploads are pushed to storage first so the compute provider can
    fetch them. Blocks until the render is Completed; a Failed render
    surfaces as a RENDER_FAILED error.
    """
    def log_progress(job: RenderJob) -> None:
        logger.info(f"Export {job.render_id}: {job.status.value} {job.progress:.0%}")

    return await exporter.export_mp4(design, on_progress=log_progress)
