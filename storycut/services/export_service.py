"""Project export: JSON download or MP4 render on the compute provider."""

import logging
from pathlib import Path
from urllib.parse import unquote, urljoin

from storycut.config import Settings, get_settings
from storycut.exceptions import StorageError, SubmissionError
from storycut.render.compositor import TimelineCompositor, validate_track_items
from storycut.schemas.project import ProjectDesign
from storycut.schemas.render import RenderJob, RenderOptions
from storycut.schemas.track_item import TrackItem, media_source, with_media_source
from storycut.services.render_orchestrator import ProgressCallback, RenderOrchestrator
from storycut.services.storage_service import StorageService, guess_content_type

logger = logging.getLogger(__name__)

LOCAL_UPLOAD_PREFIX = "/api/uploads/file/"


def _safe_filename(name: str) -> str:
    return "".join(c if c.isalnum() or c in "._-" else "_" for c in name)


def _upload_local_file(src: str, storage: StorageService, uploads_dir: Path) -> str:
    filename = _safe_filename(unquote(src.rstrip("/").rsplit("/", 1)[-1]))
    path = uploads_dir / filename
    if not filename or not path.is_file():
        raise SubmissionError(f"Local media file not found: {src}")

    try:
        url = storage.upload(path.read_bytes(), guess_content_type(filename), filename)
    except (OSError, StorageError) as e:
        raise SubmissionError(f"Failed to upload {src}: {e}") from e
    logger.info(f"Uploaded local media {filename} -> {url}")
    return url


def resolve_sources(
    items: list[TrackItem],
    storage: StorageService,
    base_url: str | None = None,
    uploads_dir: str | Path | None = None,
) -> list[TrackItem]:
    """Rewrite media sources so the compute provider can fetch them.

    - ``/api/uploads/file/<name>`` is read from the uploads directory and
      uploaded to storage
    - other relative paths are joined onto ``base_url``
    - absolute http(s) URLs are left untouched

    Raises:
        SubmissionError: a local file is missing or its upload failed, or a
            relative path has no base URL to resolve against.
    """
    uploads_path = Path(uploads_dir or get_settings().uploads_dir)
    resolved_by_src: dict[str, str] = {}
    resolved: list[TrackItem] = []

    for item in items:
        src = media_source(item)
        if not src or src.startswith(("http://", "https://")):
            resolved.append(item)
            continue

        if src not in resolved_by_src:
            if src.startswith(LOCAL_UPLOAD_PREFIX):
                resolved_by_src[src] = _upload_local_file(src, storage, uploads_path)
            elif base_url:
                resolved_by_src[src] = urljoin(base_url.rstrip("/") + "/", src.lstrip("/"))
            else:
                raise SubmissionError(f"Cannot resolve relative media source without a base URL: {src}")

        resolved.append(with_media_source(item, resolved_by_src[src]))

    if resolved_by_src:
        logger.info(f"Resolved {len(resolved_by_src)} media source(s) to public URLs")
    return resolved


class ExportService:
    """Exports a project as JSON or as a rendered MP4."""

    def __init__(
        self,
        orchestrator: RenderOrchestrator,
        storage: StorageService,
        settings: Settings | None = None,
    ):
        self.orchestrator = orchestrator
        self.storage = storage
        self.settings = settings or get_settings()

    def export_json(self, design: ProjectDesign) -> str:
        return design.to_json()

    async def export_mp4(
        self,
        design: ProjectDesign,
        options: RenderOptions | None = None,
        on_progress: ProgressCallback | None = None,
        base_url: str | None = None,
    ) -> RenderJob:
        """Render the project and wait for the result.

        Raises:
            SubmissionError: no renderable items, or a source could not be resolved.
            InfrastructureError / RemoteRenderFailure / TransportError: from the orchestrator.
        """
        raw_items = design.collect_track_items()
        if not raw_items:
            raise SubmissionError("No track items found in the project")

        items = validate_track_items(raw_items)
        if not items:
            raise SubmissionError("No valid track items to render")

        items = resolve_sources(
            items,
            self.storage,
            base_url or self.settings.public_base_url,
            self.settings.uploads_dir,
        )

        duration_ms = max(item.display.to for item in items)
        compositor = TimelineCompositor(
            fps=design.fps,
            width=design.size.width,
            height=design.size.height,
            background=design.background,
        )
        props = compositor.composition_props(items, duration_ms / 1000)
        logger.info(
            f"Exporting project {design.id or '<unsaved>'}: {len(props['trackItems'])} items, "
            f"{props['durationInSeconds']}s at {design.fps}fps"
        )
        return await self.orchestrator.render(props, options, on_progress)
