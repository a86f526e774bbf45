from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from storycut.schemas.project import Background


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Compute/deploy provider payloads
# =============================================================================


class FunctionInfo(_CamelModel):
    function_name: str = Field(alias="functionName")
    version: str = ""
    memory_size_in_mb: int | None = Field(default=None, alias="memorySizeInMb")
    timeout_in_seconds: int | None = Field(default=None, alias="timeoutInSeconds")


class FunctionDeployment(_CamelModel):
    function_name: str = Field(alias="functionName")
    already_existed: bool = Field(default=False, alias="alreadyExisted")


class SiteInfo(_CamelModel):
    id: str
    serve_url: str = Field(alias="serveUrl")


class SiteDeployment(_CamelModel):
    serve_url: str = Field(alias="serveUrl")
    site_name: str = Field(alias="siteName")


class RenderOptions(_CamelModel):
    """Submission options forwarded to the compute layer."""

    composition: str | None = None
    codec: Literal["h264", "h265"] = "h264"
    image_format: Literal["jpeg", "png"] = Field(default="jpeg", alias="imageFormat")
    # Retries are the compute layer's job; the orchestrator never resubmits
    max_retries: int = Field(default=1, ge=0, alias="maxRetries")
    frames_per_lambda: int = Field(default=20, gt=0, alias="framesPerLambda")
    privacy: Literal["public", "private"] = "public"
    out_name: str | None = Field(default=None, alias="outName")


class SubmitRenderRequest(_CamelModel):
    function_name: str = Field(alias="functionName")
    serve_url: str = Field(alias="serveUrl")
    composition: str
    input_props: dict[str, Any] = Field(alias="inputProps")
    codec: str = "h264"
    image_format: str = Field(default="jpeg", alias="imageFormat")
    max_retries: int = Field(default=1, alias="maxRetries")
    frames_per_lambda: int = Field(default=20, alias="framesPerLambda")
    privacy: str = "public"
    out_name: str | None = Field(default=None, alias="outName")


class RenderSubmission(_CamelModel):
    render_id: str = Field(alias="renderId")
    bucket_name: str = Field(alias="bucketName")


class RemoteRenderError(_CamelModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    message: str | None = None
    stack: str | None = None

    def describe(self) -> str:
        if self.message:
            return self.message
        if self.stack:
            return self.stack
        return self.model_dump_json(exclude_none=True)


class RemoteRenderProgress(_CamelModel):
    """Raw progress report from the compute provider."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    done: bool = False
    overall_progress: float = Field(default=0.0, alias="overallProgress")
    output_file: str | None = Field(default=None, alias="outputFile")
    fatal_error_encountered: bool = Field(default=False, alias="fatalErrorEncountered")
    errors: list[RemoteRenderError] = Field(default_factory=list)
    status: str | None = None

    @field_validator("overall_progress", mode="before")
    @classmethod
    def default_progress(cls, v: Any) -> Any:
        return 0.0 if v is None else v

    @field_validator("errors", mode="before")
    @classmethod
    def normalize_errors(cls, v: Any) -> Any:
        if v is None:
            return []
        return [{"message": e} if isinstance(e, str) else e for e in v]


# =============================================================================
# Render job
# =============================================================================


class RenderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TERMINAL_STATUSES = frozenset({RenderStatus.COMPLETED, RenderStatus.FAILED})


class RenderJob(_CamelModel):
    """A submitted render, mutated only by the polling loop."""

    render_id: str = Field(alias="renderId")
    bucket_name: str = Field(alias="bucketName")
    function_name: str = Field(alias="functionName")
    site_name: str | None = Field(default=None, alias="siteName")
    status: RenderStatus = RenderStatus.PENDING
    progress: float = Field(default=0.0, ge=0.0, le=1.0)
    output_url: str | None = Field(default=None, alias="outputUrl")
    errors: list[str] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


# =============================================================================
# API request/response bodies
# =============================================================================


class RenderRequest(_CamelModel):
    track_items: list[Any] = Field(alias="trackItems")
    background: Background = Field(default_factory=Background)
    video_width: int = Field(default=1080, gt=0, alias="videoWidth")
    video_height: int = Field(default=1920, gt=0, alias="videoHeight")
    fps: int = Field(default=30, gt=0, le=120)
    duration_in_seconds: float = Field(default=10, gt=0, allow_inf_nan=False, alias="durationInSeconds")
    site_name: str | None = Field(default=None, alias="siteName")
    codec: Literal["h264", "h265"] = "h264"
    image_format: Literal["jpeg", "png"] = Field(default="jpeg", alias="imageFormat")
    max_retries: int = Field(default=1, ge=0, alias="maxRetries")
    frames_per_lambda: int = Field(default=20, gt=0, alias="framesPerLambda")
    privacy: Literal["public", "private"] = "public"

    def options(self) -> RenderOptions:
        return RenderOptions(
            codec=self.codec,
            image_format=self.image_format,
            max_retries=self.max_retries,
            frames_per_lambda=self.frames_per_lambda,
            privacy=self.privacy,
        )


class RenderStartResponse(_CamelModel):
    success: bool = True
    render_id: str = Field(alias="renderId")
    bucket_name: str = Field(alias="bucketName")
    function_name: str = Field(alias="functionName")
    site_name: str | None = Field(default=None, alias="siteName")


class RenderProgressResponse(_CamelModel):
    success: bool = True
    status: RenderStatus
    progress: float
    output_url: str | None = Field(default=None, alias="outputUrl")
    errors: list[str] = Field(default_factory=list)
    fatal_error_encountered: bool = Field(default=False, alias="fatalErrorEncountered")


class InfrastructureRequest(_CamelModel):
    site_name: str | None = Field(default=None, alias="siteName")
    force: bool = False


class InfrastructureResponse(_CamelModel):
    success: bool = True
    bucket_name: str = Field(alias="bucketName")
    function_name: str = Field(alias="functionName")
    serve_url: str = Field(alias="serveUrl")
    site_name: str = Field(alias="siteName")
