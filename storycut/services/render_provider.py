"""Compute/deploy provider contract and its HTTP client.

The provider owns storage buckets, deployed render functions and deployed
render bundles ("sites"). The SDK that manages them runs in a companion
service; this module talks to it over HTTP.
"""

import logging
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

import httpx

from storycut.config import get_settings
from storycut.exceptions import StorycutError, SubmissionError, TransportError
from storycut.schemas.render import (
    FunctionDeployment,
    FunctionInfo,
    RemoteRenderProgress,
    RenderSubmission,
    SiteDeployment,
    SiteInfo,
    SubmitRenderRequest,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RenderProvider(Protocol):
    async def ensure_bucket(self, region: str) -> str: ...

    async def list_compatible_functions(self, region: str) -> list[FunctionInfo]: ...

    async def deploy_function(
        self,
        region: str,
        architecture: str,
        memory_mb: int,
        timeout_s: int,
    ) -> FunctionDeployment: ...

    async def list_sites(self, region: str, bucket_name: str) -> list[SiteInfo]: ...

    async def deploy_bundle(
        self,
        region: str,
        bucket_name: str,
        entry_point: str,
        site_name: str | None,
    ) -> SiteDeployment: ...

    async def submit_render(self, region: str, request: SubmitRenderRequest) -> RenderSubmission: ...

    async def poll_render(
        self,
        region: str,
        render_id: str,
        bucket_name: str,
        function_name: str,
    ) -> RemoteRenderProgress: ...


class HttpRenderProvider:
    """RenderProvider backed by the render companion service."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.render_service_url).rstrip("/")
        self.timeout_s = timeout_s or settings.render_service_timeout_s
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_s,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            async with self._client() as client:
                resp = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransportError(f"{method} {path} timed out", timed_out=True) from e
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        if resp.status_code >= 400:
            raise TransportError(f"{method} {path} returned {resp.status_code}: {_error_detail(resp)}")
        return resp

    async def ensure_bucket(self, region: str) -> str:
        resp = await self._request("POST", "/buckets", json={"region": region})
        return _parse(resp, "POST /buckets", lambda body: body["bucketName"])

    async def list_compatible_functions(self, region: str) -> list[FunctionInfo]:
        resp = await self._request(
            "GET", "/functions", params={"region": region, "compatibleOnly": "true"}
        )
        return _parse(
            resp,
            "GET /functions",
            lambda body: [FunctionInfo.model_validate(fn) for fn in body.get("functions", [])],
        )

    async def deploy_function(
        self,
        region: str,
        architecture: str,
        memory_mb: int,
        timeout_s: int,
    ) -> FunctionDeployment:
        resp = await self._request(
            "POST",
            "/functions",
            json={
                "region": region,
                "architecture": architecture,
                "memorySizeInMb": memory_mb,
                "timeoutInSeconds": timeout_s,
                "createCloudWatchLogGroup": True,
            },
        )
        return _parse(resp, "POST /functions", FunctionDeployment.model_validate)

    async def list_sites(self, region: str, bucket_name: str) -> list[SiteInfo]:
        resp = await self._request(
            "GET", "/sites", params={"region": region, "bucketName": bucket_name}
        )
        return _parse(
            resp,
            "GET /sites",
            lambda body: [SiteInfo.model_validate(site) for site in body.get("sites", [])],
        )

    async def deploy_bundle(
        self,
        region: str,
        bucket_name: str,
        entry_point: str,
        site_name: str | None,
    ) -> SiteDeployment:
        payload = {"region": region, "bucketName": bucket_name, "entryPoint": entry_point}
        if site_name:
            payload["siteName"] = site_name
        resp = await self._request("POST", "/sites", json=payload)
        return _parse(resp, "POST /sites", SiteDeployment.model_validate)

    async def submit_render(self, region: str, request: SubmitRenderRequest) -> RenderSubmission:
        payload = {"region": region, **request.model_dump(by_alias=True, exclude_none=True)}
        try:
            async with self._client() as client:
                resp = await client.post("/renders", json=payload)
        except httpx.TimeoutException as e:
            raise TransportError("POST /renders timed out", timed_out=True) from e
        except httpx.HTTPError as e:
            raise TransportError(f"POST /renders failed: {e}") from e

        if 400 <= resp.status_code < 500:
            raise SubmissionError(f"Render rejected by provider: {_error_detail(resp)}")
        if resp.status_code >= 500:
            raise TransportError(f"POST /renders returned {resp.status_code}: {_error_detail(resp)}")
        return _parse(resp, "POST /renders", RenderSubmission.model_validate, SubmissionError)

    async def poll_render(
        self,
        region: str,
        render_id: str,
        bucket_name: str,
        function_name: str,
    ) -> RemoteRenderProgress:
        resp = await self._request(
            "GET",
            f"/renders/{render_id}",
            params={"region": region, "bucketName": bucket_name, "functionName": function_name},
        )
        return _parse(resp, f"GET /renders/{render_id}", RemoteRenderProgress.model_validate)


def _parse(
    resp: httpx.Response,
    what: str,
    parse: Callable[[Any], T],
    error_cls: type[StorycutError] = TransportError,
) -> T:
    """Decode a provider reply, raising error_cls when the body is not what we expect."""
    try:
        return parse(resp.json())
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        # ValueError covers both bad JSON and pydantic ValidationError
        logger.warning(f"Malformed provider response to {what}: {e}")
        raise error_cls(f"Malformed response to {what}: {e}") from e


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:300]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or body)
    return str(body)
