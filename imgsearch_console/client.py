"""HTTP client for the remote image-embedding service.

Every call maps its outcome onto the console's error taxonomy:
- missing base URL          -> ConfigurationError (no request is made)
- network fault / non-2xx   -> TransportError (bounded body excerpt)
- unexpected response shape -> ProtocolError

Nothing is retried here; retry is always an explicit user action.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx
import pydantic

from imgsearch_console.config import (
    IMGSEARCH_ERROR_BODY_LIMIT,
    IMGSEARCH_REQUEST_TIMEOUT_SECONDS,
    normalize_base_url,
)
from imgsearch_console.errors import ConfigurationError, ProtocolError, TransportError
from imgsearch_console.logging_config import current_request_id, generate_request_id
from imgsearch_console.models import SEARCH_HITS, SearchHit, TrainStartResponse, TrainStatusResponse
from imgsearch_console.types import SelectedFile

logger = logging.getLogger(__name__)


def _describe_http_error(exc: httpx.HTTPError) -> str:
    text = str(exc).strip()
    return text or type(exc).__name__


class RemoteClient:
    def __init__(
        self,
        base_url: str | None,
        *,
        timeout: float = IMGSEARCH_REQUEST_TIMEOUT_SECONDS,
        error_body_limit: int = IMGSEARCH_ERROR_BODY_LIMIT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = normalize_base_url(base_url)
        self._timeout = timeout
        self._error_body_limit = error_body_limit
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    async def __aenter__(self) -> RemoteClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    def require_base_url(self) -> str:
        if not self.base_url:
            raise ConfigurationError("Server configuration error. API base URL is missing.")
        return self.base_url

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._http

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        files: list[tuple[str, tuple[str, bytes, str]]] | None = None,
    ) -> httpx.Response:
        url = f"{self.require_base_url()}{path}"
        request_id = generate_request_id()
        token = current_request_id.set(request_id)
        try:
            logger.debug("%s %s", method, url)
            try:
                resp = await self._client().request(
                    method,
                    url,
                    params=params,
                    files=files,
                    headers={"X-Request-ID": request_id},
                )
            except httpx.InvalidURL as e:
                logger.warning("%s %s could not be sent: %s", method, path, e)
                raise ProtocolError(
                    f"Cannot build request URL: {e}",
                    detail=str(e),
                ) from e
            except httpx.TimeoutException as e:
                logger.warning("%s %s timed out", method, path)
                raise TransportError(
                    f"Request timed out: {_describe_http_error(e)}",
                    detail=_describe_http_error(e),
                ) from e
            except httpx.HTTPError as e:
                logger.warning("%s %s failed: %s", method, path, e)
                raise TransportError(
                    f"Network Error: {_describe_http_error(e)}",
                    detail=_describe_http_error(e),
                ) from e

            if not resp.is_success:
                logger.warning("%s %s returned %d", method, path, resp.status_code)
                raise TransportError(
                    f"Server returned status: {resp.status_code}",
                    status_code=resp.status_code,
                    body_excerpt=resp.text[: self._error_body_limit],
                )
            return resp
        finally:
            current_request_id.reset(token)

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise ProtocolError("Server returned a response that is not valid JSON.") from e

    # -- Training -------------------------------------------------------------

    async def start_training(self) -> str:
        """Start a training job and return its job id."""
        resp = await self._request("POST", "/start_train")
        data = self._json(resp)
        if not isinstance(data, dict):
            raise ProtocolError("Could not retrieve job ID from server.")
        try:
            parsed = TrainStartResponse.model_validate(data)
        except pydantic.ValidationError as e:
            raise ProtocolError("Could not retrieve job ID from server.", detail=str(e)) from e
        if not parsed.job_id:
            raise ProtocolError("Could not retrieve job ID from server.")
        return parsed.job_id

    async def training_status(self, job_id: str) -> TrainStatusResponse:
        resp = await self._request("GET", f"/train_status/{job_id}")
        data = self._json(resp)
        if not isinstance(data, dict):
            raise ProtocolError("Server returned no status for the training job.")
        try:
            return TrainStatusResponse.model_validate(data)
        except pydantic.ValidationError as e:
            raise ProtocolError("Server returned a malformed training status.", detail=str(e)) from e

    # -- Search ---------------------------------------------------------------

    async def compare_image(self, file: SelectedFile) -> list[SearchHit]:
        """Send one image and return the raw similarity hits."""
        resp = await self._request(
            "POST",
            "/compare_image",
            files=[("file", (file.name, file.content, file.content_type))],
        )
        data = self._json(resp)
        if data is None:
            return []
        try:
            return SEARCH_HITS.validate_python(data)
        except pydantic.ValidationError as e:
            raise ProtocolError("Server returned malformed search results.", detail=str(e)) from e

    # -- Upload ---------------------------------------------------------------

    async def upload(self, files: Sequence[SelectedFile]) -> None:
        """Upload all files in one multipart request (repeated ``file`` field)."""
        await self._request(
            "POST",
            "/upload",
            files=[("file", (f.name, f.content, f.content_type)) for f in files],
        )

    # -- Images ---------------------------------------------------------------

    async def fetch_image(self, path: str) -> bytes:
        resp = await self._request("GET", "/image", params={"path": path})
        return resp.content
