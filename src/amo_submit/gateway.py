"""Authenticated HTTP gateway for the AMO API.

Single point of HTTP interaction for the submission workflow. Every request
gets a fresh Authorization header from the injected ApiAuth, plus the Accept
and User-Agent headers. There is intentionally no retry layer: transport
errors propagate to the caller, and only the polling stages repeat requests.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Union

import httpx

from .auth import ApiAuth
from .errors import HttpStatusError

logger = logging.getLogger(__name__)

XPI_CONTENT_TYPE = "application/x-xpinstall"


# ── Request bodies ───────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class FilePart:
    """One file field of a multipart body."""

    filename: str
    content: bytes = field(repr=False)
    content_type: str = XPI_CONTENT_TYPE

    @classmethod
    def from_path(cls, path: str | Path, content_type: str = XPI_CONTENT_TYPE) -> FilePart:
        p = Path(path)
        return cls(filename=p.name, content=p.read_bytes(), content_type=content_type)


@dataclass(frozen=True, slots=True)
class MultipartForm:
    """Multipart body; httpx generates the boundary and Content-Type."""

    fields: dict[str, str] = field(default_factory=dict)
    files: dict[str, FilePart] = field(default_factory=dict)

    def to_httpx(self) -> dict[str, Any]:
        return {
            "data": dict(self.fields),
            "files": {
                name: (part.filename, part.content, part.content_type)
                for name, part in self.files.items()
            },
        }


# A JSON body is passed pre-encoded as a string.
RequestBody = Union[str, MultipartForm, None]


# ── Gateway ──────────────────────────────────────────────────────


class HttpGateway:
    """Executes authenticated requests and classifies their responses."""

    def __init__(
        self,
        *,
        api_auth: ApiAuth,
        user_agent: str,
        http_client: httpx.AsyncClient,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._api_auth = api_auth
        self._user_agent = user_agent
        self._client = http_client
        self._timeout = float(timeout_seconds)

    async def _headers(self, body: RequestBody = None) -> dict[str, str]:
        # Never log these headers.
        headers = {
            "Authorization": await self._api_auth.get_auth_header(),
            "Accept": "application/json",
            "User-Agent": self._user_agent,
        }
        if isinstance(body, str):
            headers["Content-Type"] = "application/json"
        return headers

    async def request(
        self,
        url: str | httpx.URL,
        method: str = "GET",
        body: RequestBody = None,
    ) -> httpx.Response:
        """Send one authenticated request and return the raw response."""
        logger.info("Fetching URL: %s", url)
        headers = await self._headers(body)

        kwargs: dict[str, Any] = {}
        if isinstance(body, str):
            kwargs["content"] = body.encode("utf-8")
        elif isinstance(body, MultipartForm):
            kwargs.update(body.to_httpx())

        return await self._client.request(
            method,
            url,
            headers=headers,
            timeout=self._timeout,
            **kwargs,
        )

    async def request_status(
        self,
        url: str | httpx.URL,
        method: str = "GET",
        body: RequestBody = None,
        error_context: str = "Bad Request",
    ) -> httpx.Response:
        """Send a request whose body carries nothing the caller needs.

        Status codes are classified like ``request_json``; a 2xx response is
        returned unparsed, so empty and 204 bodies are accepted.
        """
        resp = await self.request(url, method, body)
        self._raise_for_status(resp, error_context)
        return resp

    async def request_json(
        self,
        url: str | httpx.URL,
        method: str = "GET",
        body: RequestBody = None,
        error_context: str = "Bad Request",
    ) -> Any:
        """Send a request and return its parsed JSON body.

        Raises:
            HttpStatusError: If the status is below 200 or at least 500, or if
                the server answered with a non-2xx status in between.
        """
        resp = await self.request(url, method, body)
        self._raise_for_status(resp, error_context)
        return resp.json()

    @staticmethod
    def _raise_for_status(resp: httpx.Response, error_context: str) -> None:
        if resp.status_code < 200 or resp.status_code >= 500:
            raise HttpStatusError(error_context, resp.status_code, resp.reason_phrase)

        if not resp.is_success:
            try:
                logger.info("Server Response: %s", resp.json())
            except ValueError:
                logger.info("Server Response: %s", resp.text[:200])
            raise HttpStatusError(error_context, resp.status_code, resp.reason_phrase)

    @asynccontextmanager
    async def stream(
        self,
        url: str | httpx.URL,
        method: str = "GET",
    ) -> AsyncIterator[httpx.Response]:
        """Open an authenticated streaming response; the body is not preloaded."""
        logger.info("Fetching URL: %s", url)
        headers = await self._headers()
        async with self._client.stream(
            method,
            url,
            headers=headers,
            timeout=self._timeout,
        ) as resp:
            yield resp
