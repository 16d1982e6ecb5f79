"""
HTTP transport for the remote resource bucket.

Performs conditional GETs; a "304 Not Modified" answer raises ``NotModified``
so callers can tell it apart from a download.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.message import Message

from .errors import NotModified, TransportError

logger = logging.getLogger(__name__)

USER_AGENT = "blocksync/1.0"


@dataclass
class NetworkResource:
    """Body and validators returned by a successful fetch."""

    data: bytes
    etag: str | None = None
    last_modified: str | None = None


class Transport(ABC):
    @abstractmethod
    async def fetch(
        self,
        url: str,
        *,
        etag: str | None = None,
        last_modified: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> NetworkResource: ...


class UrllibTransport(Transport):
    """Transport built on ``urllib.request``, run in the default executor."""

    def __init__(self, timeout: float = 60) -> None:
        self._timeout = timeout
        self._context = ssl.create_default_context()

    async def fetch(
        self,
        url: str,
        *,
        etag: str | None = None,
        last_modified: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> NetworkResource:
        request_headers = {"User-Agent": USER_AGENT, **(headers or {})}
        if etag:
            request_headers["If-None-Match"] = etag
        if last_modified:
            request_headers["If-Modified-Since"] = last_modified

        def _do_fetch() -> NetworkResource:
            req = urllib.request.Request(url, headers=request_headers)
            try:
                with urllib.request.urlopen(req, timeout=self._timeout, context=self._context) as response:
                    data: bytes = response.read()
                    response_headers: Message = response.headers
            except urllib.error.HTTPError as e:
                if e.code == 304:
                    raise NotModified(url) from e
                raise TransportError(f"GET {url} failed with HTTP {e.code}", status=e.code) from e
            except (urllib.error.URLError, TimeoutError, OSError) as e:
                raise TransportError(f"GET {url} failed: {e}") from e

            return NetworkResource(
                data=data,
                etag=response_headers.get("ETag"),
                last_modified=response_headers.get("Last-Modified"),
            )

        logger.debug("Fetching %s (etag=%s)", url, etag)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, _do_fetch)
