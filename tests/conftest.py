"""Shared fixtures: an in-memory transport and a store rooted in tmp_path."""

from __future__ import annotations

import asyncio
from pathlib import Path
from urllib.parse import urlsplit

import pytest

from blocksync.errors import NotModified, TransportError
from blocksync.filter_lists import FilterList
from blocksync.store import ResourceStore
from blocksync.transport import NetworkResource, Transport

BASE_URL = "https://bucket.test"


class FakeTransport(Transport):
    """Serves canned responses by URL path on any host and records every request."""

    def __init__(self) -> None:
        self.responses: dict[str, NetworkResource | BaseException] = {}
        self.calls: list[dict] = []
        # When set, fetches wait on it before answering
        self.gate: asyncio.Event | None = None

    def serve(self, path: str, data: bytes, etag: str | None = None, last_modified: str | None = None) -> None:
        self.responses[path] = NetworkResource(data=data, etag=etag, last_modified=last_modified)

    def fail(self, path: str, error: BaseException) -> None:
        self.responses[path] = error

    def not_modified(self, path: str) -> None:
        self.responses[path] = NotModified(BASE_URL + path)

    def calls_for(self, path: str) -> list[dict]:
        return [call for call in self.calls if urlsplit(call["url"]).path == path]

    async def fetch(
        self,
        url: str,
        *,
        etag: str | None = None,
        last_modified: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> NetworkResource:
        self.calls.append({"url": url, "etag": etag, "last_modified": last_modified, "headers": headers or {}})
        if self.gate is not None:
            await self.gate.wait()

        response = self.responses.get(urlsplit(url).path)
        if response is None:
            raise TransportError(f"GET {url} failed with HTTP 404", status=404)
        if isinstance(response, BaseException):
            raise response
        return response


def make_filter_list(uuid: str, component_id: str | None = None, title: str | None = None) -> FilterList:
    return FilterList(uuid=uuid, component_id=component_id or f"component-{uuid.lower()}", title=title or uuid)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def store(cache_dir: Path, transport: FakeTransport) -> ResourceStore:
    return ResourceStore(cache_dir, transport, base_url=BASE_URL)


@pytest.fixture
def filter_lists() -> list[FilterList]:
    """Three regional lists, L1..L3."""
    return [make_filter_list(f"L{i}") for i in (1, 2, 3)]
