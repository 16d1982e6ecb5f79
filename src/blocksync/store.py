"""
Local cache of downloaded resources.

Each resource lives in its own folder under the cache root as three sibling
files: the payload, ``<name>.etag`` and (staging builds) ``<name>.lastmodified``.
Files are replaced atomically, so a failed write never corrupts the copy
that was there before.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from .errors import FailedToCreateCacheFolder, NoData, NotModified, ResourceError
from .resources import (
    Resource,
    cache_file_name,
    cache_folder_name,
    etag_file_name,
    last_modified_file_name,
    resource_path,
)
from .transport import NetworkResource, Transport, UrllibTransport

if TYPE_CHECKING:
    from .config import SyncConfig

logger = logging.getLogger(__name__)

SERVICES_KEY_HEADER = "BraveServiceKey"


@dataclass
class FetchResult:
    """Outcome of ``ResourceStore.download``."""

    path: Path
    date: float
    not_modified: bool = False


def atomic_write_bytes(target: Path, data: bytes) -> None:
    """Atomically replace ``target`` with ``data``."""
    with tempfile.NamedTemporaryFile("wb", delete=False, dir=target.parent, prefix=f".{target.name}.") as tmp:
        tmp.write(data)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_path = Path(tmp.name)
    try:
        tmp_path.replace(target)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


class ResourceStore:
    """Conditional downloader and on-disk cache for resources."""

    def __init__(
        self,
        cache_dir: Path,
        transport: Transport,
        *,
        base_url: str,
        services_key: str | None = None,
        check_last_modified: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache_dir = cache_dir
        self._transport = transport
        self._base_url = base_url.rstrip("/")
        self._headers = {SERVICES_KEY_HEADER: services_key} if services_key else {}
        self._check_last_modified = check_last_modified
        self._clock = clock

    @classmethod
    def from_config(cls, config: SyncConfig, transport: Transport | None = None) -> ResourceStore:
        return cls(
            config.resolved_cache_dir(),
            transport or UrllibTransport(timeout=config.request_timeout),
            base_url=config.base_url,
            services_key=config.services_key,
            check_last_modified=config.checks_last_modified,
        )

    def url_for(self, resource: Resource) -> str:
        return self._base_url + resource_path(resource)

    def folder_path(self, resource: Resource) -> Path:
        return self.cache_dir / cache_folder_name(resource)

    def file_path(self, resource: Resource) -> Path:
        return self.folder_path(resource) / cache_file_name(resource)

    # Filesystem accessors, never touch the network

    def downloaded_file_path(self, resource: Resource) -> Path | None:
        """Path of the cached payload, or None if it does not exist."""
        path = self.file_path(resource)
        return path if path.is_file() else None

    def data(self, resource: Resource) -> bytes | None:
        """Cached payload bytes, or None if nothing is cached."""
        path = self.downloaded_file_path(resource)
        if path is None:
            return None
        try:
            return path.read_bytes()
        except FileNotFoundError:
            # Removed between the check and the read
            return None

    def _read_text(self, path: Path) -> str | None:
        try:
            return path.read_text(encoding="utf-8").strip() or None
        except FileNotFoundError:
            return None

    def etag(self, resource: Resource) -> str | None:
        return self._read_text(self.folder_path(resource) / etag_file_name(resource))

    def last_modified(self, resource: Resource) -> str | None:
        return self._read_text(self.folder_path(resource) / last_modified_file_name(resource))

    def creation_date(self, resource: Resource) -> float | None:
        """Time the cached payload was written, or None if nothing is cached."""
        path = self.downloaded_file_path(resource)
        return path.stat().st_mtime if path else None

    def remove_file(self, resource: Resource) -> None:
        """Remove the cached payload and its validators."""
        folder = self.folder_path(resource)
        for name in (cache_file_name(resource), etag_file_name(resource), last_modified_file_name(resource)):
            (folder / name).unlink(missing_ok=True)

    def _get_or_create_folder(self, resource: Resource) -> Path:
        folder = self.folder_path(resource)
        try:
            folder.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FailedToCreateCacheFolder(f"Cannot create cache folder {folder}: {e}") from e
        return folder

    def write(self, resource: Resource, network_resource: NetworkResource) -> Path:
        """Store a fetched payload with its validators. Blocking."""
        folder = self._get_or_create_folder(resource)
        file_path = folder / cache_file_name(resource)
        etag_path = folder / etag_file_name(resource)
        last_modified_path = folder / last_modified_file_name(resource)

        # Drop validators first: a payload without an etag is valid,
        # a new payload paired with a stale etag is not
        etag_path.unlink(missing_ok=True)
        last_modified_path.unlink(missing_ok=True)

        atomic_write_bytes(file_path, network_resource.data)
        if network_resource.etag:
            atomic_write_bytes(etag_path, network_resource.etag.encode("utf-8"))
        if network_resource.last_modified and self._check_last_modified:
            atomic_write_bytes(last_modified_path, network_resource.last_modified.encode("utf-8"))

        return file_path

    async def download(self, resource: Resource) -> FetchResult:
        """Conditionally fetch a resource and cache it.

        Raises:
            NoData: The server returned an empty body.
            FailedToCreateCacheFolder: The cache folder could not be created.
            TransportError: Propagated untouched from the transport.
        """
        has_payload = self.downloaded_file_path(resource) is not None
        etag = self.etag(resource) if has_payload else None
        last_modified = self.last_modified(resource) if has_payload and self._check_last_modified else None
        url = self.url_for(resource)

        try:
            network_resource = await self._transport.fetch(
                url, etag=etag, last_modified=last_modified, headers=self._headers
            )
        except NotModified:
            cached = self.downloaded_file_path(resource)
            if cached is None:
                raise ResourceError(f"{url} not modified but nothing is cached") from None
            logger.debug("Not modified: %s", url)
            return FetchResult(path=cached, date=self._clock(), not_modified=True)

        if not network_resource.data:
            raise NoData(f"Empty response for {url}")

        loop = asyncio.get_running_loop()
        path = await loop.run_in_executor(None, self.write, resource, network_resource)
        logger.debug("Downloaded %s (%d bytes) to %s", url, len(network_resource.data), path)
        return FetchResult(path=path, date=self._clock())
