"""
Periodic download of per-list resources.

Every tick, for each resource type with no batch in flight, the enabled
lists whose last result is missing, stale or whose file vanished are
downloaded concurrently. Results are published to subscribers as a snapshot
of the whole result table.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from .filter_lists import FilterList
from .resources import ResourceType
from .store import ResourceStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DownloadResult:
    """Latest sync outcome for one (resource type, list)."""

    date: float
    path: Path | None = None
    error: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


ResultTable = dict[ResourceType, dict[str, DownloadResult]]
ResultListener = Callable[[ResultTable], None]


class ResourceSyncScheduler:
    """Keep per-list resources of every ``ResourceType`` fresh on disk."""

    def __init__(
        self,
        store: ResourceStore,
        *,
        fetch_interval: float,
        tick_interval: float = 10.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._fetch_interval = fetch_interval
        self._tick_interval = tick_interval
        self._clock = clock

        self._enabled: dict[str, FilterList] = {}
        self._results: ResultTable = {resource_type: {} for resource_type in ResourceType}
        self._download_tasks: dict[ResourceType, asyncio.Task[None]] = {}
        self._listeners: list[ResultListener] = []
        self._timer: asyncio.Task[None] | None = None

    @property
    def enabled_lists(self) -> list[FilterList]:
        return list(self._enabled.values())

    def results(self) -> ResultTable:
        """A copy of the result table."""
        return {resource_type: dict(per_list) for resource_type, per_list in self._results.items()}

    def subscribe(self, listener: ResultListener) -> None:
        """Call ``listener`` with a fresh snapshot whenever results change."""
        self._listeners.append(listener)

    def is_syncing(self, resource_type: ResourceType) -> bool:
        return resource_type in self._download_tasks

    def start(self, enabled_lists: list[FilterList]) -> None:
        """Track ``enabled_lists``, run a first tick and start the timer."""
        self._enabled = {filter_list.uuid: filter_list for filter_list in enabled_lists}
        if self._timer is None:
            self._timer = asyncio.create_task(self._run_timer(), name="resource-sync-timer")

    def set_enabled(self, filter_list: FilterList, is_enabled: bool) -> None:
        if is_enabled:
            self._enabled[filter_list.uuid] = filter_list
        else:
            self._enabled.pop(filter_list.uuid, None)

    async def _run_timer(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self._tick_interval)

    def tick(self) -> None:
        for resource_type in ResourceType:
            self._attempt_download(resource_type)

    def stale_lists(self, resource_type: ResourceType) -> list[FilterList]:
        """Enabled lists that need downloading for ``resource_type``."""
        now = self._clock()
        previous_results = self._results[resource_type]
        stale: list[FilterList] = []

        for filter_list in self._enabled.values():
            previous = previous_results.get(filter_list.uuid)
            if previous is None:
                stale.append(filter_list)
            elif now - previous.date >= self._fetch_interval:
                stale.append(filter_list)
            elif self._store.downloaded_file_path(resource_type.resource_for(filter_list)) is None:
                # A failed attempt, or the file was removed behind our back
                stale.append(filter_list)

        return stale

    def _attempt_download(self, resource_type: ResourceType) -> None:
        if resource_type in self._download_tasks:
            return

        filter_lists = self.stale_lists(resource_type)
        if not filter_lists:
            return

        logger.debug("Syncing %s for %d filter lists", resource_type.value, len(filter_lists))
        self._download_tasks[resource_type] = asyncio.create_task(
            self._sync(resource_type, filter_lists),
            name=f"resource-sync-{resource_type.value}",
        )

    async def _sync(self, resource_type: ResourceType, filter_lists: list[FilterList]) -> None:
        try:
            results = await self._download_resources(resource_type, filter_lists)
            self._receive(resource_type, results)
        finally:
            self._download_tasks.pop(resource_type, None)

    async def _download_one(self, resource_type: ResourceType, filter_list: FilterList) -> DownloadResult:
        try:
            result = await self._store.download(resource_type.resource_for(filter_list))
        except Exception as e:
            logger.warning("Failed to download %s for %s: %s", resource_type.value, filter_list.uuid, e)
            return DownloadResult(date=self._clock(), error=e)
        return DownloadResult(date=self._clock(), path=result.path)

    async def _download_resources(
        self, resource_type: ResourceType, filter_lists: list[FilterList]
    ) -> dict[str, DownloadResult]:
        outcomes = await asyncio.gather(
            *(self._download_one(resource_type, filter_list) for filter_list in filter_lists)
        )
        return {filter_list.uuid: outcome for filter_list, outcome in zip(filter_lists, outcomes)}

    def _receive(self, resource_type: ResourceType, results: dict[str, DownloadResult]) -> None:
        self._results[resource_type].update(results)
        snapshot = self.results()
        for listener in self._listeners:
            listener(snapshot)

    async def wait_idle(self) -> None:
        """Wait until no download batch is in flight."""
        while self._download_tasks:
            await asyncio.gather(*self._download_tasks.values(), return_exceptions=True)

    async def stop(self) -> None:
        """Cancel the timer and all in-flight batches."""
        tasks = list(self._download_tasks.values())
        if self._timer is not None:
            tasks.append(self._timer)
            self._timer = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._download_tasks.clear()
