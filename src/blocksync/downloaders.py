"""
Downloaders for singleton resources that are not tied to a filter list.

``AdblockResourceDownloader`` keeps the generic filter rules and generic
content-blocking behaviors current. ``CosmeticFiltersResourceDownloader``
keeps the cosmetic filters and scriptlet resources current. Both fetch at
most once per fetch interval and always build a new engine rather than
adding to the installed one.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from .builder import EngineBuilder
from .content_blocker import GENERIC_BLOCKLIST, ContentBlockerCompiler
from .decision import DecisionEngine
from .engine import AdblockEngine
from .errors import FailedToCreateCacheFolder
from .resources import (
    COSMETIC_FILTERS,
    GENERIC_CONTENT_BLOCKING_BEHAVIORS,
    GENERIC_FILTER_RULES,
    SCRIPTLET_RESOURCES,
    Resource,
)
from .store import FetchResult, ResourceStore

logger = logging.getLogger(__name__)


class PeriodicResourceLoader:
    """Runs ``start_loading`` on a timer; one run in flight at a time."""

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
        # Epoch zero forces a fetch on first launch
        self.last_fetch_date = 0.0
        self._task: asyncio.Task[None] | None = None
        self._timer: asyncio.Task[None] | None = None

    def start(self) -> None:
        if self._timer is None:
            self._timer = asyncio.create_task(self._run_timer(), name=f"{type(self).__name__}-timer")

    async def _run_timer(self) -> None:
        while True:
            self.trigger()
            await asyncio.sleep(self._tick_interval)

    def trigger(self) -> None:
        """Start a load unless one is already running."""
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._run_once(), name=type(self).__name__)

    async def _run_once(self) -> None:
        try:
            await self.start_loading()
        except Exception:
            logger.exception("%s failed", type(self).__name__)
        finally:
            self._task = None

    async def wait_idle(self) -> None:
        while self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def stop(self) -> None:
        tasks = [task for task in (self._timer, self._task) if task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._timer = None
        self._task = None

    def _fetch_due(self) -> bool:
        """Check the fetch interval and, if due, record this fetch."""
        now = self._clock()
        if now - self.last_fetch_date < self._fetch_interval:
            return False
        self.last_fetch_date = now
        return True

    async def _download(self, resource: Resource) -> FetchResult | None:
        try:
            return await self._store.download(resource)
        except Exception as e:
            logger.error("Failed to download %s: %s", resource.kind.value, e)
            return None

    async def start_loading(self) -> None:
        raise NotImplementedError


class AdblockResourceDownloader(PeriodicResourceLoader):
    """Generic filter rules and content-blocking behaviors."""

    def __init__(
        self,
        store: ResourceStore,
        builder: EngineBuilder,
        decision: DecisionEngine,
        compiler: ContentBlockerCompiler,
        **kwargs,
    ) -> None:
        super().__init__(store, **kwargs)
        self._builder = builder
        self._decision = decision
        self._compiler = compiler
        self._initial_load = True

    async def start_loading(self) -> None:
        if self._initial_load:
            self._initial_load = False
            await self._load_cached()

        if self._fetch_due():
            await asyncio.gather(self._download_filter_rules(), self._download_content_blocking_behaviors())

    async def _load_cached(self) -> None:
        """Install whatever generic data is already on disk."""
        await self._reload_generic_engine()
        await self._compile_content_blocker()

    async def _reload_generic_engine(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            engine = await loop.run_in_executor(None, self._builder.build_from_resource, GENERIC_FILTER_RULES)
        except OSError as e:
            logger.error("Failed to read generic filter rules: %s", e)
            return
        if engine is not None:
            self._decision.set_generic_engine(engine)

    async def _compile_content_blocker(self) -> None:
        try:
            data = self._store.data(GENERIC_CONTENT_BLOCKING_BEHAVIORS)
            if data is not None:
                await self._compiler.compile(GENERIC_BLOCKLIST, data)
        except Exception as e:
            logger.error("Failed to compile generic content blocker: %s", e)

    async def _download_filter_rules(self) -> None:
        result = await self._download(GENERIC_FILTER_RULES)
        if result is None or result.not_modified:
            return
        await self._reload_generic_engine()

    async def _download_content_blocking_behaviors(self) -> None:
        result = await self._download(GENERIC_CONTENT_BLOCKING_BEHAVIORS)
        if result is None or result.not_modified:
            return
        await self._compile_content_blocker()


class CosmeticFiltersResourceDownloader(PeriodicResourceLoader):
    """Cosmetic filters (.dat) and scriptlet resources (.json).

    Both resources are loaded into a temporary engine that replaces the
    installed cosmetic engine once the whole load has run. A resource that
    fails to parse is logged and left out; it does not prevent installation.
    """

    RESOURCES = (COSMETIC_FILTERS, SCRIPTLET_RESOURCES)

    def __init__(
        self,
        store: ResourceStore,
        decision: DecisionEngine,
        *,
        engine_factory: Callable[[], AdblockEngine] = AdblockEngine,
        **kwargs,
    ) -> None:
        super().__init__(store, **kwargs)
        self._decision = decision
        self._engine_factory = engine_factory
        self._initial_load = True

    def css_rules(self, url: str) -> str | None:
        """Cosmetic resources JSON of the installed engine, if any."""
        engine = self._decision.cosmetic_engine
        return engine.cosmetic_resources_for_url(url) if engine else None

    async def start_loading(self) -> None:
        if not self._fetch_due():
            return

        if self._initial_load:
            self._initial_load = False
            await self._setup_engine()

        await asyncio.gather(*(self._download(resource) for resource in self.RESOURCES))
        await self._setup_engine()

    async def _setup_engine(self) -> None:
        """Load the cached files into a new engine and install it."""
        loop = asyncio.get_running_loop()
        try:
            engine = await loop.run_in_executor(None, self.load_downloaded_files)
        except (FailedToCreateCacheFolder, OSError) as e:
            logger.error("Failed to Setup Cosmetic-Filters: %s", e)
            return

        self._decision.set_cosmetic_engine(engine)
        logger.debug("Successfully Setup Cosmetic-Filters")

    def load_downloaded_files(self) -> AdblockEngine:
        """Build a fresh engine from the cached cosmetic resources. Blocking.

        Raises:
            FailedToCreateCacheFolder: The cache folder is unusable.
            OSError: A cached file exists but cannot be read.
        """
        folder = self._store.folder_path(COSMETIC_FILTERS)
        try:
            folder.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FailedToCreateCacheFolder(f"Could not get directory {folder}: {e}") from e

        engine = self._engine_factory()

        data = self._store.data(COSMETIC_FILTERS)
        if data is not None and not engine.deserialize(data):
            logger.error("Failed to deserialize cosmetic filters")

        data = self._store.data(SCRIPTLET_RESOURCES)
        if data is not None:
            try:
                engine.add_resources(data.decode("utf-8"))
            except (UnicodeDecodeError, ValueError) as e:
                logger.error("Invalid scriptlet resources: %s", e)

        return engine
