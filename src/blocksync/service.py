"""
Composition root: builds every component from a ``SyncConfig`` and owns
their background tasks.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .builder import EngineBuilder
from .config import SyncConfig
from .content_blocker import ContentBlockerCompiler, RuleListStore
from .decision import DecisionEngine
from .downloaders import AdblockResourceDownloader, CosmeticFiltersResourceDownloader
from .filter_lists import FilterList, FilterListSettingsStore, load_filter_lists
from .interception import PageShield
from .scheduler import ResourceSyncScheduler
from .store import ResourceStore
from .tracker import FilterListStateTracker
from .transport import Transport

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)


class AdblockService:
    """All adblock components wired together for one process."""

    def __init__(
        self,
        config: SyncConfig | None = None,
        *,
        transport: Transport | None = None,
        compiler: ContentBlockerCompiler | None = None,
        filter_lists: list[FilterList] | None = None,
        settings: FilterListSettingsStore | None = None,
    ) -> None:
        self.config = config or SyncConfig.load()
        timers = {"fetch_interval": self.config.fetch_interval, "tick_interval": self.config.tick_interval}

        self.store = ResourceStore.from_config(self.config, transport)
        self.decision = DecisionEngine.from_config(self.config)
        self.builder = EngineBuilder(self.store)
        self.compiler = compiler or RuleListStore()
        self.settings = settings or FilterListSettingsStore(self.config.resolved_settings_path())

        self.scheduler = ResourceSyncScheduler(self.store, **timers)
        self.tracker = FilterListStateTracker(
            filter_lists if filter_lists is not None else load_filter_lists(),
            scheduler=self.scheduler,
            store=self.store,
            settings=self.settings,
            builder=self.builder,
            decision=self.decision,
            compiler=self.compiler,
            tick_interval=self.config.tick_interval,
        )
        self.generic = AdblockResourceDownloader(self.store, self.builder, self.decision, self.compiler, **timers)
        self.cosmetic = CosmeticFiltersResourceDownloader(self.store, self.decision, **timers)
        self.shield = PageShield(self.decision)
        self._started = False

    async def start(self) -> None:
        """Load cached data and start all timers."""
        if self._started:
            return
        self._started = True
        self.generic.start()
        self.cosmetic.start()
        self.tracker.start()
        logger.debug("Adblock service started (%s channel)", self.config.build_channel)

    async def stop(self) -> None:
        """Cancel every background task."""
        if not self._started:
            return
        self._started = False
        await self.tracker.stop()
        await self.scheduler.stop()
        await self.generic.stop()
        await self.cosmetic.stop()
        logger.debug("Adblock service stopped")

    async def __aenter__(self) -> AdblockService:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    def set_filter_list_enabled(self, uuid: str, is_enabled: bool) -> None:
        self.tracker.set_enabled(uuid, is_enabled)

    def set_regional_adblock_enabled(self, is_enabled: bool) -> None:
        self.decision.set_regional_adblock_enabled(is_enabled)

    async def setup_page(self, page: Page) -> None:
        await self.shield.setup_page(page)
