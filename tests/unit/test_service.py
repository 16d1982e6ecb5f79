"""Unit tests for the service composition root."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from blocksync.config import SyncConfig
from blocksync.engine import serialize_rules
from blocksync.resources import GENERIC_FILTER_RULES, ResourceType, resource_path


@pytest.fixture
def config(tmp_path: Path) -> SyncConfig:
    return SyncConfig(
        cache_dir=str(tmp_path / "cache"),
        settings_path=str(tmp_path / "settings.json"),
        tick_interval=3600,
    )


class TestAdblockService:
    """Wiring and lifecycle."""

    @pytest.mark.asyncio
    async def test_start_loads_and_stop_cancels(self, config: SyncConfig, transport, filter_lists) -> None:
        from blocksync.service import AdblockService

        transport.serve(resource_path(GENERIC_FILTER_RULES), serialize_rules("||generic-ads.com^"))
        service = AdblockService(config, transport=transport, filter_lists=filter_lists)

        async with service:
            await asyncio.sleep(0)
            await service.generic.wait_idle()
            await service.cosmetic.wait_idle()

            assert service.decision.should_block("https://generic-ads.com/x", "https://site.com") is True

        assert not service.scheduler.is_syncing(ResourceType.FILTER_RULES)
        assert not service.tracker.is_loading(ResourceType.FILTER_RULES)

    @pytest.mark.asyncio
    async def test_filter_list_toggle(self, config: SyncConfig, transport, filter_lists) -> None:
        from blocksync.service import AdblockService

        l1 = filter_lists[0]
        transport.serve(
            resource_path(ResourceType.FILTER_RULES.resource_for(l1)), serialize_rules("||regional-ads.com^")
        )
        service = AdblockService(config, transport=transport, filter_lists=filter_lists)
        await service.start()
        try:
            service.set_filter_list_enabled("L1", True)
            await service.tracker.settle()

            service.scheduler.tick()
            await service.scheduler.wait_idle()
            service.tracker.tick()
            await service.tracker.settle()

            assert service.decision.should_block("https://regional-ads.com/x", "https://site.com") is True

            service.set_regional_adblock_enabled(False)
            assert service.decision.should_block("https://regional-ads.com/x", "https://site.com") is False
        finally:
            await service.stop()

        saved = json.loads(Path(config.settings_path).read_text())  # type: ignore[arg-type]
        assert saved == [{"uuid": "L1", "is_enabled": True}]

    @pytest.mark.asyncio
    async def test_setup_page_delegates_to_shield(self, config: SyncConfig, transport, filter_lists) -> None:
        from unittest.mock import AsyncMock, MagicMock

        from blocksync.service import AdblockService

        page = MagicMock()
        page.route = AsyncMock()
        service = AdblockService(config, transport=transport, filter_lists=filter_lists)

        await service.setup_page(page)

        page.route.assert_awaited_once_with("**/*", service.shield.handle_route)
