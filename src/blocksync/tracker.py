"""
Per (filter list, resource type) state machine.

All state lives in one actor task that consumes typed events: scheduler
results, enabled-flag changes, timer ticks and finished loads. Engine builds
and content-blocker compilation run outside the actor and report back by
posting ``LoadCompleted``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Union

from .builder import EngineBuilder
from .content_blocker import ContentBlockerCompiler, blocklist_name
from .decision import DecisionEngine
from .filter_lists import FilterList, FilterListSettingsStore
from .resources import ResourceType
from .scheduler import ResourceSyncScheduler, ResultTable
from .state import DownloadState, FilterListState, LoadResult, LoadState
from .store import ResourceStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DownloadResultsChanged:
    results: ResultTable


@dataclass(frozen=True)
class EnabledChanged:
    uuid: str
    is_enabled: bool


@dataclass(frozen=True)
class TickElapsed:
    pass


@dataclass(frozen=True)
class LoadCompleted:
    resource_type: ResourceType
    results: dict[str, LoadResult]


Event = Union[DownloadResultsChanged, EnabledChanged, TickElapsed, LoadCompleted]


@dataclass
class FilterListWrapper:
    """A filter list together with whether the user enabled it."""

    filter_list: FilterList
    is_enabled: bool

    @property
    def id(self) -> str:
        return self.filter_list.uuid


class FilterListStateTracker:
    """Decide when engines and content blockers must be rebuilt, and rebuild them."""

    def __init__(
        self,
        filter_lists: list[FilterList],
        *,
        scheduler: ResourceSyncScheduler,
        store: ResourceStore,
        settings: FilterListSettingsStore,
        builder: EngineBuilder,
        decision: DecisionEngine,
        compiler: ContentBlockerCompiler,
        tick_interval: float = 10.0,
    ) -> None:
        self._filter_lists = filter_lists
        self._scheduler = scheduler
        self._store = store
        self._settings = settings
        self._builder = builder
        self._decision = decision
        self._compiler = compiler
        self._tick_interval = tick_interval

        self._wrappers: dict[str, FilterListWrapper] = {}
        self._states: dict[str, dict[ResourceType, FilterListState]] = {}
        self._load_tasks: dict[ResourceType, asyncio.Task[None]] = {}
        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._actor: asyncio.Task[None] | None = None
        self._timer: asyncio.Task[None] | None = None

        # One subscription for the tracker lifetime, across restarts
        scheduler.subscribe(lambda results: self.post(DownloadResultsChanged(results)))

    # Read access

    def state(self, uuid: str, resource_type: ResourceType) -> FilterListState | None:
        return self._states.get(uuid, {}).get(resource_type)

    def is_enabled(self, uuid: str) -> bool:
        wrapper = self._wrappers.get(uuid)
        return wrapper is not None and wrapper.is_enabled

    def is_loading(self, resource_type: ResourceType) -> bool:
        return resource_type in self._load_tasks

    # Lifecycle

    def start(self) -> None:
        """Seed states from disk and settings, then start syncing and ticking."""
        if self._actor is not None:
            return

        settings = {setting.uuid: setting for setting in self._settings.all_settings()}

        for filter_list in self._filter_lists:
            setting = settings.get(filter_list.uuid)
            self._wrappers[filter_list.uuid] = FilterListWrapper(
                filter_list=filter_list,
                is_enabled=setting is not None and setting.is_enabled,
            )
            self._states[filter_list.uuid] = {
                resource_type: FilterListState.initial(
                    self._store.creation_date(resource_type.resource_for(filter_list))
                )
                for resource_type in ResourceType
            }

        self._actor = asyncio.create_task(self._run(), name="filter-list-state-actor")

        self._scheduler.start([w.filter_list for w in self._wrappers.values() if w.is_enabled])
        self._timer = asyncio.create_task(self._run_timer(), name="filter-list-state-timer")

    async def stop(self) -> None:
        """Cancel the timer, the actor and all in-flight loads."""
        tasks = [task for task in (self._timer, self._actor) if task is not None]
        tasks.extend(self._load_tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._timer = None
        self._actor = None
        self._load_tasks.clear()

    async def settle(self) -> None:
        """Wait until every posted event and every load it started has been processed."""
        while True:
            await self._queue.join()
            tasks = list(self._load_tasks.values())
            if not tasks:
                if self._queue.empty():
                    return
                continue
            await asyncio.gather(*tasks, return_exceptions=True)

    # Inputs

    def post(self, event: Event) -> None:
        self._queue.put_nowait(event)

    def tick(self) -> None:
        self.post(TickElapsed())

    def set_enabled(self, uuid: str, is_enabled: bool) -> None:
        """Toggle a list. Persists the setting; the next tick decides on a reload."""
        self.post(EnabledChanged(uuid, is_enabled))

    async def _run_timer(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self._tick_interval)

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                self._handle(event)
            except Exception:
                logger.exception("Failed to handle %s", type(event).__name__)
            finally:
                self._queue.task_done()

    def _handle(self, event: Event) -> None:
        if isinstance(event, DownloadResultsChanged):
            self._on_download_results(event.results)
        elif isinstance(event, EnabledChanged):
            self._on_enabled_changed(event.uuid, event.is_enabled)
        elif isinstance(event, TickElapsed):
            for resource_type in ResourceType:
                self._reload_if_needed(resource_type)
        elif isinstance(event, LoadCompleted):
            self._on_load_completed(event.resource_type, event.results)

    # Event handlers, only ever run inside the actor

    def _on_download_results(self, results: ResultTable) -> None:
        for uuid, states in self._states.items():
            for resource_type, per_list in results.items():
                state = states.setdefault(resource_type, FilterListState.initial(None))
                result = per_list.get(uuid)
                if result is None:
                    state.download_state = DownloadState.not_downloaded()
                elif result.error is not None:
                    state.download_state = DownloadState.failed(result.error)
                else:
                    state.download_state = DownloadState.downloaded(result.date)

    def _on_enabled_changed(self, uuid: str, is_enabled: bool) -> None:
        wrapper = self._wrappers.get(uuid)
        if wrapper is None:
            logger.warning("Cannot toggle unknown filter list %s", uuid)
            return

        setting = self._settings.get(uuid)
        if setting is None:
            self._settings.create(uuid, is_enabled)
        elif setting.is_enabled != is_enabled:
            setting.is_enabled = is_enabled
            self._settings.save(setting)

        wrapper.is_enabled = is_enabled
        self._scheduler.set_enabled(wrapper.filter_list, is_enabled)

    def _reload_if_needed(self, resource_type: ResourceType) -> None:
        if resource_type in self._load_tasks:
            return

        def state_of(wrapper: FilterListWrapper) -> FilterListState:
            return self._states[wrapper.id][resource_type]

        if not any(state_of(w).needs_reload(w.is_enabled) for w in self._wrappers.values()):
            return

        filter_lists = [w.filter_list for w in self._wrappers.values() if state_of(w).needs_load(w.is_enabled)]
        logger.debug("Reloading %s with %d filter lists", resource_type.value, len(filter_lists))
        self._load_tasks[resource_type] = asyncio.create_task(
            self._reload_data(resource_type, filter_lists),
            name=f"filter-list-load-{resource_type.value}",
        )

    def _on_load_completed(self, resource_type: ResourceType, results: dict[str, LoadResult]) -> None:
        for uuid, states in self._states.items():
            result = results.get(uuid)
            states[resource_type].load_state = result.to_load_state() if result else LoadState.not_loaded()
        self._load_tasks.pop(resource_type, None)

    # Loading, runs outside the actor

    async def _reload_data(self, resource_type: ResourceType, filter_lists: list[FilterList]) -> None:
        results: dict[str, LoadResult] = {}
        try:
            if resource_type is ResourceType.FILTER_RULES:
                results = await self._load_filter_rules(filter_lists)
            else:
                results = await self._load_content_blocking_behaviors(filter_lists)
        except Exception:
            logger.exception("Failed to reload %s", resource_type.value)
        finally:
            self.post(LoadCompleted(resource_type, results))

    async def _load_filter_rules(self, filter_lists: list[FilterList]) -> dict[str, LoadResult]:
        loop = asyncio.get_running_loop()
        engine, results = await loop.run_in_executor(None, self._builder.build, filter_lists)
        self._decision.set_regional_engine(engine)
        return results

    async def _load_content_blocking_behaviors(self, filter_lists: list[FilterList]) -> dict[str, LoadResult]:
        async def compile_one(filter_list: FilterList) -> LoadResult:
            resource = ResourceType.CONTENT_BLOCKING_BEHAVIORS.resource_for(filter_list)
            try:
                data = self._store.data(resource)
                if data is None:
                    return LoadResult(loaded=False)
                await self._compiler.compile(blocklist_name(filter_list), data)
            except Exception as e:
                logger.error("Failed to compile content blocker for `%s`: %s", filter_list.uuid, e)
                return LoadResult(loaded=False, error=e)
            return LoadResult(loaded=True)

        outcomes = await asyncio.gather(*(compile_one(filter_list) for filter_list in filter_lists))
        return {filter_list.uuid: outcome for filter_list, outcome in zip(filter_lists, outcomes)}
