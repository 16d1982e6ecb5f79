"""
Engine construction from cached rule data.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from .engine import AdblockEngine
from .errors import DeserializationError
from .filter_lists import FilterList
from .resources import Resource, ResourceType
from .state import LoadResult
from .store import ResourceStore

logger = logging.getLogger(__name__)


class EngineBuilder:
    """Build a fresh engine for a set of filter lists.

    Every call constructs a new engine; a previously built (and possibly
    installed) engine is never reused.
    """

    def __init__(self, store: ResourceStore, engine_factory: Callable[[], AdblockEngine] = AdblockEngine) -> None:
        self._store = store
        self._engine_factory = engine_factory

    def build(self, filter_lists: list[FilterList]) -> tuple[AdblockEngine, dict[str, LoadResult]]:
        """Deserialize each list's cached filter rules into one new engine.

        Blocking; run it in an executor. A list with no cached data is
        reported as not loaded. A list whose data fails to decode is reported
        as an error while the other lists still load.

        Returns:
            The engine, and a load result per list uuid.
        """
        engine = self._engine_factory()
        results: dict[str, LoadResult] = {}

        for filter_list in filter_lists:
            resource = ResourceType.FILTER_RULES.resource_for(filter_list)
            try:
                data = self._store.data(resource)
            except OSError as e:
                logger.error("Failed to read filter rules for `%s`: %s", filter_list.uuid, e)
                results[filter_list.uuid] = LoadResult(loaded=False, error=e)
                continue

            if data is None:
                results[filter_list.uuid] = LoadResult(loaded=False)
                continue

            if not engine.deserialize(data):
                logger.warning("Failed to process engine data for filter list `%s`", filter_list.uuid)
                results[filter_list.uuid] = LoadResult(
                    loaded=False,
                    error=DeserializationError(f"corrupt filter rules for {filter_list.uuid}"),
                )
                continue

            results[filter_list.uuid] = LoadResult(loaded=True)

        logger.info(
            "Built filter list engine: %d of %d lists loaded",
            sum(1 for result in results.values() if result.loaded),
            len(filter_lists),
        )
        return engine, results

    def build_from_resource(self, resource: Resource) -> AdblockEngine | None:
        """Build an engine from one singleton resource, or None if it is not cached."""
        data = self._store.data(resource)
        if data is None:
            return None

        engine = self._engine_factory()
        if not engine.deserialize(data):
            # An empty engine still replaces one built from older data
            logger.error("Failed to deserialize %s", resource.kind.value)
        return engine
