"""
Block decisions and cosmetic resources served from the active engines.

The active engines and the decision cache form one immutable generation.
Installing an engine publishes a new generation with an empty cache in a
single reference assignment, so a query sees either the old engines or the
new ones, and no decision made under a superseded ruleset outlives the swap.
"""

from __future__ import annotations

import base64
import json
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from .engine import AdblockEngine, RequestType

if TYPE_CHECKING:
    from .config import SyncConfig

logger = logging.getLogger(__name__)


class FifoCache:
    """Bounded mapping that evicts the oldest insertion on overflow."""

    def __init__(self, max_size: int = 1000) -> None:
        if max_size < 1:
            raise ValueError("max_size must be positive")
        self._max_size = max_size
        self._items: OrderedDict[str, bool] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> bool | None:
        with self._lock:
            return self._items.get(key)

    def add(self, key: str, value: bool) -> None:
        with self._lock:
            if key in self._items:
                self._items[key] = value
                return
            self._items[key] = value
            while len(self._items) > self._max_size:
                self._items.popitem(last=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


@dataclass(frozen=True)
class _Generation:
    generic: AdblockEngine | None
    regional: AdblockEngine | None
    regional_enabled: bool
    cache: FifoCache


@dataclass
class CosmeticFilterModel:
    """One engine's cosmetic resources for a page."""

    hide_selectors: list[str] = field(default_factory=list)
    style_selectors: dict[str, list[str]] = field(default_factory=dict)
    exceptions: list[str] = field(default_factory=list)
    injected_script: str = ""
    generichide: bool = False

    @classmethod
    def from_json(cls, text: str) -> CosmeticFilterModel:
        """Decode an engine's cosmetic JSON.

        Raises:
            ValueError: The document is not valid JSON of the expected shape.
        """
        data: Any = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("cosmetic resources must be a JSON object")
        try:
            return cls(
                hide_selectors=list(data["hide_selectors"]),
                style_selectors={str(k): list(v) for k, v in data["style_selectors"].items()},
                exceptions=list(data["exceptions"]),
                injected_script=str(data["injected_script"]),
                generichide=bool(data["generichide"]),
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"malformed cosmetic resources: {e}") from e

    def make_css_rules(self) -> str:
        hide_rules = "".join(f"{selector}{{display: none !important}}\n" for selector in self.hide_selectors)
        style_rules = "".join(
            f"{selector}{{{''.join(rule + ';' for rule in rules)} !important}}\n"
            for selector, rules in self.style_selectors.items()
        )
        return hide_rules + style_rules


@dataclass
class CosmeticBundle:
    """Merged CSS and scripts to apply to a page."""

    css: str = ""
    scripts: list[str] = field(default_factory=list)

    @property
    def injected_script(self) -> str:
        return "\n".join(self.scripts)

    def is_empty(self) -> bool:
        return not self.css and not self.scripts


class DecisionEngine:
    """Answer block/allow and cosmetic queries against the active engines.

    Queries never perform I/O and never mutate engines; writers replace
    engines wholesale through the ``set_*`` methods.
    """

    def __init__(
        self,
        *,
        cache_size: int = 1000,
        regional_adblock_enabled: bool = True,
        auto_redirect_amp_pages: bool = False,
        generic_engine: AdblockEngine | None = None,
        regional_engine: AdblockEngine | None = None,
    ) -> None:
        self._cache_size = cache_size
        self.auto_redirect_amp_pages = auto_redirect_amp_pages
        self._write_lock = threading.Lock()
        self._cosmetic_engine: AdblockEngine | None = None

        for engine in (generic_engine, regional_engine):
            if engine is not None:
                engine.seal()

        self._generation = _Generation(
            generic=generic_engine,
            regional=regional_engine,
            regional_enabled=regional_adblock_enabled,
            cache=FifoCache(cache_size),
        )

    @classmethod
    def from_config(cls, config: SyncConfig) -> DecisionEngine:
        return cls(
            cache_size=config.decision_cache_size,
            regional_adblock_enabled=config.regional_adblock_enabled,
            auto_redirect_amp_pages=config.auto_redirect_amp_pages,
        )

    @property
    def generic_engine(self) -> AdblockEngine | None:
        return self._generation.generic

    @property
    def regional_engine(self) -> AdblockEngine | None:
        return self._generation.regional

    @property
    def cosmetic_engine(self) -> AdblockEngine | None:
        return self._cosmetic_engine

    @property
    def regional_adblock_enabled(self) -> bool:
        return self._generation.regional_enabled

    @property
    def cached_decisions(self) -> int:
        return len(self._generation.cache)

    def _publish(self, **changes: Any) -> None:
        with self._write_lock:
            self._generation = replace(self._generation, cache=FifoCache(self._cache_size), **changes)

    def set_generic_engine(self, engine: AdblockEngine) -> None:
        """Install a new generic engine and drop all cached decisions."""
        engine.seal()
        self._publish(generic=engine)
        logger.debug("Installed generic engine")

    def set_regional_engine(self, engine: AdblockEngine) -> None:
        """Install a new filter-list engine and drop all cached decisions."""
        engine.seal()
        self._publish(regional=engine)
        logger.debug("Installed filter list engine")

    def set_cosmetic_engine(self, engine: AdblockEngine) -> None:
        """Install a new cosmetic/scriptlet engine. Block decisions are unaffected."""
        engine.seal()
        self._cosmetic_engine = engine
        logger.debug("Installed cosmetic filters engine")

    def set_regional_adblock_enabled(self, is_enabled: bool) -> None:
        if is_enabled != self._generation.regional_enabled:
            self._publish(regional_enabled=is_enabled)

    def should_block(
        self,
        request_url: str,
        source_url: str,
        resource_type: RequestType | str = RequestType.OTHER,
    ) -> bool:
        """Check the generic, then the filter-list engine for a request.

        A missing engine counts as "no match". Results are cached per
        generation, keyed by request URL, source URL and resource type.
        """
        generation = self._generation
        request_type = RequestType.from_name(resource_type)
        key = "_".join((request_url, source_url, request_type.value))

        cached = generation.cache.get(key)
        if cached is not None:
            return cached

        should_block = generation.generic is not None and generation.generic.should_block(
            request_url, source_url, request_type
        )
        if not should_block and generation.regional_enabled and generation.regional is not None:
            should_block = generation.regional.should_block(request_url, source_url, request_type)

        generation.cache.add(key, should_block)
        return should_block

    def cosmetic_resources_for_url(self, url: str) -> CosmeticBundle:
        """Merge cosmetic CSS and scripts from the cosmetic, generic and filter-list engines.

        Each engine's fragment is decoded on its own; a bad fragment is logged
        and skipped without affecting the others.
        """
        generation = self._generation
        engines: list[tuple[str, AdblockEngine | None]] = [
            ("cosmetic", self._cosmetic_engine),
            ("generic", generation.generic),
        ]
        if generation.regional_enabled:
            engines.append(("filter lists", generation.regional))

        bundle = CosmeticBundle()
        css_rules: list[str] = []

        for name, engine in engines:
            if engine is None:
                continue
            try:
                model = CosmeticFilterModel.from_json(engine.cosmetic_resources_for_url(url))
            except ValueError as e:
                logger.warning("Skipping %s cosmetic resources for %s: %s", name, url, e)
                continue

            css_rules.append(model.make_css_rules())
            if model.injected_script:
                bundle.scripts.append("\n".join(["(function(){", model.injected_script, "})();"]))

        bundle.css = "".join(css_rules)
        return bundle

    def cosmetic_filters_script(self, url: str) -> str | None:
        """A self-installing script applying the page's cosmetic resources.

        Returns:
            The script, or None if nothing applies to the page.
        """
        bundle = self.cosmetic_resources_for_url(url)
        if bundle.is_empty():
            return None

        injected_script = bundle.injected_script
        if injected_script and self.auto_redirect_amp_pages:
            # Enables the de-amp scriptlet shipped in the resources bundle
            injected_script = "\n".join(["(function(){", "const deAmpEnabled = true;", injected_script, "})();"])

        styles = base64.b64encode(bundle.css.encode("utf-8")).decode("ascii")
        return f"""(function() {{
  var head = document.head || document.getElementsByTagName('head')[0];
  if (head == null) {{
    return;
  }}

  var style = document.createElement('style');
  style.type = 'text/css';
  var styles = atob("{styles}");

  if (style.styleSheet) {{
    style.styleSheet.cssText = styles;
  }} else {{
    style.appendChild(document.createTextNode(styles));
  }}

  head.appendChild(style);
  {injected_script}
}})();
"""
