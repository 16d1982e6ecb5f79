"""
The rule-matching engine handle.

An engine is built once from serialized rule data, then queried many times.
Once sealed (installed as active) it must never be mutated again: rebuilding
means constructing a fresh engine and swapping it in.
"""

from __future__ import annotations

import gzip
import json
import logging
import threading
import zlib

from blocksync.errors import EngineSealedError

from .cosmetic import CosmeticFilterHandler
from .domains import hostname_of
from .matcher import NetworkFilterMatcher
from .parser import RequestType, parse_filter_list
from .scriptlets import ScriptletHandler

logger = logging.getLogger(__name__)

_GZIP_MAGIC = b"\x1f\x8b"


def serialize_rules(rules: str, *, compress: bool = True) -> bytes:
    """Serialize filter-list text into the form ``AdblockEngine.deserialize`` accepts."""
    data = rules.encode("utf-8")
    return gzip.compress(data) if compress else data


def _decode_rules(data: bytes) -> str:
    if data.startswith(_GZIP_MAGIC):
        data = gzip.decompress(data)
    text = data.decode("utf-8")
    if "\x00" in text:
        raise ValueError("rule data contains NUL bytes")
    return text


class AdblockEngine:
    """Network, cosmetic and scriptlet matcher for a set of filter lists."""

    def __init__(self, rules: str | None = None) -> None:
        self._network_matcher = NetworkFilterMatcher()
        self._cosmetic_handler = CosmeticFilterHandler()
        self._scriptlet_handler = ScriptletHandler()
        self._sealed = False
        self._lock = threading.Lock()
        self.lists_loaded = 0

        if rules is not None:
            self._add_rules(rules)

    @property
    def is_sealed(self) -> bool:
        return self._sealed

    def seal(self) -> None:
        """Freeze the engine; further loads raise EngineSealedError."""
        self._sealed = True

    def _check_mutable(self) -> None:
        if self._sealed:
            raise EngineSealedError("engine is installed; build a new one instead")

    def _add_rules(self, rules: str) -> None:
        parsed = parse_filter_list(rules)
        self._network_matcher.add_filters(parsed.network_filters)
        self._cosmetic_handler.add_filters(parsed.cosmetic_filters)
        self._scriptlet_handler.add_filters(parsed.scriptlet_filters)
        self.lists_loaded += 1

    def deserialize(self, data: bytes) -> bool:
        """Load serialized rule data into this engine.

        Returns:
            False if the data could not be decoded; the engine is left unchanged.
        """
        with self._lock:
            self._check_mutable()
            try:
                rules = _decode_rules(data)
            except (OSError, EOFError, zlib.error, UnicodeDecodeError, ValueError) as e:
                logger.debug("Failed to decode rule data (%d bytes): %s", len(data), e)
                return False

            self._add_rules(rules)
            return True

    def add_resources(self, resources_json: str) -> None:
        """Load a scriptlet resources bundle (JSON).

        Raises:
            ValueError: The JSON is invalid or not a non-empty array/object.
        """
        with self._lock:
            self._check_mutable()
            value = json.loads(resources_json)

            if isinstance(value, dict):
                value = list(value.values()) if value else []
            if not isinstance(value, list) or not value:
                raise ValueError("resources must be a non-empty JSON array or object")

            self._scriptlet_handler.add_resources(value)

    def should_block(
        self,
        request_url: str,
        source_url: str,
        resource_type: RequestType | str = RequestType.OTHER,
    ) -> bool:
        """Check if a request made from ``source_url`` should be blocked."""
        result = self._network_matcher.should_block(
            request_url,
            RequestType.from_name(resource_type),
            hostname_of(source_url) or None,
        )
        return result.blocked

    def cosmetic_resources_for_url(self, url: str) -> str:
        """Cosmetic resources for a page as a JSON document.

        Keys: ``hide_selectors``, ``style_selectors``, ``exceptions``,
        ``injected_script``, ``generichide``.
        """
        hostname = hostname_of(url)
        generichide = self._network_matcher.is_generichide(url) if hostname else False
        generic = not generichide

        if hostname:
            hide = self._cosmetic_handler.get_selectors_for_domain(hostname, generic=generic)
            styles = self._cosmetic_handler.get_style_selectors_for_domain(hostname, generic=generic)
            exceptions = sorted(self._cosmetic_handler.get_exceptions_for_domain(hostname))
            scripts = self._scriptlet_handler.get_scripts_for_domain(hostname)
        else:
            hide, styles, exceptions, scripts = [], {}, [], []

        return json.dumps(
            {
                "hide_selectors": hide,
                "style_selectors": styles,
                "exceptions": exceptions,
                "injected_script": "\n".join(scripts),
                "generichide": generichide,
            }
        )
