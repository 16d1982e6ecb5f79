"""
Compilation of content-blocking behavior manifests.

The platform compiler turns a JSON behavior manifest into an installed,
declarative ruleset. ``ContentBlockerCompiler`` is the seam to it;
``RuleListStore`` is an in-process implementation that validates manifests
and records which rule lists are installed.
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .errors import ContentBlockerError

if TYPE_CHECKING:
    from .filter_lists import FilterList

logger = logging.getLogger(__name__)

# Identifier of the rule list compiled from the generic behaviors
GENERIC_BLOCKLIST = "block-ads"


def blocklist_name(filter_list: FilterList) -> str:
    """Identifier under which a filter list's rule list is compiled."""
    return filter_list.component_id


class ContentBlockerCompiler(ABC):
    @abstractmethod
    async def compile(self, identifier: str, data: bytes) -> str:
        """Compile a behavior manifest under ``identifier``.

        Returns:
            The name of the installed rule list.

        Raises:
            ContentBlockerError: The manifest could not be compiled.
        """


@dataclass(frozen=True)
class CompiledRuleList:
    identifier: str
    rule_count: int


def _validate_rule(index: int, rule: Any) -> None:
    if not isinstance(rule, dict):
        raise ContentBlockerError(f"rule {index} is not an object")
    trigger, action = rule.get("trigger"), rule.get("action")
    if not isinstance(trigger, dict) or "url-filter" not in trigger:
        raise ContentBlockerError(f"rule {index} has no trigger url-filter")
    if not isinstance(action, dict) or "type" not in action:
        raise ContentBlockerError(f"rule {index} has no action type")


class RuleListStore(ContentBlockerCompiler):
    """Validate behavior manifests and keep the compiled rule lists by identifier."""

    def __init__(self) -> None:
        self._rule_lists: dict[str, CompiledRuleList] = {}
        self._lock = threading.Lock()

    async def compile(self, identifier: str, data: bytes) -> str:
        try:
            rules = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ContentBlockerError(f"{identifier}: invalid behavior manifest: {e}") from e

        if not isinstance(rules, list) or not rules:
            raise ContentBlockerError(f"{identifier}: manifest must be a non-empty JSON array")

        for index, rule in enumerate(rules):
            _validate_rule(index, rule)

        with self._lock:
            self._rule_lists[identifier] = CompiledRuleList(identifier=identifier, rule_count=len(rules))

        logger.debug("Compiled content blocker %s (%d rules)", identifier, len(rules))
        return identifier

    def get(self, identifier: str) -> CompiledRuleList | None:
        with self._lock:
            return self._rule_lists.get(identifier)

    def identifiers(self) -> set[str]:
        with self._lock:
            return set(self._rule_lists)
