"""
Cosmetic filter handling: element hiding and ``:style()`` rules.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .domains import domain_matches, hostname_variants

if TYPE_CHECKING:
    from .parser import CosmeticFilter

logger = logging.getLogger(__name__)


class CosmeticFilterHandler:
    """Index cosmetic filters by domain and resolve them for a page."""

    def __init__(self) -> None:
        # Filters with no included domain (may still carry exclusions)
        self._global_filters: list[CosmeticFilter] = []
        self._global_exceptions: list[CosmeticFilter] = []

        # Domain-specific filters: domain -> list of filters
        self._domain_filters: dict[str, list[CosmeticFilter]] = {}
        self._domain_exceptions: dict[str, list[CosmeticFilter]] = {}

    def add_filters(self, filters: list[CosmeticFilter]) -> None:
        """Add cosmetic filters."""
        for f in filters:
            self._add_filter(f)

        logger.debug(
            "Cosmetic handler holds %d global, %d domain-specific filters",
            len(self._global_filters),
            sum(len(v) for v in self._domain_filters.values()),
        )

    def _add_filter(self, f: CosmeticFilter) -> None:
        if not f.domains:
            target = self._global_exceptions if f.is_exception else self._global_filters
            target.append(f)
            return

        index = self._domain_exceptions if f.is_exception else self._domain_filters
        for domain in f.domains:
            index.setdefault(domain, []).append(f)

    def _matching(
        self,
        hostname: str,
        global_filters: list[CosmeticFilter],
        domain_index: dict[str, list[CosmeticFilter]],
        include_generic: bool,
    ) -> list[CosmeticFilter]:
        matched: list[CosmeticFilter] = []
        seen: set[int] = set()

        candidates: list[CosmeticFilter] = list(global_filters) if include_generic else []
        for variant in hostname_variants(hostname):
            candidates.extend(domain_index.get(variant, ()))

        for f in candidates:
            if id(f) in seen:
                continue
            seen.add(id(f))
            if domain_matches(hostname, f.domains, f.excluded_domains):
                matched.append(f)

        return matched

    def get_exceptions_for_domain(self, hostname: str) -> set[str]:
        """Selectors un-hidden on this domain by ``#@#`` rules."""
        hostname = hostname.lower()
        return {
            f.selector
            for f in self._matching(hostname, self._global_exceptions, self._domain_exceptions, True)
        }

    def get_selectors_for_domain(self, hostname: str, *, generic: bool = True) -> list[str]:
        """Get CSS selectors that should be hidden for a domain.

        Args:
            hostname: The hostname to get selectors for.
            generic: Include filters without a domain (off for $generichide pages).

        Returns:
            List of CSS selectors to hide, without duplicates.
        """
        hostname = hostname.lower()
        exceptions = self.get_exceptions_for_domain(hostname)
        selectors: list[str] = []

        for f in self._matching(hostname, self._global_filters, self._domain_filters, generic):
            if f.style is None and f.selector not in exceptions and f.selector not in selectors:
                selectors.append(f.selector)

        return selectors

    def get_style_selectors_for_domain(self, hostname: str, *, generic: bool = True) -> dict[str, list[str]]:
        """Get ``selector -> [declarations]`` for ``:style()`` rules on a domain."""
        hostname = hostname.lower()
        exceptions = self.get_exceptions_for_domain(hostname)
        styles: dict[str, list[str]] = {}

        for f in self._matching(hostname, self._global_filters, self._domain_filters, generic):
            if f.style is None or f.selector in exceptions:
                continue
            declarations = styles.setdefault(f.selector, [])
            if f.style not in declarations:
                declarations.append(f.style)

        return styles
