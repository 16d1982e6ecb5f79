"""
URL matching for network filters.

Uses two-tier indexing:
1. Hostname hash map for ||domain.com^ rules (O(1) per hostname suffix)
2. Linear scan over generic patterns (plain substring or regex)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .domains import domain_matches, hostname_of, hostname_variants, is_third_party

if TYPE_CHECKING:
    from .parser import NetworkFilter, RequestType

logger = logging.getLogger(__name__)


@dataclass
class MatchResult:
    """Result of URL matching."""

    blocked: bool
    filter: NetworkFilter | None


@dataclass
class _Request:
    url: str
    hostname: str
    request_type: RequestType | None
    source_hostname: str | None
    third_party: bool


class _FilterIndex:
    """Hostname-indexed plus generic bucket of filters of one kind."""

    def __init__(self) -> None:
        self.by_hostname: dict[str, list[NetworkFilter]] = {}
        self.generic: list[NetworkFilter] = []

    def add(self, f: NetworkFilter) -> None:
        if f.is_hostname_anchor and f.hostname:
            self.by_hostname.setdefault(f.hostname, []).append(f)
        else:
            self.generic.append(f)

    def candidates(self, hostname: str) -> Iterator[NetworkFilter]:
        for variant in hostname_variants(hostname):
            yield from self.by_hostname.get(variant, ())
        yield from self.generic

    def __len__(self) -> int:
        return sum(len(v) for v in self.by_hostname.values()) + len(self.generic)


class NetworkFilterMatcher:
    """URL matcher over block, exception and generichide filters."""

    def __init__(self) -> None:
        self._important = _FilterIndex()
        self._blocks = _FilterIndex()
        self._exceptions = _FilterIndex()
        self._generichide = _FilterIndex()

    def __len__(self) -> int:
        return len(self._important) + len(self._blocks) + len(self._exceptions) + len(self._generichide)

    def add_filters(self, filters: list[NetworkFilter]) -> None:
        """Add filters to the matcher."""
        for f in filters:
            if f.is_exception and f.generichide:
                self._generichide.add(f)
            elif f.is_exception:
                self._exceptions.add(f)
            elif f.important:
                self._important.add(f)
            else:
                self._blocks.add(f)

        logger.debug(
            "Matcher holds %d block, %d important, %d exception filters",
            len(self._blocks),
            len(self._important),
            len(self._exceptions),
        )

    def should_block(
        self,
        url: str,
        request_type: RequestType | None = None,
        source_hostname: str | None = None,
    ) -> MatchResult:
        """Check if a URL should be blocked.

        Args:
            url: The URL to check.
            request_type: Type of request (script, image, etc.).
            source_hostname: Hostname of the page making the request.

        Returns:
            MatchResult with blocked status and the deciding filter.
        """
        request = self._make_request(url, request_type, source_hostname)
        if request is None:
            return MatchResult(blocked=False, filter=None)

        # $important rules are never overridden by exceptions
        important = self._find(self._important, request)
        if important is not None:
            return MatchResult(blocked=True, filter=important)

        blocking = self._find(self._blocks, request)
        if blocking is None:
            return MatchResult(blocked=False, filter=None)

        exception = self._find(self._exceptions, request)
        if exception is not None:
            return MatchResult(blocked=False, filter=exception)

        return MatchResult(blocked=True, filter=blocking)

    def is_generichide(self, url: str) -> bool:
        """Whether a ``$generichide`` exception disables generic cosmetics for a page."""
        request = self._make_request(url, None, hostname_of(url))
        return request is not None and self._find(self._generichide, request) is not None

    def _make_request(
        self, url: str, request_type: RequestType | None, source_hostname: str | None
    ) -> _Request | None:
        hostname = hostname_of(url)
        if not hostname:
            return None
        return _Request(
            url=url,
            hostname=hostname,
            request_type=request_type,
            source_hostname=source_hostname,
            third_party=is_third_party(hostname, source_hostname),
        )

    def _find(self, index: _FilterIndex, request: _Request) -> NetworkFilter | None:
        for f in index.candidates(request.hostname):
            if self._filter_matches(f, request):
                return f
        return None

    def _filter_matches(self, f: NetworkFilter, request: _Request) -> bool:
        """Check if a filter's options and pattern match the request."""
        if f.third_party is not None and f.third_party != request.third_party:
            return False

        if f.request_types and request.request_type not in f.request_types:
            return False
        if request.request_type in f.excluded_types:
            return False

        if request.source_hostname:
            if not domain_matches(request.source_hostname, f.domains, f.excluded_domains):
                return False
        elif f.domains:
            return False

        return self._pattern_matches(f, request)

    def _pattern_matches(self, f: NetworkFilter, request: _Request) -> bool:
        if f.is_hostname_anchor and f.hostname:
            host = request.hostname
            if host != f.hostname and not host.endswith("." + f.hostname):
                return False

        if f.is_plain:
            pattern = f.pattern
            if f.is_hostname_anchor and f.hostname and pattern.lower().startswith(f.hostname):
                pattern = pattern[len(f.hostname) :]
            return pattern.lower() in request.url.lower() if pattern else True

        if not f.pattern:
            return True

        try:
            return f.get_regex().search(request.url) is not None
        except re.error as e:
            logger.debug("Bad filter pattern %r: %s", f.raw, e)
            return False
