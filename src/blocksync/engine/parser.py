"""
Filter syntax parser for ABP/uBlock format.

Each line of rule data is classified as a network, cosmetic (element hiding
or ``:style()``) or scriptlet filter and parsed into a plain dataclass.
Lines that cannot be expressed by this engine are dropped, never raised.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from .domains import split_domains

logger = logging.getLogger(__name__)


class RequestType(Enum):
    """Types of requests for network filtering."""

    SCRIPT = "script"
    IMAGE = "image"
    STYLESHEET = "stylesheet"
    FONT = "font"
    MEDIA = "media"
    DOCUMENT = "document"
    SUBDOCUMENT = "subdocument"
    XMLHTTPREQUEST = "xmlhttprequest"
    WEBSOCKET = "websocket"
    OTHER = "other"

    @classmethod
    def from_name(cls, name: str | RequestType) -> RequestType:
        """Resolve an option or caller-supplied name, falling back to OTHER."""
        if isinstance(name, RequestType):
            return name
        return REQUEST_TYPE_MAP.get(name.lower(), RequestType.OTHER)


# Option names -> request types, including the short and legacy spellings
REQUEST_TYPE_MAP = {request_type.value: request_type for request_type in RequestType} | {
    "xhr": RequestType.XMLHTTPREQUEST,
    "css": RequestType.STYLESHEET,
    "frame": RequestType.SUBDOCUMENT,
    "object": RequestType.OTHER,
    "ping": RequestType.OTHER,
}

_STYLE_SUFFIX = re.compile(r"^(?P<selector>.+?):style\((?P<style>.*)\)$")

# Procedural selectors we cannot express as CSS
_UNSUPPORTED_SELECTOR_PREFIXES = (":has(", ":xpath(", ":not(", ":matches-css(", "+js(")

# Characters that end the hostname part of "||host^..." patterns
_HOSTNAME_END = re.compile(r"[\^/*?$:|]")


@dataclass
class NetworkFilter:
    """Parsed network filter rule."""

    raw: str
    pattern: str
    is_exception: bool = False

    # Anchors: "||host", "|start", "end|"
    is_hostname_anchor: bool = False
    is_left_anchor: bool = False
    is_right_anchor: bool = False
    # Substring match, no regex needed
    is_plain: bool = False
    # "/.../" pattern
    is_regex: bool = False
    hostname: str | None = None

    # Options
    third_party: bool | None = None
    request_types: set[RequestType] = field(default_factory=set)
    excluded_types: set[RequestType] = field(default_factory=set)
    domains: set[str] = field(default_factory=set)
    excluded_domains: set[str] = field(default_factory=set)
    important: bool = False
    generichide: bool = False

    _regex: re.Pattern[str] | None = None

    def get_regex(self) -> re.Pattern[str]:
        """Compiled regex for the pattern, built on first use."""
        if self._regex is None:
            self._regex = _pattern_to_regex(self.pattern, self.is_regex, self.is_left_anchor, self.is_right_anchor)
        return self._regex


@dataclass
class CosmeticFilter:
    """Parsed cosmetic filter: hides an element, or restyles it with ``:style()``."""

    raw: str
    selector: str
    is_exception: bool = False
    style: str | None = None
    domains: set[str] = field(default_factory=set)
    excluded_domains: set[str] = field(default_factory=set)


@dataclass
class ScriptletFilter:
    """Parsed ``##+js(...)`` rule."""

    raw: str
    scriptlet_name: str
    args: list[str] = field(default_factory=list)
    domains: set[str] = field(default_factory=set)
    excluded_domains: set[str] = field(default_factory=set)


@dataclass
class ParsedFilters:
    network_filters: list[NetworkFilter] = field(default_factory=list)
    cosmetic_filters: list[CosmeticFilter] = field(default_factory=list)
    scriptlet_filters: list[ScriptletFilter] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.network_filters) + len(self.cosmetic_filters) + len(self.scriptlet_filters)


def _pattern_to_regex(
    pattern: str, is_regex: bool, left_anchor: bool = False, right_anchor: bool = False
) -> re.Pattern[str]:
    if is_regex:
        return re.compile(pattern[1:-1], re.IGNORECASE)

    translated = {
        "*": ".*",
        # Separator: anything but a letter, digit or one of _ - . %
        "^": r"(?:[^\w\-.%]|$)",
    }
    body = "".join(translated.get(c) or re.escape(c) for c in pattern)
    return re.compile(("^" if left_anchor else "") + body + ("$" if right_anchor else ""), re.IGNORECASE)


def _hostname_of_pattern(pattern: str) -> str | None:
    """Hostname at the start of a ``||`` pattern, e.g. ``example.com`` for ``example.com^``."""
    hostname = _HOSTNAME_END.split(pattern, maxsplit=1)[0].lower()
    if "." not in hostname or hostname.startswith("."):
        return None
    return hostname


# Option handlers: (filter, negated, value)
_OptionHandler = Callable[[NetworkFilter, bool, str], None]


def _domain_option(f: NetworkFilter, negated: bool, value: str) -> None:
    included, excluded = split_domains(value, "|")
    f.domains |= included
    f.excluded_domains |= excluded


def _set_party(third_party: bool) -> _OptionHandler:
    def handler(f: NetworkFilter, negated: bool, value: str) -> None:
        f.third_party = third_party != negated

    return handler


def _set_flag(name: str) -> _OptionHandler:
    def handler(f: NetworkFilter, negated: bool, value: str) -> None:
        setattr(f, name, True)

    return handler


_OPTIONS: dict[str, _OptionHandler] = {
    "domain": _domain_option,
    "third-party": _set_party(True),
    "3p": _set_party(True),
    "first-party": _set_party(False),
    "1p": _set_party(False),
    "important": _set_flag("important"),
    "generichide": _set_flag("generichide"),
    "ghide": _set_flag("generichide"),
}


def _apply_options(options: str, f: NetworkFilter) -> None:
    """Apply ``$opt1,~opt2,domain=a|b`` to a filter. Unknown options ($redirect, $csp, ...) are ignored."""
    for option in options.lower().split(","):
        option = option.strip()
        negated = option.startswith("~")
        name, _, value = option.lstrip("~").partition("=")
        if not name:
            continue

        handler = _OPTIONS.get(name)
        if handler is not None:
            handler(f, negated, value)
        elif name in REQUEST_TYPE_MAP:
            (f.excluded_types if negated else f.request_types).add(REQUEST_TYPE_MAP[name])


def _split_options(line: str) -> tuple[str, str]:
    """Split ``pattern$options`` into its two halves."""
    if line.startswith("/") and line.count("/") >= 2:
        # The options of a regex rule start after its closing slash
        dollar = line.find("$", line.rfind("/"))
    else:
        dollar = line.rfind("$")
    if dollar == -1:
        return line, ""
    return line[:dollar], line[dollar + 1 :]


def parse_network_filter(line: str) -> NetworkFilter | None:
    """Parse a network filter rule, or None if it has neither pattern nor options."""
    is_exception = line.startswith("@@")
    pattern, options = _split_options(line[2:] if is_exception else line)

    is_hostname_anchor = pattern.startswith("||")
    is_left_anchor = not is_hostname_anchor and pattern.startswith("|")
    pattern = pattern[2:] if is_hostname_anchor else pattern[1:] if is_left_anchor else pattern
    is_right_anchor = pattern.endswith("|")
    if is_right_anchor:
        pattern = pattern[:-1]

    # "@@||example.com^$generichide" has a pattern; "$generichide" alone does not
    if not pattern and not options:
        return None

    is_regex = len(pattern) > 2 and pattern.startswith("/") and pattern.endswith("/")
    f = NetworkFilter(
        raw=line,
        pattern=pattern,
        is_exception=is_exception,
        is_hostname_anchor=is_hostname_anchor,
        is_left_anchor=is_left_anchor,
        is_right_anchor=is_right_anchor,
        is_plain=not (is_regex or is_left_anchor or is_right_anchor or "*" in pattern or "^" in pattern),
        is_regex=is_regex,
        hostname=_hostname_of_pattern(pattern) if is_hostname_anchor else None,
    )
    if options:
        _apply_options(options, f)
    return f


def parse_cosmetic_filter(line: str) -> CosmeticFilter | None:
    """Parse ``domains##selector``, ``domains#@#selector`` or a ``:style()`` rule."""
    is_exception = "#@#" in line
    domain_part, sep, selector = line.partition("#@#" if is_exception else "##")
    selector = selector.strip()
    if not sep or not selector or selector.startswith(_UNSUPPORTED_SELECTOR_PREFIXES):
        return None

    style = None
    styled = _STYLE_SUFFIX.match(selector)
    if styled:
        selector, style = styled.group("selector").strip(), styled.group("style").strip()
        if not style:
            return None

    included, excluded = split_domains(domain_part, ",")
    return CosmeticFilter(
        raw=line,
        selector=selector,
        is_exception=is_exception,
        style=style,
        domains=included,
        excluded_domains=excluded,
    )


def parse_scriptlet_filter(line: str) -> ScriptletFilter | None:
    """Parse ``domains##+js(name, arg1, arg2)``."""
    domain_part, sep, call = line.partition("##+js(")
    if not sep or not call.endswith(")"):
        return None

    name, *args = (part.strip() for part in call[:-1].split(","))
    if not name:
        return None

    included, excluded = split_domains(domain_part, ",")
    return ScriptletFilter(
        raw=line,
        scriptlet_name=name,
        args=args,
        domains=included,
        excluded_domains=excluded,
    )


def parse_filter_list(content: str) -> ParsedFilters:
    """Parse rule text into network, cosmetic and scriptlet filters."""
    result = ParsedFilters()

    for line in content.splitlines():
        line = line.strip()
        # Blank lines, "! comments" and "[Adblock Plus 2.0]" headers
        if not line or line[0] in "![":
            continue

        if "##+js(" in line:
            scriptlet = parse_scriptlet_filter(line)
            if scriptlet:
                result.scriptlet_filters.append(scriptlet)
        elif "##" in line or "#@#" in line:
            cosmetic = parse_cosmetic_filter(line)
            if cosmetic:
                result.cosmetic_filters.append(cosmetic)
        else:
            network = parse_network_filter(line)
            if network:
                result.network_filters.append(network)

    logger.debug(
        "Parsed %d network, %d cosmetic, %d scriptlet filters",
        len(result.network_filters),
        len(result.cosmetic_filters),
        len(result.scriptlet_filters),
    )
    return result
