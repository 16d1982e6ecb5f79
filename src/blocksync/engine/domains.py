"""
Hostname helpers shared by the network, cosmetic and scriptlet matchers.
"""

from __future__ import annotations

from urllib.parse import urlparse


def hostname_variants(hostname: str) -> list[str]:
    """Get all suffixes of a hostname, most specific first.

    For 'sub.example.com', returns ['sub.example.com', 'example.com', 'com'].
    """
    parts = hostname.split(".")
    return [".".join(parts[i:]) for i in range(len(parts))]


def hostname_of(url: str | None) -> str:
    """Lowercased hostname of a URL without port, or '' if unparsable."""
    if not url:
        return ""
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def registrable_domain(hostname: str) -> str:
    # Simplified: last two labels
    parts = hostname.split(".")
    if len(parts) >= 2:
        return ".".join(parts[-2:])
    return hostname


def is_third_party(url_hostname: str, source_hostname: str | None) -> bool:
    """Check if a request is third-party relative to the page that made it."""
    if not source_hostname:
        return False
    return registrable_domain(url_hostname) != registrable_domain(source_hostname)


def domain_matches(
    hostname: str,
    included: set[str],
    excluded: set[str],
    *,
    require_inclusion: bool = False,
) -> bool:
    """Check if hostname satisfies domain constraints.

    Exclusions win over inclusions. With no inclusions the rule applies
    everywhere, unless ``require_inclusion`` is set (scriptlets).
    """
    variants = hostname_variants(hostname.lower())

    if any(variant in excluded for variant in variants):
        return False

    if not included:
        return not require_inclusion

    return any(variant in included for variant in variants)


def split_domains(domain_str: str, sep: str) -> tuple[set[str], set[str]]:
    """Split a domain option into (included, excluded) sets."""
    included: set[str] = set()
    excluded: set[str] = set()

    for domain in domain_str.split(sep):
        domain = domain.strip().lower()
        if not domain:
            continue
        if domain.startswith("~"):
            excluded.add(domain[1:])
        else:
            included.add(domain)

    return included, excluded
