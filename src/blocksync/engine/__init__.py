"""
Rule-matching engine for ABP/uBlock filter syntax.

Provides network request blocking, cosmetic filtering and scriptlet
injection behind a build-once, query-many engine handle.
"""

from .engine import AdblockEngine, serialize_rules
from .parser import RequestType

__all__ = ["AdblockEngine", "RequestType", "serialize_rules"]
