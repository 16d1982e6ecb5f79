"""
Filter-list synchronization and ad-block decisions.

Keeps filter-list resources fresh on disk, rebuilds matching engines when
the enabled lists or their data change, and answers block/allow and
cosmetic queries against the installed engines.
"""

from .config import SyncConfig
from .decision import DecisionEngine
from .service import AdblockService

__all__ = ["AdblockService", "DecisionEngine", "SyncConfig"]
