"""
Filter-list catalog and per-list enabled settings.

The catalog comes from a bundled JSON manifest and is read once. Settings
hold one ``(uuid, is_enabled)`` record per list ever toggled.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any

from .store import atomic_write_bytes

logger = logging.getLogger(__name__)

BUNDLED_MANIFEST = "filter_lists.json"


@dataclass(frozen=True)
class FilterList:
    """A regional/third-party filter list. Identity is ``uuid``."""

    uuid: str
    component_id: str
    title: str
    url: str = ""
    description: str = ""
    format: str = "Standard"
    supported_languages: tuple[str, ...] = field(default=())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FilterList:
        return cls(
            uuid=data["uuid"],
            component_id=data["component_id"],
            title=data["title"],
            url=data.get("url", ""),
            description=data.get("desc", ""),
            format=data.get("format", "Standard"),
            supported_languages=tuple(data.get("langs", ())),
        )


def load_filter_lists(path: Path | None = None) -> list[FilterList]:
    """Load the filter-list manifest, sorted by title.

    Args:
        path: Manifest to read. If None, uses the manifest bundled with the package.

    Returns:
        The filter lists, or an empty list if the manifest cannot be read.
    """
    try:
        if path is None:
            text = resources.files("blocksync.data").joinpath(BUNDLED_MANIFEST).read_text(encoding="utf-8")
        else:
            text = path.read_text(encoding="utf-8")
        entries = json.loads(text)
        filter_lists = [FilterList.from_dict(entry) for entry in entries]
    except (OSError, json.JSONDecodeError, KeyError, TypeError) as e:
        logger.error("Failed to load filter list manifest: %s", e)
        return []

    return sorted(filter_lists, key=lambda filter_list: filter_list.title)


@dataclass
class FilterListSetting:
    """Persisted enabled flag for one filter list."""

    uuid: str
    is_enabled: bool


class FilterListSettingsStore:
    """JSON-file persistence of ``FilterListSetting`` records."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._settings: dict[str, FilterListSetting] | None = None

    def _load(self) -> dict[str, FilterListSetting]:
        if self._settings is not None:
            return self._settings

        settings: dict[str, FilterListSetting] = {}
        if self._path.exists():
            try:
                with open(self._path) as f:
                    data = json.load(f)
                for entry in data:
                    setting = FilterListSetting(uuid=entry["uuid"], is_enabled=bool(entry["is_enabled"]))
                    settings[setting.uuid] = setting
            except (OSError, json.JSONDecodeError, KeyError, TypeError) as e:
                logger.warning("Failed to load filter list settings: %s", e)

        self._settings = settings
        return settings

    def _flush(self, settings: dict[str, FilterListSetting]) -> None:
        data = [asdict(setting) for setting in settings.values()]
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_bytes(self._path, json.dumps(data, indent=2).encode("utf-8"))
        except OSError as e:
            logger.error("FilterListSetting save error: %s", e)

    def all_settings(self) -> list[FilterListSetting]:
        with self._lock:
            return [FilterListSetting(s.uuid, s.is_enabled) for s in self._load().values()]

    def get(self, uuid: str) -> FilterListSetting | None:
        with self._lock:
            setting = self._load().get(uuid)
            return FilterListSetting(setting.uuid, setting.is_enabled) if setting else None

    def create(self, uuid: str, is_enabled: bool) -> FilterListSetting:
        """Create (or overwrite) the setting for a list and persist it."""
        setting = FilterListSetting(uuid=uuid, is_enabled=is_enabled)
        self.save(setting)
        return setting

    def save(self, setting: FilterListSetting) -> None:
        with self._lock:
            settings = self._load()
            settings[setting.uuid] = FilterListSetting(setting.uuid, setting.is_enabled)
            self._flush(settings)
