"""
Per (filter list, resource type) download and load state.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto


class DownloadStatus(Enum):
    NOT_DOWNLOADED = auto()
    DOWNLOADED = auto()
    ERROR = auto()


class LoadStatus(Enum):
    NOT_LOADED = auto()
    LOADED = auto()
    ERROR = auto()


@dataclass(frozen=True)
class DownloadState:
    status: DownloadStatus
    date: float | None = None
    error: BaseException | None = None

    @classmethod
    def not_downloaded(cls) -> DownloadState:
        return cls(DownloadStatus.NOT_DOWNLOADED)

    @classmethod
    def downloaded(cls, date: float) -> DownloadState:
        return cls(DownloadStatus.DOWNLOADED, date=date)

    @classmethod
    def failed(cls, error: BaseException) -> DownloadState:
        return cls(DownloadStatus.ERROR, error=error)


@dataclass(frozen=True)
class LoadState:
    status: LoadStatus
    error: BaseException | None = None

    @classmethod
    def not_loaded(cls) -> LoadState:
        return cls(LoadStatus.NOT_LOADED)

    @classmethod
    def loaded(cls) -> LoadState:
        return cls(LoadStatus.LOADED)

    @classmethod
    def failed(cls, error: BaseException) -> LoadState:
        return cls(LoadStatus.ERROR, error=error)


@dataclass(frozen=True)
class LoadResult:
    """Outcome of loading one list: loaded, nothing to load, or an error."""

    loaded: bool
    error: BaseException | None = None

    def to_load_state(self) -> LoadState:
        if self.error is not None:
            return LoadState.failed(self.error)
        return LoadState.loaded() if self.loaded else LoadState.not_loaded()


@dataclass
class FilterListState:
    load_state: LoadState
    download_state: DownloadState

    @classmethod
    def initial(cls, downloaded_at: float | None) -> FilterListState:
        return cls(
            load_state=LoadState.not_loaded(),
            download_state=(
                DownloadState.downloaded(downloaded_at)
                if downloaded_at is not None
                else DownloadState.not_downloaded()
            ),
        )

    def needs_reload(self, is_enabled: bool) -> bool:
        """Whether the engine for this resource type must be rebuilt.

        True if the list is loaded but disabled, or enabled, not loaded and
        downloaded. A load error never triggers a reload by itself.
        """
        if not is_enabled:
            return self.load_state.status is LoadStatus.LOADED

        return (
            self.load_state.status is LoadStatus.NOT_LOADED
            and self.download_state.status is DownloadStatus.DOWNLOADED
        )

    def needs_load(self, is_enabled: bool) -> bool:
        """Whether the list belongs in the next build: enabled and downloaded."""
        return is_enabled and self.download_state.status is DownloadStatus.DOWNLOADED
