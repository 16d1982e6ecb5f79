"""
Configuration and path management for blocksync.
"""

import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

PUBLIC_BASE_URL = "https://adblock-data.s3.brave.com"
STAGING_BASE_URL = "https://adblock-data-staging.s3.bravesoftware.com"

PUBLIC_FETCH_INTERVAL = 6 * 60 * 60  # 6 hours
STAGING_FETCH_INTERVAL = 10 * 60  # 10 minutes

BuildChannel = Literal["public", "staging"]


@dataclass
class SyncConfig:
    """Main configuration."""

    # Remote bucket
    build_channel: BuildChannel = "public"
    services_key: str | None = None
    request_timeout: int = 60

    # Timers
    tick_interval: float = 10.0

    # Query path
    decision_cache_size: int = 1000
    regional_adblock_enabled: bool = True
    auto_redirect_amp_pages: bool = False

    # Storage
    cache_dir: str | None = None  # None = platform data dir
    settings_path: str | None = None

    @property
    def is_public(self) -> bool:
        return self.build_channel == "public"

    @property
    def base_url(self) -> str:
        return PUBLIC_BASE_URL if self.is_public else STAGING_BASE_URL

    @property
    def fetch_interval(self) -> float:
        """How long a downloaded resource stays fresh."""
        return PUBLIC_FETCH_INTERVAL if self.is_public else STAGING_FETCH_INTERVAL

    @property
    def checks_last_modified(self) -> bool:
        # Staging buckets are re-uploaded in place, so also compare Last-Modified
        return not self.is_public

    def resolved_cache_dir(self) -> Path:
        if self.cache_dir:
            return Path(self.cache_dir).expanduser()
        return get_cache_dir()

    def resolved_settings_path(self) -> Path:
        if self.settings_path:
            return Path(self.settings_path).expanduser()
        return get_data_dir() / "filter_list_settings.json"

    @classmethod
    def load(cls, path: Path | None = None) -> "SyncConfig":
        """Load configuration from file, then apply environment overrides."""
        if path is None:
            path = get_config_dir() / "config.json"

        data: dict = {}
        if path.exists():
            with open(path) as f:
                data = json.load(f)

        config = cls(
            build_channel=data.get("build_channel", "public"),
            services_key=data.get("services_key"),
            request_timeout=data.get("request_timeout", 60),
            tick_interval=data.get("tick_interval", 10.0),
            decision_cache_size=data.get("decision_cache_size", 1000),
            regional_adblock_enabled=data.get("regional_adblock_enabled", True),
            auto_redirect_amp_pages=data.get("auto_redirect_amp_pages", False),
            cache_dir=data.get("cache_dir"),
            settings_path=data.get("settings_path"),
        )
        config.apply_env()

        if config.build_channel not in ("public", "staging"):
            raise ValueError(f"Unknown build channel: {config.build_channel!r}")

        return config

    def apply_env(self) -> None:
        """Apply BLOCKSYNC_* environment variable overrides."""
        channel = os.environ.get("BLOCKSYNC_BUILD_CHANNEL")
        if channel:
            self.build_channel = channel  # type: ignore[assignment]

        key = os.environ.get("BLOCKSYNC_SERVICES_KEY")
        if key:
            self.services_key = key

        cache_dir = os.environ.get("BLOCKSYNC_CACHE_DIR")
        if cache_dir:
            self.cache_dir = cache_dir

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        if path is None:
            path = get_config_dir() / "config.json"

        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "build_channel": self.build_channel,
            "services_key": self.services_key,
            "request_timeout": self.request_timeout,
            "tick_interval": self.tick_interval,
            "decision_cache_size": self.decision_cache_size,
            "regional_adblock_enabled": self.regional_adblock_enabled,
            "auto_redirect_amp_pages": self.auto_redirect_amp_pages,
            "cache_dir": self.cache_dir,
            "settings_path": self.settings_path,
        }

        with open(path, "w") as f:
            json.dump(data, f, indent=2)


def get_config_dir() -> Path:
    """Get config directory following platform conventions."""
    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))

    return base / "blocksync"


def get_data_dir() -> Path:
    """Get data directory for persisted settings."""
    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))

    return base / "blocksync"


def get_cache_dir() -> Path:
    """Get the root directory holding downloaded resources."""
    return get_data_dir() / "resources"
