"""Unit tests for the filter-list catalog and settings."""

from __future__ import annotations

import json
from pathlib import Path


class TestCatalog:
    def test_bundled_manifest(self) -> None:
        from blocksync.filter_lists import load_filter_lists

        filter_lists = load_filter_lists()

        assert filter_lists
        titles = [filter_list.title for filter_list in filter_lists]
        assert titles == sorted(titles)
        assert all(filter_list.uuid and filter_list.component_id for filter_list in filter_lists)

    def test_manifest_fields(self, tmp_path: Path) -> None:
        from blocksync.filter_lists import load_filter_lists

        manifest = tmp_path / "lists.json"
        manifest.write_text(
            json.dumps(
                [
                    {"uuid": "B", "component_id": "cb", "title": "Beta", "langs": ["de"], "desc": "Second"},
                    {"uuid": "A", "component_id": "ca", "title": "Alpha", "url": "https://a.test/list.txt"},
                ]
            )
        )

        alpha, beta = load_filter_lists(manifest)

        assert alpha.uuid == "A" and alpha.url == "https://a.test/list.txt"
        assert beta.supported_languages == ("de",)
        assert beta.description == "Second"
        assert beta.format == "Standard"

    def test_malformed_manifest(self, tmp_path: Path) -> None:
        from blocksync.filter_lists import load_filter_lists

        manifest = tmp_path / "lists.json"
        manifest.write_text('[{"title": "no uuid"}]')

        assert load_filter_lists(manifest) == []
        assert load_filter_lists(tmp_path / "missing.json") == []


class TestSettingsStore:
    def test_create_and_reload(self, tmp_path: Path) -> None:
        from blocksync.filter_lists import FilterListSettingsStore

        path = tmp_path / "settings.json"
        store = FilterListSettingsStore(path)
        store.create("L1", True)
        setting = store.create("L2", False)
        setting.is_enabled = True
        store.save(setting)

        reloaded = FilterListSettingsStore(path)
        settings = {s.uuid: s.is_enabled for s in reloaded.all_settings()}
        assert settings == {"L1": True, "L2": True}

    def test_returned_settings_are_copies(self, tmp_path: Path) -> None:
        from blocksync.filter_lists import FilterListSettingsStore

        store = FilterListSettingsStore(tmp_path / "settings.json")
        store.create("L1", True)

        setting = store.get("L1")
        assert setting is not None
        setting.is_enabled = False

        assert store.get("L1").is_enabled is True  # type: ignore[union-attr]

    def test_corrupt_file_starts_empty(self, tmp_path: Path) -> None:
        from blocksync.filter_lists import FilterListSettingsStore

        path = tmp_path / "settings.json"
        path.write_text("{broken")

        assert FilterListSettingsStore(path).all_settings() == []
