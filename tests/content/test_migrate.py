"""Tests for completing older index entries from their documents."""

import json
from unittest.mock import patch

import pytest

from tackle_content.content.index_store import IndexStore
from tackle_content.content.lock import LockTimeoutError
from tackle_content.content.migrate import MigrationError, migrate_index
from tackle_content.content.models import PageType


def _write_index(store: IndexStore, raw: dict) -> None:
    store.index_path.parent.mkdir(parents=True, exist_ok=True)
    store.index_path.write_text(json.dumps(raw))


class TestMigrateIndex:
    def test_rebuilds_incomplete_and_keeps_complete(self, store: IndexStore, write_raw, make_raw):
        write_raw(make_raw("knot"))
        complete = {
            "slug": "done",
            "title": "Done",
            "description": "Already listed.",
            "category": "tips",
            "publishedAt": "2026-01-01T00:00:00+00:00",
            "wordCount": 42,
        }
        _write_index(store, {"blogPosts": [complete, {"slug": "knot", "title": "Old"}]})

        report = migrate_index(store)

        assert report.complete == ["blog:done"]
        assert report.migrated == ["blog:knot"]
        assert report.skipped == []
        entries = {e.slug: e for e in store.read_primary().entries(PageType.BLOG)}
        assert entries["done"].word_count == 42
        assert entries["knot"].title == "Guide to knot"
        assert entries["knot"].category == "tips"

    def test_drops_entries_without_valid_document(self, store: IndexStore, write_raw, make_raw):
        broken = make_raw("broken")
        del broken["body"]
        write_raw(broken)
        _write_index(store, {"blogPosts": [{"slug": "gone"}, {"slug": "broken"}]})

        report = migrate_index(store)

        assert report.skipped == ["blog:gone", "blog:broken"]
        assert store.read_primary().entries(PageType.BLOG) == []

    def test_backs_up_before_migrating(self, store: IndexStore):
        _write_index(store, {"blogPosts": [{"slug": "gone"}]})
        migrate_index(store)
        backup = json.loads(store.backup_path.read_text())
        assert backup["blogPosts"] == [{"slug": "gone"}]

    def test_every_type_by_default(self, store: IndexStore, write_raw, make_raw):
        write_raw(make_raw("snook", "species"))
        _write_index(store, {"species": [{"slug": "snook"}]})
        report = migrate_index(store)
        assert report.migrated == ["species:snook"]
        assert store.read_primary().species[0].title == "Guide to snook"

    def test_incomplete_types_left_out_block_the_save(self, store: IndexStore):
        _write_index(store, {"blogPosts": [], "species": [{"slug": "snook"}]})
        with pytest.raises(MigrationError, match="could not be saved"):
            migrate_index(store, [PageType.BLOG])
        assert json.loads(store.index_path.read_text())["species"] == [{"slug": "snook"}]

    def test_unreadable_index_raises(self, store: IndexStore):
        with pytest.raises(MigrationError, match="Failed to load index"):
            migrate_index(store)

    def test_lock_timeout_raises_migration_error(self, store: IndexStore):
        _write_index(store, {"blogPosts": []})
        with patch.object(store.lock, "_acquire_file", side_effect=LockTimeoutError("busy")):
            with pytest.raises(MigrationError, match="busy"):
                migrate_index(store)
