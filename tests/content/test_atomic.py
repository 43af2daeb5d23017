"""Tests for atomic writes and the file store."""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from tackle_content.content.atomic import WriteError, atomic_write, temp_path_for
from tackle_content.content.files import (
    FileStore,
    LoadError,
    LoadErrorKind,
    UnsafeSlugError,
    read_json,
)
from tackle_content.content.models import PageType


class TestAtomicWrite:
    def test_writes_content(self, tmp_path: Path):
        target = tmp_path / "index.json"
        atomic_write(target, '{"a": 1}\n')
        assert target.read_text() == '{"a": 1}\n'
        assert not temp_path_for(target).exists()

    def test_creates_parent_dirs(self, tmp_path: Path):
        target = tmp_path / "_system" / "deep" / "index.json"
        atomic_write(target, "{}")
        assert target.read_text() == "{}"

    def test_replaces_existing(self, tmp_path: Path):
        target = tmp_path / "index.json"
        target.write_text("old")
        atomic_write(target, "new")
        assert target.read_text() == "new"

    def test_verification_failure_leaves_target_untouched(self, tmp_path: Path):
        target = tmp_path / "index.json"
        target.write_text("original")

        with patch.object(Path, "read_bytes", return_value=b"garbled"):
            with pytest.raises(WriteError) as exc_info:
                atomic_write(target, "replacement")

        assert target.read_text() == "original"
        assert not temp_path_for(target).exists()
        assert exc_info.value.path == target

    def test_write_failure_cleans_temp(self, tmp_path: Path):
        target = tmp_path / "index.json"
        with patch.object(Path, "read_bytes", side_effect=OSError("disk gone")):
            with pytest.raises(OSError):
                atomic_write(target, "content")
        assert not target.exists()
        assert not temp_path_for(target).exists()

    def test_rename_is_the_commit_point(self, tmp_path: Path):
        target = tmp_path / "index.json"
        target.write_text("original")
        with patch("tackle_content.content.atomic.os.replace", side_effect=OSError("boom")):
            with pytest.raises(OSError):
                atomic_write(target, "replacement")
        assert target.read_text() == "original"

    def test_flushes_to_disk_before_rename(self, tmp_path: Path):
        target = tmp_path / "index.json"
        calls: list[str] = []
        real_fsync, real_replace = os.fsync, os.replace

        def fsync(fd: int) -> None:
            calls.append("fsync")
            real_fsync(fd)

        def replace(src, dst) -> None:
            calls.append("replace")
            real_replace(src, dst)

        with (
            patch("tackle_content.content.atomic.os.fsync", side_effect=fsync),
            patch("tackle_content.content.atomic.os.replace", side_effect=replace),
        ):
            atomic_write(target, "{}")

        assert calls[0] == "fsync"
        assert calls.index("replace") > 0
        assert target.read_text() == "{}"


class TestReadJson:
    def test_not_found(self, tmp_path: Path):
        result = read_json(tmp_path / "missing.json")
        assert isinstance(result, LoadError)
        assert result.kind == LoadErrorKind.NOT_FOUND
        assert result.reason == "File not found"

    def test_invalid_json(self, tmp_path: Path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        result = read_json(path)
        assert isinstance(result, LoadError)
        assert result.kind == LoadErrorKind.INVALID_JSON

    @pytest.mark.skipif(os.geteuid() == 0, reason="root ignores file permissions")
    def test_permission_denied(self, tmp_path: Path):
        path = tmp_path / "locked.json"
        path.write_text("{}")
        path.chmod(0)
        try:
            result = read_json(path)
        finally:
            path.chmod(0o644)
        assert isinstance(result, LoadError)
        assert result.kind == LoadErrorKind.PERMISSION_DENIED

    def test_parses(self, tmp_path: Path):
        path = tmp_path / "ok.json"
        path.write_text('{"slug": "a"}')
        assert read_json(path) == {"slug": "a"}


class TestFileStore:
    def test_paths(self, tmp_path: Path):
        files = FileStore(tmp_path)
        expected = tmp_path / "locations" / "tampa.json"
        assert files.document_path(PageType.LOCATION, "tampa") == expected
        assert files.index_path("content") == tmp_path / "_system" / "contentIndex.json"
        assert files.backup_path("blog") == tmp_path / "_system" / "blogIndex.json.backup"
        assert files.topic_index_path == tmp_path / "_system" / "topicIndex.json"

    def test_list_document_slugs_sorted_json_only(self, tmp_path: Path):
        files = FileStore(tmp_path)
        blog = tmp_path / "blog"
        blog.mkdir()
        for name in ("b.json", "a.json", "notes.txt", "c.json.tmp"):
            (blog / name).write_text("{}")
        assert files.list_document_slugs(PageType.BLOG) == ["a", "b"]

    def test_list_missing_dir(self, tmp_path: Path):
        assert FileStore(tmp_path).list_document_slugs(PageType.SPECIES) == []

    def test_load_document_not_an_object(self, tmp_path: Path, caplog):
        path = tmp_path / "blog" / "a.json"
        path.parent.mkdir()
        path.write_text(json.dumps(["a"]))
        result = FileStore(tmp_path).load_document(path, "a")
        assert isinstance(result, LoadError)
        assert result.kind == LoadErrorKind.NOT_AN_OBJECT
        assert "CONTENT_LOAD_ERROR" in caplog.text

    def test_remove_is_idempotent(self, tmp_path: Path):
        files = FileStore(tmp_path)
        path = tmp_path / "x.json"
        path.write_text("{}")
        files.remove(path)
        files.remove(path)
        assert not path.exists()

    @pytest.mark.parametrize("slug", ["../../escaped", "../blog-2/x", "nested/slug", ""])
    def test_document_path_refuses_escaping_slugs(self, tmp_path: Path, slug: str):
        files = FileStore(tmp_path / "content")
        with pytest.raises(UnsafeSlugError):
            files.document_path(PageType.BLOG, slug)
        assert not (tmp_path / "escaped.json").exists()
