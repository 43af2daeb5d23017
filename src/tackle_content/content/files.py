"""File Store: one JSON document per content item.

Documents live at ``<root>/<type-dir>/<slug>.json``; system files (index,
backup, topic state, lock) live under ``<root>/_system/``.  Loads return an
explicit ``LoadError`` value instead of raising, so recovery code can
branch on the error kind.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

from tackle_content.content.atomic import atomic_write
from tackle_content.content.models import PageType

logger = logging.getLogger(__name__)

SYSTEM_DIRNAME = "_system"
TOPIC_INDEX_FILENAME = "topicIndex.json"
LOCK_FILENAME = ".index.lock"
LOCK_METRICS_FILENAME = "lock-metrics.json"
BACKUP_SUFFIX = ".backup"


class UnsafeSlugError(ValueError):
    """A slug that does not name a file inside its type directory."""

    def __init__(self, slug: str) -> None:
        self.slug = slug
        super().__init__(f"Unsafe document slug: {slug!r}")


class LoadErrorKind(StrEnum):
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    READ_FAILED = "read_failed"
    INVALID_JSON = "invalid_json"
    NOT_AN_OBJECT = "not_an_object"
    INVALID_STRUCTURE = "invalid_structure"


_REASONS = {
    LoadErrorKind.NOT_FOUND: "File not found",
    LoadErrorKind.PERMISSION_DENIED: "Permission denied - cannot read file",
    LoadErrorKind.READ_FAILED: "Failed to read file",
    LoadErrorKind.INVALID_JSON: "Invalid JSON - failed to parse",
    LoadErrorKind.NOT_AN_OBJECT: "Invalid content - not an object",
    LoadErrorKind.INVALID_STRUCTURE: "Invalid structure",
}


@dataclass(frozen=True)
class LoadError:
    """Why a JSON file could not be loaded."""

    kind: LoadErrorKind
    path: Path
    detail: str = ""

    @property
    def reason(self) -> str:
        return _REASONS[self.kind]

    def __str__(self) -> str:
        if self.detail:
            return f"{self.reason}: {self.detail}"
        return self.reason


def log_content_load_error(error: LoadError, slug: str | None = None) -> None:
    """Log a document load failure with slug, path and reason."""
    logger.error(
        "CONTENT_LOAD_ERROR slug=%r filePath=%r reason=%r error=%r",
        slug or "",
        str(error.path),
        error.reason,
        error.detail or "Unknown error",
    )


def read_json(path: Path) -> Any | LoadError:
    """Read and parse a JSON file, returning a ``LoadError`` on failure."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        return LoadError(LoadErrorKind.NOT_FOUND, path, str(exc))
    except PermissionError as exc:
        return LoadError(LoadErrorKind.PERMISSION_DENIED, path, str(exc))
    except (OSError, UnicodeDecodeError) as exc:
        return LoadError(LoadErrorKind.READ_FAILED, path, str(exc))

    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        return LoadError(LoadErrorKind.INVALID_JSON, path, str(exc))


class FileStore:
    """Filesystem capability rooted at the content directory."""

    def __init__(self, content_root: Path) -> None:
        self.root = Path(content_root)

    # ── Paths ────────────────────────────────────────────────────

    @property
    def system_dir(self) -> Path:
        return self.root / SYSTEM_DIRNAME

    def type_dir(self, page_type: PageType) -> Path:
        return self.root / page_type.directory

    def document_path(self, page_type: PageType, slug: str) -> Path:
        """Path of a document file; slugs that would leave the type directory are refused."""
        type_dir = self.type_dir(page_type)
        path = type_dir / f"{slug}.json"
        if not slug or path.parent.resolve() != type_dir.resolve():
            raise UnsafeSlugError(slug)
        return path

    def index_path(self, collection: str) -> Path:
        return self.system_dir / f"{collection}Index.json"

    def backup_path(self, collection: str) -> Path:
        index = self.index_path(collection)
        return index.with_name(index.name + BACKUP_SUFFIX)

    @property
    def topic_index_path(self) -> Path:
        return self.system_dir / TOPIC_INDEX_FILENAME

    @property
    def lock_path(self) -> Path:
        return self.system_dir / LOCK_FILENAME

    @property
    def lock_metrics_path(self) -> Path:
        return self.system_dir / LOCK_METRICS_FILENAME

    # ── Primitive operations ─────────────────────────────────────

    def exists(self, path: Path) -> bool:
        return path.is_file()

    def read_text(self, path: Path) -> str:
        return path.read_text(encoding="utf-8")

    def write_text(self, path: Path, content: str) -> None:
        atomic_write(path, content)

    def rename(self, src: Path, dst: Path) -> None:
        os.replace(src, dst)

    def remove(self, path: Path) -> None:
        path.unlink(missing_ok=True)

    def list_files(self, directory: Path, suffix: str = ".json") -> list[Path]:
        """Return files in ``directory`` with ``suffix``, sorted by name."""
        if not directory.is_dir():
            return []
        return sorted(
            p for p in directory.iterdir() if p.is_file() and p.name.endswith(suffix)
        )

    def list_document_slugs(self, page_type: PageType) -> list[str]:
        return [p.name.removesuffix(".json") for p in self.list_files(self.type_dir(page_type))]

    # ── Documents ────────────────────────────────────────────────

    def load_document(self, path: Path, slug: str | None = None) -> dict[str, Any] | LoadError:
        """Load a raw document object; failures are logged and returned."""
        raw = read_json(path)
        if isinstance(raw, LoadError):
            log_content_load_error(raw, slug)
            return raw
        if not isinstance(raw, dict):
            error = LoadError(LoadErrorKind.NOT_AN_OBJECT, path, "Parsed content is not an object")
            log_content_load_error(error, slug)
            return error
        return raw
