"""Unified configuration loaded from .tackle-content.toml, env vars, and CLI flags.

Loading order: defaults → TOML file → env vars → CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field

from tackle_content.content.files import FileStore
from tackle_content.content.index_store import IndexStore
from tackle_content.content.lock import IndexLock

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".tackle-content.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
]
GLOBAL_CONFIG_PATH = Path.home() / ".config" / "tackle-content" / "config.toml"


class ContentSectionConfig(BaseModel):
    """[content] section."""

    root: str = "./content"
    collection: str = "content"


class LockSectionConfig(BaseModel):
    """[lock] section."""

    timeout_seconds: float = 30.0
    poll_interval_seconds: float = 0.1
    stale_after_seconds: float = 300.0
    # Guard against other processes with a lock file, not just other threads.
    cross_process: bool = True


class QualitySectionConfig(BaseModel):
    """[quality] section - thresholds for the pre-publish quality gate."""

    enabled: bool = True
    min_word_counts: dict[str, int] = Field(
        default_factory=lambda: {"blog": 900, "species": 1200, "how-to": 1200, "location": 1000}
    )
    min_h2_sections: int = 4
    min_faqs: int = 5
    max_faqs: int = 8
    min_internal_links: dict[str, int] = Field(
        default_factory=lambda: {"blog": 3, "species": 6, "how-to": 6, "location": 6}
    )
    min_sources_for_seasonal: int = 2
    min_lexical_diversity: float = 0.3
    forbidden_phrases: list[str] = Field(
        default_factory=lambda: [
            "official regulation",
            "legal advice",
            "official guide",
            "guaranteed to",
            "always legal",
        ]
    )


class TackleConfig(BaseModel):
    """Top-level configuration for the content store."""

    content: ContentSectionConfig = Field(default_factory=ContentSectionConfig)
    lock: LockSectionConfig = Field(default_factory=LockSectionConfig)
    quality: QualitySectionConfig = Field(default_factory=QualitySectionConfig)

    @property
    def content_root(self) -> Path:
        return Path(self.content.root)

    def to_index_store(self) -> IndexStore:
        """Build the process-wide IndexStore described by this config."""
        files = FileStore(self.content_root)
        lock = IndexLock(
            files.lock_path if self.lock.cross_process else None,
            timeout=self.lock.timeout_seconds,
            poll_interval=self.lock.poll_interval_seconds,
            stale_after=self.lock.stale_after_seconds,
        )
        return IndexStore(
            self.content_root, self.content.collection, lock=lock, files=files
        )


def load_config(path: str | Path | None = None) -> TackleConfig:
    """Load configuration from a TOML file.

    Search order:
    1. Explicit path (if provided)
    2. .tackle-content.toml in CWD
    3. ~/.config/tackle-content/config.toml

    Then overlay environment variables.
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break
        if not data and GLOBAL_CONFIG_PATH.exists():
            data = _load_toml(GLOBAL_CONFIG_PATH)
            logger.info("Loaded config from %s", GLOBAL_CONFIG_PATH)

    config = TackleConfig.model_validate(data) if data else TackleConfig()
    return _apply_env_vars(config)


def merge_cli_overrides(config: TackleConfig, **cli_kwargs: object) -> TackleConfig:
    """Overlay explicitly-set CLI flags (non-None values) onto the config."""
    data = config.model_dump()

    mapping: dict[str, tuple[str, str]] = {
        "content_root": ("content", "root"),
        "collection": ("content", "collection"),
        "lock_timeout": ("lock", "timeout_seconds"),
    }

    for key, value in cli_kwargs.items():
        if value is None or key not in mapping:
            continue
        section, field = mapping[key]
        data[section][field] = str(value) if isinstance(value, Path) else value

    return TackleConfig.model_validate(data)


def _load_toml(path: Path) -> dict[str, object]:
    """Load a TOML file and return the data dict."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _apply_env_vars(config: TackleConfig) -> TackleConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    env_mapping: dict[str, tuple[str, str]] = {
        "TACKLE_CONTENT_ROOT": ("content", "root"),
        "TACKLE_INDEX_COLLECTION": ("content", "collection"),
    }
    for env_var, (section, field) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is not None:
            data[section][field] = value

    for env_var, field in [
        ("TACKLE_LOCK_TIMEOUT", "timeout_seconds"),
        ("TACKLE_LOCK_STALE_AFTER", "stale_after_seconds"),
    ]:
        raw = os.environ.get(env_var)
        if raw is not None:
            data["lock"][field] = float(raw)

    quality_raw = os.environ.get("TACKLE_QUALITY_GATE")
    if quality_raw is not None:
        data["quality"]["enabled"] = quality_raw.lower() in ("true", "1", "yes")

    return TackleConfig.model_validate(data)
