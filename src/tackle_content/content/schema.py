"""Runtime schema validation for content documents.

Raw JSON is decoded into one of the typed ``ContentDocument`` variants,
chosen explicitly by its ``pageType`` tag, or into a ``ValidationFailure``
carrying every field-level problem.  Nothing here raises: an invalid
document is quarantined (logged and excluded), never allowed to crash a
listing or a rebuild.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError
from pydantic_core import ErrorDetails

from tackle_content.content.models import (
    DOCUMENT_MODELS,
    ContentDocument,
    PageType,
)

logger = logging.getLogger(__name__)

# Optional heavy fields and the JSON type each must have when present.
_OPTIONAL_FIELDS: dict[str, type] = {
    "faqs": list,
    "sources": list,
    "related": dict,
    "headings": list,
}

_TYPE_NAMES = {list: "an array", dict: "an object"}


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of ``validate_document``: blocking errors plus advisory warnings."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Decoded:
    """A document that passed validation."""

    document: ContentDocument
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ValidationFailure:
    """A document that failed validation."""

    errors: list[str]
    warnings: list[str] = field(default_factory=list)


def _format_error(err: ErrorDetails) -> str:
    loc = ".".join(str(part) for part in err["loc"]) or "document"
    if err["type"] == "missing":
        return f"Missing or invalid required field: {loc} (missing)"
    msg = err["msg"].removeprefix("Value error, ")
    return f"Missing or invalid required field: {loc} ({msg})"


def _optional_field_warnings(raw: dict[str, Any]) -> tuple[list[str], dict[str, Any]]:
    """Warn about missing/mistyped optional fields and drop the mistyped ones."""
    warnings: list[str] = []
    cleaned = dict(raw)
    for name, expected in _OPTIONAL_FIELDS.items():
        value = raw.get(name)
        if value is None:
            warnings.append(f"Optional field {name} is missing")
            cleaned.pop(name, None)
        elif not isinstance(value, expected):
            warnings.append(
                f"Optional field {name} is not {_TYPE_NAMES[expected]} "
                f"(expected {_TYPE_NAMES[expected]} or undefined)"
            )
            cleaned.pop(name)
    return warnings, cleaned


def _check_page_type(
    raw: dict[str, Any], expected_type: PageType | None
) -> tuple[PageType | None, list[str]]:
    value = raw.get("pageType")
    if not isinstance(value, str) or not value:
        return None, ["Missing or invalid required field: pageType (must be string)"]
    try:
        page_type = PageType(value)
    except ValueError:
        return None, [f'Unknown pageType "{value}"']
    if expected_type is not None and page_type != expected_type:
        return page_type, [f'Expected pageType="{expected_type}", got "{value}"']
    return page_type, []


def decode_document(
    raw: Any, expected_type: PageType | None = None
) -> Decoded | ValidationFailure:
    """Decode raw JSON into a typed document or a validation failure."""
    if not isinstance(raw, dict):
        return ValidationFailure(errors=["Document is not an object"])

    warnings, cleaned = _optional_field_warnings(raw)
    page_type, errors = _check_page_type(raw, expected_type)

    model_cls = DOCUMENT_MODELS[page_type] if page_type is not None else ContentDocument
    document: ContentDocument | None = None
    try:
        document = model_cls.model_validate(cleaned)
    except ValidationError as exc:
        for err in exc.errors():
            # pageType problems were already reported by _check_page_type.
            if err["loc"] and err["loc"][0] == "pageType":
                continue
            errors.append(_format_error(err))

    if errors or document is None:
        return ValidationFailure(errors=errors, warnings=warnings)
    return Decoded(document=document, warnings=warnings)


def validate_document(raw: Any, expected_type: PageType | None = None) -> ValidationResult:
    """Check a raw document against the required-field contract."""
    decoded = decode_document(raw, expected_type)
    if isinstance(decoded, ValidationFailure):
        return ValidationResult(valid=False, errors=decoded.errors, warnings=decoded.warnings)
    return ValidationResult(valid=True, warnings=decoded.warnings)


def _log_warnings(slug: str, warnings: list[str]) -> None:
    if warnings:
        logger.debug(
            "CONTENT_VALIDATION_WARNING slug=%r warnings=[%s]", slug, ", ".join(warnings)
        )


def log_content_validation_error(
    slug: str, file_path: Path | str, reason: str, errors: list[str]
) -> None:
    logger.error(
        "CONTENT_VALIDATION_ERROR slug=%r filePath=%r reason=%r validationErrors=[%s]",
        slug,
        str(file_path),
        reason,
        ", ".join(errors),
    )


def validate_and_quarantine(
    raw: Any,
    slug: str,
    file_path: Path | str,
    expected_type: PageType | None = None,
) -> ContentDocument | None:
    """Return the typed document, or ``None`` if it must be quarantined.

    Callers treat ``None`` as "exclude from rendering and listing".
    """
    decoded = decode_document(raw, expected_type)
    _log_warnings(slug, decoded.warnings)
    if isinstance(decoded, ValidationFailure):
        log_content_validation_error(
            slug,
            file_path,
            "Schema validation failed - document does not meet required structure",
            decoded.errors,
        )
        return None
    return decoded.document


def is_quarantined(raw: Any) -> bool:
    return not validate_document(raw).valid
