"""Per-field validation of resolved order values.

Every field has its own pydantic ``TypeAdapter``.  A field that fails is
dropped from the output and reported as one ``"{field}: {reason}"`` warning;
the overall sanitize call never fails.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Mapping, Optional

from pydantic import AfterValidator, BeforeValidator, TypeAdapter, ValidationError

from .config import NOTES_MAX_CHARS
from .schema import (
    CUSTOMER,
    DEL_WINDOW_END,
    DEL_WINDOW_START,
    DESTINATION,
    FIELD_NAMES,
    NOTES,
    ORIGIN,
    PU_WINDOW_END,
    PU_WINDOW_START,
    REQUIRED_TRUCK,
    PartialOrderFields,
)
from .temporal import to_utc_iso


def _strip(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return value


def _blank_to_none(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


def _require_text(value: str) -> str:
    if not value:
        raise ValueError("Required")
    return value


def _truncate_notes(value: str | None) -> str | None:
    if value is None:
        return None
    return value[:NOTES_MAX_CHARS]


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing ``Z``."""
    text = value.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _canonical_iso(value: str | None) -> str | None:
    if value is None:
        return None
    try:
        parsed = parse_iso(value)
    except ValueError:
        raise ValueError(f"Invalid datetime {value!r}") from None
    # Naive timestamps are taken as UTC.
    return to_utc_iso(parsed, timezone.utc)


RequiredText = Annotated[str, BeforeValidator(_strip), AfterValidator(_require_text)]
OptionalText = Annotated[Optional[str], BeforeValidator(_blank_to_none)]
NotesText = Annotated[
    Optional[str], BeforeValidator(_blank_to_none), AfterValidator(_truncate_notes)
]
IsoTimestamp = Annotated[
    Optional[str], BeforeValidator(_blank_to_none), AfterValidator(_canonical_iso)
]

FIELD_ADAPTERS: dict[str, TypeAdapter] = {
    CUSTOMER: TypeAdapter(RequiredText),
    ORIGIN: TypeAdapter(RequiredText),
    DESTINATION: TypeAdapter(RequiredText),
    PU_WINDOW_START: TypeAdapter(IsoTimestamp),
    PU_WINDOW_END: TypeAdapter(IsoTimestamp),
    DEL_WINDOW_START: TypeAdapter(IsoTimestamp),
    DEL_WINDOW_END: TypeAdapter(IsoTimestamp),
    REQUIRED_TRUCK: TypeAdapter(OptionalText),
    NOTES: TypeAdapter(NotesText),
}


def _issue_messages(exc: ValidationError) -> str:
    messages: list[str] = []
    for error in exc.errors():
        ctx_error = (error.get("ctx") or {}).get("error")
        if error.get("type") == "value_error" and ctx_error is not None:
            messages.append(str(ctx_error))
        else:
            messages.append(error.get("msg", "Invalid value"))
    return ", ".join(messages)


def sanitize_fields(raw: Mapping[str, Any]) -> tuple[PartialOrderFields, list[str]]:
    """Validate each present field; return ``(fields, warnings)``.

    Keys absent from ``raw`` stay absent, and optional fields that clean up
    to nothing are dropped.  ``raw`` is not modified.
    """
    fields: PartialOrderFields = {}
    warnings: list[str] = []
    for key in FIELD_NAMES:
        if key not in raw:
            continue
        try:
            value = FIELD_ADAPTERS[key].validate_python(raw[key])
        except ValidationError as exc:
            warnings.append(f"{key}: {_issue_messages(exc)}")
            continue
        if value is not None:
            fields[key] = value
    return fields, warnings
