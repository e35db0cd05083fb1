"""Build the review payload returned to the front end.

Adds percentage boxes for overlays and per-field confidence badges on top of
the parsed result.
"""

from __future__ import annotations

from typing import Optional

from .schema import (
    FIELD_NAMES,
    BoundingBox,
    OCRBoxes,
    OCREndpointError,
    OCREndpointResponse,
    OCRLine,
    OCRStructuredResult,
    OCRWord,
    ParsedResult,
    PercentBox,
)
from .sanitizer import parse_iso
from .temporal import resolve_zone

SUCCESS_BADGE = "success"
WARNING_BADGE = "warning"
DEFAULT_BADGE = "default"

SUCCESS_THRESHOLD = 0.85
WARNING_THRESHOLD = 0.6


def confidence_to_badge(score: Optional[float]) -> str:
    if score is None:
        return DEFAULT_BADGE
    if score >= SUCCESS_THRESHOLD:
        return SUCCESS_BADGE
    if score < WARNING_THRESHOLD:
        return WARNING_BADGE
    return DEFAULT_BADGE


def format_confidence(score: Optional[float]) -> str:
    if score is None:
        return "-"
    return f"{int(score * 100 + 0.5)}%"


def format_iso_for_display(iso: Optional[str], tz: Optional[str] = None) -> str:
    """Render a UTC ISO instant as ``Oct 22, 2025 09:00`` in ``tz``.

    Returns the input unchanged if it cannot be parsed.
    """
    if not iso:
        return ""
    try:
        parsed = parse_iso(iso)
        zone = resolve_zone(tz)
    except ValueError:
        return iso
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(zone)
    return parsed.strftime("%b %d, %Y %H:%M")


def _clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, value))


def scale_box(bbox: BoundingBox, width: int, height: int) -> PercentBox:
    """Express a pixel box as percentages of a ``width`` x ``height`` image."""
    if width <= 0 or height <= 0:
        return PercentBox(left=0.0, top=0.0, width=0.0, height=0.0)
    return PercentBox(
        left=_clamp_percent(bbox.x / width * 100),
        top=_clamp_percent(bbox.y / height * 100),
        width=_clamp_percent(bbox.width / width * 100),
        height=_clamp_percent(bbox.height / height * 100),
    )


def _scaled_word(word: OCRWord, width: int, height: int) -> OCRWord:
    return word.model_copy(update={"percent": scale_box(word.bbox, width, height)})


def _scaled_line(line: OCRLine, width: int, height: int) -> OCRLine:
    return line.model_copy(
        update={
            "percent": scale_box(line.bbox, width, height),
            "words": [_scaled_word(w, width, height) for w in line.words],
        }
    )


def review_badges(parsed: ParsedResult) -> dict[str, str]:
    """Badge per field: by confidence, or ``warning`` for dropped fields."""
    badges: dict[str, str] = {}
    for key in FIELD_NAMES:
        if key in parsed.confidence:
            badges[key] = confidence_to_badge(parsed.confidence[key])
        elif any(message.startswith(f"{key}:") for message in parsed.warnings):
            badges[key] = WARNING_BADGE
    return badges


def build_boxes(
    structured: OCRStructuredResult,
    width: int,
    height: int,
    preview_data_url: Optional[str] = None,
) -> OCRBoxes:
    return OCRBoxes(
        image_width=width,
        image_height=height,
        preview_data_url=preview_data_url,
        lines=[_scaled_line(line, width, height) for line in structured.lines],
        words=[_scaled_word(word, width, height) for word in structured.words],
    )


def build_response(
    parsed: ParsedResult,
    structured: Optional[OCRStructuredResult] = None,
    width: int = 0,
    height: int = 0,
    preview_data_url: Optional[str] = None,
) -> OCREndpointResponse:
    boxes = None
    if structured is not None:
        boxes = build_boxes(structured, width, height, preview_data_url)
    return OCREndpointResponse(
        fields=dict(parsed.fields),
        confidence=dict(parsed.confidence),
        warnings=list(parsed.warnings),
        review=review_badges(parsed),
        boxes=boxes,
    )


def error_response(message: str) -> OCREndpointError:
    return OCREndpointError(error=message)
