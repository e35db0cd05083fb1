"""Pydantic models for OCR output and the order review contract."""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Canonical order fields (wire names are the keys of ``fields``)
# ---------------------------------------------------------------------------
CUSTOMER = "customer"
ORIGIN = "origin"
DESTINATION = "destination"
PU_WINDOW_START = "puWindowStart"
PU_WINDOW_END = "puWindowEnd"
DEL_WINDOW_START = "delWindowStart"
DEL_WINDOW_END = "delWindowEnd"
REQUIRED_TRUCK = "requiredTruck"
NOTES = "notes"

FIELD_NAMES: tuple[str, ...] = (
    CUSTOMER,
    ORIGIN,
    DESTINATION,
    PU_WINDOW_START,
    PU_WINDOW_END,
    DEL_WINDOW_START,
    DEL_WINDOW_END,
    REQUIRED_TRUCK,
    NOTES,
)
WINDOW_FIELDS: tuple[str, ...] = (
    PU_WINDOW_START,
    PU_WINDOW_END,
    DEL_WINDOW_START,
    DEL_WINDOW_END,
)
# start key -> end key of the same window
WINDOW_PAIRS: dict[str, str] = {
    PU_WINDOW_START: PU_WINDOW_END,
    DEL_WINDOW_START: DEL_WINDOW_END,
}

# Partial order record: only detected keys are present.
PartialOrderFields = Dict[str, Optional[str]]
FieldConfidenceMap = Dict[str, float]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# OCR geometry (pixel coordinates of the normalized image)
# ---------------------------------------------------------------------------


class PercentBox(_CamelModel):
    """Bounding box as percentages of the preview image, for overlays."""

    left: float
    top: float
    width: float
    height: float


class BoundingBox(_CamelModel):
    """Canonical box shape; every engine bbox form is converted to this."""

    x: float
    y: float
    width: float
    height: float
    confidence: float | None = None
    text: str | None = None
    level: Literal["word", "line"] = "word"


class OCRWord(_CamelModel):
    text: str
    confidence: float  # 0-1
    bbox: BoundingBox
    percent: PercentBox | None = None


class OCRLine(_CamelModel):
    text: str
    confidence: float  # 0-1
    bbox: BoundingBox
    words: List[OCRWord] = Field(default_factory=list)
    percent: PercentBox | None = None


class OCRStructuredResult(_CamelModel):
    """Normalized OCR output consumed by the field resolver."""

    text: str = ""
    confidence: float = 0.0
    lines: List[OCRLine] = Field(default_factory=list)
    words: List[OCRWord] = Field(default_factory=list)


class OCRBoxes(_CamelModel):
    image_width: int
    image_height: int
    preview_data_url: str | None = None
    lines: List[OCRLine] = Field(default_factory=list)
    words: List[OCRWord] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Parse output and endpoint contract
# ---------------------------------------------------------------------------


class ParsedResult(_CamelModel):
    """Resolver + sanitizer output for one upload. Immutable."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    fields: PartialOrderFields = Field(default_factory=dict)
    confidence: FieldConfidenceMap = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)


class OCREndpointResponse(_CamelModel):
    ok: Literal[True] = True
    fields: PartialOrderFields = Field(default_factory=dict)
    confidence: FieldConfidenceMap = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)
    review: Dict[str, str] = Field(default_factory=dict)  # field -> success|warning|default
    boxes: OCRBoxes | None = None


class OCREndpointError(_CamelModel):
    ok: Literal[False] = False
    error: str
