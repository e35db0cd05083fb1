"""Label/value field resolution over OCR lines.

Two passes run over the tokenized lines of one document:

1. A tabular pass finds header rows that name two or more order fields
   (``Customer | Origin``) and reads the values from the rows below.
2. A line pass looks for ``label: value`` pairs (colon, pipe, tab or wide
   space separated), resolves the label against the synonym dictionary and
   assigns the value.

Each candidate value carries ``line confidence x label score``.  A field only
changes when a strictly better candidate shows up, and fields resolved by the
tabular pass cannot be overwritten by the line pass.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from functools import lru_cache
from typing import Any, Mapping, Sequence

from .config import (
    FALLBACK_LINE_CONFIDENCE,
    LABEL_SIMILARITY_THRESHOLD,
    LINE_CONFIDENCE_FLOOR,
    NOTES_MAX_CHARS,
    TABULAR_LOOKAHEAD_ROWS,
)
from .labels import (
    CANONICAL_SCORE,
    LABEL_SYNONYMS,
    NORMALIZED_SYNONYMS,
    SYNONYM_SCORE,
    match_tabular_header,
)
from .sanitizer import sanitize_fields
from .schema import (
    NOTES,
    WINDOW_FIELDS,
    WINDOW_PAIRS,
    OCRLine,
    OCRStructuredResult,
    ParsedResult,
)
from .temporal import parse_temporal_value, resolve_zone
from .utils import collapse_whitespace, levenshtein_ratio, normalize_label

logger = logging.getLogger(__name__)

# Header cells recognized only by the loose tabular patterns.
TABULAR_PATTERN_SCORE = 0.9
# The end of a parsed range is slightly less certain than its start.
RANGE_END_FACTOR = 0.96
# Window text that could not be parsed is kept, at half weight, for review.
RAW_WINDOW_FACTOR = 0.5

_INLINE_RE = re.compile(r"^(?P<label>[\w\s/#&\-'.]{2,40})\s*[:|]\s*(?P<value>.*)$")
_TAB_RE = re.compile(r"\t+")
_COLUMN_RE = re.compile(r"\s{2,}")
_CELL_RE = re.compile(r"\s*\|\s*|\t+|\s{2,}")

_END_TO_START = {end: start for start, end in WINDOW_PAIRS.items()}


@dataclass(frozen=True)
class ResolverOptions:
    """Tuning knobs; defaults come from ``order_intake.config``."""

    similarity_threshold: float = LABEL_SIMILARITY_THRESHOLD
    confidence_floor: float = LINE_CONFIDENCE_FLOOR
    tabular_lookahead: int = TABULAR_LOOKAHEAD_ROWS
    fallback_line_confidence: float = FALLBACK_LINE_CONFIDENCE
    notes_max_chars: int = NOTES_MAX_CHARS


@dataclass(frozen=True)
class TokenizedLine:
    text: str
    confidence: float  # 0-1, floored
    index: int


@dataclass(frozen=True)
class LabelMatch:
    key: str
    score: float


@dataclass(frozen=True)
class LabelValue:
    label: str
    value: str


@dataclass
class RawResolution:
    """Pre-sanitization field values with their confidence."""

    values: dict[str, str] = field(default_factory=dict)
    confidence: dict[str, float] = field(default_factory=dict)
    protected: set[str] = field(default_factory=set)

    def offer(self, key: str, value: str | None, score: float, force: bool = False) -> bool:
        """Keep ``value`` only if it beats the current candidate for ``key``."""
        if value is None or value == "":
            return False
        if key in self.protected and not force:
            return False
        if self.confidence.get(key, 0.0) >= score:
            return False
        self.values[key] = value
        self.confidence[key] = min(1.0, score)
        return True


@dataclass(frozen=True)
class _ValueContext:
    zone: tzinfo
    locale: str | None
    now: datetime | None


# ---------------------------------------------------------------------------
# Tokenizing and label detection
# ---------------------------------------------------------------------------


def tokenize_lines(
    text: str,
    lines: Sequence[OCRLine],
    options: ResolverOptions | None = None,
) -> list[TokenizedLine]:
    """Turn OCR output into reading-order lines with floored confidence.

    OCR lines are used when any carry text; otherwise the raw text is split on
    newlines and every line gets the fallback confidence.
    """
    options = options or ResolverOptions()
    tokens: list[TokenizedLine] = []
    if any(line.text.strip() for line in lines):
        for line in lines:
            stripped = line.text.strip()
            if stripped:
                confidence = max(line.confidence, options.confidence_floor)
                tokens.append(TokenizedLine(stripped, confidence, len(tokens)))
        return tokens
    for raw in (text or "").splitlines():
        stripped = raw.strip()
        if stripped:
            tokens.append(TokenizedLine(stripped, options.fallback_line_confidence, len(tokens)))
    return tokens


def detect_label_value(text: str) -> LabelValue | None:
    """Split a line into label and value; the value may be empty."""
    inline = _INLINE_RE.match(text)
    if inline:
        label = inline.group("label").strip()
        if label:
            return LabelValue(label, inline.group("value").strip())
    for splitter in (_TAB_RE, _COLUMN_RE):
        parts = splitter.split(text.strip())
        if len(parts) >= 2 and parts[0].strip():
            return LabelValue(parts[0].strip(), " ".join(p.strip() for p in parts[1:]).strip())
    return None


_FUZZY_CANDIDATES: tuple[tuple[str, str], ...] = tuple(
    (key, normalize_label(synonym))
    for key, synonyms in LABEL_SYNONYMS.items()
    for synonym in synonyms
)


@lru_cache(maxsize=2048)
def resolve_label(label: str, similarity_threshold: float = LABEL_SIMILARITY_THRESHOLD) -> LabelMatch | None:
    """Map a printed label to a canonical field, exact first, then fuzzy."""
    normalized = normalize_label(label)
    if not normalized:
        return None
    direct = NORMALIZED_SYNONYMS.get(normalized)
    if direct is not None:
        key, canonical = direct
        return LabelMatch(key, CANONICAL_SCORE if canonical else SYNONYM_SCORE)

    best: LabelMatch | None = None
    best_ratio = 0.0
    for key, synonym in _FUZZY_CANDIDATES:
        ratio = levenshtein_ratio(normalized, synonym)
        if ratio >= similarity_threshold and ratio > best_ratio:
            best_ratio = ratio
            best = LabelMatch(key, 0.75 + ratio * 0.25)
    return best


def _label_line(text: str, options: ResolverOptions) -> LabelMatch | None:
    detection = detect_label_value(text)
    if detection is None:
        return None
    return resolve_label(detection.label, options.similarity_threshold)


# ---------------------------------------------------------------------------
# Value assignment
# ---------------------------------------------------------------------------


def _normalize_notes(text: str, limit: int) -> str:
    parts = [part.strip() for part in re.split(r"\n+", text)]
    return "\n".join(part for part in parts if part)[:limit]


def _assign_window(
    state: RawResolution,
    key: str,
    value: str,
    score: float,
    ctx: _ValueContext,
    force: bool,
) -> set[str]:
    window = parse_temporal_value(value, ctx.zone, ctx.locale, ctx.now)
    if key in WINDOW_PAIRS:
        start_key, end_key = key, WINDOW_PAIRS[key]
    else:
        start_key, end_key = _END_TO_START[key], key

    assigned: set[str] = set()
    if window.start and window.end:
        if state.offer(start_key, window.start, score, force):
            assigned.add(start_key)
        if state.offer(end_key, window.end, score * RANGE_END_FACTOR, force):
            assigned.add(end_key)
    elif window.start:
        if state.offer(key, window.start, score, force):
            assigned.add(key)
    elif state.offer(key, value, score * RAW_WINDOW_FACTOR, force):
        logger.debug("Unparsed %s value kept as raw text: %r", key, value)
        assigned.add(key)
    return assigned


def _assign_value(
    state: RawResolution,
    key: str,
    value: str,
    score: float,
    ctx: _ValueContext,
    options: ResolverOptions,
    force: bool = False,
) -> set[str]:
    """Offer one detected value; return the keys that took it."""
    if key in WINDOW_FIELDS:
        return _assign_window(state, key, collapse_whitespace(value), score, ctx, force)
    if key == NOTES:
        cleaned = _normalize_notes(value, options.notes_max_chars)
    else:
        cleaned = collapse_whitespace(value)
    return {key} if state.offer(key, cleaned, score, force) else set()


# ---------------------------------------------------------------------------
# Tabular hint pass
# ---------------------------------------------------------------------------


def split_cells(text: str) -> list[str]:
    """Split a table row on pipes, tabs or wide spacing, keeping empty cells."""
    body = text.strip().strip("|")
    return [cell.strip() for cell in _CELL_RE.split(body.strip())]


def header_columns(cells: Sequence[str], options: ResolverOptions) -> list[tuple[int, LabelMatch]] | None:
    """Return ``(column index, label match)`` pairs if this looks like a header row."""
    columns: list[tuple[int, LabelMatch]] = []
    seen: set[str] = set()
    for index, cell in enumerate(cells):
        if not cell or ":" in cell:
            continue
        match = resolve_label(cell, options.similarity_threshold)
        if match is None:
            key = match_tabular_header(cell)
            if key is not None:
                match = LabelMatch(key, TABULAR_PATTERN_SCORE)
        if match is not None and match.key not in seen:
            seen.add(match.key)
            columns.append((index, match))
    return columns if len(columns) >= 2 else None


def _tabular_pass(
    tokens: Sequence[TokenizedLine],
    state: RawResolution,
    consumed: set[int],
    ctx: _ValueContext,
    options: ResolverOptions,
) -> set[str]:
    resolved_fields: set[str] = set()
    for i, token in enumerate(tokens):
        if i in consumed:
            continue
        columns = header_columns(split_cells(token.text), options)
        if columns is None:
            continue

        found: dict[int, tuple[str, TokenizedLine]] = {}
        for j in range(i + 1, min(len(tokens), i + 1 + options.tabular_lookahead)):
            if j in consumed:
                continue
            row = tokens[j]
            cells = split_cells(row.text)
            if header_columns(cells, options) is not None or _label_line(row.text, options):
                break
            if len(cells) < 2:
                continue
            used = False
            for column, _ in columns:
                if column in found or column >= len(cells) or not cells[column]:
                    continue
                found[column] = (cells[column], row)
                used = True
            if used:
                consumed.add(j)
            if len(found) == len(columns):
                break

        if not found:
            continue
        consumed.add(i)
        for column, match in columns:
            if column not in found:
                continue
            value, row = found[column]
            score = max(options.confidence_floor, row.confidence) * match.score
            resolved_fields |= _assign_value(state, match.key, value, score, ctx, options, force=True)
        logger.debug("Tabular header at line %d resolved %s", i, sorted(resolved_fields))
    return resolved_fields


# ---------------------------------------------------------------------------
# Line pass
# ---------------------------------------------------------------------------


def _line_pass(
    tokens: Sequence[TokenizedLine],
    state: RawResolution,
    consumed: set[int],
    ctx: _ValueContext,
    options: ResolverOptions,
) -> None:
    for i, token in enumerate(tokens):
        if i in consumed:
            continue
        detection = detect_label_value(token.text)
        if detection is None:
            continue
        match = resolve_label(detection.label, options.similarity_threshold)
        if match is None:
            continue

        value = detection.value
        following = i + 1
        if (
            not value
            and following < len(tokens)
            and following not in consumed
            and _label_line(tokens[following].text, options) is None
        ):
            value = tokens[following].text
            consumed.add(following)

        score = max(options.confidence_floor, token.confidence) * match.score

        if match.key == NOTES:
            block = [value] if value else []
            cursor = i + 1
            while cursor < len(tokens):
                if cursor in consumed:
                    cursor += 1
                    continue
                if _label_line(tokens[cursor].text, options) is not None:
                    break
                block.append(tokens[cursor].text)
                consumed.add(cursor)
                cursor += 1
                if len("\n".join(block)) >= options.notes_max_chars:
                    break
            _assign_value(state, NOTES, "\n".join(block), score, ctx, options)
            continue

        if value:
            _assign_value(state, match.key, value, score, ctx, options)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def resolve_fields(
    tokens: Sequence[TokenizedLine],
    tz: str | tzinfo | None = None,
    locale: str | None = None,
    options: ResolverOptions | None = None,
    now: datetime | None = None,
) -> RawResolution:
    """Run the tabular and line passes; no sanitizing."""
    options = options or ResolverOptions()
    try:
        zone = resolve_zone(tz)
    except ValueError:
        zone = timezone.utc
    ctx = _ValueContext(zone=zone, locale=locale, now=now)
    state = RawResolution()
    consumed: set[int] = set()

    state.protected |= _tabular_pass(tokens, state, consumed, ctx, options)
    _line_pass(tokens, state, consumed, ctx, options)
    return state


def parse_order_from_ocr(
    structured: OCRStructuredResult | Mapping[str, Any],
    tz: str | None = None,
    locale: str | None = None,
    options: ResolverOptions | None = None,
    now: datetime | None = None,
) -> ParsedResult:
    """Resolve and sanitize order fields from normalized OCR output.

    Never raises for content problems: unknown zones and invalid fields come
    back as warnings.
    """
    if not isinstance(structured, OCRStructuredResult):
        structured = OCRStructuredResult.model_validate(structured)
    options = options or ResolverOptions()

    warnings: list[str] = []
    try:
        zone = resolve_zone(tz)
    except ValueError as exc:
        warnings.append(f"tz: {exc}; times were read as UTC")
        zone = timezone.utc

    tokens = tokenize_lines(structured.text, structured.lines, options)
    raw = resolve_fields(tokens, zone, locale, options, now)
    fields, field_warnings = sanitize_fields(raw.values)
    warnings.extend(field_warnings)
    confidence = {key: raw.confidence.get(key, 0.5) for key in fields}
    return ParsedResult(fields=fields, confidence=confidence, warnings=warnings)
