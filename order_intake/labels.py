"""Canonical label dictionary for freight order documents.

Every printed label ("Shipper", "PU Window", "Consignee", ...) resolves to one
canonical order field.  The first synonym of each list is the canonical
spelling and scores highest; the rest are accepted aliases.
"""

from __future__ import annotations

import re

from .schema import (
    CUSTOMER,
    DEL_WINDOW_END,
    DEL_WINDOW_START,
    DESTINATION,
    NOTES,
    ORIGIN,
    PU_WINDOW_END,
    PU_WINDOW_START,
    REQUIRED_TRUCK,
)
from .utils import normalize_label

CANONICAL_SCORE = 1.0
SYNONYM_SCORE = 0.92

LABEL_SYNONYMS: dict[str, list[str]] = {
    CUSTOMER: ["customer", "client", "bill to", "customer name"],
    ORIGIN: ["origin", "pickup", "pick up", "pu origin", "shipper", "ship from"],
    DESTINATION: ["destination", "consignee", "delivery", "del", "ship to"],
    PU_WINDOW_START: ["pu window start", "pickup start", "pickup window", "pu start", "pu window"],
    PU_WINDOW_END: ["pu window end", "pickup end", "pu end"],
    DEL_WINDOW_START: [
        "del window start",
        "delivery start",
        "delivery window",
        "del start",
        "del window",
    ],
    DEL_WINDOW_END: ["del window end", "delivery end", "del end"],
    REQUIRED_TRUCK: ["required truck", "equipment", "trailer", "truck type"],
    NOTES: ["notes", "instructions", "comments", "special instructions"],
}

# Looser header-cell patterns, matched against a whole normalized cell.
# Used only by the tabular hint pass, where a row of short column titles
# ("Ship From", "PU Date", "Equip.") rarely follows the inline vocabulary.
TABULAR_PATTERNS: dict[str, re.Pattern[str]] = {
    CUSTOMER: re.compile(r"(customer|client|bill to|account)( name)?"),
    ORIGIN: re.compile(r"(origin|shipper|ship from|pick ?up|pu)( (city|location|address))?"),
    DESTINATION: re.compile(
        r"(destination|dest|consignee|ship to|delivery|del)( (city|location|address))?"
    ),
    PU_WINDOW_START: re.compile(
        r"(pick ?up|pu) (window|date|time|appt|appointment)( start| open| from)?"
    ),
    PU_WINDOW_END: re.compile(r"(pick ?up|pu)( window| date| time)? (end|close|by)"),
    DEL_WINDOW_START: re.compile(
        r"(delivery|del) (window|date|time|appt|appointment)( start| open| from)?"
    ),
    DEL_WINDOW_END: re.compile(r"(delivery|del)( window| date| time)? (end|close|by)"),
    REQUIRED_TRUCK: re.compile(r"(required truck|truck( type)?|equip(ment)?|trailer( type)?)"),
    NOTES: re.compile(r"(notes?|comments?|instructions?|remarks?)"),
}

# Window-shaped patterns are tried before the bare origin/destination ones.
_TABULAR_ORDER: tuple[str, ...] = (
    PU_WINDOW_END,
    DEL_WINDOW_END,
    PU_WINDOW_START,
    DEL_WINDOW_START,
    CUSTOMER,
    ORIGIN,
    DESTINATION,
    REQUIRED_TRUCK,
    NOTES,
)


def _build_normalized_synonyms() -> dict[str, tuple[str, bool]]:
    table: dict[str, tuple[str, bool]] = {}
    for key, synonyms in LABEL_SYNONYMS.items():
        for index, label in enumerate(synonyms):
            table.setdefault(normalize_label(label), (key, index == 0))
    return table


# normalized synonym -> (canonical field, is the canonical spelling)
NORMALIZED_SYNONYMS: dict[str, tuple[str, bool]] = _build_normalized_synonyms()


def match_tabular_header(cell: str) -> str | None:
    """Return the canonical field whose loose pattern matches the whole cell."""
    normalized = normalize_label(cell)
    if not normalized:
        return None
    for key in _TABULAR_ORDER:
        if TABULAR_PATTERNS[key].fullmatch(normalized):
            return key
    return None
