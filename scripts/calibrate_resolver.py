#!/usr/bin/env python3
"""Sweep resolver tuning knobs over saved OCR fixtures.

Each fixture is a JSON file::

    {"ocr": {...raw engine output...}, "expected": {"customer": "...", ...},
     "tz": "America/Chicago", "locale": "en-US"}

Prints field accuracy for every combination of similarity threshold,
confidence floor and tabular lookahead, best first.
"""

from __future__ import annotations

import argparse
import itertools
import json
from pathlib import Path

import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from order_intake.ocr import normalize_ocr_output
from order_intake.resolver import ResolverOptions, parse_order_from_ocr


def _floats(raw: str) -> list[float]:
    return [float(part) for part in raw.split(",") if part.strip()]


def _ints(raw: str) -> list[int]:
    return [int(part) for part in raw.split(",") if part.strip()]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Calibrate field resolver settings.")
    parser.add_argument("fixtures", help="Directory of *.json OCR fixtures with expected fields.")
    parser.add_argument("--thresholds", type=_floats, default=[0.7, 0.75, 0.8, 0.85, 0.9])
    parser.add_argument("--floors", type=_floats, default=[0.3, 0.45, 0.6])
    parser.add_argument("--lookaheads", type=_ints, default=[3, 5, 8])
    parser.add_argument("--top", type=int, default=10, help="Rows to print (default: 10).")
    return parser.parse_args()


def load_fixtures(directory: Path) -> list[dict]:
    fixtures = []
    for path in sorted(directory.glob("*.json")):
        data = json.loads(path.read_text(encoding="utf-8"))
        data["name"] = path.name
        data["structured"] = normalize_ocr_output(data.get("ocr"))
        fixtures.append(data)
    return fixtures


def score(fixtures: list[dict], options: ResolverOptions) -> tuple[int, int]:
    correct = 0
    total = 0
    for fixture in fixtures:
        parsed = parse_order_from_ocr(
            fixture["structured"],
            tz=fixture.get("tz"),
            locale=fixture.get("locale"),
            options=options,
        )
        for key, expected in (fixture.get("expected") or {}).items():
            total += 1
            if parsed.fields.get(key) == expected:
                correct += 1
    return correct, total


def main() -> int:
    args = parse_args()
    fixtures = load_fixtures(Path(args.fixtures))
    if not fixtures:
        print(f"No fixtures found in {args.fixtures}", file=sys.stderr)
        return 1

    rows = []
    for threshold, floor, lookahead in itertools.product(args.thresholds, args.floors, args.lookaheads):
        options = ResolverOptions(
            similarity_threshold=threshold,
            confidence_floor=floor,
            tabular_lookahead=lookahead,
        )
        correct, total = score(fixtures, options)
        rows.append(
            {
                "similarity_threshold": threshold,
                "confidence_floor": floor,
                "tabular_lookahead": lookahead,
                "correct": correct,
                "total": total,
                "accuracy": round(correct / total, 4) if total else 0,
            }
        )

    rows.sort(key=lambda row: row["accuracy"], reverse=True)
    summary = {
        "fixtures": len(fixtures),
        "defaults": score(fixtures, ResolverOptions()),
        "best": rows[: args.top],
    }
    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
