"""Tests for order_intake.resolver."""

from __future__ import annotations

import unittest

from order_intake.resolver import (
    ResolverOptions,
    detect_label_value,
    parse_order_from_ocr,
    resolve_label,
    split_cells,
    tokenize_lines,
)
from order_intake.schema import (
    CUSTOMER,
    DESTINATION,
    ORIGIN,
    BoundingBox,
    OCRLine,
    OCRStructuredResult,
)


def _structured(*rows: tuple[str, float]) -> OCRStructuredResult:
    lines = [
        OCRLine(
            text=text,
            confidence=confidence,
            bbox=BoundingBox(x=0, y=index * 24, width=400, height=20, level="line"),
        )
        for index, (text, confidence) in enumerate(rows)
    ]
    return OCRStructuredResult(
        text="\n".join(text for text, _ in rows),
        confidence=0.9,
        lines=lines,
    )


class TestDetectLabelValue(unittest.TestCase):
    def test_colon(self) -> None:
        found = detect_label_value("Customer: Acme Logistics")
        self.assertEqual((found.label, found.value), ("Customer", "Acme Logistics"))

    def test_pipe(self) -> None:
        found = detect_label_value("Origin | Chicago")
        self.assertEqual((found.label, found.value), ("Origin", "Chicago"))

    def test_tab_and_wide_space(self) -> None:
        self.assertEqual(detect_label_value("Origin\tChicago").value, "Chicago")
        self.assertEqual(detect_label_value("Customer    Acme Logistics").value, "Acme Logistics")

    def test_empty_inline_value(self) -> None:
        found = detect_label_value("Pickup:")
        self.assertEqual((found.label, found.value), ("Pickup", ""))

    def test_plain_text(self) -> None:
        self.assertIsNone(detect_label_value("just some text"))


class TestResolveLabel(unittest.TestCase):
    def test_exact_scores(self) -> None:
        self.assertEqual(resolve_label("ORIGIN").score, 1.0)
        match = resolve_label("Shipper")
        self.assertEqual((match.key, match.score), (ORIGIN, 0.92))

    def test_fuzzy(self) -> None:
        match = resolve_label("Custmer")
        self.assertEqual(match.key, CUSTOMER)
        self.assertAlmostEqual(match.score, 0.75 + 0.25 * 0.875)

    def test_unknown(self) -> None:
        self.assertIsNone(resolve_label("Banana"))
        self.assertIsNone(resolve_label("::"))

    def test_threshold(self) -> None:
        self.assertIsNone(resolve_label("Custmer", 0.95))


class TestTokenizeLines(unittest.TestCase):
    def test_confidence_floor(self) -> None:
        tokens = tokenize_lines("", _structured(("Customer: Acme", 0.2)).lines)
        self.assertEqual(tokens[0].confidence, 0.45)

    def test_text_fallback(self) -> None:
        tokens = tokenize_lines("Customer: Acme\n\n  Origin: Chicago ", [])
        self.assertEqual([t.text for t in tokens], ["Customer: Acme", "Origin: Chicago"])
        self.assertEqual({t.confidence for t in tokens}, {0.6})
        self.assertEqual([t.index for t in tokens], [0, 1])


class TestSplitCells(unittest.TestCase):
    def test_pipes_keep_empty_cells(self) -> None:
        self.assertEqual(split_cells("| Acme |  | Chicago |"), ["Acme", "", "Chicago"])


class TestParseOrder(unittest.TestCase):
    def test_full_label_value_document(self) -> None:
        result = parse_order_from_ocr(
            _structured(
                ("Customer: Acme Logistics", 0.9),
                ("Origin: Chicago, IL", 0.9),
                ("Destination: Dallas, TX", 0.9),
                ("PU Window: 2025-10-22 09:00 - 11:00", 0.9),
                ("Equipment: 53' Dry Van", 0.9),
            ),
            tz="America/Chicago",
        )
        self.assertEqual(result.fields["customer"], "Acme Logistics")
        self.assertEqual(result.fields["origin"], "Chicago, IL")
        self.assertEqual(result.fields["destination"], "Dallas, TX")
        self.assertEqual(result.fields["puWindowStart"], "2025-10-22T14:00:00.000Z")
        self.assertEqual(result.fields["puWindowEnd"], "2025-10-22T16:00:00.000Z")
        self.assertEqual(result.fields["requiredTruck"], "53' Dry Van")
        self.assertEqual(result.warnings, [])
        self.assertAlmostEqual(result.confidence["customer"], 0.9)
        self.assertAlmostEqual(result.confidence["puWindowStart"], 0.9 * 0.92)
        self.assertAlmostEqual(result.confidence["puWindowEnd"], 0.9 * 0.92 * 0.96)

    def test_idempotent(self) -> None:
        structured = _structured(
            ("Customer: Acme", 0.8),
            ("Customer | Origin", 0.9),
            ("Acme | Chicago", 0.9),
            ("Notes: fragile", 0.7),
        )
        first = parse_order_from_ocr(structured, tz="UTC")
        second = parse_order_from_ocr(structured, tz="UTC")
        self.assertEqual(first, second)

    def test_higher_confidence_wins_in_either_order(self) -> None:
        strong = ("Customer: Alpha Freight", 0.9)
        weak = ("Customer: Beta Freight", 0.6)
        for rows in ((strong, weak), (weak, strong)):
            with self.subTest(order=[r[0] for r in rows]):
                result = parse_order_from_ocr(_structured(*rows))
                self.assertEqual(result.fields["customer"], "Alpha Freight")
                self.assertAlmostEqual(result.confidence["customer"], 0.9)

    def test_equal_scores_keep_first(self) -> None:
        result = parse_order_from_ocr(
            _structured(("Origin: Denver", 0.8), ("Origin: Boise", 0.8))
        )
        self.assertEqual(result.fields["origin"], "Denver")

    def test_tabular_hint_takes_priority(self) -> None:
        result = parse_order_from_ocr(
            _structured(
                ("Customer | Origin", 0.9),
                ("Acme | Chicago, IL", 0.9),
                ("Origin: Denver, CO", 0.95),
            )
        )
        self.assertEqual(result.fields["customer"], "Acme")
        self.assertEqual(result.fields["origin"], "Chicago, IL")

    def test_tabular_with_tab_columns_and_loose_headers(self) -> None:
        result = parse_order_from_ocr(
            _structured(
                ("Ship From\tShip To\tEquip.", 0.9),
                ("Chicago, IL\tDallas, TX\tReefer", 0.85),
            )
        )
        self.assertEqual(result.fields["origin"], "Chicago, IL")
        self.assertEqual(result.fields["destination"], "Dallas, TX")
        self.assertEqual(result.fields["requiredTruck"], "Reefer")

    def test_label_value_line_is_not_a_header(self) -> None:
        result = parse_order_from_ocr(_structured(("Origin: Chicago", 0.9), ("Customer: Acme", 0.9)))
        self.assertEqual(result.fields, {"origin": "Chicago", "customer": "Acme"})

    def test_fuzzy_label(self) -> None:
        result = parse_order_from_ocr(_structured(("Custmer: Acme", 0.9)))
        self.assertEqual(result.fields["customer"], "Acme")
        self.assertAlmostEqual(result.confidence["customer"], 0.9 * (0.75 + 0.25 * 0.875))

    def test_next_line_borrowing(self) -> None:
        result = parse_order_from_ocr(_structured(("Destination:", 0.9), ("Dallas, TX", 0.9)))
        self.assertEqual(result.fields[DESTINATION], "Dallas, TX")

    def test_does_not_borrow_a_label_line(self) -> None:
        result = parse_order_from_ocr(_structured(("Destination:", 0.9), ("Origin: Chicago", 0.9)))
        self.assertNotIn(DESTINATION, result.fields)
        self.assertEqual(result.fields[ORIGIN], "Chicago")

    def test_notes_block(self) -> None:
        result = parse_order_from_ocr(
            _structured(
                ("Notes: Call ahead", 0.9),
                ("Dock 4 only", 0.8),
                ("Driver must check in", 0.8),
                ("Customer: Acme", 0.9),
            )
        )
        self.assertEqual(result.fields["notes"], "Call ahead\nDock 4 only\nDriver must check in")
        self.assertEqual(result.fields["customer"], "Acme")

    def test_notes_truncated(self) -> None:
        result = parse_order_from_ocr(_structured(("Notes: " + "x" * 2500, 0.9)))
        self.assertEqual(len(result.fields["notes"]), 2000)

    def test_single_window_value_goes_to_own_key(self) -> None:
        result = parse_order_from_ocr(
            _structured(("PU Window End: 2025-10-22 11:00", 0.9)), tz="UTC"
        )
        self.assertEqual(result.fields, {"puWindowEnd": "2025-10-22T11:00:00.000Z"})

    def test_unparseable_window_is_warned(self) -> None:
        result = parse_order_from_ocr(_structured(("Delivery Window: TBD", 0.9)))
        self.assertNotIn("delWindowStart", result.fields)
        self.assertEqual(result.warnings, ["delWindowStart: Invalid datetime 'TBD'"])
        self.assertNotIn("delWindowStart", result.confidence)

    def test_unknown_zone_warns_and_uses_utc(self) -> None:
        result = parse_order_from_ocr(
            _structured(("Pickup Start: 2025-10-22 09:00", 0.9)), tz="Mars/Olympus_Mons"
        )
        self.assertEqual(result.fields["puWindowStart"], "2025-10-22T09:00:00.000Z")
        self.assertEqual(len(result.warnings), 1)
        self.assertIn("Mars/Olympus_Mons", result.warnings[0])

    def test_text_only_input(self) -> None:
        result = parse_order_from_ocr({"text": "Customer: Acme\nOrigin: Chicago"})
        self.assertEqual(result.fields, {"customer": "Acme", "origin": "Chicago"})
        self.assertAlmostEqual(result.confidence["customer"], 0.6)

    def test_options_change_threshold(self) -> None:
        strict = ResolverOptions(similarity_threshold=0.95)
        result = parse_order_from_ocr(_structured(("Custmer: Acme", 0.9)), options=strict)
        self.assertEqual(result.fields, {})


if __name__ == "__main__":
    unittest.main()
