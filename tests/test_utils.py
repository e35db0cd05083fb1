"""Tests for order_intake.utils."""

from __future__ import annotations

import unittest

from order_intake.utils import (
    FileTooLargeError,
    IntakeError,
    MissingDependencyError,
    MissingFileError,
    MultiPageDocumentError,
    RateLimitedError,
    StageError,
    UnsupportedMediaTypeError,
    check_binary_exists,
    collapse_whitespace,
    ensure_binaries,
    levenshtein,
    levenshtein_ratio,
    normalize_label,
)


class TestNormalizeLabel(unittest.TestCase):
    def test_lowercase_and_collapse_punctuation(self) -> None:
        self.assertEqual(normalize_label("PU Window:"), "pu window")
        self.assertEqual(normalize_label("Bill-To #"), "bill to")

    def test_empty(self) -> None:
        self.assertEqual(normalize_label("  :: "), "")


class TestLevenshtein(unittest.TestCase):
    def test_identical(self) -> None:
        self.assertEqual(levenshtein("abc", "abc"), 0)

    def test_classic(self) -> None:
        self.assertEqual(levenshtein("kitten", "sitting"), 3)

    def test_empty(self) -> None:
        self.assertEqual(levenshtein("", "abc"), 3)

    def test_ratio(self) -> None:
        self.assertEqual(levenshtein_ratio("origin", "origin"), 1.0)
        self.assertAlmostEqual(levenshtein_ratio("custmer", "customer"), 0.875)
        self.assertEqual(levenshtein_ratio("", ""), 1.0)


class TestCollapseWhitespace(unittest.TestCase):
    def test_collapse(self) -> None:
        self.assertEqual(collapse_whitespace("  a \t b\n c "), "a b c")

    def test_none(self) -> None:
        self.assertEqual(collapse_whitespace(None), "")


class TestErrors(unittest.TestCase):
    def test_status_codes(self) -> None:
        self.assertEqual(MissingFileError().status_code, 400)
        self.assertEqual(FileTooLargeError().status_code, 413)
        self.assertEqual(UnsupportedMediaTypeError().status_code, 415)
        self.assertEqual(MultiPageDocumentError().status_code, 400)
        self.assertEqual(RateLimitedError().status_code, 429)

    def test_default_messages(self) -> None:
        self.assertEqual(str(MultiPageDocumentError()), "Only single-page documents are supported")
        self.assertEqual(str(RateLimitedError()), "Too many requests")

    def test_stage_error_carries_stage(self) -> None:
        exc = StageError("OCR", "engine crashed")
        self.assertIsInstance(exc, IntakeError)
        self.assertEqual(exc.stage, "OCR")
        self.assertEqual(str(exc), "OCR failed: engine crashed")
        self.assertEqual(exc.status_code, 500)


class TestBinaries(unittest.TestCase):
    def test_missing_binary(self) -> None:
        self.assertFalse(check_binary_exists("definitely-not-a-real-binary-xyz"))

    def test_ensure_binaries_raises(self) -> None:
        with self.assertRaises(MissingDependencyError) as ctx:
            ensure_binaries(["definitely-not-a-real-binary-xyz"])
        self.assertIn("definitely-not-a-real-binary-xyz", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
