"""Error taxonomy and small text helpers shared across the intake pipeline."""

from __future__ import annotations

import re
import shutil
from typing import Iterable

PREPROCESS_STAGE = "Preprocess"
OCR_STAGE = "OCR"
PARSE_STAGE = "Parse"


class IntakeError(Exception):
    """Base exception for order-intake errors."""

    status_code: int = 500


class MissingFileError(IntakeError):
    """Raised when the upload has no file part or the file is empty."""

    status_code = 400


class FileTooLargeError(IntakeError):
    """Raised when the upload exceeds the configured size limit."""

    status_code = 413


class UnsupportedMediaTypeError(IntakeError):
    """Raised when the upload is not a PNG, JPEG or PDF."""

    status_code = 415


class MultiPageDocumentError(IntakeError):
    """Raised when a PDF or image holds more than one page."""

    status_code = 400

    def __init__(self, message: str = "Only single-page documents are supported") -> None:
        super().__init__(message)


class RateLimitedError(IntakeError):
    """Raised when a client exceeds its upload budget for the current window."""

    status_code = 429

    def __init__(self, message: str = "Too many requests") -> None:
        super().__init__(message)


class MissingDependencyError(IntakeError):
    """Raised when required system dependencies are missing."""


class StageError(IntakeError):
    """A fatal failure inside one pipeline stage."""

    status_code = 500

    def __init__(self, stage: str, detail: str) -> None:
        self.stage = stage
        self.detail = detail
        super().__init__(f"{stage} failed: {detail}")


_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def normalize_label(value: str) -> str:
    """Lowercase and collapse every run of non-alphanumerics into one space."""

    return _NON_ALNUM_RE.sub(" ", value.lower()).strip()


def levenshtein(a: list[str] | str, b: list[str] | str) -> int:
    """Compute Levenshtein distance between sequences."""

    if a == b:
        return 0
    if len(a) == 0:
        return len(b)
    if len(b) == 0:
        return len(a)
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        curr = [i]
        for j, cb in enumerate(b, start=1):
            insert = curr[j - 1] + 1
            delete = prev[j] + 1
            replace = prev[j - 1] + (0 if ca == cb else 1)
            curr.append(min(insert, delete, replace))
        prev = curr
    return prev[-1]


def levenshtein_ratio(a: str, b: str) -> float:
    """Return ``1 - distance / max(len)``; 1.0 for identical strings."""

    if a == b:
        return 1.0
    return 1.0 - levenshtein(a, b) / max(len(a), len(b), 1)


def collapse_whitespace(value: str | None) -> str:
    if not value:
        return ""
    return " ".join(value.split())


def check_binary_exists(binary_name: str) -> bool:
    """Return True if a binary is available on PATH."""

    return shutil.which(binary_name) is not None


def ensure_binaries(binaries: Iterable[str]) -> None:
    """Ensure all required binaries exist on PATH."""

    missing = [binary for binary in binaries if not check_binary_exists(binary)]
    if missing:
        raise MissingDependencyError(
            f"Missing required system binaries: {', '.join(missing)}"
        )
