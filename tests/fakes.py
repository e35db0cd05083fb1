"""Shared test doubles: a scripted OCR engine and synthetic uploads."""

from __future__ import annotations

import io

from PIL import Image

from order_intake.ocr import OCREngine

ORDER_LINES = [
    "Customer: Acme Logistics",
    "Origin: Chicago, IL",
    "Destination: Dallas, TX",
    "PU Window: 2025-10-22 09:00 - 11:00",
    "Equipment: 53' Dry Van",
]


def fake_raw(lines: list[str] = ORDER_LINES, confidence: float = 92) -> dict:
    """Raw engine output (0-100 confidences, corner boxes) for ``lines``."""
    return {
        "text": "\n".join(lines),
        "confidence": confidence,
        "lines": [
            {
                "text": text,
                "confidence": confidence,
                "bbox": {"x0": 10, "y0": 10 + 30 * index, "x1": 330, "y1": 34 + 30 * index},
            }
            for index, text in enumerate(lines)
        ],
        "words": [],
    }


class FakeEngine(OCREngine):
    def __init__(self, raw: dict | None = None, error: Exception | None = None) -> None:
        self.raw = raw if raw is not None else fake_raw()
        self.error = error
        self.calls = 0

    def recognize(self, image_bytes: bytes) -> dict:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.raw


def png_bytes(size: tuple[int, int] = (400, 300)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, "white").save(buf, format="PNG")
    return buf.getvalue()
