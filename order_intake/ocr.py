"""Tesseract OCR collaborator and the process-wide engine manager.

The engine is treated as an opaque, expensive, non-reentrant resource: the
manager creates at most one instance and runs one ``recognize`` call at a
time.  Raw engine output is normalized here so the rest of the pipeline only
ever sees ``BoundingBox(x, y, width, height)`` and confidences in ``[0, 1]``.
"""

from __future__ import annotations

import asyncio
import io
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping

import pytesseract
from PIL import Image

from .config import OCR_LANG, OCR_PSM, TESSDATA_PATH
from .schema import BoundingBox, OCRLine, OCRStructuredResult, OCRWord
from .utils import ensure_binaries

logger = logging.getLogger(__name__)

OCR_OEM = 1


class OCREngine(ABC):
    """Anything that turns an image into text with line/word geometry."""

    @abstractmethod
    def recognize(self, image_bytes: bytes) -> dict:
        """Return ``{text, confidence, lines, words}`` in raw engine shape.

        Boxes may be ``{x0, y0, x1, y1}`` or ``{left, top, right, bottom}``;
        confidences are on a 0-100 scale.
        """
        ...


def _build_config(psm: int, lang: str = OCR_LANG, tessdata_path: str | None = None) -> str:
    parts = [f"--oem {OCR_OEM}", f"--psm {psm}", f"-l {lang}"]
    if tessdata_path:
        parts.append(f"--tessdata-dir \"{tessdata_path}\"")
    return " ".join(parts)


class TesseractEngine(OCREngine):
    """Tesseract via ``pytesseract.image_to_data``, grouped into lines."""

    def __init__(
        self,
        lang: str = OCR_LANG,
        psm: int = OCR_PSM,
        tessdata_path: str | None = TESSDATA_PATH,
    ) -> None:
        ensure_binaries(["tesseract"])
        self.version = str(pytesseract.get_tesseract_version())
        self._config = _build_config(psm, lang=lang, tessdata_path=tessdata_path)
        logger.info("Tesseract %s ready (%s)", self.version, self._config)

    def recognize(self, image_bytes: bytes) -> dict:
        with Image.open(io.BytesIO(image_bytes)) as image:
            image.load()
            data = pytesseract.image_to_data(
                image,
                output_type=pytesseract.Output.DICT,
                config=self._config,
            )
        return _group_tesseract_data(data)


def _group_tesseract_data(data: Mapping[str, list]) -> dict:
    """Group ``image_to_data`` word rows into lines in reading order."""

    lines: dict[tuple[int, ...], dict[str, Any]] = {}
    words: list[dict] = []
    for index, raw_text in enumerate(data.get("text", [])):
        text = (raw_text or "").strip()
        if not text:
            continue
        try:
            confidence = float(data["conf"][index])
        except (KeyError, IndexError, TypeError, ValueError):
            confidence = -1.0
        if confidence < 0:
            continue
        left = int(data["left"][index])
        top = int(data["top"][index])
        word = {
            "text": text,
            "confidence": confidence,
            "bbox": {
                "x0": left,
                "y0": top,
                "x1": left + int(data["width"][index]),
                "y1": top + int(data["height"][index]),
            },
        }
        words.append(word)
        key = tuple(
            int(data[name][index]) if name in data else 0
            for name in ("block_num", "par_num", "line_num")
        )
        lines.setdefault(key, {"words": []})["words"].append(word)

    line_dicts: list[dict] = []
    for entry in lines.values():
        members = entry["words"]
        line_dicts.append(
            {
                "text": " ".join(w["text"] for w in members),
                "confidence": sum(w["confidence"] for w in members) / len(members),
                "bbox": {
                    "x0": min(w["bbox"]["x0"] for w in members),
                    "y0": min(w["bbox"]["y0"] for w in members),
                    "x1": max(w["bbox"]["x1"] for w in members),
                    "y1": max(w["bbox"]["y1"] for w in members),
                },
                "words": members,
            }
        )

    confidence = sum(w["confidence"] for w in words) / len(words) if words else 0.0
    return {
        "text": "\n".join(line["text"] for line in line_dicts),
        "confidence": confidence,
        "lines": line_dicts,
        "words": words,
    }


def default_engine_factory() -> OCREngine:
    return TesseractEngine()


# ---------------------------------------------------------------------------
# Boundary normalization
# ---------------------------------------------------------------------------


def _number(raw: Mapping[str, Any], *keys: str) -> float | None:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    return None


def normalize_confidence(value: Any) -> float:
    """Map an engine confidence on the 0-100 scale to ``[0, 1]``."""
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return 0.0
    return max(0.0, min(1.0, float(value) / 100.0))


def normalize_bbox(
    raw: Mapping[str, Any] | None,
    level: str = "word",
    confidence: float | None = None,
    text: str | None = None,
) -> BoundingBox:
    """Convert ``{x0,y0,x1,y1}``, ``{left,top,right,bottom}`` or
    ``{x,y,width,height}`` into a ``BoundingBox``."""

    raw = raw or {}
    x = _number(raw, "x0", "left", "x") or 0.0
    y = _number(raw, "y0", "top", "y") or 0.0
    x1 = _number(raw, "x1", "right")
    y1 = _number(raw, "y1", "bottom")
    width = (x1 - x) if x1 is not None else (_number(raw, "width", "w") or 0.0)
    height = (y1 - y) if y1 is not None else (_number(raw, "height", "h") or 0.0)
    return BoundingBox(
        x=x,
        y=y,
        width=max(0.0, width),
        height=max(0.0, height),
        confidence=confidence,
        text=text,
        level=level,
    )


def _raw_box(raw: Mapping[str, Any]) -> Mapping[str, Any] | None:
    box = raw.get("bbox")
    if box is None:
        box = raw.get("boundingBox")
    return box if isinstance(box, Mapping) else None


def to_word(raw: Mapping[str, Any]) -> OCRWord:
    text = str(raw.get("text") or "")
    has_confidence = isinstance(raw.get("confidence"), (int, float))
    confidence = normalize_confidence(raw.get("confidence"))
    return OCRWord(
        text=text.strip(),
        confidence=confidence,
        bbox=normalize_bbox(
            _raw_box(raw),
            level="word",
            confidence=confidence if has_confidence else None,
            text=text,
        ),
    )


def to_line(raw: Mapping[str, Any]) -> OCRLine:
    text = str(raw.get("text") or "")
    has_confidence = isinstance(raw.get("confidence"), (int, float))
    confidence = normalize_confidence(raw.get("confidence"))
    words = raw.get("words")
    return OCRLine(
        text=text.strip(),
        confidence=confidence,
        bbox=normalize_bbox(
            _raw_box(raw),
            level="line",
            confidence=confidence if has_confidence else None,
            text=text,
        ),
        words=[to_word(w) for w in words if isinstance(w, Mapping)] if isinstance(words, list) else [],
    )


def normalize_ocr_output(raw: Mapping[str, Any] | None) -> OCRStructuredResult:
    """Normalize a raw engine result into ``OCRStructuredResult``."""
    raw = raw or {}
    lines = raw.get("lines")
    words = raw.get("words")
    return OCRStructuredResult(
        text=str(raw.get("text") or ""),
        confidence=normalize_confidence(raw.get("confidence")),
        lines=[to_line(line) for line in lines if isinstance(line, Mapping)]
        if isinstance(lines, list)
        else [],
        words=[to_word(word) for word in words if isinstance(word, Mapping)]
        if isinstance(words, list)
        else [],
    )


# ---------------------------------------------------------------------------
# Engine manager
# ---------------------------------------------------------------------------


class TicketLock:
    """Mutex that admits waiters in arrival order."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._next_ticket = 0
        self._serving = 0

    @property
    def pending(self) -> int:
        """Holder plus queued waiters."""
        with self._cond:
            return self._next_ticket - self._serving

    def __enter__(self) -> "TicketLock":
        with self._cond:
            ticket = self._next_ticket
            self._next_ticket += 1
            while ticket != self._serving:
                self._cond.wait()
        return self

    def __exit__(self, *exc_info: object) -> None:
        with self._cond:
            self._serving += 1
            self._cond.notify_all()


class OCREngineManager:
    """Owns the single OCR engine and serializes calls against it.

    Construct once per process and hand the same instance to every request
    handler.  The engine is created on first use.
    """

    def __init__(self, factory: Callable[[], OCREngine] = default_engine_factory) -> None:
        self._factory = factory
        self._engine: OCREngine | None = None
        self._init_lock = threading.Lock()
        self._call_lock = TicketLock()

    @property
    def engine_started(self) -> bool:
        return self._engine is not None

    def get_engine(self) -> OCREngine:
        if self._engine is None:
            with self._init_lock:
                if self._engine is None:
                    logger.info("Starting OCR engine")
                    self._engine = self._factory()
        return self._engine

    def recognize_sync(self, image_bytes: bytes) -> OCRStructuredResult:
        """Run one recognition after every earlier caller has finished."""
        with self._call_lock:
            raw = self.get_engine().recognize(image_bytes)
        return normalize_ocr_output(raw)

    async def recognize(self, image_bytes: bytes) -> OCRStructuredResult:
        return await asyncio.to_thread(self.recognize_sync, image_bytes)
