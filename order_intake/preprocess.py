"""Image normalization ahead of OCR.

Uploads arrive as PNG, JPEG or single-page PDF.  PDFs are rasterized with
PyMuPDF; everything else is decoded by Pillow.  The result is always a
binarized PNG whose geometry matches the boxes OCR will report.
"""

from __future__ import annotations

import base64
import io
import logging
from dataclasses import dataclass

import fitz  # PyMuPDF
from PIL import Image, ImageFilter, ImageOps

from .config import (
    BINARIZE_THRESHOLD,
    RASTER_DPI,
    UPSCALE_FACTOR,
    UPSCALE_MIN_LONGEST_SIDE,
)
from .utils import PREPROCESS_STAGE, MultiPageDocumentError, StageError

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
MEDIAN_SIZE = 3
CONTRAST_GAIN = 1.1
CONTRAST_OFFSET = -10
UNSHARP = (1, 120, 3)
GAMMA = 1.2


@dataclass(frozen=True)
class PreprocessResult:
    buffer: bytes  # PNG
    width: int
    height: int
    preview_data_url: str


def _lut(func) -> list[int]:
    return [max(0, min(255, int(round(func(v))))) for v in range(256)]


_CONTRAST_LUT = _lut(lambda v: CONTRAST_GAIN * v + CONTRAST_OFFSET)
_GAMMA_LUT = _lut(lambda v: 255.0 * (v / 255.0) ** (1.0 / GAMMA))


def _rasterize_pdf(data: bytes, dpi: int) -> Image.Image:
    doc = fitz.open(stream=data, filetype="pdf")
    try:
        if doc.page_count > 1:
            raise MultiPageDocumentError()
        if doc.page_count == 0:
            raise ValueError("PDF has no pages")
        pixmap = doc[0].get_pixmap(dpi=dpi)
        png = pixmap.tobytes("png")
    finally:
        doc.close()
    image = Image.open(io.BytesIO(png))
    image.load()
    return image


# Phone cameras write MPO JPEGs whose extra frames are depth maps or previews.
_PRIMARY_FRAME_FORMATS = frozenset({"MPO"})


def _open_image(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    if getattr(image, "n_frames", 1) > 1:
        if image.format not in _PRIMARY_FRAME_FORMATS:
            raise MultiPageDocumentError()
        image.seek(0)
    image.load()
    return image


def upscale_if_small(image: Image.Image, min_longest_side: int = UPSCALE_MIN_LONGEST_SIDE) -> Image.Image:
    """Enlarge small scans by ``UPSCALE_FACTOR``; never shrinks."""
    if max(image.size) >= min_longest_side:
        return image
    width = int(round(image.width * UPSCALE_FACTOR))
    height = int(round(image.height * UPSCALE_FACTOR))
    return image.resize((width, height), Image.LANCZOS)


def clean_for_ocr(image: Image.Image, threshold: int = BINARIZE_THRESHOLD) -> Image.Image:
    """Greyscale, normalize, denoise, stretch, sharpen, gamma, binarize."""

    gray = image.convert("L")
    gray = ImageOps.autocontrast(gray)
    gray = gray.filter(ImageFilter.MedianFilter(size=MEDIAN_SIZE))
    gray = gray.point(_CONTRAST_LUT)
    gray = gray.filter(
        ImageFilter.UnsharpMask(radius=UNSHARP[0], percent=UNSHARP[1], threshold=UNSHARP[2])
    )
    gray = gray.point(_GAMMA_LUT)
    return gray.point(lambda x: 255 if x >= threshold else 0)


def to_data_url(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


def preprocess_image(data: bytes, mime: str) -> PreprocessResult:
    """Normalize one upload into an OCR-ready PNG.

    Raises ``MultiPageDocumentError`` for multi-page input and
    ``StageError("Preprocess", ...)`` for anything that cannot be decoded.
    """
    try:
        if mime == PDF_MIME:
            image = _rasterize_pdf(data, RASTER_DPI)
        else:
            image = _open_image(data)
        image = ImageOps.exif_transpose(image)
        image = upscale_if_small(image)
        cleaned = clean_for_ocr(image)
        out = io.BytesIO()
        cleaned.save(out, format="PNG")
    except MultiPageDocumentError:
        raise
    except (OSError, ValueError, RuntimeError, Image.DecompressionBombError) as exc:
        logger.info("Could not normalize %s upload: %s", mime, exc)
        raise StageError(PREPROCESS_STAGE, str(exc) or exc.__class__.__name__) from exc

    png = out.getvalue()
    logger.debug("Normalized %s upload to %dx%d", mime, cleaned.width, cleaned.height)
    return PreprocessResult(
        buffer=png,
        width=cleaned.width,
        height=cleaned.height,
        preview_data_url=to_data_url(png),
    )
