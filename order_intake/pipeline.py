"""Normalize -> OCR -> resolve/sanitize -> review, for one upload."""

from __future__ import annotations

import asyncio
import logging
import time

from .ocr import OCREngineManager
from .preprocess import preprocess_image
from .resolver import ResolverOptions, parse_order_from_ocr
from .review import build_response
from .schema import OCREndpointResponse
from .utils import (
    OCR_STAGE,
    PARSE_STAGE,
    PREPROCESS_STAGE,
    MultiPageDocumentError,
    StageError,
)

logger = logging.getLogger(__name__)


def _detail(exc: Exception) -> str:
    return str(exc) or exc.__class__.__name__


class OrderIntakePipeline:
    """Runs the stages of one upload in strict sequence.

    Failures are re-raised as ``StageError`` carrying the stage name, except
    ``MultiPageDocumentError`` which is an input rejection.
    """

    def __init__(self, engine_manager: OCREngineManager, options: ResolverOptions | None = None) -> None:
        self.engine_manager = engine_manager
        self.options = options or ResolverOptions()

    async def process(
        self,
        data: bytes,
        mime: str,
        tz: str | None = None,
        locale: str | None = None,
    ) -> OCREndpointResponse:
        started = time.perf_counter()
        try:
            prepared = await asyncio.to_thread(preprocess_image, data, mime)
        except (MultiPageDocumentError, StageError):
            raise
        except Exception as exc:
            raise StageError(PREPROCESS_STAGE, _detail(exc)) from exc

        try:
            structured = await self.engine_manager.recognize(prepared.buffer)
        except Exception as exc:
            raise StageError(OCR_STAGE, _detail(exc)) from exc

        try:
            parsed = parse_order_from_ocr(structured, tz=tz, locale=locale, options=self.options)
            response = build_response(
                parsed,
                structured,
                prepared.width,
                prepared.height,
                prepared.preview_data_url,
            )
        except Exception as exc:
            raise StageError(PARSE_STAGE, _detail(exc)) from exc

        logger.info(
            "Processed %s upload in %.2fs: %d fields, %d warnings",
            mime,
            time.perf_counter() - started,
            len(response.fields),
            len(response.warnings),
        )
        return response
