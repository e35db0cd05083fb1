"""FastAPI app for order-document OCR intake."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import (
    ALLOWED_MIME_TYPES,
    API_HOST,
    API_PORT,
    CORS_ORIGINS,
    MAX_FILE_SIZE_BYTES,
    RATE_LIMIT_COUNT,
    RATE_LIMIT_ENABLED,
    RATE_LIMIT_WINDOW_SECONDS,
    TRUST_PROXY_HEADERS,
    UPLOAD_CHUNK_SIZE,
    log_startup_config,
)
from .ocr import OCREngineManager
from .pipeline import OrderIntakePipeline
from .rate_limit import FixedWindowRateLimiter
from .review import error_response
from .utils import (
    FileTooLargeError,
    IntakeError,
    MissingFileError,
    RateLimitedError,
    StageError,
    UnsupportedMediaTypeError,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def client_ip(request: Request, trust_proxy: bool = False) -> str:
    """Socket peer, or the first ``X-Forwarded-For`` hop when ``trust_proxy``."""
    if trust_proxy:
        first = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "anonymous"


async def read_upload(file: UploadFile | None) -> bytes:
    """Read ``file`` in chunks, enforcing the size limit. Returns its bytes."""
    if file is None:
        raise MissingFileError("No file uploaded")
    total = 0
    chunks: list[bytes] = []
    while True:
        chunk = await file.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if total > MAX_FILE_SIZE_BYTES:
            raise FileTooLargeError(
                f"File too large (limit {MAX_FILE_SIZE_BYTES // (1024 * 1024)} MB)"
            )
        chunks.append(chunk)
    if total == 0:
        raise MissingFileError("Uploaded file is empty")
    return b"".join(chunks)


def check_mime(file: UploadFile) -> str:
    mime = (file.content_type or "").split(";")[0].strip().lower()
    if mime not in ALLOWED_MIME_TYPES:
        raise UnsupportedMediaTypeError(f"Unsupported file type: {mime or 'unknown'}")
    return mime


def _error(exc: IntakeError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(str(exc)).model_dump(by_alias=True),
    )


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------
def create_app(
    engine_manager: OCREngineManager | None = None,
    rate_limiter: FixedWindowRateLimiter | None = None,
) -> FastAPI:
    """Build the app around one engine manager and one rate limiter."""

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        log_startup_config()
        yield

    app = FastAPI(title="Order Intake OCR", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.state.engine_manager = engine_manager or OCREngineManager()
    app.state.rate_limiter = rate_limiter or FixedWindowRateLimiter(
        RATE_LIMIT_COUNT, RATE_LIMIT_WINDOW_SECONDS
    )
    app.state.pipeline = OrderIntakePipeline(app.state.engine_manager)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "ocr_engine_started": app.state.engine_manager.engine_started,
            "rate_limit": app.state.rate_limiter.get_stats(),
        }

    @app.get("/api/config")
    async def api_config():
        """Expose upload limits so the frontend can validate before sending."""
        return {
            "max_file_size_bytes": MAX_FILE_SIZE_BYTES,
            "allowed_mime_types": sorted(ALLOWED_MIME_TYPES),
            "rate_limit_count": RATE_LIMIT_COUNT,
            "rate_limit_window_seconds": RATE_LIMIT_WINDOW_SECONDS,
        }

    @app.post("/api/orders/ocr")
    async def order_ocr(
        request: Request,
        file: UploadFile | None = File(None),
        tz: str | None = Form(None),
        locale: str | None = Form(None),
    ):
        """Read one order document and return fields for human review."""
        ip = client_ip(request, TRUST_PROXY_HEADERS)
        try:
            if RATE_LIMIT_ENABLED and not app.state.rate_limiter.allow(ip):
                raise RateLimitedError()
            data = await read_upload(file)
            mime = check_mime(file)
            response = await app.state.pipeline.process(data, mime, tz=tz, locale=locale)
        except StageError as exc:
            logger.error("OCR failure during %s", exc.stage, exc_info=True)
            return _error(exc)
        except IntakeError as exc:
            logger.info("Rejected upload from %s: %s", ip, exc)
            return _error(exc)
        finally:
            if file is not None:
                await file.close()
        return response.model_dump(by_alias=True)

    return app


app = create_app()


def serve() -> None:
    """Run the API under uvicorn on ``API_HOST``:``API_PORT``."""
    import uvicorn

    uvicorn.run("order_intake.api:app", host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    serve()
