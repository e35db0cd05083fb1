"""Centralized configuration for upload limits, imaging and resolver tuning.

All env-driven settings live here so there is a single source of truth.
Import from ``order_intake.config`` in api.py, preprocess.py, resolver.py, etc.
"""

from __future__ import annotations

import os
import sys


def _env_bool(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes")


def _env_int(name: str, default: int, lo: int = 1, hi: int = 10_000) -> int:
    try:
        return max(lo, min(hi, int(os.environ.get(name, str(default)))))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float, lo: float = 0.0, hi: float = 1.0) -> float:
    try:
        return max(lo, min(hi, float(os.environ.get(name, str(default)))))
    except (TypeError, ValueError):
        return default


# ---------------------------------------------------------------------------
# Upload limits
# ---------------------------------------------------------------------------
MAX_FILE_SIZE_BYTES: int = _env_int(
    "MAX_FILE_SIZE_BYTES", default=8 * 1024 * 1024, lo=1, hi=100 * 1024 * 1024,
)
UPLOAD_CHUNK_SIZE: int = 64 * 1024  # 64 KiB streaming chunks
ALLOWED_MIME_TYPES: frozenset[str] = frozenset(
    {"image/png", "image/jpeg", "application/pdf"}
)

# ---------------------------------------------------------------------------
# Rate limiting (per client IP, fixed window, in-memory)
# ---------------------------------------------------------------------------
RATE_LIMIT_ENABLED: bool = not _env_bool("DISABLE_RATE_LIMIT")
RATE_LIMIT_COUNT: int = _env_int("RATE_LIMIT_COUNT", default=12, hi=10_000)
RATE_LIMIT_WINDOW_SECONDS: int = _env_int("RATE_LIMIT_WINDOW_SECONDS", default=60, hi=86_400)
# Key clients on the first X-Forwarded-For hop. Enable only behind a proxy
# that overwrites the header.
TRUST_PROXY_HEADERS: bool = _env_bool("TRUST_PROXY_HEADERS")

# ---------------------------------------------------------------------------
# Image normalization
# ---------------------------------------------------------------------------
RASTER_DPI: int = _env_int("RASTER_DPI", default=260, lo=72, hi=1200)
UPSCALE_MIN_LONGEST_SIDE: int = _env_int("UPSCALE_MIN_LONGEST_SIDE", default=1700, hi=20_000)
UPSCALE_FACTOR: float = _env_float("UPSCALE_FACTOR", default=1.6, lo=1.0, hi=4.0)
BINARIZE_THRESHOLD: int = _env_int("BINARIZE_THRESHOLD", default=180, lo=0, hi=255)

# ---------------------------------------------------------------------------
# OCR engine
# ---------------------------------------------------------------------------
OCR_LANG: str = os.environ.get("OCR_LANG", "eng").strip() or "eng"
TESSDATA_PATH: str | None = os.environ.get("TESSDATA_PATH") or None
OCR_PSM: int = _env_int("OCR_PSM", default=6, lo=0, hi=13)

# ---------------------------------------------------------------------------
# Field resolver tuning (calibrate against real scans with
# scripts/calibrate_resolver.py before changing the defaults)
# ---------------------------------------------------------------------------
LINE_CONFIDENCE_FLOOR: float = _env_float("LINE_CONFIDENCE_FLOOR", default=0.45)
FALLBACK_LINE_CONFIDENCE: float = _env_float("FALLBACK_LINE_CONFIDENCE", default=0.6)
LABEL_SIMILARITY_THRESHOLD: float = _env_float("LABEL_SIMILARITY_THRESHOLD", default=0.8)
TABULAR_LOOKAHEAD_ROWS: int = _env_int("TABULAR_LOOKAHEAD_ROWS", default=5, hi=50)
NOTES_MAX_CHARS: int = 2000

# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------
API_HOST: str = os.environ.get("API_HOST", "127.0.0.1").strip() or "127.0.0.1"
API_PORT: int = _env_int("API_PORT", default=8000, hi=65_535)
CORS_ORIGINS: list[str] = [
    origin.strip()
    for origin in os.environ.get("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]


def log_startup_config() -> None:
    """Print one startup line summarising active configuration."""
    msg = (
        f"Order intake config: MAX_FILE_SIZE_BYTES={MAX_FILE_SIZE_BYTES} "
        f"RATE_LIMIT={RATE_LIMIT_COUNT}/{RATE_LIMIT_WINDOW_SECONDS}s "
        f"(enabled={RATE_LIMIT_ENABLED}) TRUST_PROXY_HEADERS={TRUST_PROXY_HEADERS} "
        f"RASTER_DPI={RASTER_DPI} UPSCALE_MIN_LONGEST_SIDE={UPSCALE_MIN_LONGEST_SIDE} "
        f"BINARIZE_THRESHOLD={BINARIZE_THRESHOLD} OCR_LANG={OCR_LANG} OCR_PSM={OCR_PSM} "
        f"LABEL_SIMILARITY_THRESHOLD={LABEL_SIMILARITY_THRESHOLD} "
        f"LINE_CONFIDENCE_FLOOR={LINE_CONFIDENCE_FLOOR} "
        f"TABULAR_LOOKAHEAD_ROWS={TABULAR_LOOKAHEAD_ROWS}"
    )
    print(msg, flush=True)
    sys.stderr.write(msg + "\n")
    sys.stderr.flush()
