"""Command-line interface for order-document intake."""

from __future__ import annotations

import argparse
import asyncio
import json
import mimetypes
import sys
from pathlib import Path

from .ocr import OCREngineManager, normalize_ocr_output
from .pipeline import OrderIntakePipeline
from .resolver import parse_order_from_ocr
from .review import build_response, format_confidence, format_iso_for_display
from .schema import FIELD_NAMES, WINDOW_FIELDS, OCREndpointResponse
from .utils import IntakeError


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""

    parser = argparse.ArgumentParser(description="Read order fields from a scanned order document.")
    parser.add_argument("path", help="PNG, JPEG or single-page PDF (or OCR JSON with --ocr-json).")
    parser.add_argument("--tz", type=str, default=None, help="IANA zone for wall-clock times (default: UTC).")
    parser.add_argument(
        "--locale",
        type=str,
        default=None,
        help="Locale deciding numeric date order, e.g. en-US or en-GB (default: month first).",
    )
    parser.add_argument(
        "--mime",
        type=str,
        default=None,
        help="Override the MIME type guessed from the file extension.",
    )
    parser.add_argument(
        "--ocr-json",
        action="store_true",
        help="Treat PATH as saved raw OCR output ({text, lines, words}) and skip imaging and OCR.",
    )
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Print a readable field table instead of JSON.",
    )
    return parser


def _from_ocr_json(path: Path, tz: str | None, locale: str | None) -> OCREndpointResponse:
    raw = json.loads(path.read_text(encoding="utf-8"))
    structured = normalize_ocr_output(raw)
    parsed = parse_order_from_ocr(structured, tz=tz, locale=locale)
    return build_response(parsed)


def _from_document(path: Path, mime: str | None, tz: str | None, locale: str | None) -> OCREndpointResponse:
    mime = mime or mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    pipeline = OrderIntakePipeline(OCREngineManager())
    return asyncio.run(pipeline.process(path.read_bytes(), mime, tz=tz, locale=locale))


def format_summary(response: OCREndpointResponse, tz: str | None = None) -> str:
    rows = []
    for key in FIELD_NAMES:
        value = response.fields.get(key)
        if value is None:
            continue
        shown = format_iso_for_display(value, tz) if key in WINDOW_FIELDS else value.replace("\n", " / ")
        confidence = format_confidence(response.confidence.get(key))
        rows.append(f"{key:<16} {confidence:>5}  {shown}")
    for warning in response.warnings:
        rows.append(f"warning: {warning}")
    return "\n".join(rows)


def main(argv: list[str] | None = None) -> int:
    """Entry point for the CLI."""

    parser = build_parser()
    args = parser.parse_args(argv)
    path = Path(args.path)

    try:
        if args.ocr_json:
            response = _from_ocr_json(path, args.tz, args.locale)
        else:
            response = _from_document(path, args.mime, args.tz, args.locale)
    except (OSError, json.JSONDecodeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except IntakeError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if args.summary:
        print(format_summary(response, args.tz))
    else:
        print(json.dumps(response.model_dump(by_alias=True, exclude={"boxes"}), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
