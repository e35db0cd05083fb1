"""Tests for order_intake.api endpoints."""

from __future__ import annotations

import io
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from order_intake.api import create_app, serve
from order_intake.ocr import OCREngineManager
from order_intake.rate_limit import FixedWindowRateLimiter
from tests.fakes import FakeEngine, fake_raw, png_bytes

OCR_URL = "/api/orders/ocr"


def _client(engine: FakeEngine | None = None, max_calls: int = 12) -> TestClient:
    engine = engine or FakeEngine()
    app = create_app(
        engine_manager=OCREngineManager(factory=lambda: engine),
        rate_limiter=FixedWindowRateLimiter(max_calls=max_calls, window_seconds=60),
    )
    return TestClient(app, raise_server_exceptions=False)


def _png_file() -> dict:
    return {"file": ("order.png", io.BytesIO(png_bytes()), "image/png")}


class TestHealthAndConfig(unittest.TestCase):
    def test_health_reports_engine_state(self) -> None:
        client = _client()
        r = client.get("/health")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["status"], "ok")
        self.assertFalse(r.json()["ocr_engine_started"])

        client.post(OCR_URL, files=_png_file())
        self.assertTrue(client.get("/health").json()["ocr_engine_started"])

    def test_api_config(self) -> None:
        data = _client().get("/api/config").json()
        self.assertIn("application/pdf", data["allowed_mime_types"])
        self.assertGreater(data["max_file_size_bytes"], 0)


class TestOrderOcrEndpoint(unittest.TestCase):
    def test_end_to_end(self) -> None:
        r = _client().post(OCR_URL, files=_png_file(), data={"tz": "America/Chicago"})
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertTrue(body["ok"])
        self.assertEqual(body["fields"]["puWindowStart"], "2025-10-22T14:00:00.000Z")
        self.assertEqual(body["fields"]["puWindowEnd"], "2025-10-22T16:00:00.000Z")
        self.assertEqual(body["warnings"], [])
        self.assertEqual(body["review"]["customer"], "success")
        self.assertEqual(body["boxes"]["imageWidth"], 640)
        self.assertTrue(body["boxes"]["previewDataUrl"].startswith("data:image/png;base64,"))

    def test_pickup_window_order_scan(self) -> None:
        lines = [
            "Customer: Acme Industrial",
            "Origin: Chicago, IL",
            "Destination: Atlanta, GA",
            "Pickup Window: 2025-10-22 09:00 - 11:00",
        ]
        client = _client(FakeEngine(raw=fake_raw(lines)))
        r = client.post(OCR_URL, files=_png_file(), data={"tz": "America/Chicago"})
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertTrue(body["ok"])
        self.assertEqual(body["fields"]["customer"], "Acme Industrial")
        self.assertEqual(body["fields"]["origin"], "Chicago, IL")
        self.assertEqual(body["fields"]["destination"], "Atlanta, GA")
        self.assertEqual(body["fields"]["puWindowStart"], "2025-10-22T14:00:00.000Z")
        self.assertEqual(body["fields"]["puWindowEnd"], "2025-10-22T16:00:00.000Z")
        self.assertEqual(body["warnings"], [])

    def test_missing_file(self) -> None:
        r = _client().post(OCR_URL, data={"tz": "UTC"})
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json(), {"ok": False, "error": "No file uploaded"})

    def test_empty_file(self) -> None:
        r = _client().post(OCR_URL, files={"file": ("e.png", io.BytesIO(b""), "image/png")})
        self.assertEqual(r.status_code, 400)
        self.assertIn("empty", r.json()["error"])

    @patch("order_intake.api.MAX_FILE_SIZE_BYTES", 100)
    def test_too_large_checked_before_type(self) -> None:
        r = _client().post(
            OCR_URL, files={"file": ("big.txt", io.BytesIO(b"x" * 200), "text/plain")}
        )
        self.assertEqual(r.status_code, 413)
        self.assertFalse(r.json()["ok"])
        self.assertIn("too large", r.json()["error"].lower())

    def test_unsupported_type(self) -> None:
        r = _client().post(
            OCR_URL, files={"file": ("order.txt", io.BytesIO(b"hello"), "text/plain")}
        )
        self.assertEqual(r.status_code, 415)
        self.assertEqual(r.json()["error"], "Unsupported file type: text/plain")

    @patch("order_intake.api.RATE_LIMIT_ENABLED", True)
    def test_rate_limit_runs_first(self) -> None:
        client = _client(max_calls=1)
        self.assertEqual(client.post(OCR_URL, data={}).status_code, 400)
        r = client.post(OCR_URL, files=_png_file())
        self.assertEqual(r.status_code, 429)
        self.assertEqual(r.json(), {"ok": False, "error": "Too many requests"})

    @patch("order_intake.api.RATE_LIMIT_ENABLED", True)
    def test_forwarded_for_ignored_by_default(self) -> None:
        client = _client(max_calls=2)
        codes = [
            client.post(
                OCR_URL, files=_png_file(), headers={"X-Forwarded-For": f"10.0.0.{i}"}
            ).status_code
            for i in range(5)
        ]
        self.assertEqual(codes, [200, 200, 429, 429, 429])

    @patch("order_intake.api.RATE_LIMIT_ENABLED", True)
    @patch("order_intake.api.TRUST_PROXY_HEADERS", True)
    def test_forwarded_for_keys_the_limiter_behind_proxy(self) -> None:
        client = _client(max_calls=1)
        self.assertEqual(
            client.post(OCR_URL, data={}, headers={"X-Forwarded-For": "1.1.1.1"}).status_code, 400
        )
        self.assertEqual(
            client.post(OCR_URL, data={}, headers={"X-Forwarded-For": "2.2.2.2"}).status_code, 400
        )
        self.assertEqual(
            client.post(
                OCR_URL, data={}, headers={"X-Forwarded-For": "1.1.1.1, 10.0.0.1"}
            ).status_code,
            429,
        )

    def test_stage_failure_is_500_with_stage_name(self) -> None:
        client = _client(FakeEngine(error=RuntimeError("engine crashed")))
        r = client.post(OCR_URL, files=_png_file())
        self.assertEqual(r.status_code, 500)
        self.assertEqual(r.json(), {"ok": False, "error": "OCR failed: engine crashed"})

    def test_corrupt_image_is_preprocess_failure(self) -> None:
        r = _client().post(
            OCR_URL, files={"file": ("bad.png", io.BytesIO(b"not a png"), "image/png")}
        )
        self.assertEqual(r.status_code, 500)
        self.assertTrue(r.json()["error"].startswith("Preprocess failed"))

    def test_multi_page_pdf_rejected(self) -> None:
        import fitz

        doc = fitz.open()
        doc.new_page()
        doc.new_page()
        pdf = doc.tobytes()
        doc.close()
        r = _client().post(
            OCR_URL, files={"file": ("two.pdf", io.BytesIO(pdf), "application/pdf")}
        )
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["error"], "Only single-page documents are supported")


class TestServe(unittest.TestCase):
    @patch("uvicorn.run")
    def test_serve_runs_module_app(self, run) -> None:
        serve()
        run.assert_called_once()
        self.assertEqual(run.call_args.args, ("order_intake.api:app",))
        self.assertIn("port", run.call_args.kwargs)


if __name__ == "__main__":
    unittest.main()
