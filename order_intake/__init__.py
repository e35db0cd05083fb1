"""Order-intake OCR: turn a scanned freight order into reviewable order fields."""

__version__ = "0.1.0"
