"""Scan self-check: decode a finished code and compare it with its payload."""

import io
import time
from dataclasses import dataclass

import cv2
import numpy as np
from PIL import Image
from pyzbar.pyzbar import ZBarSymbol
from pyzbar.pyzbar import decode as pyzbar_decode

from qrbatch.errors import VerificationError
from qrbatch.logging import audit, get_logger, trace

log = get_logger("verify")


@dataclass
class ScanResult:
    """Result of a single scan attempt."""
    success: bool
    decoded_data: str | None = None
    decode_time_ms: float = 0.0
    decoder: str = ""
    error: str | None = None


def _finish(decoder: str, start: float, data: str | None, error: str | None = None) -> ScanResult:
    elapsed = (time.perf_counter() - start) * 1000
    if data:
        audit("scan.verified", logger=log, decoder=decoder, success=True,
              time_ms=round(elapsed, 1), data=data[:80])
        return ScanResult(success=True, decoded_data=data, decode_time_ms=elapsed, decoder=decoder)
    error = error or "No QR code detected"
    audit("scan.verified", logger=log, decoder=decoder, success=False,
          time_ms=round(elapsed, 1), error=error)
    return ScanResult(success=False, decode_time_ms=elapsed, decoder=decoder, error=error)


@trace
def scan_pyzbar(image: Image.Image) -> ScanResult:
    """Scan a QR code using pyzbar (wraps ZBar)."""
    start = time.perf_counter()
    try:
        results = pyzbar_decode(image, symbols=[ZBarSymbol.QRCODE])
    except Exception as e:
        # a decoder crash counts as a failed scan, not a pipeline failure
        return _finish("pyzbar/zbar", start, None, str(e))
    data = results[0].data.decode("utf-8", errors="replace") if results else None
    return _finish("pyzbar/zbar", start, data)


@trace
def scan_opencv(image: Image.Image) -> ScanResult:
    """Scan a QR code using OpenCV's built-in detector."""
    start = time.perf_counter()
    try:
        gray = cv2.cvtColor(np.array(image.convert("RGB")), cv2.COLOR_RGB2GRAY)
        data, _points, _ = cv2.QRCodeDetector().detectAndDecode(gray)
    except cv2.error as e:
        return _finish("opencv", start, None, str(e))
    return _finish("opencv", start, data or None)


@trace
def verify(image: Image.Image, expected_data: str | None = None) -> list[ScanResult]:
    """Run every decoder on *image*.

    A decode that doesn't match *expected_data* is marked as a failure.
    """
    results = []
    for scanner in (scan_pyzbar, scan_opencv):
        result = scanner(image)
        if result.success and expected_data is not None and result.decoded_data != expected_data:
            result.success = False
            result.error = f"Data mismatch: got '{result.decoded_data}', expected '{expected_data}'"
        results.append(result)
    return results


def self_check(raster: bytes | Image.Image, payload: str) -> list[ScanResult]:
    """Require at least one decoder to read *payload* back from *raster*.

    Raises:
        VerificationError: no decoder returned the exact payload.
    """
    if isinstance(raster, Image.Image):
        results = verify(raster, expected_data=payload)
    else:
        with Image.open(io.BytesIO(raster)) as image:
            results = verify(image, expected_data=payload)
    if not any(r.success for r in results):
        reasons = "; ".join(f"{r.decoder}: {r.error}" for r in results)
        raise VerificationError(f"composited code does not scan back to its payload ({reasons})")
    return results
