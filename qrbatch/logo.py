"""Logo intake: decode raw upload bytes into an RGBA bitmap."""

import asyncio
import io

from PIL import Image, UnidentifiedImageError

from qrbatch.errors import ImageDecodeError
from qrbatch.logging import audit, get_logger, trace

log = get_logger("logo")

# Guard against decompression bombs (e.g. a tiny PNG claiming 100k x 100k)
MAX_LOGO_PIXELS = 40_000_000


@trace
def load_logo(data: bytes) -> Image.Image:
    """Decode logo bytes into an RGBA image.

    The pixel data is fully loaded here so truncated files fail now rather
    than halfway through compositing. Palette and greyscale images with
    transparency keep their alpha.

    Raises:
        ImageDecodeError: empty, unrecognised, truncated or oversized data.
    """
    if not data:
        raise ImageDecodeError("logo image is empty")
    try:
        with Image.open(io.BytesIO(data)) as img:
            w, h = img.size
            if w <= 0 or h <= 0 or w * h > MAX_LOGO_PIXELS:
                raise ImageDecodeError(f"logo dimensions {w}x{h} are not usable")
            img.load()
            fmt = img.format
            rgba = img.convert("RGBA")
    except ImageDecodeError:
        raise
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"cannot decode logo image: {e}") from e

    audit("logo.decoded", logger=log, format=fmt, size=f"{w}x{h}", bytes=len(data))
    return rgba


async def decode_logo(data: bytes) -> Image.Image:
    """Async wrapper around :func:`load_logo`, run in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, load_logo, data)
