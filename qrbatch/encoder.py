"""Matrix encoder: payload -> square two-tone QR raster of an exact pixel size."""

import asyncio
import functools
from dataclasses import dataclass
from enum import Enum

import numpy as np
import qrcode
import qrcode.constants
from PIL import Image
from qrcode.exceptions import DataOverflowError

from qrbatch.errors import ConfigError, EncodingError
from qrbatch.logging import audit, get_logger, trace

log = get_logger("encoder")


class ECCLevel(Enum):
    L = qrcode.constants.ERROR_CORRECT_L  # 7%
    M = qrcode.constants.ERROR_CORRECT_M  # 15%
    Q = qrcode.constants.ERROR_CORRECT_Q  # 25%
    H = qrcode.constants.ERROR_CORRECT_H  # 30%


ECC_NAMES = {"L": ECCLevel.L, "M": ECCLevel.M, "Q": ECCLevel.Q, "H": ECCLevel.H}

# Fraction of codewords each level can restore
ECC_RECOVERY = {"L": 0.07, "M": 0.15, "Q": 0.25, "H": 0.30}


@dataclass(frozen=True)
class EncodeOptions:
    """Rendering options for one matrix."""

    size: int = 800
    margin: int = 2
    ecc: str = "H"
    dark_color: str = "#000000"
    light_color: str = "#FFFFFF"


def parse_hex_color(s: str) -> tuple[int, int, int]:
    """Parse '#RRGGBB', 'RRGGBB' or '#RGB' into an RGB tuple."""
    value = s.strip().lstrip("#")
    if len(value) == 3:
        value = "".join(ch * 2 for ch in value)
    if len(value) != 6:
        raise ConfigError(f"invalid hex colour {s!r}")
    try:
        return tuple(int(value[i : i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        raise ConfigError(f"invalid hex colour {s!r}") from None


def _build_qr(payload: str, ecc: str, border: int) -> qrcode.QRCode:
    if not payload:
        raise EncodingError("cannot encode an empty payload")
    try:
        ecc_level = ECC_NAMES[ecc.upper()]
    except KeyError:
        raise ConfigError(f"unknown ECC level {ecc!r}") from None

    qr = qrcode.QRCode(
        version=None,
        error_correction=ecc_level.value,
        box_size=1,
        border=border,
    )
    try:
        qr.add_data(payload)
        qr.make(fit=True)
    except UnicodeEncodeError:
        # lone surrogates, e.g. undecodable bytes from argv
        raise EncodingError("payload is not valid UTF-8 text") from None
    except DataOverflowError:
        raise EncodingError(
            f"payload of {len(payload)} chars exceeds QR capacity at ECC-{ecc.upper()}"
        ) from None
    return qr


@trace
def get_module_matrix(payload: str, ecc: str = "H", margin: int = 0) -> list[list[bool]]:
    """Raw module matrix (True=dark), including *margin* quiet modules per edge."""
    return _build_qr(payload, ecc, margin).get_matrix()


@trace
def render_matrix(
    payload: str,
    *,
    size: int = 800,
    margin: int = 2,
    ecc: str = "H",
    dark_color: str = "#000000",
    light_color: str = "#FFFFFF",
) -> Image.Image:
    """Render *payload* as an RGB QR image of exactly ``size x size`` pixels.

    Modules (quiet zone included) are sampled nearest-neighbour onto the
    pixel grid, so a module spans floor or ceil of ``size / modules`` pixels
    and the output only ever contains the two given colours.

    Raises:
        EncodingError: empty payload, payload over capacity, or a canvas
            with fewer pixels than modules.
    """
    qr = _build_qr(payload, ecc, margin)
    grid = np.array(qr.get_matrix(), dtype=bool)
    modules = grid.shape[0]
    if size < modules:
        raise EncodingError(f"{size}px canvas cannot hold {modules} modules")

    idx = np.arange(size) * modules // size
    dark_mask = grid[np.ix_(idx, idx)]

    pixels = np.empty((size, size, 3), dtype=np.uint8)
    pixels[dark_mask] = parse_hex_color(dark_color)
    pixels[~dark_mask] = parse_hex_color(light_color)
    img = Image.fromarray(pixels, "RGB")

    audit("qr.encoded", logger=log,
          data=payload[:80], version=qr.version, modules=f"{modules}x{modules}",
          ecc=ecc.upper(), margin=margin, image_px=f"{size}x{size}")
    return img


async def encode(payload: str, options: EncodeOptions | None = None) -> Image.Image:
    """Async wrapper around :func:`render_matrix`, run in the default executor."""
    options = options or EncodeOptions()
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        None,
        functools.partial(
            render_matrix,
            payload,
            size=options.size,
            margin=options.margin,
            ecc=options.ecc,
            dark_color=options.dark_color,
            light_color=options.light_color,
        ),
    )
