"""Overlay compositor: draw the base QR, then an optional centred logo on a white plate.

The plate is an opaque square of side ``centre + 2 * padding`` painted over
whatever modules sit in the middle of the code, so the logo never mixes with
matrix pixels. Its area stays bounded by ``safe_zone_ratio``; see
:func:`qrbatch.config.check_safe_zone` for the ECC ceiling.
"""

import asyncio
import io
from dataclasses import dataclass

from PIL import Image, ImageDraw

from qrbatch.config import Settings, check_safe_zone
from qrbatch.encoder import parse_hex_color, render_matrix
from qrbatch.logging import audit, get_logger, trace

log = get_logger("compositor")


@dataclass(frozen=True)
class CompositeImageRequest:
    """Everything needed to render one finished code."""

    payload: str
    center_image: Image.Image | None = None
    canvas_size: int = 800
    quiet_margin: int = 2
    safe_zone_ratio: float = 0.20
    safe_zone_padding_ratio: float = 0.10
    ecc: str = "H"
    dark_color: str = "#000000"
    light_color: str = "#FFFFFF"

    @classmethod
    def from_settings(cls, payload: str, center_image: Image.Image | None, settings: Settings):
        return cls(
            payload=payload,
            center_image=center_image,
            canvas_size=settings.canvas_size,
            quiet_margin=settings.quiet_margin,
            safe_zone_ratio=settings.safe_zone_ratio,
            safe_zone_padding_ratio=settings.safe_zone_padding_ratio,
            ecc=settings.ecc,
            dark_color=settings.dark_color,
            light_color=settings.light_color,
        )


@dataclass(frozen=True)
class LogoPlacement:
    """Pixel geometry of the plate and the logo on the canvas.

    Boxes are ``(left, top, width, height)``.
    """

    center_size: float
    padding: float
    plate: tuple[int, int, int, int]
    logo: tuple[int, int, int, int]


def scale_to_fit(width: int, height: int, target: float) -> tuple[float, float]:
    """Scale (w, h) so it fits a ``target`` square without distortion.

    Wider than tall: full width, height ``target / r``. Otherwise full
    height, width ``target * r``.
    """
    aspect = width / height
    if aspect > 1:
        return target, target / aspect
    return target * aspect, target


def compute_placement(
    canvas_size: int,
    logo_size: tuple[int, int],
    safe_zone_ratio: float = 0.20,
    padding_ratio: float = 0.10,
) -> LogoPlacement:
    """Work out where the plate and the logo go.

    The logo box is centred in the ``center_size`` region, which is centred
    in the plate, which is centred on the canvas. Coordinates are rounded to
    whole pixels; sizes are at least 1px.
    """
    center_size = canvas_size * safe_zone_ratio
    padding = center_size * padding_ratio
    origin = (canvas_size - center_size) / 2

    plate_side = center_size + 2 * padding
    plate_origin = origin - padding

    draw_w, draw_h = scale_to_fit(logo_size[0], logo_size[1], center_size)
    draw_x = origin + (center_size - draw_w) / 2
    draw_y = origin + (center_size - draw_h) / 2

    return LogoPlacement(
        center_size=center_size,
        padding=padding,
        plate=(round(plate_origin), round(plate_origin), round(plate_side), round(plate_side)),
        logo=(round(draw_x), round(draw_y), max(1, round(draw_w)), max(1, round(draw_h))),
    )


@trace
def composite_image(request: CompositeImageRequest) -> Image.Image:
    """Render the QR for *request* and overlay its centre image, if any."""
    base = render_matrix(
        request.payload,
        size=request.canvas_size,
        margin=request.quiet_margin,
        ecc=request.ecc,
        dark_color=request.dark_color,
        light_color=request.light_color,
    )

    canvas = Image.new("RGB", (request.canvas_size, request.canvas_size), parse_hex_color(request.light_color))
    canvas.paste(base, (0, 0))

    if request.center_image is None:
        return canvas

    check_safe_zone(request.safe_zone_ratio, request.safe_zone_padding_ratio, request.ecc)
    placement = compute_placement(
        request.canvas_size,
        request.center_image.size,
        request.safe_zone_ratio,
        request.safe_zone_padding_ratio,
    )

    px, py, pw, ph = placement.plate
    draw = ImageDraw.Draw(canvas)
    draw.rectangle([px, py, px + pw - 1, py + ph - 1], fill=(255, 255, 255))

    lx, ly, lw, lh = placement.logo
    logo = request.center_image.convert("RGBA").resize((lw, lh), Image.LANCZOS)
    canvas.paste(logo, (lx, ly), logo)

    audit("composite.done", logger=log,
          data=request.payload[:80],
          canvas=f"{request.canvas_size}x{request.canvas_size}",
          plate=f"{pw}x{ph}@{px},{py}",
          logo=f"{lw}x{lh}@{lx},{ly}",
          source_logo=f"{request.center_image.size[0]}x{request.center_image.size[1]}")
    return canvas


def to_png_bytes(image: Image.Image) -> bytes:
    """Encode as PNG. No metadata chunks, so equal pixels give equal bytes."""
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


def render_png(request: CompositeImageRequest) -> bytes:
    return to_png_bytes(composite_image(request))


async def composite(request: CompositeImageRequest) -> bytes:
    """Composite *request* off the event loop and return PNG bytes."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, render_png, request)
