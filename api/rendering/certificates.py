"""Certificate rendering - template compositing and PDF/PNG encoding.

This module handles the visual side of certificate generation:
- Decoding the uploaded template raster (Pillow)
- Compositing the participant name onto it as an SVG canvas
- Encoding the canvas to PNG or a single-page PDF (CairoSVG)

Everything here is pure: bytes and placement in, bytes out. Fetching
templates and storing results is the generation service's job.
"""

import base64
import html
import io
import logging
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

DEFAULT_FONT_SIZE = 48
DEFAULT_FONT_FAMILY = "serif"
DEFAULT_FONT_COLOR = "#000000"
DEFAULT_POSITION = 50.0

# Rough advance width of an average glyph, as a fraction of the font size
_AVERAGE_GLYPH_WIDTH = 0.6

# CairoSVG lays PDF pages out at 0.75pt per CSS pixel; scaling by the inverse
# gives a page of exactly W x H points for a W x H pixel template.
_PDF_PIXEL_SCALE = 1 / 0.75

CONTENT_TYPES = {
    "pdf": "application/pdf",
    "png": "image/png",
}

_CAIRO_INSTALL_HINT = (
    "On macOS: brew install cairo. "
    "On Ubuntu/Debian: apt-get install libcairo2-dev. "
    "On Alpine: apk add cairo-dev."
)


class DecodeError(Exception):
    """Raised when template bytes are not a readable image."""


class EncodeError(Exception):
    """Raised when the composited certificate cannot be serialized."""


@dataclass(frozen=True)
class NamePlacement:
    """Text placement for the participant name.

    Positions are percentages (0-100) of the template width and height.
    """

    position_x: float = DEFAULT_POSITION
    position_y: float = DEFAULT_POSITION
    font_size: int = DEFAULT_FONT_SIZE
    font_color: str = DEFAULT_FONT_COLOR
    font_family: str = DEFAULT_FONT_FAMILY


@dataclass(frozen=True)
class TemplateRaster:
    """A decoded template image ready to embed."""

    width: int
    height: int
    png_bytes: bytes
    # Pillow format name of the source ("PNG", "JPEG", ...)
    source_format: str = "PNG"


@dataclass(frozen=True)
class RenderedCertificate:
    content: bytes
    content_type: str
    extension: str
    width: int
    height: int


def decode_template(image_bytes: bytes) -> TemplateRaster:
    """Decode template bytes into a raster of its native size.

    Non-PNG templates are re-encoded as PNG so the SVG canvas always embeds
    a lossless copy of the decoded pixels.

    Raises:
        DecodeError: If the bytes are empty or not a supported image
    """
    if not image_bytes:
        raise DecodeError("Template image is empty")

    try:
        with Image.open(io.BytesIO(image_bytes)) as image:
            image.load()
            width, height = image.size
            source_format = image.format or "PNG"
            if image.format == "PNG":
                png_bytes = image_bytes
            else:
                if image.mode not in ("RGB", "RGBA", "L", "LA"):
                    image = image.convert("RGBA")
                buffer = io.BytesIO()
                image.save(buffer, format="PNG")
                png_bytes = buffer.getvalue()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise DecodeError(f"Template is not a valid image: {e}") from e

    if width <= 0 or height <= 0:
        raise DecodeError(f"Template has invalid dimensions {width}x{height}")

    return TemplateRaster(
        width=width,
        height=height,
        png_bytes=png_bytes,
        source_format=source_format,
    )


def name_position(
    placement: NamePlacement, width: int, height: int
) -> tuple[float, float]:
    """Absolute pixel position of the name anchor for a canvas size."""
    return (
        placement.position_x / 100 * width,
        placement.position_y / 100 * height,
    )


def _format_number(value: float) -> str:
    """Render a coordinate without float noise (50.0 -> '50', 12.5 -> '12.5')."""
    return f"{value:.4f}".rstrip("0").rstrip(".")


def _single_line(name: str) -> str:
    return " ".join(name.split())


def estimate_text_width(text: str, font_size: int) -> float:
    return len(text) * font_size * _AVERAGE_GLYPH_WIDTH


def compose_certificate_svg(
    raster: TemplateRaster,
    placement: NamePlacement,
    participant_name: str,
) -> str:
    """Build an SVG canvas: the template at (0,0) plus the name as one line.

    The canvas inherits the template's exact pixel size. The name is centred
    horizontally on the anchor and sits on its alphabetic baseline. Long
    names are not wrapped or shrunk.
    """
    width, height = raster.width, raster.height
    x, y = name_position(placement, width, height)
    name = _single_line(participant_name)

    if estimate_text_width(name, placement.font_size) > width:
        logger.warning(
            "render.name_overflow",
            extra={
                "name_length": len(name),
                "font_size": placement.font_size,
                "canvas_width": width,
            },
        )

    image_data = base64.b64encode(raster.png_bytes).decode("ascii")
    safe_name = html.escape(name)
    safe_family = html.escape(placement.font_family, quote=True)
    safe_color = html.escape(placement.font_color, quote=True)

    return f"""<?xml version="1.0" encoding="UTF-8"?>
<svg xmlns="http://www.w3.org/2000/svg" xmlns:xlink="http://www.w3.org/1999/xlink" width="{width}" height="{height}" viewBox="0 0 {width} {height}">
  <image x="0" y="0" width="{width}" height="{height}" xlink:href="data:image/png;base64,{image_data}"/>
  <text x="{_format_number(x)}" y="{_format_number(y)}" font-family="{safe_family}" font-size="{placement.font_size}" fill="{safe_color}" text-anchor="middle">{safe_name}</text>
</svg>"""


def _import_cairosvg():
    try:
        import cairosvg
    except OSError as e:
        if "cairo" in str(e).lower():
            raise EncodeError(
                f"Certificate encoding requires the Cairo library. {_CAIRO_INSTALL_HINT}"
            ) from e
        raise
    return cairosvg


def svg_to_png(svg_content: str) -> bytes:
    """Convert SVG string to PNG bytes at the canvas's native pixel size.

    Raises:
        EncodeError: If cairo is missing or the conversion fails
    """
    cairosvg = _import_cairosvg()
    try:
        return cairosvg.svg2png(bytestring=svg_content.encode("utf-8"))
    except Exception as e:
        raise EncodeError(f"PNG encoding failed: {e}") from e


def svg_to_pdf(svg_content: str) -> bytes:
    """Convert SVG string to a single-page, zero-margin PDF.

    Raises:
        EncodeError: If cairo is missing or the conversion fails
    """
    cairosvg = _import_cairosvg()
    try:
        return cairosvg.svg2pdf(
            bytestring=svg_content.encode("utf-8"), scale=_PDF_PIXEL_SCALE
        )
    except Exception as e:
        raise EncodeError(f"PDF encoding failed: {e}") from e


def render_certificate(
    template_bytes: bytes,
    placement: NamePlacement,
    participant_name: str,
    output_format: str = "pdf",
) -> RenderedCertificate:
    """Composite a participant name onto a template and encode the result.

    Decode, draw and encode run strictly in that order.

    Args:
        template_bytes: Raw template image bytes
        placement: Name position and font configuration
        participant_name: Name to draw
        output_format: "pdf" or "png"

    Returns:
        RenderedCertificate with the encoded bytes and their content type

    Raises:
        DecodeError: If the template bytes are not a valid image
        EncodeError: If serialization fails or the format is unsupported
    """
    if output_format not in CONTENT_TYPES:
        raise EncodeError(f"Unsupported output format: {output_format}")

    raster = decode_template(template_bytes)
    svg_content = compose_certificate_svg(raster, placement, participant_name)

    if output_format == "png":
        content = svg_to_png(svg_content)
    else:
        content = svg_to_pdf(svg_content)

    if not content:
        raise EncodeError(f"{output_format.upper()} encoder returned no data")

    return RenderedCertificate(
        content=content,
        content_type=CONTENT_TYPES[output_format],
        extension=output_format,
        width=raster.width,
        height=raster.height,
    )
