"""Rendering module for presentation concerns.

This module handles certificate compositing and encoding:
- Template decoding
- Name placement on the template canvas
- PDF/PNG conversion

This separates presentation concerns from generation and persistence in
services.
"""

from rendering.certificates import (
    DecodeError,
    EncodeError,
    NamePlacement,
    RenderedCertificate,
    TemplateRaster,
    compose_certificate_svg,
    decode_template,
    name_position,
    render_certificate,
)

__all__ = [
    "DecodeError",
    "EncodeError",
    "NamePlacement",
    "RenderedCertificate",
    "TemplateRaster",
    "compose_certificate_svg",
    "decode_template",
    "name_position",
    "render_certificate",
]
