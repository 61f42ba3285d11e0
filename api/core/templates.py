"""Jinja2 template engine for outgoing email bodies.

Provides a module-level ``templates`` environment so services can import it
directly. HTML templates are autoescaped; plain-text ones are not.
"""

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

_templates_dir = Path(__file__).resolve().parent.parent / "templates"

templates = Environment(
    loader=FileSystemLoader(str(_templates_dir)),
    autoescape=select_autoescape(["html"]),
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
)
