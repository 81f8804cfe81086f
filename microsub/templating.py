"""Jinja2 environment for microsub templates."""

from __future__ import annotations

from importlib import resources
from typing import Iterable

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .models import AdapterInfo

_ENV: Environment | None = None


def get_environment() -> Environment:
    """Return a cached Jinja environment configured for package templates."""
    global _ENV
    if _ENV is None:
        template_dir = resources.files(__package__) / "templates"
        loader = FileSystemLoader(str(template_dir))
        _ENV = Environment(
            loader=loader,
            autoescape=select_autoescape(["html", "xml", "j2"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
    return _ENV


def render_index(endpoint_url: str, adapters: Iterable[AdapterInfo]) -> str:
    """Render the discovery page advertising the Microsub endpoint."""
    template = get_environment().get_template("index.html.j2")
    return template.render(endpoint_url=endpoint_url, adapters=list(adapters))
