"""Email template rendering.

Templates live under ``templink/templates`` and are addressed by name
without extension, e.g. ``emails/activate_email`` resolves to
``emails/activate_email.html``.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from jinja2 import (
    Environment,
    FileSystemLoader,
    TemplateError,
    TemplateNotFound,
    select_autoescape,
)

from templink.services.errors import TemplateRenderError

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

_TEMPLATE_SUFFIX = ".html"


class TemplateRenderer(ABC):
    """Abstract interface for rendering email bodies."""

    @abstractmethod
    async def render(self, template_name: str, context: Mapping[str, Any]) -> str:
        """Render a named template.

        Args:
            template_name: Template name without extension.
            context: Variables available to the template.

        Returns:
            Rendered output. May be empty.

        Raises:
            TemplateRenderError: If the template is missing or fails.
        """
        ...


class JinjaTemplateRenderer(TemplateRenderer):
    """Jinja2-backed renderer with HTML autoescaping."""

    def __init__(self, templates_dir: Path | str = TEMPLATES_DIR) -> None:
        """Initialize the Jinja2 environment.

        Args:
            templates_dir: Root directory searched for templates.
        """
        self._env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=select_autoescape(["html", "xml"]),
            enable_async=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    async def render(self, template_name: str, context: Mapping[str, Any]) -> str:
        """Render ``<template_name>.html`` with the given context."""
        try:
            template = self._env.get_template(template_name + _TEMPLATE_SUFFIX)
            return await template.render_async(**context)
        except TemplateNotFound as exc:
            raise TemplateRenderError(template_name, "template not found") from exc
        except TemplateError as exc:
            raise TemplateRenderError(template_name, str(exc)) from exc
