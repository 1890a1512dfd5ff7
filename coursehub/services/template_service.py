# coursehub/services/template_service.py
"""
Template rendering service for CourseHub.

Provides centralized template rendering using Jinja2 for notification
bodies. Templates live under ``coursehub/templates``.
"""

from datetime import datetime
from decimal import Decimal
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateNotFound

from ..core.config import Settings, settings as default_settings
from .template_registry import TemplateRegistry

logger = logging.getLogger(__name__)

BRAND_NAME = "CourseHub"


class TemplateService:
    """
    Centralized template rendering service using Jinja2.

    Missing context variables raise instead of rendering blanks.
    """

    def __init__(self, config: Optional[Settings] = None):
        self.settings = config or default_settings
        self.logger = logging.getLogger(self.__class__.__name__)

        template_dir = Path(__file__).parent.parent / "templates"
        self.env = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=True,
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
        )
        self._register_custom_filters()

    def _register_custom_filters(self) -> None:
        def currency(value: Union[Decimal, float]) -> str:
            """Format a number as currency."""
            return f"{value:,.2f}"

        def format_datetime(value: datetime, format_str: str = "%B %d, %Y %H:%M UTC") -> str:
            if isinstance(value, str):
                return value  # Already formatted
            return value.strftime(format_str)

        self.env.filters["currency"] = currency
        self.env.filters["format_datetime"] = format_datetime

    def get_common_context(self) -> Dict[str, Any]:
        return {
            "brand_name": BRAND_NAME,
            "current_year": datetime.now().year,
            "frontend_url": self.settings.frontend_url,
        }

    def render_template(
        self,
        template_name: Union[TemplateRegistry, str],
        context: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> str:
        """
        Render a template with the given context.

        Raises:
            TemplateNotFound: If template doesn't exist
        """
        name = template_name.value if isinstance(template_name, TemplateRegistry) else template_name
        try:
            template = self.env.get_template(name)
        except TemplateNotFound:
            self.logger.error(f"Template not found: {name}")
            raise

        full_context = self.get_common_context()
        if context:
            full_context.update(context)
        full_context.update(kwargs)
        return template.render(full_context)
