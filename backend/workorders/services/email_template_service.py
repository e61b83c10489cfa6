"""
HTML bodies for lifecycle notification emails.

WHAT: Renders new_ticket.html, status_change.html and comment.html, all
extending base.html, from workorders/templates/email.

WHY: The notification service decides who gets what; this module only
turns a context dict into markup, so wording changes never touch routing.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

from jinja2 import Environment, FileSystemLoader, select_autoescape, TemplateNotFound

from workorders.core.config import settings
from workorders.core.exceptions import EmailServiceError


logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).parent.parent / "templates" / "email"


def truncate(text: Optional[str], length: int = 200, suffix: str = "...") -> str:
    """
    Truncate text to length characters, adding suffix when cut.

    The result never exceeds length + len(suffix).
    """
    if not text:
        return ""
    if len(text) <= length:
        return text
    return text[:length] + suffix


class EmailTemplateService:
    """
    Jinja2 renderer for the notification templates.

    Example:
        html = get_email_template_service().render_template(
            "status_change.html", {"ticket_number": 1042, ...}
        )
    """

    def __init__(self, template_dir: Optional[Path] = None):
        """
        Args:
            template_dir: Overrides the packaged template directory
        """
        self._template_dir = template_dir or DEFAULT_TEMPLATE_DIR
        self._env = self._create_environment()

    def _create_environment(self) -> Environment:
        """
        WHY: Auto-escaping prevents ticket descriptions and comments (user
        input) from injecting HTML into other users' inboxes.
        """
        env = Environment(
            loader=FileSystemLoader(str(self._template_dir)),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        env.filters["truncate_text"] = truncate
        return env

    def _get_base_context(self) -> Dict[str, Any]:
        return {
            "year": datetime.now().year,
            "frontend_url": settings.FRONTEND_URL,
            "platform_name": settings.PROJECT_NAME.replace(" API", ""),
        }

    def render_template(self, template_name: str, context: Dict[str, Any]) -> str:
        """
        Render one template over the shared base context.

        Raises:
            EmailServiceError: Missing template or a render failure
        """
        try:
            template = self._env.get_template(template_name)
            full_context = {**self._get_base_context(), **context}
            return template.render(**full_context)
        except TemplateNotFound:
            logger.error(f"Email template not found: {template_name}")
            raise EmailServiceError(
                message=f"Email template not found: {template_name}",
                template=template_name,
            )
        except Exception as e:
            logger.error(f"Error rendering template {template_name}: {e}")
            raise EmailServiceError(
                message="Failed to render email template",
                template=template_name,
            ) from e

    def render(self, template_name: str, context: Dict[str, Any], text: str) -> Tuple[str, str]:
        """
        Render the HTML body and attach the plain-text fallback.

        Returns:
            Tuple of (html_content, text_content)
        """
        return self.render_template(template_name, context), self._generate_text_version(text)

    @staticmethod
    def _generate_text_version(content: str) -> str:
        """Plain-text part: the summary plus a short footer."""
        footer = (
            "\n\n---\n"
            "You are receiving this because you are listed on this work order."
        )
        return content.strip() + footer


# Module-level singleton
_template_service: Optional[EmailTemplateService] = None


def get_email_template_service() -> EmailTemplateService:
    """Shared renderer; the Jinja2 environment caches compiled templates."""
    global _template_service

    if _template_service is None:
        _template_service = EmailTemplateService()

    return _template_service
