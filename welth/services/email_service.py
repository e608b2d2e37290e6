"""
Transactional e-mail through Resend.

Templates live in ``welth/templates`` and are rendered with Jinja2. Delivery
problems never raise: callers get an ``EmailResult`` and decide what to do
(the budget alert job, for one, only records an alert after a success).
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import resend
import structlog
from jinja2 import Environment, PackageLoader, select_autoescape

from welth.core.config import settings

logger = structlog.get_logger(__name__)

_templates = Environment(
    loader=PackageLoader("welth", "templates"),
    autoescape=select_autoescape(["html"]),
)


def _money(value: Any) -> str:
    try:
        return f"{float(value):,.2f}"
    except (TypeError, ValueError):
        return str(value)


_templates.filters["money"] = _money


@dataclass
class EmailResult:
    success: bool
    id: Optional[str] = None
    error: Optional[str] = None


def render_template(template: str, data: Dict[str, Any]) -> str:
    return _templates.get_template(template).render(**data)


class EmailService:
    def __init__(self, api_key: Optional[str] = None, sender: Optional[str] = None):
        self._api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        self._sender = sender or settings.EMAIL_FROM

    async def send_email(
        self,
        to: Union[str, List[str]],
        subject: str,
        template: str,
        data: Dict[str, Any],
    ) -> EmailResult:
        if not self._api_key:
            logger.warning("email_not_configured", subject=subject)
            return EmailResult(success=False, error="RESEND_API_KEY not configured")

        try:
            html = render_template(template, data)
        except Exception as e:
            logger.error("email_render_failed", template=template, error=str(e))
            return EmailResult(success=False, error=f"Template error: {e}")

        params = {
            "from": self._sender,
            "to": to if isinstance(to, list) else [to],
            "subject": subject,
            "html": html,
        }

        def _send():
            resend.api_key = self._api_key
            return resend.Emails.send(params)

        try:
            response = await asyncio.to_thread(_send)
        except Exception as e:
            logger.error("email_send_failed", subject=subject, error=str(e))
            return EmailResult(success=False, error=str(e))

        email_id = response.get("id") if isinstance(response, dict) else None
        logger.info("email_sent", subject=subject, email_id=email_id)
        return EmailResult(success=True, id=email_id)
