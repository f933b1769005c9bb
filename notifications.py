"""
Contact form email notifications

Two emails go out per visitor message: a notice to the site admin and an
acknowledgment to the visitor. Both are rendered from HTML templates with
{{name}}, {{email}} and {{message}} placeholders and sent through the
transactional provider's SMTP relay.
"""

import asyncio
import html
import logging
import re
import uuid
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate
from pathlib import Path
from typing import Dict

import aiosmtplib

from errors import DeliveryError
from schemas import Message

logger = logging.getLogger(__name__)

ADMIN_TEMPLATE = "admin-email.html"
VISITOR_TEMPLATE = "visitor-email.html"

_PLACEHOLDER = re.compile(r"{{\s*(name|email|message)\s*}}")

_BUILTIN_TEMPLATES = {
    ADMIN_TEMPLATE: (
        "<h2>New message from {{name}}</h2>"
        "<p><strong>Email:</strong> {{email}}</p>"
        "<p>{{message}}</p>"
    ),
    VISITOR_TEMPLATE: (
        "<p>Hi {{name}},</p>"
        "<p>Thanks for getting in touch. We received your message and will reply to {{email}}.</p>"
        "<blockquote>{{message}}</blockquote>"
    ),
}


def render_template(template: str, values: Dict[str, str]) -> str:
    """Fill every placeholder with its HTML-escaped value."""
    return _PLACEHOLDER.sub(lambda m: html.escape(values.get(m.group(1), "")), template)


class Notifier:
    def __init__(self, settings, timeout: float = 30):
        self.settings = settings
        self.timeout = timeout

    def load_template(self, name: str) -> str:
        path = Path(self.settings.templates_dir) / name
        if path.is_file():
            return path.read_text(encoding="utf-8")
        logger.debug("Template %s not found, using built-in copy", name)
        return _BUILTIN_TEMPLATES[name]

    def build_email(self, recipient: str, subject: str, html_body: str) -> MIMEMultipart:
        sender = self.settings.email_user
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = formataddr((self.settings.site_name, sender))
        msg["To"] = recipient
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = f"<{uuid.uuid4()}@{sender.split('@')[-1]}>"
        msg.attach(MIMEText(html_body, "html", "utf-8"))
        return msg

    async def send(self, recipient: str, subject: str, html_body: str) -> None:
        s = self.settings
        if not s.email_user or not s.email_pass:
            raise DeliveryError("Email relay is not configured")

        msg = self.build_email(recipient, subject, html_body)
        try:
            await aiosmtplib.send(
                msg,
                hostname=s.email_host,
                port=s.email_port,
                username=s.email_user,
                password=s.email_pass,
                use_tls=s.email_port == 465,
                start_tls=s.email_port == 587,
                timeout=self.timeout,
            )
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
            logger.error("Sending %r failed: %s", subject, e)
            raise DeliveryError() from e

    async def notify_contact(self, message: Message) -> None:
        values = {"name": message.name, "email": message.email, "message": message.message}
        admin_html = render_template(self.load_template(ADMIN_TEMPLATE), values)
        visitor_html = render_template(self.load_template(VISITOR_TEMPLATE), values)

        recipient = self.settings.notice_recipient
        if not recipient:
            raise DeliveryError("No admin address configured")
        await self.send(recipient, f"New message from {message.name}", admin_html)
        await self.send(
            message.email,
            f"Your message was received by {self.settings.site_name}",
            visitor_html,
        )
        logger.info("Sent notifications for message %s", message.id)
