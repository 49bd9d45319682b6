from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from .settings import settings

logger = logging.getLogger(__name__)


def send_order_email(to_email: str, subject: str, body: str) -> bool:
    """Plain-text order email to the merchant. Returns False when SMTP isn't configured."""
    if not settings.smtp_host:
        logger.info("SMTP not configured; skipping email to %s: %s", to_email, subject)
        return False

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.orders_email_from
    msg["To"] = to_email
    msg.set_content(body)

    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as server:
        server.send_message(msg)
    logger.info("Order email sent to %s", to_email)
    return True
