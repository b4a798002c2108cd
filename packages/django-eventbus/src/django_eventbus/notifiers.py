"""Outbound notification channels used by automation handlers.

Notifiers are plain callables:
- notify_chat(text)
- notify_email(subject, text)

Each call is bounded by a short timeout. Callers treat notifications as
fire-and-forget; see handlers._notify.
"""

import logging

import httpx
from django.conf import settings
from django.core.mail import EmailMessage, get_connection

from .conf import get_setting

logger = logging.getLogger(__name__)


class ChatWebhookNotifier:
    """Posts plain-text messages to an incoming webhook (Slack compatible)."""

    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    def __call__(self, text: str) -> None:
        response = httpx.post(self.url, json={"text": text}, timeout=self.timeout)
        if response.is_error:
            logger.warning(f"Chat webhook returned {response.status_code}: {response.text[:200]}")


class EmailNotifier:
    """Sends plain-text notification emails through Django's mail backend."""

    def __init__(self, recipients, from_email: str = None, timeout: float = 5.0):
        if isinstance(recipients, str):
            recipients = [address.strip() for address in recipients.split(",") if address.strip()]
        self.recipients = list(recipients)
        self.from_email = from_email or settings.DEFAULT_FROM_EMAIL
        self.timeout = timeout

    def __call__(self, subject: str, text: str) -> None:
        connection = get_connection(timeout=self.timeout)
        EmailMessage(
            subject=subject,
            body=text,
            from_email=self.from_email,
            to=self.recipients,
            connection=connection,
        ).send()


def notifiers_from_settings():
    """
    Build (notify_chat, notify_email) from EVENTBUS_* settings.

    Either element is None when its channel is not configured.
    """
    timeout = get_setting("NOTIFY_TIMEOUT")

    notify_chat = None
    webhook_url = get_setting("CHAT_WEBHOOK_URL")
    if webhook_url:
        notify_chat = ChatWebhookNotifier(webhook_url, timeout=timeout)

    notify_email = None
    recipients = get_setting("NOTIFY_EMAIL_TO")
    if recipients:
        notify_email = EmailNotifier(
            recipients,
            from_email=get_setting("NOTIFY_EMAIL_FROM"),
            timeout=timeout,
        )

    return notify_chat, notify_email
