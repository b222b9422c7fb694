"""
Outbound email through the Resend HTTP API.

``send`` never raises for delivery problems; it returns a SendResult with
``success=False`` and an error message so callers can report per-recipient
outcomes or just log them.
"""
from __future__ import annotations

import dataclasses
import html as html_module
import logging
import re
from typing import List, Optional, Union

import httpx

from fundhub.config import settings

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class SendResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


def html_to_text(content: str) -> str:
    """Plain-text alternative of an HTML body."""
    text = re.sub(r"<(script|style)[^>]*>.*?</\1>", "", content, flags=re.DOTALL | re.I)
    text = re.sub(r"<br\s*/?>|</p>", "\n", text, flags=re.I)
    text = re.sub(r"<[^>]+>", "", text)
    text = re.sub(r"[ \t]+", " ", text)
    return html_module.unescape(text).strip()


class EmailSender:
    """Thin Resend client. One request per call, no retries."""

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.resend.com/emails",
        sender: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.api_url = api_url
        self.sender = sender
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def send(
        self,
        to: Union[str, List[str]],
        subject: str,
        html: str,
        sender: Optional[str] = None,
    ) -> SendResult:
        recipients = [to] if isinstance(to, str) else list(to)
        if not self.enabled:
            logger.info("Email disabled (RESEND_API_KEY not set); skipped '%s' to %s", subject, recipients)
            return SendResult(success=False, error="Email sending is disabled.")
        if not recipients:
            return SendResult(success=False, error="No recipients.")

        payload = {
            "from": sender or self.sender,
            "to": recipients,
            "subject": subject,
            "html": html,
        }
        text = html_to_text(html)
        if text:
            payload["text"] = text

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.api_url, headers=headers, json=payload)
        except httpx.TimeoutException:
            logger.warning("Resend timeout sending '%s' to %s", subject, recipients)
            return SendResult(success=False, error="Connection timeout")
        except httpx.HTTPError as exc:
            logger.error("Resend request failed for '%s': %s", subject, exc)
            return SendResult(success=False, error=str(exc))

        if response.status_code >= 400:
            try:
                detail = response.json().get("message") or response.text
            except ValueError:
                detail = response.text
            logger.error("Resend rejected '%s' (%d): %s", subject, response.status_code, detail)
            return SendResult(success=False, error=f"HTTP {response.status_code}: {detail}")

        message_id = response.json().get("id")
        logger.info("Email '%s' sent to %s (id=%s)", subject, recipients, message_id)
        return SendResult(success=True, message_id=message_id)


def get_email_sender() -> EmailSender:
    """FastAPI dependency returning the configured sender."""
    return EmailSender(
        api_key=settings.RESEND_API_KEY,
        api_url=settings.RESEND_API_URL,
        sender=settings.EMAIL_FROM,
        timeout=settings.EMAIL_TIMEOUT,
    )
