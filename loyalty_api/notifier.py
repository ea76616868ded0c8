"""
Outbound notifications through an HTTP mail relay.

Notifications are fire-and-forget: failures are logged and never reach the
request that triggered them.
"""

import html
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx
import structlog

logger = structlog.get_logger()


# template name -> (subject, html body format)
TEMPLATES: dict[str, tuple[str, str]] = {
    "welcome": ("Welcome", "<h2>Welcome, {name}!</h2>"),
    "referral_credit": ("You earned a referral bonus", "<p>{referred_name} joined with your code. +{bonus} credited.</p>"),
}


class Notifier(Protocol):
    async def notify(self, recipient: str, template: str, data: dict[str, Any]) -> None: ...


def render_template(template: str, data: dict[str, Any]) -> tuple[str, str]:
    """Return (subject, html) for a named template. Values are HTML-escaped."""
    if template not in TEMPLATES:
        raise ValueError(f"Unknown template: {template}")
    subject, body = TEMPLATES[template]
    escaped = {k: html.escape(str(v)) for k, v in data.items()}
    return subject, body.format(**escaped)


@dataclass
class MailRelayConfig:
    """Mail relay configuration."""

    url: Optional[str] = None
    sender: str = "rewards@localhost"
    timeout: float = 5.0


class MailRelayNotifier:
    """
    Async notifier posting messages to a mail relay.

    Without a relay URL the message is only logged.
    """

    def __init__(self, config: MailRelayConfig):
        self.config = config
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send(self, recipient: str, subject: str, body: str) -> None:
        """Deliver one message. Raises on relay errors."""
        if not self.config.url:
            logger.info("email_skipped", to=recipient, subject=subject, reason="no relay configured")
            return

        client = await self._get_client()
        response = await client.post(
            self.config.url,
            json={"from": self.config.sender, "to": recipient, "subject": subject, "html": body},
        )
        response.raise_for_status()
        logger.info("email_sent", to=recipient, subject=subject)

    async def notify(self, recipient: str, template: str, data: dict[str, Any]) -> None:
        try:
            subject, body = render_template(template, data)
            await self.send(recipient, subject, body)
        except Exception as e:
            logger.error("email_failed", to=recipient, template=template, error=str(e))
