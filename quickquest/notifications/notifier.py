"""
Outbound account notifications.

ResendNotifier delivers through the Resend HTTP API. LogNotifier is the
development fallback used when no API key is configured: it records that a
message would have been sent, without the token.
"""

from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import urlencode

import httpx

from quickquest.logging_config import get_logger
from quickquest.notifications.templates import (
    EmailMessage,
    password_reset_email,
    verification_email,
    welcome_email,
)

logger = get_logger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
HTTP_TIMEOUT = 10.0


class NotificationError(Exception):
    """A notification could not be delivered."""


class Notifier(ABC):
    """Sends account emails. Every method may fail independently of the caller."""

    @abstractmethod
    async def send_verification(self, email: str, token: str, username: str) -> None:
        ...

    @abstractmethod
    async def send_password_reset(self, email: str, token: str, username: str) -> None:
        ...

    @abstractmethod
    async def send_welcome(self, email: str, username: str) -> None:
        ...


class TemplatedNotifier(Notifier):
    """Renders the account templates and hands them to ``deliver``."""

    def __init__(self, frontend_url: str):
        self.frontend_url = frontend_url.rstrip("/")

    def verification_url(self, token: str) -> str:
        return f"{self.frontend_url}/verify-email?{urlencode({'token': token})}"

    @abstractmethod
    async def deliver(self, to: str, message: EmailMessage) -> None:
        ...

    async def send_verification(self, email: str, token: str, username: str) -> None:
        await self.deliver(email, verification_email(username, self.verification_url(token)))

    async def send_password_reset(self, email: str, token: str, username: str) -> None:
        await self.deliver(email, password_reset_email(username, token))

    async def send_welcome(self, email: str, username: str) -> None:
        await self.deliver(email, welcome_email(username, self.frontend_url))


class ResendNotifier(TemplatedNotifier):
    """Deliver email through the Resend REST API."""

    def __init__(
        self,
        api_key: str,
        sender: str,
        frontend_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = HTTP_TIMEOUT,
    ):
        super().__init__(frontend_url)
        self._api_key = api_key
        self.sender = sender
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def deliver(self, to: str, message: EmailMessage) -> None:
        payload = {
            "from": self.sender,
            "to": [to],
            "subject": message.subject,
            "html": message.html,
            "text": message.text,
        }
        try:
            response = await self.client.post(
                RESEND_API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise NotificationError(f"Resend request failed: {e.__class__.__name__}") from e

        if response.status_code >= 400:
            raise NotificationError(f"Resend returned HTTP {response.status_code}")

        try:
            message_id = response.json().get("id")
        except ValueError:
            message_id = None
        logger.info("Email sent", extra={"subject": message.subject, "message_id": message_id})

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None


class LogNotifier(TemplatedNotifier):
    """Development notifier: logs the subject and recipient domain only."""

    async def deliver(self, to: str, message: EmailMessage) -> None:
        domain = to.rsplit("@", 1)[-1]
        logger.warning(
            "Email delivery not configured; message not sent",
            extra={"subject": message.subject, "recipient_domain": domain},
        )


def build_notifier(
    api_key: str,
    sender: str,
    frontend_url: str,
    timeout: float = HTTP_TIMEOUT,
) -> Notifier:
    """Resend when an API key is configured, otherwise the logging fallback."""
    if not api_key:
        return LogNotifier(frontend_url)
    return ResendNotifier(api_key=api_key, sender=sender, frontend_url=frontend_url, timeout=timeout)
