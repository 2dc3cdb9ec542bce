"""Outbound mail transport."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from hostdesk.core.config import Settings
from hostdesk.core.errors import TransientDispatchError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MailResult:
    message_id: Optional[str] = None


class MailTransport(ABC):
    """Sends one rendered email. Every failure surfaces as TransientDispatchError."""

    @abstractmethod
    async def send(
        self,
        recipient_email: str,
        recipient_name: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
        tags: Optional[list[str]] = None,
        timeout: float = 10.0,
    ) -> MailResult:
        ...


class ResendTransport(MailTransport):
    """Mail transport backed by the Resend HTTP API."""

    def __init__(
        self,
        api_key: Optional[str],
        from_email: Optional[str],
        base_url: str = "https://api.resend.com",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResendTransport":
        return cls(
            api_key=settings.resend_api_key,
            from_email=settings.from_email,
            base_url=settings.resend_base_url,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.from_email)

    async def send(
        self,
        recipient_email: str,
        recipient_name: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
        tags: Optional[list[str]] = None,
        timeout: float = 10.0,
    ) -> MailResult:
        if not self.configured:
            raise TransientDispatchError("Email service not configured")

        payload = {
            "from": self.from_email,
            "to": [f"{recipient_name} <{recipient_email}>" if recipient_name else recipient_email],
            "subject": subject,
            "html": html_body,
        }
        if text_body:
            payload["text"] = text_body
        if tags:
            payload["tags"] = [{"name": tag.replace("-", "_"), "value": "true"} for tag in tags]

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/emails",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    timeout=timeout,
                )
        except httpx.HTTPError as e:
            logger.warning(f"[MAIL] Resend request failed: {e}")
            raise TransientDispatchError(f"Mail provider unreachable: {e}") from e

        if response.status_code >= 400:
            logger.warning(f"[MAIL] Resend rejected email to {recipient_email}: {response.status_code}")
            raise TransientDispatchError(
                f"Mail provider returned {response.status_code}: {response.text[:200]}"
            )

        message_id = response.json().get("id")
        logger.info(f"[MAIL] Sent '{subject}' to {recipient_email} ({message_id})")
        return MailResult(message_id=message_id)
