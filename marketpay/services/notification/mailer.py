"""Email delivery through the SendGrid v3 HTTP API."""

from dataclasses import dataclass
from typing import Protocol

import httpx

from marketpay.common.config import Settings
from marketpay.common.errors import DeliveryError


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str


class Mailer(Protocol):
    async def send(self, message: EmailMessage) -> None: ...


class SendGridMailer:
    def __init__(self, settings: Settings) -> None:
        self.url = settings.sendgrid_url
        self.api_key = settings.sendgrid_api_key
        self.sender = {"email": settings.email_from_address, "name": settings.email_from_name}
        self.timeout = settings.external_timeout_seconds

    async def send(self, message: EmailMessage) -> None:
        body = {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": self.sender,
            "subject": message.subject,
            "content": [{"type": "text/html", "value": message.html}],
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    self.url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json=body,
                )
        except httpx.HTTPError as exc:
            raise DeliveryError(f"sendgrid request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise DeliveryError(f"sendgrid rejected message status={resp.status_code} body={resp.text[:200]}")
