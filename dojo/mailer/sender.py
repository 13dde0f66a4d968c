"""Transactional email senders."""
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import requests

from dojo.datetime_utils import utcnow
from dojo.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class SendRequest:
    to: List[str]
    subject: str
    body: str
    html: bool = False
    from_address: Optional[str] = None   # falls back to the sender's default
    reply_to: Optional[str] = None


@dataclass
class SendResult:
    message_id: str                      # provider's id, used as the outbox external id
    sent_at: datetime = field(default_factory=utcnow)


class EmailSendError(Exception):
    """The provider rejected or failed to accept the message."""

    def __init__(self, message, status_code=None):
        self.status_code = status_code
        super().__init__(message)


class EmailSender(ABC):
    @abstractmethod
    def send(self, request: SendRequest, timeout: Optional[float] = None) -> SendResult:
        ...


class ResendEmailSender(EmailSender):
    """Sends email through the Resend HTTP API."""

    def __init__(self, api_key, from_address, api_url="https://api.resend.com", timeout=15):
        self.api_key = api_key
        self.from_address = from_address
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def send(self, request: SendRequest, timeout: Optional[float] = None) -> SendResult:
        payload = {
            "from": request.from_address or self.from_address,
            "to": list(request.to),
            "subject": request.subject,
        }
        if request.html:
            payload["html"] = request.body
        else:
            payload["text"] = request.body
        if request.reply_to:
            payload["reply_to"] = request.reply_to

        response = requests.post(
            f"{self.api_url}/emails",
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=timeout or self.timeout,
        )
        if response.status_code >= 400:
            logger.error(
                "resend_send_failed",
                status_code=response.status_code,
                to_count=len(request.to),
                subject=request.subject,
            )
            raise EmailSendError(
                f"resend returned {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )

        message_id = response.json().get("id", "")
        logger.info("resend_sent", message_id=message_id, to_count=len(request.to), subject=request.subject)
        return SendResult(message_id=message_id)


class NoopEmailSender(EmailSender):
    """Logs messages instead of delivering them. Used when no provider is configured."""

    def send(self, request: SendRequest, timeout: Optional[float] = None) -> SendResult:
        logger.info("noop_email_send", to=request.to, subject=request.subject)
        return SendResult(message_id=f"noop-{uuid.uuid4().hex[:12]}")
