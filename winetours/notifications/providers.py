"""Dispatcher interface and built-in dispatchers."""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

QUEUED = "queued"
FAILED = "failed"


@dataclass
class SendResult:
    """Result of a send operation."""

    status: str
    provider: str
    message_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == QUEUED

    @classmethod
    def queued(cls, provider: str, message_id: str = "") -> "SendResult":
        return cls(status=QUEUED, provider=provider, message_id=message_id)

    @classmethod
    def failed(cls, provider: str, error: str) -> "SendResult":
        return cls(status=FAILED, provider=provider, error=error)


class BaseDispatcher(ABC):
    """Abstract base class for notification dispatchers.

    The engine hands over a recipient, a template id and a JSON-safe payload.
    Rendering and delivery are the dispatcher's business.
    """

    provider_name: str = "base"

    @abstractmethod
    def send(self, to: str, template_id: str, payload: dict) -> SendResult:
        """Queue a notification and return the result."""
        raise NotImplementedError


class ConsoleDispatcher(BaseDispatcher):
    """Dispatcher that logs notifications (for development)."""

    provider_name = "console"

    def send(self, to: str, template_id: str, payload: dict) -> SendResult:
        message_id = f"console-{uuid.uuid4().hex[:12]}"
        logger.info(
            "NOTIFICATION (not actually sent) to=%s template=%s payload=%s",
            to,
            template_id,
            payload,
        )
        return SendResult.queued(provider=self.provider_name, message_id=message_id)


class LocmemDispatcher(BaseDispatcher):
    """Dispatcher that keeps notifications in memory (for tests).

    Everything sent lands in ``LocmemDispatcher.outbox``. Recipients listed in
    ``fail_for`` get a failed result instead.
    """

    provider_name = "locmem"
    outbox: list[dict] = []
    fail_for: set[str] = set()

    def send(self, to: str, template_id: str, payload: dict) -> SendResult:
        if to in self.fail_for:
            return SendResult.failed(provider=self.provider_name, error=f"Rejected recipient {to}")
        message_id = f"locmem-{len(LocmemDispatcher.outbox) + 1}"
        LocmemDispatcher.outbox.append({
            "to": to,
            "template_id": template_id,
            "payload": payload,
            "message_id": message_id,
        })
        return SendResult.queued(provider=self.provider_name, message_id=message_id)

    @classmethod
    def reset(cls):
        cls.outbox.clear()
        cls.fail_for.clear()
