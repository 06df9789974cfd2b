"""Payment gateway interface.

The engine only calls ``charge(amount, payment_method_token)``. Card data,
wire formats and processor accounts belong to the gateway implementation.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

from django.utils.module_loading import import_string

from winetours.conf import get_setting
from winetours.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

AUTHORIZED = "authorized"
DECLINED = "declined"


@dataclass(frozen=True)
class ChargeResult:
    """Outcome of a charge attempt."""

    status: str
    reference: str = ""
    decline_reason: str = ""

    @property
    def authorized(self) -> bool:
        return self.status == AUTHORIZED


class BasePaymentGateway(ABC):
    """Abstract base class for payment gateways."""

    gateway_name: str = "base"

    @abstractmethod
    def charge(self, amount: Decimal, payment_method_token: str) -> ChargeResult:
        raise NotImplementedError


class FakePaymentGateway(BasePaymentGateway):
    """Gateway for development and tests.

    Tokens starting with ``tok_decline`` are declined, everything else is
    authorized.
    """

    gateway_name = "fake"

    def charge(self, amount: Decimal, payment_method_token: str) -> ChargeResult:
        if not payment_method_token or payment_method_token.startswith("tok_decline"):
            logger.info("Fake gateway declined %s", amount)
            return ChargeResult(status=DECLINED, decline_reason="card_declined")
        reference = f"fake_{uuid.uuid4().hex[:16]}"
        logger.info("Fake gateway authorized %s as %s", amount, reference)
        return ChargeResult(status=AUTHORIZED, reference=reference)


def get_gateway() -> BasePaymentGateway:
    """Instantiate the configured PAYMENT_GATEWAY."""
    path = get_setting("PAYMENT_GATEWAY")
    try:
        gateway_class = import_string(path)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import payment gateway {path!r}") from e
    return gateway_class()
