"""Cancellation refund tiers.

Tiers are a list of ``{"days_before": int, "refund_percent": int}`` in
descending order by days_before. The first tier whose days_before is <= the
notice given applies, so each lower bound is inclusive:

    >= 40 days  -> 100%
    20-39 days  -> 50%
    10-19 days  -> 25%
    < 10 days   -> 0%

Everything here is pure; bookings.services.cancel_booking() applies the
result to money.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

from django.utils import timezone

from winetours.conf import get_setting
from winetours.exceptions import ConfigurationError, ValidationError

CUSTOMER = "customer"


@dataclass(frozen=True)
class ValidationResult:
    """Result of tier validation."""

    is_valid: bool
    errors: list[str]

    def __bool__(self) -> bool:
        return self.is_valid


@dataclass(frozen=True)
class CancellationRefund:
    """Refund decision. A decision, not a money movement."""

    notice_days: int
    refund_pct: int
    reason: str = CUSTOMER

    def apply_to(self, paid_amount: Decimal) -> Decimal:
        """Refund owed on an amount already paid, rounded half-up to cents."""
        return (Decimal(paid_amount) * self.refund_pct / Decimal(100)).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )


def validate_tiers(tiers) -> ValidationResult:
    """Check tier structure, ordering and that a 0-day floor exists."""
    errors: list[str] = []
    if not isinstance(tiers, (list, tuple)) or not tiers:
        return ValidationResult(is_valid=False, errors=["tiers must be a non-empty list"])

    prev_days: int | None = None
    for i, tier in enumerate(tiers):
        prefix = f"tier[{i}]"
        if not isinstance(tier, dict):
            errors.append(f"{prefix}: must be a dictionary")
            continue

        days = tier.get("days_before")
        if not isinstance(days, int) or days < 0:
            errors.append(f"{prefix}: days_before must be an integer >= 0")
        else:
            if prev_days is not None and days >= prev_days:
                errors.append(f"{prefix}: tiers must be in descending order by days_before")
            prev_days = days

        percent = tier.get("refund_percent")
        if not isinstance(percent, int) or not 0 <= percent <= 100:
            errors.append(f"{prefix}: refund_percent must be an integer between 0 and 100")

    if prev_days is not None and prev_days != 0:
        errors.append("last tier must start at days_before 0")

    return ValidationResult(is_valid=len(errors) == 0, errors=errors)


def _configured_tiers():
    tiers = get_setting("CANCELLATION_TIERS")
    result = validate_tiers(tiers)
    if not result:
        raise ConfigurationError("Invalid CANCELLATION_TIERS: " + "; ".join(result.errors))
    return tiers


def _as_date(value) -> date:
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            return timezone.localtime(value).date()
        return value.date()
    return value


def notice_days(tour_date, cancellation_date) -> int:
    """Whole calendar days between cancellation and tour (negative if after)."""
    return (_as_date(tour_date) - _as_date(cancellation_date)).days


def refund_pct(tour_date, cancellation_date, tiers=None) -> int:
    """Refund percentage for a customer cancellation.

    Args:
        tour_date: Date of the tour (date or datetime)
        cancellation_date: When the customer cancelled (date or datetime)
        tiers: Override the configured CANCELLATION_TIERS

    Returns:
        One of the configured refund percentages (100, 50, 25 or 0 by default)
    """
    tiers = tiers if tiers is not None else _configured_tiers()
    days = notice_days(tour_date, cancellation_date)
    for tier in tiers:
        if days >= tier["days_before"]:
            return tier["refund_percent"]
    return 0


def compute_cancellation_refund(
    tour_date,
    cancellation_date,
    *,
    reason: str = CUSTOMER,
    tiers=None,
) -> CancellationRefund:
    """Refund decision for a cancellation.

    Customer cancellations use the notice tiers. Other reasons (weather,
    emergency) use WINETOURS["SPECIAL_CANCELLATION_REFUND_PCT"]; a reason with
    no configured percentage is rejected.

    Raises:
        ValidationError: Unconfigured special reason
    """
    days = notice_days(tour_date, cancellation_date)
    if reason == CUSTOMER:
        return CancellationRefund(
            notice_days=days,
            refund_pct=refund_pct(tour_date, cancellation_date, tiers),
            reason=reason,
        )

    special = get_setting("SPECIAL_CANCELLATION_REFUND_PCT")
    if reason not in special:
        raise ValidationError(
            f"No refund policy configured for cancellation reason {reason!r}",
            field="reason",
        )
    return CancellationRefund(notice_days=days, refund_pct=int(special[reason]), reason=reason)
