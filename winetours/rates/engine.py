"""Rate engine.

Pure functions that price a tour against an explicit RateTable. No database
access, no shared state; the caller passes the rate table version it wants
the quote bound to.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from .exceptions import BelowMinimumDuration, InvalidPartySize, UnsupportedTourConfiguration
from .schema import RateTable, TourType, WeekdayGroup

CENT = Decimal("0.01")

BELOW_MINIMUM_DURATION = "BELOW_MINIMUM_DURATION"


def round_money(amount: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def weekday_group_for(tour_date: date) -> WeekdayGroup:
    """Sunday-Wednesday is SUN_WED, Thursday-Saturday is THU_SAT."""
    # date.weekday(): Monday=0 .. Sunday=6
    if tour_date.weekday() in (3, 4, 5):
        return WeekdayGroup.THU_SAT
    return WeekdayGroup.SUN_WED


@dataclass(frozen=True)
class Adjustment:
    """An explicit change the engine made to the requested input."""

    code: str
    requested: Decimal
    applied: Decimal
    detail: str = ""


@dataclass(frozen=True)
class Quote:
    """Priced tour. Embedded into proposals and bookings, never stored alone."""

    party_size: int
    hours: Decimal
    billable_hours: Decimal
    tour_date: date
    tour_type: TourType
    weekday_group: WeekdayGroup
    hourly_rate: Decimal | None
    per_person_rate: Decimal | None
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    rate_table_version: int | None = None
    lunch_included: bool = False
    adjustments: tuple[Adjustment, ...] = field(default_factory=tuple)

    @property
    def was_clamped(self) -> bool:
        return any(a.code == BELOW_MINIMUM_DURATION for a in self.adjustments)

    def to_snapshot(self) -> dict:
        """JSON-safe snapshot for storage on a proposal item or booking."""
        return {
            "party_size": self.party_size,
            "hours": str(self.hours),
            "billable_hours": str(self.billable_hours),
            "tour_date": self.tour_date.isoformat(),
            "tour_type": self.tour_type.value,
            "weekday_group": self.weekday_group.value,
            "hourly_rate": str(self.hourly_rate) if self.hourly_rate is not None else None,
            "per_person_rate": str(self.per_person_rate) if self.per_person_rate is not None else None,
            "subtotal": str(self.subtotal),
            "tax": str(self.tax),
            "total": str(self.total),
            "rate_table_version": self.rate_table_version,
            "lunch_included": self.lunch_included,
            "adjustments": [
                {
                    "code": a.code,
                    "requested": str(a.requested),
                    "applied": str(a.applied),
                    "detail": a.detail,
                }
                for a in self.adjustments
            ],
        }


def price_with_tax(subtotal: Decimal, tax_rate: Decimal) -> tuple[Decimal, Decimal]:
    """Return (tax, total) for a subtotal."""
    tax = round_money(subtotal * tax_rate)
    return tax, subtotal + tax


def allocate(amount: Decimal, weights: list[Decimal]) -> list[Decimal]:
    """
    Split amount across weights in proportion, rounded to cents.

    The last share absorbs the rounding difference, so the shares always
    sum to amount exactly. All-zero weights put everything on the first share.
    """
    if not weights:
        return []
    total_weight = sum(weights, Decimal("0"))
    if total_weight == 0:
        return [round_money(amount)] + [Decimal("0.00")] * (len(weights) - 1)

    shares = [round_money(amount * weight / total_weight) for weight in weights[:-1]]
    shares.append(round_money(amount) - sum(shares, Decimal("0")))
    return shares


def quote(
    party_size: int,
    hours,
    tour_date: date,
    tour_type=TourType.PRIVATE,
    *,
    rate_table: RateTable,
    lunch_included: bool = False,
    strict_minimum: bool = False,
) -> Quote:
    """Price a tour.

    Private tours are billed hourly at the tier rate for the party size and
    weekday group, with hours below the table minimum raised to the minimum
    (recorded as a BELOW_MINIMUM_DURATION adjustment). Shared tours are billed
    per person and only run Sunday-Wednesday up to the shared maximum.

    Args:
        party_size: Number of guests
        hours: Requested tour length in hours
        tour_date: Service date
        tour_type: PRIVATE or SHARED
        rate_table: The rate table version to price against
        lunch_included: Shared tours only, selects the lunch rate
        strict_minimum: Raise instead of clamping short private tours

    Returns:
        Quote

    Raises:
        InvalidPartySize: party_size < 1 or above the largest tier
        BelowMinimumDuration: strict_minimum and hours < minimum_hours
        UnsupportedTourConfiguration: shared tour on THU_SAT or above the shared maximum
    """
    tour_type = TourType(tour_type)
    hours = Decimal(str(hours))
    if hours <= 0:
        raise UnsupportedTourConfiguration(f"Tour length must be positive, got {hours}", field="hours")
    if not isinstance(party_size, int) or party_size < 1:
        raise InvalidPartySize(party_size)
    if party_size > rate_table.max_party_size:
        raise InvalidPartySize(party_size, rate_table.max_party_size)

    group = weekday_group_for(tour_date)
    adjustments: list[Adjustment] = []

    if tour_type == TourType.SHARED:
        if group != WeekdayGroup.SUN_WED:
            raise UnsupportedTourConfiguration(
                "Shared tours only run Sunday through Wednesday", field="tour_date"
            )
        if party_size > rate_table.shared_tour_max_party:
            raise UnsupportedTourConfiguration(
                f"Shared tours take at most {rate_table.shared_tour_max_party} guests",
                field="party_size",
            )
        per_person = (
            rate_table.shared_tour_lunch_rate if lunch_included else rate_table.shared_tour_base_rate
        )
        hourly_rate = None
        billable_hours = hours
        subtotal = round_money(per_person * party_size)
    else:
        if lunch_included:
            raise UnsupportedTourConfiguration(
                "Lunch pricing applies to shared tours only", field="lunch_included"
            )
        per_person = None
        hourly_rate = rate_table.tier_for(party_size, group).hourly_rate
        billable_hours = hours
        if hours < rate_table.minimum_hours:
            if strict_minimum:
                raise BelowMinimumDuration(hours, rate_table.minimum_hours)
            billable_hours = rate_table.minimum_hours
            adjustments.append(Adjustment(
                code=BELOW_MINIMUM_DURATION,
                requested=hours,
                applied=billable_hours,
                detail=f"Private tours are billed for at least {rate_table.minimum_hours} hours",
            ))
        subtotal = round_money(hourly_rate * billable_hours)

    tax, total = price_with_tax(subtotal, rate_table.tax_rate)

    return Quote(
        party_size=party_size,
        hours=hours,
        billable_hours=billable_hours,
        tour_date=tour_date,
        tour_type=tour_type,
        weekday_group=group,
        hourly_rate=hourly_rate,
        per_person_rate=per_person,
        subtotal=subtotal,
        tax=tax,
        total=total,
        rate_table_version=rate_table.version_id,
        lunch_included=lunch_included,
        adjustments=tuple(adjustments),
    )
