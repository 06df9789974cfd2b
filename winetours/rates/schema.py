"""Typed rate table parsed from a version's JSON payload.

Payload structure:
{
    "tiers": [
        {"min_party": 1, "max_party": 2, "weekday_group": "SUN_WED", "hourly_rate": "85.00"},
        ...
    ],
    "minimum_hours": "5",
    "tax_rate": "0.089",
    "default_deposit_pct": "0.50",
    "shared_tour_base_rate": "95.00",
    "shared_tour_lunch_rate": "115.00",
    "shared_tour_max_party": 14,
    "extensions": {}   # optional, values the business has not fixed yet
}

parse_rate_table() rejects a payload unless, for every weekday group, the
tiers cover party sizes 1..max without gaps or overlaps and both groups share
the same maximum.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from types import MappingProxyType

from .exceptions import RateTableCoverageError, RateTableInvalid


class WeekdayGroup(str, Enum):
    """Sunday-Wednesday vs Thursday-Saturday rate partition."""

    SUN_WED = "SUN_WED"
    THU_SAT = "THU_SAT"


class TourType(str, Enum):
    PRIVATE = "PRIVATE"
    SHARED = "SHARED"


@dataclass(frozen=True)
class RateTier:
    """Hourly rate for a party-size range on one weekday group."""

    min_party: int
    max_party: int
    weekday_group: WeekdayGroup
    hourly_rate: Decimal

    def contains(self, party_size: int) -> bool:
        return self.min_party <= party_size <= self.max_party

    @property
    def label(self) -> str:
        return f"{self.min_party}-{self.max_party}"


@dataclass(frozen=True)
class RateTable:
    """Immutable, validated rate table for one version."""

    tiers: tuple[RateTier, ...]
    minimum_hours: Decimal
    tax_rate: Decimal
    default_deposit_pct: Decimal
    shared_tour_base_rate: Decimal
    shared_tour_lunch_rate: Decimal
    shared_tour_max_party: int
    extensions: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    version_id: int | None = None

    @property
    def max_party_size(self) -> int:
        return max(tier.max_party for tier in self.tiers)

    def tier_for(self, party_size: int, weekday_group: WeekdayGroup) -> RateTier:
        """Return the single tier covering party_size for the group."""
        for tier in self.tiers:
            if tier.weekday_group == weekday_group and tier.contains(party_size):
                return tier
        # parse_rate_table guarantees coverage; reaching here is a defect
        raise RateTableCoverageError(
            [f"No tier for party size {party_size} on {weekday_group.value}"]
        )

    def to_payload(self) -> dict:
        """Render back to the JSON payload stored on a version."""
        return {
            "tiers": [
                {
                    "min_party": t.min_party,
                    "max_party": t.max_party,
                    "weekday_group": t.weekday_group.value,
                    "hourly_rate": str(t.hourly_rate),
                }
                for t in self.tiers
            ],
            "minimum_hours": str(self.minimum_hours),
            "tax_rate": str(self.tax_rate),
            "default_deposit_pct": str(self.default_deposit_pct),
            "shared_tour_base_rate": str(self.shared_tour_base_rate),
            "shared_tour_lunch_rate": str(self.shared_tour_lunch_rate),
            "shared_tour_max_party": self.shared_tour_max_party,
            "extensions": dict(self.extensions),
        }


def _tier_rows(group: str, rates: dict[str, int]) -> list[dict]:
    rows = []
    for label, rate in rates.items():
        low, high = label.split("-")
        rows.append({
            "min_party": int(low),
            "max_party": int(high),
            "weekday_group": group,
            "hourly_rate": f"{rate}.00",
        })
    return rows


# Published rate sheet. Multi-leg transfer fares (Pasco, Pendleton, La Grande)
# are not set by the business yet and stay null in extensions.
DEFAULT_RATE_PAYLOAD: dict = {
    "tiers": (
        _tier_rows("SUN_WED", {"1-2": 85, "3-4": 95, "5-6": 105, "7-8": 115, "9-11": 130, "12-14": 140})
        + _tier_rows("THU_SAT", {"1-2": 95, "3-4": 105, "5-6": 115, "7-8": 125, "9-11": 140, "12-14": 150})
    ),
    "minimum_hours": "5",
    "tax_rate": "0.089",
    "default_deposit_pct": "0.50",
    "shared_tour_base_rate": "95.00",
    "shared_tour_lunch_rate": "115.00",
    "shared_tour_max_party": 14,
    "extensions": {
        "transfers": {
            "seatac_to_walla_walla": "850.00",
            "walla_walla_to_seatac": "850.00",
            "pasco_to_walla_walla": None,
            "pendleton_to_walla_walla": None,
            "la_grande_to_walla_walla": None,
        },
    },
}


def _decimal(payload: dict, key: str, errors: list[str], *, minimum=Decimal("0")) -> Decimal | None:
    if key not in payload:
        errors.append(f"Missing required field: {key}")
        return None
    try:
        value = Decimal(str(payload[key]))
    except (InvalidOperation, ValueError):
        errors.append(f"{key} must be a decimal, got {payload[key]!r}")
        return None
    if not value.is_finite() or value < minimum:
        errors.append(f"{key} must be >= {minimum}")
        return None
    return value


def _parse_tiers(raw_tiers, errors: list[str]) -> list[RateTier]:
    tiers: list[RateTier] = []
    if not isinstance(raw_tiers, (list, tuple)) or not raw_tiers:
        errors.append("tiers must be a non-empty list")
        return tiers

    for i, raw in enumerate(raw_tiers):
        prefix = f"tiers[{i}]"
        if not isinstance(raw, dict):
            errors.append(f"{prefix}: must be a dictionary")
            continue
        try:
            group = WeekdayGroup(raw.get("weekday_group"))
        except ValueError:
            errors.append(f"{prefix}: weekday_group must be SUN_WED or THU_SAT")
            continue
        min_party = raw.get("min_party")
        max_party = raw.get("max_party")
        if not isinstance(min_party, int) or not isinstance(max_party, int):
            errors.append(f"{prefix}: min_party and max_party must be integers")
            continue
        if min_party < 1 or max_party < min_party:
            errors.append(f"{prefix}: invalid party range {min_party}-{max_party}")
            continue
        rate = _decimal(raw, "hourly_rate", errors, minimum=Decimal("0.01"))
        if rate is None:
            errors[-1] = f"{prefix}: {errors[-1]}"
            continue
        tiers.append(RateTier(min_party, max_party, group, rate))
    return tiers


def check_coverage(tiers: list[RateTier]) -> list[str]:
    """Return coverage problems; empty when every party size maps to one tier."""
    problems: list[str] = []
    maxima: dict[WeekdayGroup, int] = {}

    for group in WeekdayGroup:
        group_tiers = sorted(
            (t for t in tiers if t.weekday_group == group),
            key=lambda t: t.min_party,
        )
        if not group_tiers:
            problems.append(f"{group.value}: no tiers")
            continue
        expected = 1
        for tier in group_tiers:
            if tier.min_party > expected:
                problems.append(f"{group.value}: party sizes {expected}-{tier.min_party - 1} not covered")
            elif tier.min_party < expected:
                problems.append(f"{group.value}: tier {tier.label} overlaps party size {tier.min_party}")
            expected = max(expected, tier.max_party + 1)
        maxima[group] = expected - 1

    if len(set(maxima.values())) > 1:
        detail = ", ".join(f"{g.value}={m}" for g, m in maxima.items())
        problems.append(f"weekday groups cover different maximum party sizes ({detail})")
    return problems


def parse_rate_table(payload: dict, *, version_id: int | None = None) -> RateTable:
    """Parse and validate a rate payload.

    Raises:
        RateTableInvalid: Payload shape or values are wrong
        RateTableCoverageError: Tiers have gaps, overlaps or mismatched maxima
    """
    if not isinstance(payload, dict):
        raise RateTableInvalid(["Rate table payload must be a dictionary"])

    errors: list[str] = []
    tiers = _parse_tiers(payload.get("tiers"), errors)
    minimum_hours = _decimal(payload, "minimum_hours", errors)
    tax_rate = _decimal(payload, "tax_rate", errors)
    deposit_pct = _decimal(payload, "default_deposit_pct", errors)
    shared_base = _decimal(payload, "shared_tour_base_rate", errors)
    shared_lunch = _decimal(payload, "shared_tour_lunch_rate", errors)

    shared_max = payload.get("shared_tour_max_party")
    if not isinstance(shared_max, int) or shared_max < 1:
        errors.append("shared_tour_max_party must be a positive integer")

    if deposit_pct is not None and deposit_pct > 1:
        errors.append("default_deposit_pct must be a fraction between 0 and 1")
    if tax_rate is not None and tax_rate >= 1:
        errors.append("tax_rate must be a fraction below 1")

    extensions = payload.get("extensions", {})
    if not isinstance(extensions, dict):
        errors.append("extensions must be a dictionary")

    if errors:
        raise RateTableInvalid(errors)

    coverage = check_coverage(tiers)
    if coverage:
        raise RateTableCoverageError(coverage)

    return RateTable(
        tiers=tuple(sorted(tiers, key=lambda t: (t.weekday_group.value, t.min_party))),
        minimum_hours=minimum_hours,
        tax_rate=tax_rate,
        default_deposit_pct=deposit_pct,
        shared_tour_base_rate=shared_base,
        shared_tour_lunch_rate=shared_lunch,
        shared_tour_max_party=shared_max,
        extensions=MappingProxyType(dict(extensions)),
        version_id=version_id,
    )
