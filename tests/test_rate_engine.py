"""Tests for the rate engine."""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from winetours.rates.engine import (
    BELOW_MINIMUM_DURATION,
    price_with_tax,
    quote,
    round_money,
    weekday_group_for,
)
from winetours.rates.exceptions import BelowMinimumDuration, InvalidPartySize, UnsupportedTourConfiguration
from winetours.rates.schema import TourType, WeekdayGroup

SUNDAY = date(2025, 6, 8)
TUESDAY = date(2025, 6, 10)
WEDNESDAY = date(2025, 6, 11)
THURSDAY = date(2025, 6, 12)
SATURDAY = date(2025, 6, 14)

SUN_WED_RATES = {1: 85, 2: 85, 3: 95, 4: 95, 5: 105, 6: 105, 7: 115, 8: 115,
                 9: 130, 10: 130, 11: 130, 12: 140, 13: 140, 14: 140}
THU_SAT_RATES = {1: 95, 2: 95, 3: 105, 4: 105, 5: 115, 6: 115, 7: 125, 8: 125,
                 9: 140, 10: 140, 11: 140, 12: 150, 13: 150, 14: 150}


class TestWeekdayGroup:
    """Weekday partition."""

    def test_every_day_of_a_week(self):
        """Sunday through Wednesday is SUN_WED, Thursday through Saturday THU_SAT."""
        expected = [
            WeekdayGroup.SUN_WED,  # Sunday
            WeekdayGroup.SUN_WED,  # Monday
            WeekdayGroup.SUN_WED,  # Tuesday
            WeekdayGroup.SUN_WED,  # Wednesday
            WeekdayGroup.THU_SAT,  # Thursday
            WeekdayGroup.THU_SAT,  # Friday
            WeekdayGroup.THU_SAT,  # Saturday
        ]
        for offset, group in enumerate(expected):
            assert weekday_group_for(SUNDAY + timedelta(days=offset)) == group


class TestPrivateTourPricing:
    """Hourly pricing of private tours."""

    def test_saturday_party_of_eight_for_seven_hours(self, default_rate_table):
        """125/hr x 7 = 875.00, tax 77.875 rounds half-up to 77.88."""
        q = quote(8, 7, SATURDAY, rate_table=default_rate_table)

        assert q.hourly_rate == Decimal("125.00")
        assert q.subtotal == Decimal("875.00")
        assert q.tax == Decimal("77.88")
        assert q.total == Decimal("952.88")
        assert q.weekday_group == WeekdayGroup.THU_SAT
        assert q.adjustments == ()

    def test_tuesday_party_of_four_for_six_hours(self, default_rate_table):
        """95/hr x 6 = 570.00 + 50.73 tax."""
        q = quote(4, 6, TUESDAY, rate_table=default_rate_table)

        assert q.subtotal == Decimal("570.00")
        assert q.tax == Decimal("50.73")
        assert q.total == Decimal("620.73")

    @pytest.mark.parametrize("party_size", range(1, 15))
    def test_every_party_size_has_exactly_one_rate(self, default_rate_table, party_size):
        """Each party size prices on both weekday groups at the published rate."""
        sun_wed = quote(party_size, 6, WEDNESDAY, rate_table=default_rate_table)
        thu_sat = quote(party_size, 6, THURSDAY, rate_table=default_rate_table)

        assert sun_wed.hourly_rate == Decimal(SUN_WED_RATES[party_size])
        assert thu_sat.hourly_rate == Decimal(THU_SAT_RATES[party_size])

    def test_total_is_subtotal_plus_tax(self, default_rate_table):
        for party_size in range(1, 15):
            for hours in (Decimal("5"), Decimal("6.5"), Decimal("8.25")):
                q = quote(party_size, hours, SATURDAY, rate_table=default_rate_table)
                assert q.total == q.subtotal + q.tax
                assert q.tax == round_money(q.subtotal * Decimal("0.089"))

    def test_quote_carries_rate_table_version(self, default_rate_table):
        q = quote(2, 5, TUESDAY, rate_table=default_rate_table)
        assert q.rate_table_version == default_rate_table.version_id


class TestMinimumDuration:
    """Short private tours."""

    def test_short_tour_is_billed_at_minimum(self, default_rate_table):
        """3 hours on a 5-hour minimum bills 5 hours and says so."""
        q = quote(2, 3, TUESDAY, rate_table=default_rate_table)

        assert q.hours == Decimal("3")
        assert q.billable_hours == Decimal("5")
        assert q.subtotal == Decimal("425.00")
        assert q.was_clamped
        adjustment = q.adjustments[0]
        assert adjustment.code == BELOW_MINIMUM_DURATION
        assert adjustment.requested == Decimal("3")
        assert adjustment.applied == Decimal("5")

    def test_exact_minimum_is_not_adjusted(self, default_rate_table):
        q = quote(2, 5, TUESDAY, rate_table=default_rate_table)
        assert not q.was_clamped

    def test_strict_mode_rejects_short_tour(self, default_rate_table):
        with pytest.raises(BelowMinimumDuration):
            quote(2, 3, TUESDAY, rate_table=default_rate_table, strict_minimum=True)

    def test_non_positive_hours_rejected(self, default_rate_table):
        with pytest.raises(UnsupportedTourConfiguration):
            quote(2, 0, TUESDAY, rate_table=default_rate_table)


class TestPartySizeBounds:
    """Party sizes outside the table."""

    @pytest.mark.parametrize("party_size", [0, -1, 15, 40])
    def test_out_of_range_party_size(self, default_rate_table, party_size):
        with pytest.raises(InvalidPartySize):
            quote(party_size, 6, TUESDAY, rate_table=default_rate_table)

    def test_error_reports_table_maximum(self, default_rate_table):
        with pytest.raises(InvalidPartySize) as exc_info:
            quote(15, 6, TUESDAY, rate_table=default_rate_table)
        assert exc_info.value.max_party_size == 14
        assert exc_info.value.kind == "validation"


class TestSharedTours:
    """Per-person pricing of shared tours."""

    def test_base_rate(self, default_rate_table):
        q = quote(4, 6, TUESDAY, TourType.SHARED, rate_table=default_rate_table)

        assert q.hourly_rate is None
        assert q.per_person_rate == Decimal("95.00")
        assert q.subtotal == Decimal("380.00")
        assert q.tax == Decimal("33.82")

    def test_lunch_rate(self, default_rate_table):
        q = quote(
            2, 6, SUNDAY, "SHARED", rate_table=default_rate_table, lunch_included=True
        )
        assert q.subtotal == Decimal("230.00")

    def test_shared_tours_do_not_run_thursday_to_saturday(self, default_rate_table):
        with pytest.raises(UnsupportedTourConfiguration):
            quote(4, 6, SATURDAY, TourType.SHARED, rate_table=default_rate_table)

    def test_lunch_rate_on_private_tour_is_rejected(self, default_rate_table):
        with pytest.raises(UnsupportedTourConfiguration):
            quote(4, 6, TUESDAY, rate_table=default_rate_table, lunch_included=True)


class TestPriceWithTax:
    def test_half_cent_rounds_up(self):
        tax, total = price_with_tax(Decimal("875.00"), Decimal("0.089"))
        assert tax == Decimal("77.88")
        assert total == Decimal("952.88")
