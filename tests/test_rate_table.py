"""Tests for rate table versions and parsing."""

import copy
import json
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from io import StringIO

import pytest
from django.core.management import call_command

from winetours.audit.models import AuditLog
from winetours.exceptions import ValidationError
from winetours.rates.exceptions import (
    ImmutableRateTableVersion,
    NoActiveRateTable,
    RateTableCoverageError,
    RateTableInvalid,
)
from winetours.rates.models import RateTableVersion
from winetours.rates.schema import DEFAULT_RATE_PAYLOAD, WeekdayGroup, parse_rate_table
from winetours.rates.services import get_active_rate_table, get_active_version, update_rate_table


def _payload_with_rate(group, low, high, rate):
    payload = copy.deepcopy(DEFAULT_RATE_PAYLOAD)
    for tier in payload["tiers"]:
        if tier["weekday_group"] == group and tier["min_party"] == low and tier["max_party"] == high:
            tier["hourly_rate"] = rate
    return payload


class TestParseRateTable:
    """Payload validation."""

    def test_default_payload_parses(self):
        table = parse_rate_table(DEFAULT_RATE_PAYLOAD)

        assert table.max_party_size == 14
        assert table.minimum_hours == Decimal("5")
        assert table.tax_rate == Decimal("0.089")
        assert table.default_deposit_pct == Decimal("0.50")
        assert len(table.tiers) == 12

    def test_gap_in_tiers_is_rejected(self):
        """Removing the 5-6 tier leaves party sizes 5 and 6 unpriced."""
        payload = copy.deepcopy(DEFAULT_RATE_PAYLOAD)
        payload["tiers"] = [
            t for t in payload["tiers"]
            if not (t["weekday_group"] == "SUN_WED" and t["min_party"] == 5)
        ]
        with pytest.raises(RateTableCoverageError) as exc_info:
            parse_rate_table(payload)
        assert "SUN_WED: party sizes 5-6 not covered" in exc_info.value.errors[0]

    def test_overlap_is_rejected(self):
        payload = copy.deepcopy(DEFAULT_RATE_PAYLOAD)
        payload["tiers"].append(
            {"min_party": 4, "max_party": 5, "weekday_group": "THU_SAT", "hourly_rate": "100.00"}
        )
        with pytest.raises(RateTableCoverageError):
            parse_rate_table(payload)

    def test_groups_must_share_maximum(self):
        payload = copy.deepcopy(DEFAULT_RATE_PAYLOAD)
        payload["tiers"] = [
            t for t in payload["tiers"]
            if not (t["weekday_group"] == "THU_SAT" and t["min_party"] == 12)
        ]
        with pytest.raises(RateTableCoverageError) as exc_info:
            parse_rate_table(payload)
        assert any("different maximum" in p for p in exc_info.value.errors)

    def test_bad_values_are_collected(self):
        payload = copy.deepcopy(DEFAULT_RATE_PAYLOAD)
        payload["tax_rate"] = "lots"
        del payload["minimum_hours"]
        with pytest.raises(RateTableInvalid) as exc_info:
            parse_rate_table(payload)
        assert len(exc_info.value.errors) == 2
        assert exc_info.value.kind == "integrity"

    def test_round_trips_through_payload(self):
        table = parse_rate_table(DEFAULT_RATE_PAYLOAD)
        assert parse_rate_table(table.to_payload()) == table

    def test_unset_transfer_fares_stay_null(self):
        table = parse_rate_table(DEFAULT_RATE_PAYLOAD)
        assert table.extensions["transfers"]["pasco_to_walla_walla"] is None


@pytest.mark.django_db
class TestRateTableVersions:
    """Publishing and looking up versions."""

    def test_no_version_raises(self):
        with pytest.raises(NoActiveRateTable):
            get_active_version()

    def test_update_creates_new_version_and_audit_record(self, rate_version):
        payload = _payload_with_rate("THU_SAT", 7, 8, "130.00")

        new_id = update_rate_table(payload, "owner@example.com", "2026 season pricing")

        assert new_id != rate_version.pk
        assert RateTableVersion.objects.count() == 2
        table = get_active_rate_table()
        assert table.version_id == new_id
        assert table.tier_for(8, WeekdayGroup.THU_SAT).hourly_rate == Decimal("130.00")

        entry = AuditLog.objects.get(action="rate_table_update", object_id=str(new_id))
        assert entry.actor_display == "owner@example.com"
        assert entry.metadata["reason"] == "2026 season pricing"
        assert entry.metadata["previous_version_id"] == rate_version.pk
        old_rates = {
            (t["weekday_group"], t["min_party"]): t["hourly_rate"]
            for t in entry.changes["payload"]["old"]["tiers"]
        }
        assert old_rates[("THU_SAT", 7)] == "125.00"

    def test_previous_version_is_untouched(self, rate_version):
        before = copy.deepcopy(rate_version.payload)
        update_rate_table(_payload_with_rate("SUN_WED", 1, 2, "90.00"), "owner@example.com", "raise")

        rate_version.refresh_from_db()
        assert rate_version.payload == before

    def test_versions_are_immutable(self, rate_version):
        rate_version.reason = "rewrite history"
        with pytest.raises(ImmutableRateTableVersion):
            rate_version.save()

    def test_editor_and_reason_required(self, rate_version):
        with pytest.raises(ValidationError):
            update_rate_table(DEFAULT_RATE_PAYLOAD, "", "reason")
        with pytest.raises(ValidationError):
            update_rate_table(DEFAULT_RATE_PAYLOAD, "owner@example.com", "  ")

    def test_invalid_payload_writes_nothing(self, rate_version):
        payload = copy.deepcopy(DEFAULT_RATE_PAYLOAD)
        payload["tiers"] = payload["tiers"][1:]
        with pytest.raises(RateTableCoverageError):
            update_rate_table(payload, "owner@example.com", "broken")
        assert RateTableVersion.objects.count() == 1

    def test_future_version_is_not_active_yet(self, rate_version):
        update_rate_table(
            _payload_with_rate("SUN_WED", 1, 2, "90.00"),
            "owner@example.com",
            "next year",
            effective_from=datetime.now(dt_timezone.utc) + timedelta(days=30),
        )
        assert get_active_version() == rate_version


@pytest.mark.django_db
class TestRateTableCommands:
    """update_rate_table and show_rate_table management commands."""

    def test_publish_default(self):
        out = StringIO()
        call_command(
            "update_rate_table", "--default", "--editor", "ops", "--reason", "bootstrap", stdout=out
        )

        assert RateTableVersion.objects.count() == 1
        assert "Published rate table version" in out.getvalue()

    def test_publish_from_file(self, tmp_path, rate_version):
        path = tmp_path / "rates.json"
        path.write_text(json.dumps(_payload_with_rate("THU_SAT", 1, 2, "99.00")))

        call_command(
            "update_rate_table", "--file", str(path), "--editor", "ops", "--reason", "tweak",
            stdout=StringIO(),
        )

        assert get_active_rate_table().tier_for(1, WeekdayGroup.THU_SAT).hourly_rate == Decimal("99.00")

    def test_show(self, rate_version):
        stdout = StringIO()
        call_command("show_rate_table", stdout=stdout)
        out = stdout.getvalue()
        assert "[THU_SAT]" in out
        assert "$150.00/hr" in out
