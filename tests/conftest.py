"""Pytest configuration for winetours tests."""

from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal

import pytest

from winetours.notifications.providers import LocmemDispatcher
from winetours.proposals.services import (
    AcceptanceInput,
    ClientInfo,
    ServiceItemInput,
    accept_proposal,
    create_proposal,
    send_proposal,
)
from winetours.rates.schema import DEFAULT_RATE_PAYLOAD, parse_rate_table
from winetours.rates.models import RateTableVersion
from winetours.rates.services import load_rate_table, update_rate_table

SATURDAY = date(2025, 6, 14)
TUESDAY = date(2025, 6, 10)


@pytest.fixture(autouse=True)
def outbox():
    """Empty the in-memory notification outbox around each test."""
    LocmemDispatcher.reset()
    yield LocmemDispatcher.outbox
    LocmemDispatcher.reset()


@pytest.fixture
def default_rate_table():
    """The built-in rate sheet, parsed without touching the database."""
    return parse_rate_table(DEFAULT_RATE_PAYLOAD)


@pytest.fixture
def rate_version(db):
    """Published default rate sheet, in effect since 2020."""
    version_id = update_rate_table(
        DEFAULT_RATE_PAYLOAD,
        "admin@example.com",
        "Initial rate sheet",
        effective_from=datetime(2020, 1, 1, tzinfo=dt_timezone.utc),
    )
    return RateTableVersion.objects.get(pk=version_id)


@pytest.fixture
def rate_table(rate_version):
    return load_rate_table(rate_version)


@pytest.fixture
def client_info():
    return ClientInfo(name="Dana Reyes", email="dana@example.com", phone="509-555-0100")


@pytest.fixture
def saturday_item():
    """Saturday, party of 8, 7 hours: 125/hr -> 875.00 + 77.88 tax = 952.88."""
    return ServiceItemInput(party_size=8, hours=Decimal("7"), tour_date=SATURDAY)


@pytest.fixture
def make_proposal(rate_version, client_info, saturday_item):
    """Factory for proposals; sent unless send=False."""

    def _make(items=None, send=True, **kwargs):
        proposal = create_proposal(
            client_info,
            items if items is not None else [saturday_item],
            created_by="sales@example.com",
            **kwargs,
        )
        if send:
            proposal = send_proposal(
                proposal.pk,
                expected_version=proposal.version,
                sent_by="sales@example.com",
            )
        return proposal

    return _make


@pytest.fixture
def make_acceptance():
    """Factory for a valid client acceptance."""

    def _make(**overrides):
        fields = {
            "accepted_by": "dana@example.com",
            "contact_name": "Dana Reyes",
            "contact_email": "dana@example.com",
            "contact_phone": "509-555-0100",
            "signature": "Dana Reyes",
            "terms_accepted": True,
            "cancellation_policy_accepted": True,
            "gratuity": 20,
        }
        fields.update(overrides)
        return AcceptanceInput(**fields)

    return _make


@pytest.fixture
def accepted(make_proposal, make_acceptance):
    """Accepted Saturday proposal with 20% gratuity.

    gratuity 175.00, final total 1127.88, deposit 563.94.
    """
    proposal = make_proposal()
    return accept_proposal(proposal.pk, make_acceptance(), expected_version=proposal.version)


@pytest.fixture
def booking(accepted):
    return accepted.booking
