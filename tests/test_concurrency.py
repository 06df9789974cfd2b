"""Concurrent approval and acceptance.

Row locks need a real database server; SQLite serializes whole-database
writes, so these run against PostgreSQL only.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone as dt_timezone

import pytest
from django.db import connection, connections

from winetours.bookings.reconciler import reconcile
from winetours.exceptions import WineToursError
from winetours.invoicing.models import Invoice, InvoiceKind
from winetours.invoicing.services import approve_and_send
from winetours.proposals.models import ProposalAcceptance
from winetours.proposals.services import accept_proposal
from winetours.timeclock.services import clock_in, clock_out

pytestmark = [
    pytest.mark.django_db(transaction=True),
    pytest.mark.skipif(
        connection.vendor != "postgresql", reason="requires PostgreSQL row locks"
    ),
]

START = datetime(2025, 6, 14, 17, 0, tzinfo=dt_timezone.utc)


def run_concurrently(fn, count):
    def call(_):
        try:
            return fn()
        except WineToursError as e:
            return e
        finally:
            connections.close_all()

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(call, range(count)))


def test_simultaneous_approvals_create_one_invoice(booking):
    record = clock_in(booking, "driver@example.com", at=START)
    reconcile(clock_out(record.pk, at=START + timedelta(hours=7)))

    results = run_concurrently(lambda: approve_and_send(booking.pk, "owner@example.com"), 5)

    invoices = [r for r in results if isinstance(r, Invoice)]
    errors = [r for r in results if isinstance(r, WineToursError)]
    assert len(invoices) == 1
    assert {e.kind for e in errors} == {"state_conflict"}
    assert Invoice.objects.filter(booking=booking, kind=InvoiceKind.FINAL).count() == 1


def test_simultaneous_acceptances_create_one_booking(make_proposal, make_acceptance):
    proposal = make_proposal()

    results = run_concurrently(lambda: accept_proposal(proposal.pk, make_acceptance()), 4)

    errors = [r for r in results if isinstance(r, WineToursError)]
    assert len(errors) == 3
    assert ProposalAcceptance.objects.filter(proposal=proposal).count() == 1


def test_simultaneous_deliveries_of_one_event_return_one_invoice(booking):
    record = clock_in(booking, "driver@example.com", at=START)
    reconcile(clock_out(record.pk, at=START + timedelta(hours=7)))

    results = run_concurrently(
        lambda: approve_and_send(booking.pk, "owner@example.com", event_id="evt-approve-1"), 5
    )

    assert all(isinstance(r, Invoice) for r in results)
    assert len({r.pk for r in results}) == 1
    assert Invoice.objects.filter(booking=booking, kind=InvoiceKind.FINAL).count() == 1


def test_parallel_approvals_get_unique_contiguous_numbers(make_proposal, make_acceptance):
    count = 6
    bookings = []
    for _ in range(count):
        result = accept_proposal(make_proposal().pk, make_acceptance())
        record = clock_in(result.booking, "driver@example.com", at=START)
        reconcile(clock_out(record.pk, at=START + timedelta(hours=7)))
        bookings.append(result.booking)

    pending = list(bookings)

    def approve_next():
        booking = pending.pop()
        return approve_and_send(booking.pk, "owner@example.com")

    results = run_concurrently(approve_next, count)

    assert all(isinstance(r, Invoice) for r in results)
    finals = sorted(int(r.invoice_number.rsplit("-", 1)[1]) for r in results)
    assert finals == list(range(count + 1, 2 * count + 1))
    deposits = Invoice.objects.filter(kind=InvoiceKind.DEPOSIT).values_list("invoice_number", flat=True)
    assert sorted(int(n.rsplit("-", 1)[1]) for n in deposits) == list(range(1, count + 1))
