"""Proposal service layer.

All write operations go through these functions.
Direct model manipulation bypasses invariants and is unsupported.

Functions:
- create_proposal(): Draft proposal with quoted service items
- add_service_item(): Quote and add another item to a draft
- override_item_price(): Replace an item's price, with a reason
- send_proposal(): DRAFT -> SENT, notify the client
- withdraw_proposal(): SENT -> WITHDRAWN
- expire_proposals(): SENT past valid_until -> EXPIRED
- accept_proposal(): SENT -> ACCEPTED, creating the bookings and deposit invoices

Every write bumps Proposal.version. Callers that read a proposal pass the
version they saw as expected_version and get StaleProposalVersion if someone
else wrote in between.
"""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import NamedTuple

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from winetours.audit.api import log as audit_log
from winetours.bookings.models import Booking
from winetours.bookings.services import create_bookings_from_proposal
from winetours.conf import get_setting
from winetours.exceptions import ValidationError
from winetours.invoicing.models import Invoice
from winetours.invoicing.services import issue_deposit_invoice
from winetours.notifications.services import PROPOSAL_ACCEPTED, PROPOSAL_SENT, notify
from winetours.rates.engine import price_with_tax, quote, round_money
from winetours.rates.models import RateTableVersion
from winetours.rates.schema import RateTable, TourType
from winetours.rates.services import get_active_version, load_rate_table
from winetours.sequence.services import next_number

from .exceptions import (
    InvalidGratuity,
    InvalidPriceOverride,
    InvalidProposalState,
    InvalidSignature,
    MissingConsent,
    ProposalExpired,
    ProposalNotFound,
    StaleProposalVersion,
)
from .models import Proposal, ProposalAcceptance, ProposalServiceItem, ProposalStatus

logger = logging.getLogger(__name__)

NO_GRATUITY = "none"
CUSTOM_GRATUITY = "custom"


class ClientInfo(NamedTuple):
    name: str
    email: str
    phone: str = ""


class ServiceItemInput(NamedTuple):
    """One tour to quote onto a proposal."""

    party_size: int
    hours: Decimal
    tour_date: date
    tour_type: str = TourType.PRIVATE.value
    lunch_included: bool = False
    description: str = ""


class AcceptanceInput(NamedTuple):
    """What the client submits when accepting.

    gratuity is "none", a preset percentage (15, 20, 25) or "custom" with
    custom_gratuity holding the amount.
    """

    accepted_by: str
    contact_name: str
    contact_email: str
    signature: str
    terms_accepted: bool
    cancellation_policy_accepted: bool
    contact_phone: str = ""
    gratuity: str | int = NO_GRATUITY
    custom_gratuity: Decimal | None = None
    signature_timestamp: datetime | None = None


class AcceptanceResult(NamedTuple):
    """One booking and one deposit invoice per service item, in item order."""

    acceptance: ProposalAcceptance
    bookings: list[Booking]
    deposit_invoices: list[Invoice]

    @property
    def booking(self) -> Booking:
        return self.bookings[0]

    @property
    def deposit_invoice(self) -> Invoice:
        return self.deposit_invoices[0]


def _lock(proposal_id) -> Proposal:
    try:
        return Proposal.objects.select_for_update().get(pk=proposal_id)
    except Proposal.DoesNotExist:
        raise ProposalNotFound(proposal_id)


def _require_status(proposal: Proposal, action: str, *allowed: str):
    if proposal.status not in allowed:
        raise InvalidProposalState(proposal, action, allowed)


def _check_version(proposal: Proposal, expected_version):
    if expected_version is not None and proposal.version != expected_version:
        raise StaleProposalVersion(proposal, expected_version)


def _bump(proposal: Proposal, **fields):
    """Write fields and increment version, compare-and-swap on the current version."""
    updated = Proposal.objects.filter(pk=proposal.pk, version=proposal.version).update(
        version=F("version") + 1,
        updated_at=timezone.now(),
        **fields,
    )
    if updated != 1:
        raise StaleProposalVersion(proposal, proposal.version)
    proposal.refresh_from_db()


def _quote_item(item: ServiceItemInput, rate_table: RateTable):
    return quote(
        item.party_size,
        item.hours,
        item.tour_date,
        item.tour_type,
        rate_table=rate_table,
        lunch_included=item.lunch_included,
    )


def _create_item(proposal: Proposal, item: ServiceItemInput, item_quote, position: int):
    return ProposalServiceItem.objects.create(
        proposal=proposal,
        position=position,
        description=item.description,
        tour_type=item_quote.tour_type.value,
        tour_date=item_quote.tour_date,
        party_size=item_quote.party_size,
        hours=item_quote.hours,
        lunch_included=item_quote.lunch_included,
        quote_snapshot=item_quote.to_snapshot(),
        hourly_rate=item_quote.hourly_rate,
        billable_hours=item_quote.billable_hours,
        subtotal=item_quote.subtotal,
        tax=item_quote.tax,
        total=item_quote.total,
    )


def _totals(proposal: Proposal, rate_table: RateTable) -> dict:
    """Proposal totals from its items' effective figures."""
    subtotal = Decimal("0.00")
    tax = Decimal("0.00")
    for item in proposal.service_items.all():
        subtotal += item.subtotal
        tax += item.tax
    total = subtotal + tax
    if proposal.deposit_override is not None:
        deposit = proposal.deposit_override
    else:
        deposit = round_money(total * rate_table.default_deposit_pct)
    return {"subtotal": subtotal, "tax": tax, "total": total, "deposit_amount": deposit}


def _resolve_rate_version(rate_version) -> RateTableVersion:
    if rate_version is None:
        return get_active_version()
    if isinstance(rate_version, RateTableVersion):
        return rate_version
    return RateTableVersion.objects.get(pk=rate_version)


def create_proposal(
    client: ClientInfo,
    items,
    *,
    created_by: str,
    valid_until=None,
    gratuity_enabled: bool = True,
    deposit_override: Decimal | None = None,
    rate_version=None,
) -> Proposal:
    """
    Create a DRAFT proposal.

    Every item is quoted against the active rate table version (or
    rate_version) before anything is written, so a bad item rejects the
    whole proposal.

    Args:
        client: Client contact
        items: ServiceItemInput sequence (may be empty)
        created_by: Staff identity
        valid_until: Acceptance deadline (default: set when sent)
        gratuity_enabled: Whether the client may add gratuity
        deposit_override: Fixed deposit instead of the percentage
        rate_version: RateTableVersion or id to quote against

    Returns:
        The created Proposal
    """
    if not client.name or not client.email:
        raise ValidationError("Client name and email are required", field="client")
    if not created_by:
        raise ValidationError("Proposals require a creator", field="created_by")
    if deposit_override is not None and deposit_override < 0:
        raise ValidationError("Deposit override cannot be negative", field="deposit_override")

    version = _resolve_rate_version(rate_version)
    rate_table = load_rate_table(version)
    items = list(items)
    quotes = [_quote_item(item, rate_table) for item in items]

    with transaction.atomic():
        proposal = Proposal.objects.create(
            proposal_number=next_number("proposal", prefix=get_setting("PROPOSAL_PREFIX")),
            client_name=client.name,
            client_email=client.email,
            client_phone=client.phone,
            rate_table_version=version,
            gratuity_enabled=gratuity_enabled,
            deposit_override=deposit_override,
            valid_until=valid_until,
            created_by=created_by,
        )
        for position, (item, item_quote) in enumerate(zip(items, quotes)):
            _create_item(proposal, item, item_quote, position)

        for field_name, value in _totals(proposal, rate_table).items():
            setattr(proposal, field_name, value)
        proposal.save(update_fields=["subtotal", "tax", "total", "deposit_amount", "updated_at"])

    logger.info(
        "Proposal %s created by %s: %s items, total %s",
        proposal.proposal_number,
        created_by,
        len(items),
        proposal.total,
    )
    return proposal


def add_service_item(proposal, item: ServiceItemInput, *, expected_version) -> ProposalServiceItem:
    """Quote an item against the proposal's rate version and add it to a DRAFT."""
    with transaction.atomic():
        proposal = _lock(proposal.pk)
        _require_status(proposal, "add items to", ProposalStatus.DRAFT)
        _check_version(proposal, expected_version)

        rate_table = load_rate_table(proposal.rate_table_version)
        item_quote = _quote_item(item, rate_table)
        position = proposal.service_items.count()
        service_item = _create_item(proposal, item, item_quote, position)
        _bump(proposal, **_totals(proposal, rate_table))

    logger.info("Added item %s to %s", position, proposal.proposal_number)
    return service_item


def override_item_price(item, amount, reason: str, *, actor: str) -> ProposalServiceItem:
    """
    Replace an item's quoted subtotal with a negotiated price.

    Tax is recomputed on the new price at the proposal's rate. The quote
    snapshot is kept as priced.

    Raises:
        InvalidPriceOverride: Negative amount or missing reason
        InvalidProposalState: Proposal is not DRAFT
    """
    if not actor:
        raise ValidationError("Price overrides require an actor", field="actor")
    if not reason or not reason.strip():
        raise InvalidPriceOverride("Price overrides require a reason", field="override_reason")
    try:
        amount = round_money(Decimal(str(amount)))
    except InvalidOperation as e:
        raise InvalidPriceOverride(f"Invalid price {amount!r}", field="price_override") from e
    if amount < 0:
        raise InvalidPriceOverride("Price override cannot be negative", field="price_override")

    item_id = item.pk if isinstance(item, ProposalServiceItem) else item
    with transaction.atomic():
        item = ProposalServiceItem.objects.get(pk=item_id)
        proposal = _lock(item.proposal_id)
        _require_status(proposal, "override prices on", ProposalStatus.DRAFT)

        rate_table = load_rate_table(proposal.rate_table_version)
        old_subtotal = item.subtotal
        tax, total = price_with_tax(amount, rate_table.tax_rate)
        item.price_override = amount
        item.override_reason = reason.strip()
        item.overridden_by = actor
        item.subtotal = amount
        item.tax = tax
        item.total = total
        item.save()
        _bump(proposal, **_totals(proposal, rate_table))

        audit_log(
            action="price_override",
            obj=item,
            actor=actor,
            changes={"subtotal": {"old": old_subtotal, "new": amount}},
            metadata={"reason": reason.strip(), "proposal": proposal.proposal_number},
            sensitivity="high",
        )

    logger.info(
        "%s overrode item %s on %s: %s -> %s",
        actor,
        item.pk,
        proposal.proposal_number,
        old_subtotal,
        amount,
    )
    return item


def send_proposal(proposal_id, *, expected_version, sent_by: str) -> Proposal:
    """
    Send a DRAFT proposal to the client.

    valid_until defaults to PROPOSAL_VALID_DAYS from now.
    """
    if not sent_by:
        raise ValidationError("Sending requires an actor", field="sent_by")

    with transaction.atomic():
        proposal = _lock(proposal_id)
        _require_status(proposal, "send", ProposalStatus.DRAFT)
        _check_version(proposal, expected_version)
        if not proposal.service_items.exists():
            raise ValidationError(
                f"Proposal {proposal.proposal_number} has no service items",
                entity_id=proposal.pk,
            )

        now = timezone.now()
        valid_until = proposal.valid_until or now + timedelta(days=get_setting("PROPOSAL_VALID_DAYS"))
        if valid_until <= now:
            raise ValidationError("valid_until is in the past", field="valid_until")

        _bump(proposal, status=ProposalStatus.SENT, sent_at=now, valid_until=valid_until)

        payload = {
            "proposal_number": proposal.proposal_number,
            "client_name": proposal.client_name,
            "total": str(proposal.total),
            "deposit_amount": str(proposal.deposit_amount),
            "valid_until": valid_until.isoformat(),
        }
        transaction.on_commit(lambda: notify(proposal.client_email, PROPOSAL_SENT, payload))

    logger.info("Proposal %s sent by %s", proposal.proposal_number, sent_by)
    return proposal


def withdraw_proposal(proposal_id, *, expected_version, actor: str, reason: str) -> Proposal:
    """Withdraw a SENT proposal so it can no longer be accepted."""
    if not actor:
        raise ValidationError("Withdrawing requires an actor", field="actor")
    if not reason or not reason.strip():
        raise ValidationError("Withdrawing requires a reason", field="reason")

    with transaction.atomic():
        proposal = _lock(proposal_id)
        _require_status(proposal, "withdraw", ProposalStatus.SENT)
        _check_version(proposal, expected_version)
        _bump(
            proposal,
            status=ProposalStatus.WITHDRAWN,
            closed_at=timezone.now(),
            status_reason=reason.strip(),
        )
        audit_log(
            action="proposal_withdrawn",
            obj=proposal,
            actor=actor,
            changes={"status": {"old": ProposalStatus.SENT, "new": ProposalStatus.WITHDRAWN}},
            metadata={"reason": reason.strip()},
        )

    logger.info("Proposal %s withdrawn by %s", proposal.proposal_number, actor)
    return proposal


def expire_proposals(now=None) -> int:
    """Move SENT proposals past valid_until to EXPIRED. Returns how many."""
    now = now or timezone.now()
    with transaction.atomic():
        due = list(
            Proposal.objects.select_for_update()
            .filter(status=ProposalStatus.SENT, valid_until__lt=now)
            .values_list("pk", flat=True)
        )
        count = Proposal.objects.filter(pk__in=due, status=ProposalStatus.SENT).update(
            status=ProposalStatus.EXPIRED,
            version=F("version") + 1,
            closed_at=now,
            status_reason="Validity window passed",
            updated_at=now,
        )
    if count:
        logger.info("Expired %s proposals", count)
    return count


def resolve_gratuity(choice, custom_amount, subtotal: Decimal, *, enabled: bool) -> tuple[str, Decimal]:
    """
    Turn a gratuity selection into (gratuity_choice, gratuity_amount).

    Presets are percentages of the pre-tax subtotal.

    Raises:
        InvalidGratuity: Unknown preset, negative custom amount, or gratuity
            on a proposal that has it disabled
    """
    presets = tuple(get_setting("GRATUITY_PRESETS"))

    if choice in (None, NO_GRATUITY, 0, "0"):
        return NO_GRATUITY, Decimal("0.00")

    if not enabled:
        raise InvalidGratuity("Gratuity is not enabled for this proposal", field="gratuity")

    if choice == CUSTOM_GRATUITY:
        if custom_amount is None:
            raise InvalidGratuity("Custom gratuity requires an amount", field="custom_gratuity")
        try:
            amount = round_money(Decimal(str(custom_amount)))
        except InvalidOperation as e:
            raise InvalidGratuity(f"Invalid gratuity {custom_amount!r}", field="custom_gratuity") from e
        if amount < 0:
            raise InvalidGratuity("Gratuity cannot be negative", field="custom_gratuity")
        return CUSTOM_GRATUITY, amount

    try:
        percent = int(choice)
    except (TypeError, ValueError):
        percent = None
    if percent not in presets:
        raise InvalidGratuity(
            f"Gratuity must be none, custom, or one of {', '.join(map(str, presets))}%",
            field="gratuity",
        )
    return str(percent), round_money(subtotal * percent / Decimal(100))


def _validate_acceptance(acceptance: AcceptanceInput):
    if not acceptance.accepted_by:
        raise ValidationError("Acceptance requires the accepting identity", field="accepted_by")
    if not acceptance.contact_name or not acceptance.contact_email:
        raise ValidationError("Contact name and email must be confirmed", field="contact_email")
    if not acceptance.terms_accepted:
        raise MissingConsent("Terms and conditions must be accepted", field="terms_accepted")
    if not acceptance.cancellation_policy_accepted:
        raise MissingConsent(
            "Cancellation policy must be accepted", field="cancellation_policy_accepted"
        )
    if not acceptance.signature or not acceptance.signature.strip():
        raise InvalidSignature("A signature is required", field="signature")


def accept_proposal(
    proposal_id,
    acceptance: AcceptanceInput,
    *,
    expected_version=None,
    now=None,
) -> AcceptanceResult:
    """
    Accept a SENT proposal.

    In one transaction: records the signed acceptance, recomputes the
    deposit on the final total (total plus gratuity), creates one booking per
    service item and issues a SENT deposit invoice for each. The deposit and
    gratuity are split across the bookings in proportion to item totals. The
    confirmation notification goes out after commit.

    Args:
        proposal_id: Proposal to accept
        acceptance: Client submission
        expected_version: Proposal version the client was shown
        now: Acceptance time (default: now)

    Returns:
        AcceptanceResult(acceptance, bookings, deposit_invoices)

    Raises:
        ValidationError / MissingConsent / InvalidSignature / InvalidGratuity:
            Bad submission, nothing written
        InvalidProposalState: Not SENT (including already accepted)
        StaleProposalVersion: Proposal changed since the client loaded it
        ProposalExpired: now is past valid_until
    """
    _validate_acceptance(acceptance)
    now = now or timezone.now()

    with transaction.atomic():
        proposal = _lock(proposal_id)
        _require_status(proposal, "accept", ProposalStatus.SENT)
        _check_version(proposal, expected_version)
        if proposal.is_expired_at(now):
            raise ProposalExpired(proposal)

        rate_table = load_rate_table(proposal.rate_table_version)
        gratuity_choice, gratuity_amount = resolve_gratuity(
            acceptance.gratuity,
            acceptance.custom_gratuity,
            proposal.subtotal,
            enabled=proposal.gratuity_enabled,
        )
        final_total = proposal.total + gratuity_amount
        if proposal.deposit_override is not None:
            deposit = proposal.deposit_override
        else:
            deposit = round_money(final_total * rate_table.default_deposit_pct)

        _bump(
            proposal,
            status=ProposalStatus.ACCEPTED,
            accepted_at=now,
            deposit_amount=deposit,
        )

        record = ProposalAcceptance.objects.create(
            proposal=proposal,
            accepted_by=acceptance.accepted_by,
            contact_name=acceptance.contact_name,
            contact_email=acceptance.contact_email,
            contact_phone=acceptance.contact_phone,
            gratuity_choice=gratuity_choice,
            gratuity_amount=gratuity_amount,
            final_total=final_total,
            deposit_amount=deposit,
            terms_accepted=True,
            cancellation_policy_accepted=True,
            signature=acceptance.signature.strip(),
            signature_timestamp=acceptance.signature_timestamp or now,
            accepted_at=now,
        )

        bookings = create_bookings_from_proposal(proposal, record)
        deposit_invoices = [
            issue_deposit_invoice(booking, issued_by=acceptance.accepted_by)
            for booking in bookings
        ]

        audit_log(
            action="proposal_accepted",
            obj=proposal,
            actor=acceptance.accepted_by,
            changes={"status": {"old": ProposalStatus.SENT, "new": ProposalStatus.ACCEPTED}},
            metadata={
                "bookings": [b.booking_number for b in bookings],
                "deposit_invoices": [i.invoice_number for i in deposit_invoices],
                "gratuity_choice": gratuity_choice,
                "gratuity_amount": gratuity_amount,
                "final_total": final_total,
            },
        )

        payload = {
            "proposal_number": proposal.proposal_number,
            "final_total": str(final_total),
            "gratuity_amount": str(gratuity_amount),
            "deposit_amount": str(deposit),
            "bookings": [
                {
                    "booking_number": b.booking_number,
                    "tour_date": b.tour_date.isoformat(),
                    "deposit_invoice_number": i.invoice_number,
                    "deposit_amount": str(i.amount),
                }
                for b, i in zip(bookings, deposit_invoices)
            ],
        }
        transaction.on_commit(lambda: notify(record.contact_email, PROPOSAL_ACCEPTED, payload))

    logger.info(
        "Proposal %s accepted by %s: %d booking(s), deposit %s",
        proposal.proposal_number,
        acceptance.accepted_by,
        len(bookings),
        deposit,
    )
    return AcceptanceResult(
        acceptance=record,
        bookings=bookings,
        deposit_invoices=deposit_invoices,
    )
