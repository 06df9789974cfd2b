"""Proposal models.

Write through services only:
- create_proposal(), add_service_item(), override_item_price()
- send_proposal(), withdraw_proposal(), expire_proposals()
- accept_proposal()
"""

from django.db import models

from winetours.basemodels import TimeStampedModel
from winetours.exceptions import StateConflictError


class ProposalStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    SENT = "SENT", "Sent"
    ACCEPTED = "ACCEPTED", "Accepted"
    EXPIRED = "EXPIRED", "Expired"
    WITHDRAWN = "WITHDRAWN", "Withdrawn"


class Proposal(TimeStampedModel):
    """
    A priced offer sent to a client.

    Key invariants:
    - Accepted at most once, only while SENT and before valid_until
    - ACCEPTED, EXPIRED and WITHDRAWN are terminal
    - ``version`` increments on every write; writers compare-and-swap on it
    """

    proposal_number = models.CharField(max_length=40, unique=True)

    client_name = models.CharField(max_length=200)
    client_email = models.EmailField()
    client_phone = models.CharField(max_length=40, blank=True)

    status = models.CharField(
        max_length=20,
        choices=ProposalStatus.choices,
        default=ProposalStatus.DRAFT,
        db_index=True,
    )
    version = models.PositiveIntegerField(default=1)

    rate_table_version = models.ForeignKey(
        "winetours_rates.RateTableVersion",
        on_delete=models.PROTECT,
        related_name="proposals",
        help_text="Rate sheet the items were quoted against",
    )

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    deposit_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    deposit_override = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Fixed deposit replacing the percentage deposit",
    )
    gratuity_enabled = models.BooleanField(default=True)

    valid_until = models.DateTimeField(null=True, blank=True)
    created_by = models.CharField(max_length=200)
    sent_at = models.DateTimeField(null=True, blank=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    closed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the proposal expired or was withdrawn",
    )
    status_reason = models.TextField(blank=True)

    class Meta(TimeStampedModel.Meta):
        db_table = "proposals"
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["status", "valid_until"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(deposit_amount__gte=0) & models.Q(total__gte=0),
                name="proposal_amounts_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(deposit_override__isnull=True) | models.Q(deposit_override__gte=0),
                name="proposal_deposit_override_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.proposal_number} ({self.status})"

    def is_expired_at(self, timestamp) -> bool:
        return self.valid_until is not None and timestamp > self.valid_until


class ProposalServiceItem(TimeStampedModel):
    """
    One priced tour on a proposal.

    ``quote_snapshot`` is the engine's quote at the time the item was added.
    ``subtotal``/``tax``/``total`` are the effective figures, which differ from
    the snapshot only when a price override is set.
    """

    proposal = models.ForeignKey(
        Proposal,
        on_delete=models.CASCADE,
        related_name="service_items",
    )
    position = models.PositiveIntegerField(default=0)
    description = models.CharField(max_length=255, blank=True)

    tour_type = models.CharField(max_length=20)
    tour_date = models.DateField()
    party_size = models.PositiveIntegerField()
    hours = models.DecimalField(max_digits=5, decimal_places=2)
    lunch_included = models.BooleanField(default=False)

    quote_snapshot = models.JSONField()
    hourly_rate = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    billable_hours = models.DecimalField(max_digits=5, decimal_places=2)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    tax = models.DecimalField(max_digits=12, decimal_places=2)
    total = models.DecimalField(max_digits=12, decimal_places=2)

    price_override = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    override_reason = models.TextField(blank=True)
    overridden_by = models.CharField(max_length=200, blank=True)

    class Meta(TimeStampedModel.Meta):
        db_table = "proposal_service_items"
        ordering = ["position", "id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price_override__isnull=True)
                | (models.Q(price_override__gte=0) & ~models.Q(override_reason="")),
                name="service_item_override_has_reason",
            ),
        ]

    def __str__(self):
        return f"{self.tour_type} {self.tour_date} x{self.party_size}"


class ProposalAcceptance(TimeStampedModel):
    """
    The client's signed acceptance. One per proposal, never edited.
    """

    proposal = models.OneToOneField(
        Proposal,
        on_delete=models.PROTECT,
        related_name="acceptance",
    )
    accepted_by = models.CharField(max_length=200)

    contact_name = models.CharField(max_length=200)
    contact_email = models.EmailField()
    contact_phone = models.CharField(max_length=40, blank=True)

    gratuity_choice = models.CharField(
        max_length=20,
        help_text="'none', a preset percentage such as '20', or 'custom'",
    )
    gratuity_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    final_total = models.DecimalField(max_digits=12, decimal_places=2)
    deposit_amount = models.DecimalField(max_digits=12, decimal_places=2)

    terms_accepted = models.BooleanField()
    cancellation_policy_accepted = models.BooleanField()
    signature = models.TextField()
    signature_timestamp = models.DateTimeField()

    accepted_at = models.DateTimeField()

    class Meta(TimeStampedModel.Meta):
        db_table = "proposal_acceptances"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(terms_accepted=True) & models.Q(cancellation_policy_accepted=True),
                name="acceptance_requires_both_consents",
            ),
            models.CheckConstraint(
                condition=~models.Q(signature=""),
                name="acceptance_requires_signature",
            ),
            models.CheckConstraint(
                condition=models.Q(gratuity_amount__gte=0),
                name="acceptance_gratuity_non_negative",
            ),
        ]

    def __str__(self):
        return f"Acceptance of {self.proposal_id} by {self.accepted_by}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise StateConflictError(
                "Proposal acceptances cannot be modified", entity_id=self.pk
            )
        super().save(*args, **kwargs)
