"""Read-side queries for proposals."""

from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple

from django.db.models import Avg, Count, Q

from .models import Proposal, ProposalStatus

_EVER_SENT = [
    ProposalStatus.SENT,
    ProposalStatus.ACCEPTED,
    ProposalStatus.EXPIRED,
    ProposalStatus.WITHDRAWN,
]


class ProposalStatistics(NamedTuple):
    total: int
    draft: int
    sent: int
    accepted: int
    expired: int
    withdrawn: int
    conversion_rate: Decimal
    average_value: Decimal


def proposal_statistics(start=None, end=None) -> ProposalStatistics:
    """
    Proposal counts per status for proposals created in [start, end).

    conversion_rate is accepted / proposals that were ever sent, as a
    percentage. average_value is the mean total of accepted proposals.
    """
    qs = Proposal.objects.all()
    if start is not None:
        qs = qs.filter(created_at__gte=start)
    if end is not None:
        qs = qs.filter(created_at__lt=end)

    counts = qs.aggregate(
        total=Count("id"),
        draft=Count("id", filter=Q(status=ProposalStatus.DRAFT)),
        sent=Count("id", filter=Q(status=ProposalStatus.SENT)),
        accepted=Count("id", filter=Q(status=ProposalStatus.ACCEPTED)),
        expired=Count("id", filter=Q(status=ProposalStatus.EXPIRED)),
        withdrawn=Count("id", filter=Q(status=ProposalStatus.WITHDRAWN)),
        ever_sent=Count("id", filter=Q(status__in=_EVER_SENT)),
        average_value=Avg("total", filter=Q(status=ProposalStatus.ACCEPTED)),
    )

    ever_sent = counts.pop("ever_sent")
    if ever_sent:
        conversion = Decimal(counts["accepted"] * 100) / Decimal(ever_sent)
    else:
        conversion = Decimal("0")
    average = Decimal(str(counts.pop("average_value") or 0))

    return ProposalStatistics(
        conversion_rate=conversion.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP),
        average_value=average.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        **counts,
    )
