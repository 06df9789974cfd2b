"""Exceptions for the proposal workflow."""

from winetours.exceptions import StateConflictError, ValidationError


class ProposalNotFound(ValidationError):
    """No proposal with this id."""

    def __init__(self, proposal_id):
        super().__init__(f"Proposal {proposal_id} not found", entity_id=proposal_id)


class InvalidProposalState(StateConflictError):
    """The proposal is not in a state that allows this transition."""

    def __init__(self, proposal, action: str, allowed: tuple[str, ...]):
        self.status = proposal.status
        self.action = action
        if proposal.status == "ACCEPTED" and action == "accept":
            message = f"Proposal {proposal.proposal_number} was already accepted"
        else:
            message = (
                f"Cannot {action} proposal {proposal.proposal_number} in status "
                f"{proposal.status}; requires {' or '.join(allowed)}"
            )
        super().__init__(message, field="status", entity_id=proposal.pk)


class StaleProposalVersion(StateConflictError):
    """The proposal changed since the caller read it."""

    def __init__(self, proposal, expected_version):
        self.expected_version = expected_version
        self.current_version = proposal.version
        super().__init__(
            f"Proposal {proposal.proposal_number} is at version {proposal.version}, "
            f"caller expected {expected_version}",
            field="version",
            entity_id=proposal.pk,
        )


class ProposalExpired(StateConflictError):
    """The proposal's validity window has passed."""

    def __init__(self, proposal):
        super().__init__(
            f"Proposal {proposal.proposal_number} expired at {proposal.valid_until.isoformat()}",
            field="valid_until",
            entity_id=proposal.pk,
        )


class MissingConsent(ValidationError):
    """A required consent checkbox was not accepted."""


class InvalidSignature(ValidationError):
    """Signature is missing or blank."""


class InvalidGratuity(ValidationError):
    """Gratuity selection is not allowed."""


class InvalidPriceOverride(ValidationError):
    """Price override is negative or missing its reason."""
