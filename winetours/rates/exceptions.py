"""Exceptions for rate tables and quoting."""

from winetours.exceptions import IntegrityError, StateConflictError, ValidationError


class InvalidPartySize(ValidationError):
    """Party size is below 1 or above the largest rate tier."""

    def __init__(self, party_size, max_party_size=None):
        self.party_size = party_size
        self.max_party_size = max_party_size
        if max_party_size is None:
            message = f"Party size must be at least 1, got {party_size}"
        else:
            message = f"Party size must be between 1 and {max_party_size}, got {party_size}"
        super().__init__(message, field="party_size")


class BelowMinimumDuration(ValidationError):
    """Private tour hours are below the rate table minimum (strict mode only)."""

    def __init__(self, hours, minimum_hours):
        self.hours = hours
        self.minimum_hours = minimum_hours
        super().__init__(
            f"Private tours require at least {minimum_hours} hours, got {hours}",
            field="hours",
        )


class UnsupportedTourConfiguration(ValidationError):
    """Tour type cannot be priced for this date or party size."""


class RateTableInvalid(IntegrityError):
    """Rate table payload is malformed."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("Invalid rate table: " + "; ".join(errors))


class RateTableCoverageError(RateTableInvalid):
    """Rate tiers leave a party size unpriced or price it twice."""


class NoActiveRateTable(IntegrityError):
    """No rate table version has been published."""


class ImmutableRateTableVersion(StateConflictError):
    """Rate table versions cannot be modified after creation."""

    def __init__(self, version_id):
        self.version_id = version_id
        super().__init__(
            f"Rate table version {version_id} is immutable; publish a new version instead",
            entity_id=version_id,
        )
