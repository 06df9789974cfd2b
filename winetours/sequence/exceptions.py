"""Exceptions for number sequences."""

from winetours.exceptions import IntegrityError


class SequenceError(IntegrityError):
    """Base exception for sequence errors."""


class SequenceOutsideTransaction(SequenceError):
    """Raised when a number is requested outside the inserting transaction."""

    def __init__(self, scope_key: str):
        self.scope_key = scope_key
        super().__init__(
            f"Sequence '{scope_key}' must be allocated inside transaction.atomic() "
            "together with the row it numbers"
        )
