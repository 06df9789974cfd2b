"""Error taxonomy shared by every winetours app.

Callers branch on the four kinds below, never on message text:

- ValidationError: bad input, rejected before any mutation. Retry after fixing.
- StateConflictError: the action already happened or the record moved on
  (double accept, double approve, stale version).
- EligibilityError: not possible yet (e.g. final invoice before hour-sync).
  Wait or poll, do not retry immediately.
- IntegrityError: data or configuration defect. Fatal to the operation.

App-level exceptions subclass one of these.
"""


class WineToursError(Exception):
    """Base exception for the winetours engine."""

    kind = "error"

    def __init__(self, message: str = "", *, field: str | None = None, entity_id=None):
        self.field = field
        self.entity_id = str(entity_id) if entity_id is not None else None
        super().__init__(message or self.__class__.__doc__ or self.__class__.__name__)

    def as_dict(self) -> dict:
        """Structured form for request handlers to render."""
        return {
            "kind": self.kind,
            "code": self.__class__.__name__,
            "message": str(self),
            "field": self.field,
            "entity_id": self.entity_id,
        }


class ValidationError(WineToursError):
    """Input is malformed or out of range."""

    kind = "validation"


class StateConflictError(WineToursError):
    """The record is not in a state that allows this action."""

    kind = "state_conflict"


class EligibilityError(WineToursError):
    """The action is not possible yet."""

    kind = "eligibility"


class IntegrityError(WineToursError):
    """Data or configuration defect."""

    kind = "integrity"


class ConfigurationError(IntegrityError):
    """WINETOURS settings are missing or invalid."""
