"""Exception hierarchy for bookbinder.

Parse problems never raise; they degrade to literal text or are recorded
as diagnostics. Everything here is fatal for the operation that raised it.
"""


class BookbinderError(Exception):
    """Base class for all bookbinder errors."""


class ManuscriptError(BookbinderError):
    """Raised when a manuscript manifest or division file is missing or invalid."""


class ModelError(BookbinderError):
    """Raised when the division sequence violates a model invariant."""


class MatterOrderError(ModelError):
    """Raised when a division's matter precedes the matter of an earlier division."""


class UnknownDivisionKindError(ModelError):
    """Raised for a division kind outside the closed set of kinds."""


class ConflictingOverrideError(ModelError):
    """Raised when a configuration override is unknown, mistyped or contradictory."""


class RenderError(BookbinderError):
    """Raised by a backend renderer when the fixed construct set is violated."""


class UnmappedNodeError(RenderError):
    """Raised when a node type has no mapping in the active backend."""


class UnescapableCharacterError(RenderError):
    """Raised when a character flagged for escaping has no escape in the active backend."""
