"""
Domain exceptions shared by the roster, team formation and group
administration services.

Every error derives from ``MatchdayError`` (itself a ``ValueError``) and
carries the HTTP status the API layer should answer with.
"""


class MatchdayError(ValueError):
    """Base class for expected, caller-facing failures."""

    status_code = 400


class NotAuthenticatedError(MatchdayError):
    """Raised when no valid identity accompanies the request."""

    status_code = 401


class NotAuthorizedError(MatchdayError):
    """Raised when the acting user lacks the required group role."""

    status_code = 403


class NotFoundError(MatchdayError):
    """Raised when a group, match, user or related record does not exist."""

    status_code = 404


class DataValidationError(MatchdayError):
    """Raised when input fails validation (e.g. malformed import rows)."""

    status_code = 422


# --- Roster / lifecycle ---


class AlreadyRegisteredError(MatchdayError):
    """Raised when a profile is already on the roster or waiting list."""

    status_code = 409


class MatchClosedError(MatchdayError):
    """Raised when the match has been finalized."""

    status_code = 409


class TeamsLockedError(MatchdayError):
    """Raised on join/leave after teams have been created."""

    status_code = 409


class CapacityExceededError(MatchdayError):
    """Raised when an admission cannot fall back to the waiting list."""

    status_code = 409


# --- Team formation ---


class EmptyRosterError(MatchdayError):
    """Raised when forming teams for a match with no players."""

    status_code = 400


class AlreadyFormedError(MatchdayError):
    """Raised when teams already exist for the match."""

    status_code = 409


class NotYetFormedError(MatchdayError):
    """Raised when an operation needs teams that do not exist yet."""

    status_code = 409


class LockedError(MatchdayError):
    """Raised when teams are finalized and can no longer change."""

    status_code = 409


# --- Invites / membership ---


class InvalidCodeError(MatchdayError):
    """Raised when an invite code is unknown or deactivated."""

    status_code = 404


class ExpiredError(MatchdayError):
    """Raised when an invite is past its expiry."""

    status_code = 410


class ExhaustedError(MatchdayError):
    """Raised when an invite has no uses left."""

    status_code = 410


class BannedError(MatchdayError):
    """Raised when a banned user tries to rejoin a group."""

    status_code = 403


class AlreadyMemberError(MatchdayError):
    """Raised when the user already belongs to the group."""

    status_code = 409
