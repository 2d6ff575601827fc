"""Domain errors surfaced synchronously to the caller.

Pairing preconditions and store inconsistencies are deliberately absent:
the former are reported as outcomes, the latter are healed by the sweeps.
"""


class CallmatchError(Exception):
    """Base class for errors returned to a client."""


class AuthenticationError(CallmatchError):
    """Raised when the caller identity cannot be established."""


class NotRoomMemberError(CallmatchError):
    """Raised when the caller is not one of the room's two members."""


class RoomNotFoundError(CallmatchError):
    """Raised when a room does not exist (or no longer exists)."""


class SessionNotFoundError(CallmatchError):
    """Raised when a call session does not exist."""


class AlreadyPlacedError(CallmatchError):
    """Raised when a participant already placed in a room tries to enqueue."""


class RoomNotActiveError(CallmatchError):
    """Raised when an operation needs an active room."""


class SessionNotActiveError(CallmatchError):
    """Raised when an operation needs an active call session."""


class PolicyViolationError(CallmatchError):
    """Base class for requests rejected by policy."""


class ExtensionNotAllowedError(PolicyViolationError):
    """Raised when an extension increment is not in the allowed set."""


class ExtensionOverCapError(PolicyViolationError):
    """Raised when an extension would push past the session cap."""


class SelfBlockError(PolicyViolationError):
    """Raised when a participant tries to block themselves."""


class VoiceTokenError(CallmatchError):
    """Raised when the voice token issuer fails."""
