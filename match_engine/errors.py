"""
Error taxonomy for the ranking engine.

Validation errors subclass ValueError and not-found errors subclass
LookupError so callers that only know the builtin hierarchy still catch
them. Policy outcomes (e.g. the heating daily cap) are not errors.
"""


class MatchEngineError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(MatchEngineError, ValueError):
    """Engine configuration is inconsistent (e.g. weights not summing to 1)."""


class InvalidSignal(MatchEngineError, ValueError):
    """Signal type is not a recognized SignalType, or the signal is malformed."""


class InvalidRequest(MatchEngineError, ValueError):
    """A request parameter is out of range or malformed."""


class UserNotFound(MatchEngineError, LookupError):
    """No user record exists for the given id."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id


class ProfileNotFound(MatchEngineError, LookupError):
    """No behavior profile has been computed for the given user."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Behavior profile not found: {user_id}")
        self.user_id = user_id


class StoreUnavailable(MatchEngineError):
    """A backing store could not be reached or failed mid-operation."""


class RequestCancelled(MatchEngineError):
    """The caller abandoned the request before it completed."""
