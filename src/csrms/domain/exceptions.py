"""
Domain exceptions - Semantic error types for the workflow engine.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.
Each request surfaces exactly one of these to the caller.
"""


class CsrmsError(Exception):
    """Base class for domain errors."""

    pass


class ValidationError(CsrmsError):
    """Malformed input. No state was changed."""

    pass


class NotFound(CsrmsError):
    """Referenced entity does not exist (or is not visible to the caller)."""

    pass


class Conflict(CsrmsError):
    """Operation is not applicable to the entity's current state."""

    pass


class EmailAlreadyRegistered(Conflict):
    """An active account already uses this email address."""

    pass


class InvalidTransition(CsrmsError):
    """The transition guard rejected the requested status edge."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Invalid transition {current} -> {target}")
        self.current = current
        self.target = target


class InvalidCredential(CsrmsError):
    """Wrong or expired one-time code, or wrong password."""

    pass


class Unauthorized(CsrmsError):
    """Caller identity could not be established."""

    pass


class Forbidden(CsrmsError):
    """Caller identity is known but lacks the required role or profile."""

    pass


class DependencyFailure(CsrmsError):
    """The store or the mail provider could not be reached."""

    pass
