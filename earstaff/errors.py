"""Exception types raised by the staff editing engine."""


class StaffEditError(Exception):
    """Base class for recoverable staff editing failures."""


class DuplicateSessionError(StaffEditError, ValueError):
    """A drag was started for a pointer (or note) that already owns an active session."""

    def __init__(self, pointer_key: object, detail: str = "") -> None:
        self.pointer_key = pointer_key
        message = f"pointer {pointer_key!r} already has an active drag session"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class MissingCapabilityError(StaffEditError, TypeError):
    """A collaborator does not implement the interface an operation requires."""


class RenderError(StaffEditError, RuntimeError):
    """The rendering collaborator failed to produce a render pass."""
