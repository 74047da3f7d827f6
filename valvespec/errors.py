"""Exception types raised by the valve specification engine.

Field-level problems and publication blockers are returned as data
(errors/warnings maps, PublicationCheck lists). Exceptions are reserved
for conditions where the caller cannot continue.
"""

from typing import Optional


class ValveSpecError(Exception):
    """Base class for all valvespec errors."""


class NormPackUnavailableError(ValveSpecError):
    """Reference data (norm pack) could not be loaded."""

    def __init__(self, message: str, pack_id: Optional[str] = None):
        super().__init__(message)
        self.pack_id = pack_id


class InvalidStatusTransition(ValveSpecError):
    """A draft status change that the lifecycle does not allow."""

    def __init__(self, current: str, target: str, reason: str = ""):
        message = f"Cannot move specification from {current} to {target}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.current = current
        self.target = target
        self.reason = reason


class SystemBlockedError(ValveSpecError):
    """The rule catalog is unhealthy; new configurations must not be created."""

    def __init__(self, issues: list[str]):
        super().__init__("System blocked: " + "; ".join(issues))
        self.issues = issues


class PublicationBlockedError(ValveSpecError):
    """Submission attempted while the publication gate reports blockers."""

    def __init__(self, blocked_by: list[str]):
        super().__init__("Publication blocked by: " + ", ".join(blocked_by))
        self.blocked_by = blocked_by
