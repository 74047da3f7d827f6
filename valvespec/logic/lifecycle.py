"""Specification draft records and status lifecycle.

INCOMPLETO and DRAFT are computed from the configuration itself by
build_draft_record; no transition leaves INCOMPLETO. Past DRAFT the
status only moves forward, except that a REJECTED specification can be
reopened as DRAFT. Submission passes through the publication gate.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Union

from ..config_loader import NormPack
from ..errors import InvalidStatusTransition, PublicationBlockedError
from .imex_code import build_imex_code
from .publication import PublicationResult
from .state import SpecStatus, ValveConfiguration

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    # Completing the missing fields is what turns INCOMPLETO into DRAFT
    SpecStatus.INCOMPLETO: set(),
    SpecStatus.DRAFT: {SpecStatus.SUBMITTED},
    SpecStatus.SUBMITTED: {SpecStatus.APPROVED, SpecStatus.REJECTED},
    SpecStatus.APPROVED: {SpecStatus.PUBLISHED, SpecStatus.REJECTED},
    SpecStatus.PUBLISHED: set(),
    SpecStatus.REJECTED: {SpecStatus.DRAFT},
}


@dataclass
class DraftRecord:
    status: SpecStatus
    missing_fields: list[str] = field(default_factory=list)
    imex_code: str = ""
    is_complete: bool = False

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "missing_fields": list(self.missing_fields),
            "imex_code": self.imex_code,
            "is_complete": self.is_complete,
        }


def build_draft_record(config: ValveConfiguration, pack: NormPack) -> DraftRecord:
    """Snapshot a configuration as a persisted draft."""
    missing = config.missing_fields()
    code = build_imex_code(config, pack)
    return DraftRecord(
        status=SpecStatus.DRAFT if not missing else SpecStatus.INCOMPLETO,
        missing_fields=missing,
        imex_code=code.value,
        is_complete=not missing,
    )


def transition_status(
    current: Union[SpecStatus, str],
    target: Union[SpecStatus, str],
    publication: Optional[PublicationResult] = None,
) -> SpecStatus:
    """Validate a status change and return the new status.

    Raises:
        InvalidStatusTransition: If the lifecycle does not allow the move,
            or a submission comes without a publication result.
        PublicationBlockedError: If a submission's publication gate is blocked.
    """
    current = SpecStatus(current)
    target = SpecStatus(target)

    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransition(current.value, target.value)

    if target == SpecStatus.SUBMITTED:
        if publication is None:
            raise InvalidStatusTransition(current.value, target.value, "publication validation required")
        if not publication.can_publish:
            raise PublicationBlockedError(publication.blocked_by)

    logger.info(f"[LIFECYCLE] {current.value} -> {target.value}")
    return target
