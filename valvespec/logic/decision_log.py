"""Decision audit trail.

Records why the engine arrived at a norm, material, test requirement,
calculation or validation outcome, so a published specification can be
traced back to the rules that shaped it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class DecisionType(str, Enum):
    NORM_SELECTION = "NORM_SELECTION"
    MATERIAL_CHOICE = "MATERIAL_CHOICE"
    TEST_REQUIREMENT = "TEST_REQUIREMENT"
    CALCULATION = "CALCULATION"
    VALIDATION = "VALIDATION"


@dataclass
class DecisionEntry:
    decision_type: DecisionType
    decision: str
    reason: str
    source_norm: Optional[str] = None
    spec_code: Optional[str] = None
    details: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "decision_type": self.decision_type.value,
            "decision": self.decision,
            "reason": self.reason,
            "source_norm": self.source_norm,
            "spec_code": self.spec_code,
            "details": dict(self.details),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DecisionEntry":
        created = data.get("created_at")
        return cls(
            decision_type=DecisionType(data["decision_type"]),
            decision=data.get("decision", ""),
            reason=data.get("reason", ""),
            source_norm=data.get("source_norm"),
            spec_code=data.get("spec_code"),
            details=dict(data.get("details") or {}),
            created_at=datetime.fromisoformat(created) if created else datetime.now(timezone.utc),
        )


class DecisionLog:
    """Append-only, in-memory list of decisions."""

    def __init__(self, max_entries: int = 1000):
        self.max_entries = max_entries
        self._entries: list[DecisionEntry] = []

    def record(
        self,
        decision_type: DecisionType,
        decision: str,
        reason: str,
        source_norm: Optional[str] = None,
        spec_code: Optional[str] = None,
        **details,
    ) -> DecisionEntry:
        entry = DecisionEntry(
            decision_type=DecisionType(decision_type),
            decision=decision,
            reason=reason,
            source_norm=source_norm,
            spec_code=spec_code,
            details=details,
        )
        self._entries.append(entry)
        # Oldest entries drop first
        if len(self._entries) > self.max_entries:
            del self._entries[: len(self._entries) - self.max_entries]
        logger.debug(f"[DECISION] {entry.decision_type.value}: {decision} ({reason})")
        return entry

    def entries(
        self,
        decision_type: Optional[DecisionType] = None,
        spec_code: Optional[str] = None,
    ) -> list[DecisionEntry]:
        result = self._entries
        if decision_type is not None:
            result = [e for e in result if e.decision_type == decision_type]
        if spec_code is not None:
            result = [e for e in result if e.spec_code == spec_code]
        return list(result)

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def to_dict(self) -> dict:
        return {"entries": [e.to_dict() for e in self._entries]}
