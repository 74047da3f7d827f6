"""Material Compatibility Filter.

Narrows the materials admitted by the primary norm to those that satisfy
the active special requirements (NACE, fire test, low emission) and, for
seats, to those compatible with the chosen obturator.

An empty candidate list blocks the role. The filter is never relaxed to
avoid an empty result.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..config_loader import MaterialRecord, MaterialRole
from .state import ValveConfiguration

logger = logging.getLogger(__name__)


@dataclass
class MaterialRequirements:
    nace_required: bool = False
    fire_test_required: bool = False
    low_emission_required: bool = False

    @classmethod
    def from_configuration(cls, config: ValveConfiguration) -> "MaterialRequirements":
        return cls(
            nace_required=config.nace_required,
            fire_test_required=config.fire_test_required,
            low_emission_required=config.low_fugitive_emission,
        )


@dataclass
class MaterialFilterResult:
    candidates: dict[str, list[MaterialRecord]] = field(default_factory=dict)
    blocked_roles: list[str] = field(default_factory=list)

    @property
    def is_blocked(self) -> bool:
        return bool(self.blocked_roles)

    def to_dict(self) -> dict:
        return {
            "candidates": {
                role: [m.model_dump(mode="json") for m in materials]
                for role, materials in self.candidates.items()
            },
            "blocked_roles": list(self.blocked_roles),
        }


def seat_compatible(seat: MaterialRecord, obturator_code: str, obturator: Optional[MaterialRecord]) -> bool:
    # Either side declaring compatibility is sufficient
    if obturator_code in seat.compatible_with:
        return True
    return obturator is not None and seat.code in obturator.compatible_with


def filter_candidates(
    role: MaterialRole,
    materials: list[MaterialRecord],
    requirements: MaterialRequirements,
    obturator_code: Optional[str] = None,
    obturators: Optional[list[MaterialRecord]] = None,
) -> list[MaterialRecord]:
    """Filter one role's materials by the active requirements.

    Args:
        role: Component role being filtered.
        materials: Materials for the role from the primary norm.
        requirements: Active special requirements.
        obturator_code: Chosen obturator, used only for the seat role.
        obturators: Obturator records, so the obturator's own
            compatible_with list can be consulted.
    """
    filtered = [m for m in materials if m.role == role]

    if requirements.nace_required:
        filtered = [m for m in filtered if m.nace_qualified]
    if requirements.fire_test_required:
        filtered = [m for m in filtered if m.fire_test_compatible]
    if requirements.low_emission_required:
        filtered = [m for m in filtered if m.low_emission_compatible]

    if role == MaterialRole.SEAT and obturator_code:
        obturator = next((o for o in obturators or [] if o.code == obturator_code), None)
        filtered = [s for s in filtered if seat_compatible(s, obturator_code, obturator)]

    return filtered


def filter_materials(
    materials: list[MaterialRecord],
    requirements: MaterialRequirements,
    obturator_code: Optional[str] = None,
    roles: Optional[list[MaterialRole]] = None,
) -> MaterialFilterResult:
    """Filter every role and report the roles left without candidates."""
    result = MaterialFilterResult()
    obturators = [m for m in materials if m.role == MaterialRole.OBTURATOR]

    for role in roles or list(MaterialRole):
        candidates = filter_candidates(role, materials, requirements, obturator_code, obturators)
        result.candidates[role.value] = candidates
        if not candidates:
            result.blocked_roles.append(role.value)

    if result.blocked_roles:
        logger.warning(f"[MATERIALS] No admissible candidates for: {', '.join(result.blocked_roles)}")

    return result
