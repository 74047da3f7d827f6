"""Norm Resolver.

Maps a (valve type, service type) pair to the applicable standards, the
attribute domains of the primary construction standard and its materials
grouped by component role. Absence of data is always a rejection: no
construction standard, a missing pack or an inactive pack all produce an
invalid result, never a guessed one.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from ..catalog_store import CatalogStore
from ..config_loader import MaterialRecord, MaterialRole, Norm, NormType
from ..errors import NormPackUnavailableError
from .conditions import conditions_match, parse_condition
from .imex_code import parse_nps_to_inch
from .state import POLYMER_SEAT_MATERIALS, ValveConfiguration, is_polymer_seat

logger = logging.getLogger(__name__)

NACE_NORM = "NACE_MR0175_2015"
FIRE_TEST_NORM = "API_607_2016"
LOW_EMISSION_NORM = "ISO_15848_2015"
SIL_NORM = "IEC_61508_2010"
FLANGE_NORM = "ASME_B16.5"


def _code(value: Union[Enum, str, None]) -> Optional[str]:
    if isinstance(value, Enum):
        return value.value
    return value or None


def _in_domain(attribute: str, value: str, allowed: list[str]) -> bool:
    if value in allowed:
        return True
    # "8", "8.0" and "8\"" are the same size; "2.5" matches "2 1/2"
    if attribute == "diameter_nps":
        inch = parse_nps_to_inch(value)
        return inch is not None and any(parse_nps_to_inch(a) == inch for a in allowed)
    return False


def _empty_materials() -> dict[str, list[MaterialRecord]]:
    return {role.value: [] for role in MaterialRole}


@dataclass
class RejectedStandard:
    norm: str
    reason: str


@dataclass
class NormValidationResult:
    """Outcome of resolving norms for a valve/service combination."""
    is_valid: bool = False
    valve_type: Optional[str] = None
    service_type: Optional[str] = None
    applicable_standards: list[str] = field(default_factory=list)
    rejected_standards: list[RejectedStandard] = field(default_factory=list)
    construction_standards: list[dict] = field(default_factory=list)
    attribute_domains: dict[str, list[str]] = field(default_factory=dict)
    materials_by_role: dict[str, list[MaterialRecord]] = field(default_factory=_empty_materials)
    error: Optional[str] = None

    @property
    def primary_standard(self) -> Optional[str]:
        """First construction standard; the others are informational."""
        if not self.construction_standards:
            return None
        return self.construction_standards[0]["code"]

    @property
    def auto_selected_standard(self) -> Optional[str]:
        """The standard to select without asking, when there is exactly one."""
        if len(self.construction_standards) == 1:
            return self.construction_standards[0]["code"]
        return None

    @property
    def all_materials(self) -> list[MaterialRecord]:
        return [m for materials in self.materials_by_role.values() for m in materials]

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "valve_type": self.valve_type,
            "service_type": self.service_type,
            "applicable_standards": list(self.applicable_standards),
            "rejected_standards": [
                {"norm": r.norm, "reason": r.reason} for r in self.rejected_standards
            ],
            "construction_standards": list(self.construction_standards),
            "primary_standard": self.primary_standard,
            "auto_selected_standard": self.auto_selected_standard,
            "attribute_domains": self.attribute_domains,
            "materials_by_role": {
                role: [m.model_dump(mode="json") for m in materials]
                for role, materials in self.materials_by_role.items()
            },
            "error": self.error,
        }


@dataclass
class ConstraintViolation:
    field: str
    message: str
    severity: str = "BLOCK"
    source_norm: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "field": self.field,
            "message": self.message,
            "severity": self.severity,
            "source_norm": self.source_norm,
        }


@dataclass
class ConstraintCheckResult:
    """Outcome of applying a primary norm's constraints to a configuration."""
    errors: list[ConstraintViolation] = field(default_factory=list)
    warnings: list[ConstraintViolation] = field(default_factory=list)
    applicable_norms: list[str] = field(default_factory=list)
    blocked_options: dict[str, list[str]] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def add_norm(self, code: Optional[str]):
        if code and code not in self.applicable_norms:
            self.applicable_norms.append(code)

    def block_options(self, field_name: str, values: list[str]):
        blocked = self.blocked_options.setdefault(field_name, [])
        for value in values:
            if value not in blocked:
                blocked.append(value)

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "applicable_norms": list(self.applicable_norms),
            "blocked_options": self.blocked_options,
        }


@dataclass
class FireTestCheckResult:
    is_valid: bool
    message: str
    applicable_norms: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "message": self.message,
            "applicable_norms": list(self.applicable_norms),
        }


class NormResolver:
    """Resolves applicable standards and checks norm constraints.

    The store is injected; the resolver keeps no state of its own.
    """

    def __init__(self, store: CatalogStore):
        self.store = store

    def resolve(self, valve_type, service_type) -> NormValidationResult:
        valve = _code(valve_type)
        service = _code(service_type)
        if not valve or not service:
            return NormValidationResult(valve_type=valve, service_type=service)

        try:
            standards = self.store.get_standards(active=True)
        except NormPackUnavailableError as e:
            logger.error(f"[NORMS] Resolution for {valve}+{service} failed closed: {e}")
            return NormValidationResult(valve_type=valve, service_type=service, error=str(e))

        applicable: list[Norm] = []
        rejected: list[RejectedStandard] = []
        for norm in standards:
            if norm.applies_to_valve(valve) and norm.applies_to_service(service):
                applicable.append(norm)
            else:
                rejected.append(RejectedStandard(norm.code, f"not applicable for {valve}+{service}"))

        construction = [
            {"code": n.code, "title": n.title}
            for n in applicable if n.type == NormType.CONSTRUCTION
        ]

        if not construction:
            logger.warning(f"[NORMS] No construction standard for {valve}+{service}")
            return NormValidationResult(
                valve_type=valve,
                service_type=service,
                rejected_standards=rejected,
            )

        primary = construction[0]["code"]
        materials_by_role = _empty_materials()
        for material in self.store.get_material_compatibility(primary):
            materials_by_role[material.role.value].append(material)

        if len(construction) > 1:
            others = ", ".join(c["code"] for c in construction[1:])
            logger.info(f"[NORMS] {valve}+{service}: primary {primary}, informational {others}")
        else:
            logger.info(f"[NORMS] {valve}+{service}: {primary} auto-selected")

        return NormValidationResult(
            is_valid=True,
            valve_type=valve,
            service_type=service,
            applicable_standards=[n.code for n in applicable],
            rejected_standards=rejected,
            construction_standards=construction,
            attribute_domains=self.store.get_attribute_domains(primary),
            materials_by_role=materials_by_role,
        )

    def check_constraints(
        self,
        config: ValveConfiguration,
        primary_norm_code: Optional[str] = None,
    ) -> ConstraintCheckResult:
        """Apply the primary norm's domains and conditional constraints.

        Also applies the NACE material qualifications and the fire-test
        polymer seat block when those requirements are active.
        """
        result = ConstraintCheckResult()

        code = primary_norm_code or config.construction_standard
        if not code:
            code = self.resolve(config.valve_type, config.service_type).primary_standard

        try:
            norm = self.store.get_norm(code) if code else None
        except NormPackUnavailableError as e:
            logger.error(f"[NORMS] Constraint check failed closed: {e}")
            norm = None
        if norm is None:
            result.errors.append(ConstraintViolation(
                field="construction_standard",
                message="Primary norm not found in the catalog",
            ))
            return result

        result.add_norm(norm.code)

        # Attribute domains of the primary norm
        for attribute, allowed in norm.domains.items():
            if not config.has_value(attribute):
                continue
            value = str(config.get_attribute(attribute))
            if not _in_domain(attribute, value, allowed):
                result.errors.append(ConstraintViolation(
                    field=attribute,
                    message=f"{value} is outside the {norm.code} domain for {attribute}; allowed: {', '.join(allowed)}",
                    source_norm=norm.code,
                ))

        # Conditional constraints
        for constraint in norm.constraints:
            conditions = [parse_condition(k, v) for k, v in constraint.condition.items()]
            if not conditions_match(conditions, config):
                continue

            for field_name, blocked_values in constraint.block.items():
                result.block_options(field_name, blocked_values)
                current = config.get_attribute(field_name)
                if current is not None and str(current) in blocked_values:
                    self._record(result, field_name, constraint.message, constraint.severity, constraint.source_norm)

            for required in constraint.require:
                if not config.has_value(required):
                    self._record(result, required, constraint.message, constraint.severity, constraint.source_norm)

            result.add_norm(constraint.source_norm)

        if config.nace_required:
            nace = self.store.get_norm(NACE_NORM)
            if nace is not None:
                unqualified = [m for m, q in nace.material_qualifications.items() if not q.qualified]
                result.block_options("body_material", unqualified)
                if config.body_material in unqualified:
                    qualification = nace.material_qualifications[config.body_material]
                    result.errors.append(ConstraintViolation(
                        field="body_material",
                        message=f"Material {config.body_material} is not NACE qualified: {qualification.reason}",
                        source_norm=NACE_NORM,
                    ))
            result.add_norm(NACE_NORM)

        if config.fire_test_required:
            result.block_options("seat_material", sorted(POLYMER_SEAT_MATERIALS))
            if is_polymer_seat(config.seat_material):
                result.errors.append(ConstraintViolation(
                    field="seat_material",
                    message="Fire test does not allow polymer seats",
                    source_norm=FIRE_TEST_NORM,
                ))
            result.add_norm(FIRE_TEST_NORM)

        return result

    @staticmethod
    def _record(result: ConstraintCheckResult, field_name: str, message: str, severity: str, source: Optional[str]):
        violation = ConstraintViolation(field_name, message, severity, source)
        if severity == "BLOCK":
            result.errors.append(violation)
        else:
            result.warnings.append(violation)

    def check_fire_test_compatibility(
        self,
        valve_type,
        body_material: Optional[str],
        seat_material: Optional[str],
        pressure_class,
    ) -> FireTestCheckResult:
        """Look up the fire-test compatibility table; no data means invalid."""
        valve = _code(valve_type)
        try:
            entries = self.store.get_fire_test_compatibility(valve) if valve else []
        except NormPackUnavailableError as e:
            logger.error(f"[NORMS] Fire test lookup failed closed: {e}")
            entries = []

        if not entries:
            return FireTestCheckResult(False, "No fire test compatibility data for this valve type")

        try:
            rating = int(_code(pressure_class) or 0)
        except ValueError:
            rating = 0

        compatible = [
            e for e in entries
            if body_material in e.allowed_body_materials
            and seat_material in e.allowed_seat_materials
            and 0 < rating <= e.max_pressure_rating
        ]
        if not compatible:
            return FireTestCheckResult(
                False,
                f"Material combination not compatible with fire test. Check: body={body_material}, seat={seat_material}",
            )

        return FireTestCheckResult(
            True,
            "Combination compatible with fire test",
            [e.norm_code for e in compatible if e.norm_code],
        )


class ResolutionTracker:
    """Last-request-wins bookkeeping for norm resolution.

    Callers take a token with begin() before fetching and hand the result
    back with complete(). Results for a superseded request are discarded.
    """

    def __init__(self):
        self._sequence = 0
        self._latest: Optional[tuple[int, str, str]] = None
        self.result: Optional[NormValidationResult] = None

    def begin(self, valve_type, service_type) -> int:
        self._sequence += 1
        self._latest = (self._sequence, _code(valve_type) or "", _code(service_type) or "")
        return self._sequence

    def is_current(self, token: int) -> bool:
        return self._latest is not None and self._latest[0] == token

    def complete(self, token: int, result: NormValidationResult) -> bool:
        """Store the result if it belongs to the latest request."""
        if not self.is_current(token):
            logger.debug(f"[NORMS] Discarding stale resolution (token {token})")
            return False
        self.result = result
        return True
