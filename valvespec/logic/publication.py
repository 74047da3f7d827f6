"""Fail-Closed Publication Validator.

Runs a fixed, ordered sequence of named checks. A specification may be
published only when no check is FAIL, PENDING or BLOCKED; no check can be
bypassed. The full itemized list is always returned so callers can show
exactly what to fix.

Check order:
    NORM_001         primary construction norm exists
    BASIC_001        diameter, pressure class and end type present
    FLANGE_FACE_001  flange face present (flanged ends only)
    MAT_001          body, obturator, seat and stem present; seat suits obturator
    NACE_001         body NACE qualified (NACE only)
    FIRE_001         seat not polymer (fire test only)
    EMIT_001         low emission (low emission only)
    SIL_001          SIL calculation meets level (SIL only)
    ACT_001          actuation type present
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..catalog_store import CatalogStore
from ..config_loader import CatalogStatus, MaterialRole, NormType
from ..errors import NormPackUnavailableError
from .calculators import SIL_TIERS, SILResult
from .health import check_system_health
from .material_filter import seat_compatible
from .norm_resolver import (
    FIRE_TEST_NORM,
    FLANGE_NORM,
    LOW_EMISSION_NORM,
    NACE_NORM,
    SIL_NORM,
    NormResolver,
)
from .state import ValveConfiguration, is_polymer_seat

logger = logging.getLogger(__name__)


class CheckStatus(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"
    WARNING = "WARNING"
    PENDING = "PENDING"
    BLOCKED = "BLOCKED"


BLOCKING_STATUSES = {CheckStatus.FAIL, CheckStatus.PENDING, CheckStatus.BLOCKED}

BASIC_FIELDS = ["diameter_nps", "pressure_class", "end_type"]
MATERIAL_FIELDS = ["body_material", "obturator_material", "seat_material", "stem_material"]


@dataclass
class PublicationCheck:
    id: str
    rule: str
    status: CheckStatus
    message: str
    source_norm: Optional[str] = None
    can_bypass: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rule": self.rule,
            "status": self.status.value,
            "message": self.message,
            "source_norm": self.source_norm,
            "can_bypass": self.can_bypass,
        }


@dataclass
class PublicationResult:
    checks: list[PublicationCheck] = field(default_factory=list)
    applicable_norms: list[str] = field(default_factory=list)

    @property
    def blocked_by(self) -> list[str]:
        return [c.id for c in self.checks if c.status in BLOCKING_STATUSES]

    @property
    def can_publish(self) -> bool:
        return bool(self.checks) and not self.blocked_by

    @property
    def coverage_percent(self) -> float:
        if not self.checks:
            return 0.0
        passed = sum(1 for c in self.checks if c.status == CheckStatus.PASS)
        return passed / len(self.checks) * 100

    def get_check(self, check_id: str) -> Optional[PublicationCheck]:
        return next((c for c in self.checks if c.id == check_id), None)

    def to_dict(self) -> dict:
        return {
            "can_publish": self.can_publish,
            "coverage_percent": self.coverage_percent,
            "checks": [c.to_dict() for c in self.checks],
            "blocked_by": self.blocked_by,
            "applicable_norms": list(self.applicable_norms),
        }


class PublicationValidator:
    """The single gate for the submit action."""

    def __init__(self, store: CatalogStore, resolver: Optional[NormResolver] = None):
        self.store = store
        self.resolver = resolver or NormResolver(store)

    def validate(self, config: ValveConfiguration, sil_result: Optional[SILResult] = None) -> PublicationResult:
        """Run every check in order.

        Args:
            config: Snapshot to validate; never modified.
            sil_result: PFDavg calculation for the SIL check. Without it a
                required SIL level stays PENDING.
        """
        result = PublicationResult()
        norms = result.applicable_norms

        def cite(code: Optional[str]):
            if code and code not in norms:
                norms.append(code)

        # 1. Primary norm
        primary_code = config.construction_standard
        if not primary_code:
            primary_code = self.resolver.resolve(config.valve_type, config.service_type).primary_standard
        try:
            primary = self.store.get_norm(primary_code)
        except NormPackUnavailableError as e:
            logger.error(f"[PUBLICATION] Norm pack unavailable: {e}")
            primary = None

        if primary is None or primary.type != NormType.CONSTRUCTION:
            result.checks.append(PublicationCheck(
                "NORM_001", "Primary construction norm", CheckStatus.FAIL,
                "Primary norm not found in the catalog",
            ))
        else:
            cite(primary.code)
            result.checks.append(PublicationCheck(
                "NORM_001", "Primary construction norm", CheckStatus.PASS,
                f"{primary.code} - {primary.title}", primary.code,
            ))

        # 2. Basic fields
        missing_basic = [name for name in BASIC_FIELDS if not config.has_value(name)]
        if missing_basic:
            result.checks.append(PublicationCheck(
                "BASIC_001", "Required basic fields", CheckStatus.FAIL,
                f"Missing fields: {', '.join(missing_basic)}",
            ))
        else:
            result.checks.append(PublicationCheck(
                "BASIC_001", "Required basic fields", CheckStatus.PASS,
                "All basic fields filled",
            ))

        # 3. Flange face, only evaluated for flanged ends
        if config.is_flanged:
            cite(FLANGE_NORM)
            if config.flange_face is None:
                result.checks.append(PublicationCheck(
                    "FLANGE_FACE_001", "Flange face required", CheckStatus.FAIL,
                    "Flanged end requires a flange face", FLANGE_NORM,
                ))
            elif config.end_type_face not in (None, config.flange_face.value):
                result.checks.append(PublicationCheck(
                    "FLANGE_FACE_001", "Flange face required", CheckStatus.FAIL,
                    f"Face {config.flange_face.value} contradicts end type {config.end_type}", FLANGE_NORM,
                ))
            else:
                result.checks.append(PublicationCheck(
                    "FLANGE_FACE_001", "Flange face required", CheckStatus.PASS,
                    f"Face {config.flange_face.value} selected", FLANGE_NORM,
                ))

        # 4. Materials
        missing_materials = [name for name in MATERIAL_FIELDS if not config.has_value(name)]
        if missing_materials:
            result.checks.append(PublicationCheck(
                "MAT_001", "Required materials", CheckStatus.FAIL,
                f"Missing materials: {', '.join(missing_materials)}",
            ))
        else:
            result.checks.append(self._check_seat_obturator(config, primary.code if primary else None))

        # 5. NACE
        if config.nace_required:
            cite(NACE_NORM)
            result.checks.append(self._check_nace(config, primary.code if primary else None))

        # 6. Fire test
        if config.fire_test_required:
            cite(FIRE_TEST_NORM)
            seat = config.seat_material
            if not seat:
                status, message = CheckStatus.FAIL, "No seat material selected for fire test"
            elif is_polymer_seat(seat):
                status, message = CheckStatus.FAIL, f"Seat {seat} is not allowed for fire test"
            else:
                status, message = CheckStatus.PASS, f"Seat {seat} compatible with fire test"
            result.checks.append(PublicationCheck(
                "FIRE_001", "Fire test compatibility", status, message, FIRE_TEST_NORM,
            ))

        # 7. Low emission
        if config.low_fugitive_emission:
            cite(LOW_EMISSION_NORM)
            # TODO: gate stem packing and body materials on ISO 15848 qualification data
            result.checks.append(PublicationCheck(
                "EMIT_001", "ISO 15848 requirements", CheckStatus.PASS,
                "Low fugitive emission requested (no material gating applied)", LOW_EMISSION_NORM,
            ))

        # 8. SIL
        if config.sil_required:
            cite(SIL_NORM)
            result.checks.append(self._check_sil(config, sil_result))

        # 9. Actuation
        if not config.has_value("actuation_type"):
            result.checks.append(PublicationCheck(
                "ACT_001", "Actuation type", CheckStatus.FAIL,
                "Actuation type not selected",
            ))
        else:
            result.checks.append(PublicationCheck(
                "ACT_001", "Actuation type", CheckStatus.PASS,
                f"Actuation {config.actuation_type}",
            ))

        logger.info(
            f"[PUBLICATION] can_publish={result.can_publish} coverage={result.coverage_percent:.0f}% "
            f"blocked_by={result.blocked_by}"
        )
        return result

    def _check_seat_obturator(self, config: ValveConfiguration, primary_code: Optional[str]) -> PublicationCheck:
        """All materials present; the seat must also suit the obturator when both are catalogued."""
        rule = "Required materials"
        try:
            records = self.store.get_material_compatibility(primary_code) if primary_code else []
        except NormPackUnavailableError:
            records = []

        seat = next((m for m in records if m.role == MaterialRole.SEAT and m.code == config.seat_material), None)
        obturator = next(
            (m for m in records if m.role == MaterialRole.OBTURATOR and m.code == config.obturator_material), None,
        )
        if seat is not None and obturator is not None and not seat_compatible(seat, obturator.code, obturator):
            return PublicationCheck(
                "MAT_001", rule, CheckStatus.FAIL,
                f"Seat {seat.code} not compatible with obturator {obturator.code}",
            )
        return PublicationCheck("MAT_001", rule, CheckStatus.PASS, "All materials selected")

    def _check_nace(self, config: ValveConfiguration, primary_code: Optional[str]) -> PublicationCheck:
        """Body qualification: NACE norm table first, then the primary norm's material record."""
        body = config.body_material
        rule = "Body NACE qualification"
        if not body:
            return PublicationCheck("NACE_001", rule, CheckStatus.FAIL, "No body material selected", NACE_NORM)

        try:
            nace = self.store.get_norm(NACE_NORM)
            records = self.store.get_material_compatibility(primary_code) if primary_code else []
        except NormPackUnavailableError:
            nace, records = None, []

        qualification = nace.material_qualifications.get(body) if nace else None
        if qualification is not None:
            if qualification.qualified:
                hardness = f" (max {qualification.max_hardness})" if qualification.max_hardness else ""
                return PublicationCheck("NACE_001", rule, CheckStatus.PASS, f"Material {body} qualified{hardness}", NACE_NORM)
            return PublicationCheck(
                "NACE_001", rule, CheckStatus.FAIL,
                f"Material {body} not NACE qualified: {qualification.reason or 'check the norm'}", NACE_NORM,
            )

        record = next((m for m in records if m.role == MaterialRole.BODY and m.code == body), None)
        if record is not None and record.nace_qualified:
            return PublicationCheck("NACE_001", rule, CheckStatus.PASS, f"Material {body} qualified by {primary_code}", NACE_NORM)
        if record is not None:
            return PublicationCheck("NACE_001", rule, CheckStatus.FAIL, f"Material {body} not NACE qualified", NACE_NORM)

        return PublicationCheck(
            "NACE_001", rule, CheckStatus.FAIL,
            f"No NACE qualification data for material {body}", NACE_NORM,
        )

    @staticmethod
    def _check_sil(config: ValveConfiguration, sil_result: Optional[SILResult]) -> PublicationCheck:
        level = config.sil_certification.value
        rule = f"{level} requirements"
        if sil_result is None:
            return PublicationCheck("SIL_001", rule, CheckStatus.PENDING, "PFDavg calculation required", SIL_NORM)

        achieved = sil_result.achieved.value if sil_result.achieved else "none"
        meets = (
            sil_result.achieved is not None
            and SIL_TIERS[sil_result.achieved] >= SIL_TIERS[config.sil_certification]
        )
        if meets:
            return PublicationCheck(
                "SIL_001", rule, CheckStatus.PASS,
                f"PFDavg {sil_result.pfd_avg:.2e} achieves {achieved}", SIL_NORM,
            )
        return PublicationCheck(
            "SIL_001", rule, CheckStatus.FAIL,
            f"PFDavg {sil_result.pfd_avg:.2e} achieves {achieved}, {level} required", SIL_NORM,
        )


# =============================================================================
# FINAL PUBLICATION
# =============================================================================

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


@dataclass
class FinalizationResult:
    success: bool
    spec_code: Optional[str] = None
    errors: list[str] = field(default_factory=list)
    publication: Optional[PublicationResult] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "spec_code": self.spec_code,
            "errors": list(self.errors),
            "publication": self.publication.to_dict() if self.publication else None,
        }


def finalize_publication(
    config: ValveConfiguration,
    validator: PublicationValidator,
    sil_result: Optional[SILResult] = None,
    timestamp_ms: Optional[int] = None,
) -> FinalizationResult:
    """Final gate at publish time: re-validate, require an active healthy pack, issue the spec code."""
    publication = validator.validate(config, sil_result)
    if not publication.can_publish:
        errors = ["Specification did not pass validation"]
        for check_id in publication.blocked_by:
            check = publication.get_check(check_id)
            errors.append(check.message if check else check_id)
        return FinalizationResult(False, errors=errors, publication=publication)

    store = validator.store
    health = check_system_health(store)
    if not health.is_healthy:
        return FinalizationResult(False, errors=["Norm system is not healthy"] + health.issues, publication=publication)
    if store.pack.status != CatalogStatus.ACTIVE:
        return FinalizationResult(False, errors=["Norm system is not active"], publication=publication)
    # An explicit construction_standard can pass NORM_001 without a valve type
    if config.valve_type is None:
        return FinalizationResult(False, errors=["Valve type not selected"], publication=publication)

    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    spec_code = f"IMEX-{config.valve_type.value}-{to_base36(timestamp_ms)}"
    logger.info(f"[PUBLICATION] Issued {spec_code}")
    return FinalizationResult(True, spec_code=spec_code, publication=publication)
