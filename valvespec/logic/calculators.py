"""Auxiliary calculators: operating torque and SIL / PFDavg.

Both are simplified closed-form estimates, not engineering design tools.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Union

from ..config_loader import TorqueConstants
from .imex_code import parse_nps_to_inch
from .state import SILLevel

logger = logging.getLogger(__name__)

MIN_TORQUE_FACTOR = 0.9

# IEC 61508 low-demand bands: (level, lower bound inclusive, upper bound exclusive)
SIL_BANDS = [
    (SILLevel.SIL1, 0.01, 0.1),
    (SILLevel.SIL2, 0.001, 0.01),
    (SILLevel.SIL3, 0.0001, 0.001),
]
SIL_TIERS = {SILLevel.NA: 0, SILLevel.SIL1: 1, SILLevel.SIL2: 2, SILLevel.SIL3: 3}

DEFAULT_LAMBDA_DU = 5e-6      # Dangerous undetected failures per hour
DEFAULT_TEST_INTERVAL = 8760  # Hours (one year)
DEFAULT_MTTR = 8              # Hours
DEFAULT_BETA = 0.1            # Common cause factor


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


@dataclass
class TorqueResult:
    recommended: int
    min_torque: int
    max_torque: int
    coefficient: float
    formula: str
    unit: str = "Nm"

    def to_dict(self) -> dict:
        return {
            "recommended": self.recommended,
            "min_torque": self.min_torque,
            "max_torque": self.max_torque,
            "coefficient": self.coefficient,
            "formula": self.formula,
            "unit": self.unit,
        }


def calculate_torque(
    diameter: Union[str, float, int],
    pressure_class: Union[str, int],
    seat_material: Optional[str] = None,
    constants: Optional[TorqueConstants] = None,
) -> TorqueResult:
    """Estimate quarter-turn operating torque.

    T = coeff(seat) * D^exponent * (1 + pressure_factor * class)

    Args:
        diameter: NPS in inches, as a number or an NPS string ("1 1/2").
        pressure_class: ASME class, e.g. 600.
        seat_material: Seat code selecting the friction coefficient.
        constants: Pack constants; defaults apply when omitted.

    Raises:
        ValueError: If diameter or pressure class is missing or not positive.
    """
    constants = constants or TorqueConstants()

    if isinstance(diameter, str):
        inch = parse_nps_to_inch(diameter)
        size = float(inch) if inch is not None else None
    else:
        size = float(diameter) if diameter is not None else None
    if not size or size <= 0:
        raise ValueError(f"Invalid valve diameter: {diameter!r}")

    try:
        pressure = float(getattr(pressure_class, "value", pressure_class))
    except (TypeError, ValueError):
        raise ValueError(f"Invalid pressure class: {pressure_class!r}")
    if pressure <= 0:
        raise ValueError(f"Invalid pressure class: {pressure_class!r}")

    coeff = constants.coefficient_for(seat_material)
    torque = coeff * math.pow(size, constants.size_exponent) * (1 + constants.pressure_factor * pressure)

    return TorqueResult(
        # Whole Nm; bounds derive from the unrounded torque
        recommended=_round_half_up(torque),
        min_torque=_round_half_up(torque * MIN_TORQUE_FACTOR),
        max_torque=_round_half_up(torque * constants.safety_margin),
        coefficient=coeff,
        formula=f"T = μ × D^{constants.size_exponent} × (1 + {constants.pressure_factor} × P)",
    )


@dataclass
class SILResult:
    pfd_avg: float
    achieved: Optional[SILLevel]
    required: Optional[SILLevel]
    meets_required: bool
    risk_reduction_factor: float

    def to_dict(self) -> dict:
        return {
            "pfd_avg": self.pfd_avg,
            "achieved": self.achieved.value if self.achieved else None,
            "required": self.required.value if self.required else None,
            "meets_required": self.meets_required,
            "risk_reduction_factor": self.risk_reduction_factor if math.isfinite(self.risk_reduction_factor) else None,
        }


def achieved_sil(pfd_avg: float) -> Optional[SILLevel]:
    """SIL band for a PFDavg; below the SIL3 band still counts as SIL3."""
    if pfd_avg >= 0.1:
        return None
    if pfd_avg < 0.0001:
        return SILLevel.SIL3
    for level, lower, upper in SIL_BANDS:
        if lower <= pfd_avg < upper:
            return level
    return None


def calculate_sil(
    lambda_du: float = DEFAULT_LAMBDA_DU,
    test_interval: float = DEFAULT_TEST_INTERVAL,
    mttr: float = DEFAULT_MTTR,
    beta: float = DEFAULT_BETA,
    required: Optional[Union[SILLevel, str]] = None,
) -> SILResult:
    """PFDavg for a 1oo1 architecture and the SIL it achieves.

    PFDavg = λdu·TI/2 + β·λdu·TI + λdu·MTTR

    Raises:
        ValueError: If any input is negative.
    """
    for name, value in (("lambda_du", lambda_du), ("test_interval", test_interval), ("mttr", mttr), ("beta", beta)):
        if value < 0:
            raise ValueError(f"{name} must not be negative")

    if isinstance(required, str):
        required = SILLevel(required)

    pfd_avg = (lambda_du * test_interval) / 2 + beta * lambda_du * test_interval + lambda_du * mttr
    return sil_result_for(pfd_avg, required)


def sil_result_for(pfd_avg: float, required: Optional[SILLevel] = None) -> SILResult:
    """Classify an already computed PFDavg against a required level."""
    achieved = achieved_sil(pfd_avg)

    if required is None or required == SILLevel.NA:
        meets = True
    else:
        meets = achieved is not None and SIL_TIERS[achieved] >= SIL_TIERS[required]

    rrf = 1 / pfd_avg if pfd_avg > 0 else math.inf
    logger.debug(f"[SIL] PFDavg={pfd_avg:.2e} achieved={achieved} required={required}")
    return SILResult(pfd_avg, achieved, required, meets, rrf)
