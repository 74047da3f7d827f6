"""Valve Configuration State.

One explicit, typed configuration shared by every engine component:
norm resolver, material filter, rule engine, publication validator and
IMEX encoder all read the same ValveConfiguration snapshot.

The engine never mutates a configuration. Editors (UI, API clients) own it
and change it field by field.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Optional
from enum import Enum


class ValveType(str, Enum):
    """Valve families."""
    ESFERA = "ESFERA"        # Ball
    GLOBO = "GLOBO"          # Globe
    GAVETA = "GAVETA"        # Gate
    RETENCAO = "RETENCAO"    # Check
    BORBOLETA = "BORBOLETA"  # Butterfly
    CONTROLE = "CONTROLE"    # Control


class ServiceType(str, Enum):
    PIPELINE = "PIPELINE"
    PROCESS = "PROCESS"
    WELLHEAD = "WELLHEAD"
    GENERAL = "GENERAL"


class PressureClass(str, Enum):
    """ASME pressure classes."""
    CLASS_150 = "150"
    CLASS_300 = "300"
    CLASS_600 = "600"
    CLASS_800 = "800"
    CLASS_900 = "900"
    CLASS_1500 = "1500"
    CLASS_2500 = "2500"


class FlangeFace(str, Enum):
    RF = "RF"    # Raised Face
    RTJ = "RTJ"  # Ring Type Joint
    FF = "FF"    # Flat Face


class FireTestOption(str, Enum):
    USO_GERAL = "USO_GERAL"            # General use, no fire test
    TESTADA_A_FOGO = "TESTADA_A_FOGO"  # Fire tested (API 607)


class SILLevel(str, Enum):
    NA = "NA"
    SIL1 = "SIL1"
    SIL2 = "SIL2"
    SIL3 = "SIL3"


class SpecStatus(str, Enum):
    """Lifecycle status of a persisted specification draft."""
    INCOMPLETO = "INCOMPLETO"
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    PUBLISHED = "PUBLISHED"
    REJECTED = "REJECTED"


LINEAR_VALVE_TYPES = {ValveType.GLOBO, ValveType.GAVETA, ValveType.CONTROLE}
QUARTER_TURN_VALVE_TYPES = {ValveType.ESFERA, ValveType.BORBOLETA}

FLANGED_PREFIX = "FLANGEADO"
MANUAL_PREFIX = "MANUAL"

# Seats that never pass an API 607 fire test
POLYMER_SEAT_MATERIALS = {"PTFE", "NYLON", "PEEK"}

# Portuguese yes/no strings used by the catalog data and older clients
TRUE_STRINGS = {"SIM", "TRUE", "YES"}
FALSE_STRINGS = {"NÃO", "NAO", "FALSE", "NO"}


def parse_flag(value: Any) -> Optional[bool]:
    """Parse a boolean-ish value (bool, "Sim"/"Não", "true"/"false").

    Returns None when the value is not a recognizable flag.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        upper = value.strip().upper()
        if upper in TRUE_STRINGS:
            return True
        if upper in FALSE_STRINGS:
            return False
    return None


def is_polymer_seat(seat_material: Optional[str]) -> bool:
    if not seat_material:
        return False
    return seat_material.strip().upper().split("_")[0] in POLYMER_SEAT_MATERIALS


def _parse_fire_test(value: Any) -> Optional[FireTestOption]:
    if value is None or value == "":
        return None
    flag = parse_flag(value)
    if flag is not None:
        return FireTestOption.TESTADA_A_FOGO if flag else FireTestOption.USO_GERAL
    return FireTestOption(value)


def _format_nps(value: Any) -> Optional[str]:
    """NPS as text; whole numbers lose the float tail (8.0 -> "8")."""
    if value is None or value == "":
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _optional_enum(enum_cls, value):
    if value is None or value == "":
        return None
    return enum_cls(value)


@dataclass
class ValveConfiguration:
    """Working state of one specification draft."""

    # Basic data
    valve_type: Optional[ValveType] = None
    valve_model: Optional[str] = None       # Catalog model variant, e.g. ESFERA_FLOAT
    service_type: Optional[ServiceType] = None
    construction_standard: Optional[str] = None  # Primary norm code, e.g. API_6D
    diameter_nps: Optional[str] = None      # "8", "3/4", "1 1/2"
    pressure_class: Optional[PressureClass] = None
    end_type: Optional[str] = None          # Catalog code, e.g. FLANGEADO, BW
    flange_face: Optional[FlangeFace] = None

    # Actuation
    actuation_type: Optional[str] = None    # Catalog code, e.g. MANUAL, PNEUMATICO_SA
    torque: Optional[float] = None          # Nm (quarter-turn)
    thrust: Optional[float] = None          # N (linear)
    travel: Optional[float] = None          # mm (linear)
    stem_diameter: Optional[float] = None   # mm (linear)
    pitch: Optional[float] = None           # mm
    top_flange: Optional[str] = None        # ISO 5211 code, e.g. F10

    # Materials (catalog codes)
    body_material: Optional[str] = None
    obturator_material: Optional[str] = None
    seat_material: Optional[str] = None
    stem_material: Optional[str] = None

    # Special requirements
    fire_test: Optional[FireTestOption] = None
    low_fugitive_emission: bool = False
    sil_certification: Optional[SILLevel] = None
    nace_compliant: bool = False

    # Process context used by the fixed engineering checks
    fluid: Optional[str] = None
    operating_temperature_c: Optional[float] = None
    sour_service: bool = False

    observations: str = ""

    # Rule attributes that are not modelled as fields
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def is_flanged(self) -> bool:
        return bool(self.end_type) and self.end_type.upper().startswith(FLANGED_PREFIX)

    @property
    def end_type_face(self) -> Optional[str]:
        """Face named by the end type itself (FLANGEADO_RTJ -> "RTJ"); None for generic FLANGEADO."""
        if not self.is_flanged:
            return None
        face = self.end_type.strip().upper()[len(FLANGED_PREFIX):].lstrip("_")
        return face or None

    @property
    def fire_test_required(self) -> bool:
        return self.fire_test == FireTestOption.TESTADA_A_FOGO

    @property
    def nace_required(self) -> bool:
        return self.nace_compliant

    @property
    def sil_required(self) -> bool:
        return self.sil_certification is not None and self.sil_certification != SILLevel.NA

    @property
    def is_manual(self) -> bool:
        return bool(self.actuation_type) and self.actuation_type.upper().startswith(MANUAL_PREFIX)

    def get_attribute(self, name: str) -> Any:
        """Value of a field or free attribute, with enums unwrapped."""
        if name in _FIELD_NAMES and name != "attributes":
            value = getattr(self, name)
        else:
            value = self.attributes.get(name)
        if isinstance(value, Enum):
            return value.value
        return value

    def has_value(self, name: str) -> bool:
        value = self.get_attribute(name)
        if isinstance(value, str):
            return value.strip() != ""
        return value is not None

    def missing_actuator_parameters(self) -> list[str]:
        """Actuator parameters required by the valve family but not filled.

        Linear families need stem diameter, travel and thrust; quarter-turn
        families need torque and top flange. Manual or unset actuation
        requires nothing.
        """
        if self.valve_type is None or not self.actuation_type or self.is_manual:
            return []

        if self.valve_type in LINEAR_VALVE_TYPES:
            required = ["stem_diameter", "travel", "thrust"]
        elif self.valve_type in QUARTER_TURN_VALVE_TYPES:
            required = ["torque", "top_flange"]
        else:
            return []

        return [name for name in required if not self.has_value(name)]

    def missing_fields(self) -> list[str]:
        """Fields still empty for a complete (DRAFT) specification."""
        required = [
            "valve_type",
            "service_type",
            "diameter_nps",
            "pressure_class",
            "end_type",
            "body_material",
            "obturator_material",
            "seat_material",
            "stem_material",
            "actuation_type",
        ]
        missing = []
        for name in required:
            if not self.has_value(name):
                missing.append(name)
            if name == "end_type" and self.is_flanged and self.flange_face is None:
                missing.append("flange_face")
        missing.extend(self.missing_actuator_parameters())
        return missing

    def to_dict(self) -> dict:
        """Serialize for API responses and persistence."""
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, dict):
                value = dict(value)
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ValveConfiguration":
        """Deserialize from an API payload or a stored JSON blob.

        Raises:
            ValueError: If an enum field holds an unknown value.
        """
        config = cls()

        config.valve_type = _optional_enum(ValveType, data.get("valve_type"))
        config.valve_model = data.get("valve_model") or None
        config.service_type = _optional_enum(ServiceType, data.get("service_type"))
        config.construction_standard = data.get("construction_standard") or None
        config.diameter_nps = _format_nps(data.get("diameter_nps"))
        pressure = data.get("pressure_class")
        config.pressure_class = _optional_enum(PressureClass, str(pressure) if pressure is not None else None)
        config.end_type = data.get("end_type") or None
        config.flange_face = _optional_enum(FlangeFace, data.get("flange_face"))

        config.actuation_type = data.get("actuation_type") or None
        for name in ("torque", "thrust", "travel", "stem_diameter", "pitch", "operating_temperature_c"):
            value = data.get(name)
            setattr(config, name, float(value) if value not in (None, "") else None)
        config.top_flange = data.get("top_flange") or None

        config.body_material = data.get("body_material") or None
        config.obturator_material = data.get("obturator_material") or None
        config.seat_material = data.get("seat_material") or None
        config.stem_material = data.get("stem_material") or None

        config.fire_test = _parse_fire_test(data.get("fire_test"))
        config.low_fugitive_emission = bool(parse_flag(data.get("low_fugitive_emission", False)))
        config.sil_certification = _optional_enum(SILLevel, data.get("sil_certification"))
        config.nace_compliant = bool(parse_flag(data.get("nace_compliant", False)))

        config.fluid = data.get("fluid") or None
        config.sour_service = bool(parse_flag(data.get("sour_service", False)))
        config.observations = data.get("observations") or ""
        config.attributes = dict(data.get("attributes") or {})

        return config


_FIELD_NAMES = {f.name for f in fields(ValveConfiguration)}
