"""IMEX Code Builder.

Generates the canonical IMEX product code from a valve configuration:

    MODEL.SIZECLASS.CONNECTION.BODY.TRIM.ACTUATION-SUFFIXES(OBSERVATIONS)

e.g. TRUF.0806.FRF.WCB.PT.0L0000-NEW

The builder is a pure function over (configuration, catalog). It never
raises for incomplete or unknown input: unresolved positions are shown as
"???" and material codes that could only be guessed are tagged APPROXIMATE.
"""

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction
from typing import Optional

from ..config_loader import CatalogItem, NormPack
from .state import ValveConfiguration

PLACEHOLDER = "???"
DEFAULT_SUFFIX = "NEW"
SEGMENT_COUNT = 6

# Pressure class -> single character
PRESSURE_CLASS_CODES = {
    "150": "1",
    "300": "3",
    "600": "6",
    "800": "8",
    "900": "A",
    "1500": "B",
    "2500": "Y",
}

# Human-readable names reported in BuildResult.missing
MISSING_VALVE_TYPE = "valve type"
MISSING_DIAMETER = "diameter NPS"
MISSING_PRESSURE_CLASS = "pressure class"
MISSING_END_CONNECTION = "end connection"
MISSING_BODY_MATERIAL = "body material"
MISSING_SEAT_MATERIAL = "seat material"
MISSING_ACTUATION = "actuation type"

_DECIMAL_RE = re.compile(r"^\d+(\.\d*)?$")
_MIXED_RE = re.compile(r"^(\d+)\s+(\d+)/(\d+)$")
_FRACTION_RE = re.compile(r"^(\d+)/(\d+)$")


class CodeConfidence(str, Enum):
    EXACT = "EXACT"              # Catalog or legacy table match
    APPROXIMATE = "APPROXIMATE"  # Partial match or truncation fallback


@dataclass
class MaterialCodeMatch:
    code: str
    confidence: CodeConfidence


@dataclass
class DescriptionSegment:
    key: str
    label: str
    value: str
    source: Optional[str] = None
    confidence: CodeConfidence = CodeConfidence.EXACT

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "label": self.label,
            "value": self.value,
            "source": self.source,
            "confidence": self.confidence.value,
        }


@dataclass
class BuildResult:
    value: str
    segments: list[DescriptionSegment] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.missing

    @property
    def provisional(self) -> bool:
        """True when any segment was derived by a fallback guess."""
        return any(s.confidence == CodeConfidence.APPROXIMATE for s in self.segments)

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "segments": [s.to_dict() for s in self.segments],
            "missing": list(self.missing),
            "is_complete": self.is_complete,
            "provisional": self.provisional,
        }


# =============================================================================
# SIZE / CLASS ENCODING
# =============================================================================

def parse_nps_to_inch(nps: Optional[str]) -> Optional[Fraction]:
    """Parse an NPS designation to an exact inch value.

    Accepts "2", "2.5", "3/4" and "1 1/2" (a trailing inch mark is ignored).
    Returns None for empty or unparseable input.
    """
    if nps is None:
        return None
    cleaned = str(nps).strip().rstrip('"').strip()
    if not cleaned:
        return None

    if _DECIMAL_RE.match(cleaned):
        return Fraction(cleaned)

    mixed = _MIXED_RE.match(cleaned)
    if mixed:
        whole, num, den = (int(g) for g in mixed.groups())
        if den == 0:
            return None
        return whole + Fraction(num, den)

    fraction = _FRACTION_RE.match(cleaned)
    if fraction:
        num, den = (int(g) for g in fraction.groups())
        if den == 0:
            return None
        return Fraction(num, den)

    return None


def encode_size_class(
    nps: Optional[str],
    pressure_class: Optional[str],
    class_codes: Optional[dict[str, str]] = None,
) -> Optional[str]:
    """Encode NPS and pressure class as NNNX.

    NNN is the NPS times ten, rounded half up and zero padded to three
    digits; X is the pressure class character.

    >>> encode_size_class("1 1/2", "150")
    '0151'
    """
    inch = parse_nps_to_inch(nps)
    if inch is None or not pressure_class:
        return None

    codes = class_codes or PRESSURE_CLASS_CODES
    class_char = codes.get(str(pressure_class))
    if not class_char:
        return None

    size_code = math.floor(inch * 10 + Fraction(1, 2))
    return f"{size_code:03d}{class_char}"


# =============================================================================
# MATERIAL CODE EXTRACTION
# =============================================================================

def extract_material_code(
    material: Optional[str],
    catalog: list[CatalogItem],
    legacy_map: Optional[dict[str, str]] = None,
) -> Optional[MaterialCodeMatch]:
    """Resolve a material selection to its IMEX code.

    Lookup order: catalog (code or IMEX code), legacy table, partial
    case-insensitive match, then the first three characters of the raw
    value. Only the first two are EXACT.
    """
    if material is None or not material.strip():
        return None
    material = material.strip()
    legacy_map = legacy_map or {}

    for item in catalog:
        if item.code == material or item.imex_code == material:
            return MaterialCodeMatch(item.imex_code, CodeConfidence.EXACT)

    if material in legacy_map:
        return MaterialCodeMatch(legacy_map[material], CodeConfidence.EXACT)

    upper = material.upper()
    candidates = [(item.code, item.imex_code) for item in catalog]
    candidates += [(item.label, item.imex_code) for item in catalog if item.label]
    candidates += list(legacy_map.items())
    for key, code in candidates:
        key_upper = key.upper()
        if key_upper in upper or upper in key_upper:
            return MaterialCodeMatch(code, CodeConfidence.APPROXIMATE)

    fallback = re.sub(r"\s", "", material).upper()[:3]
    return MaterialCodeMatch(fallback, CodeConfidence.APPROXIMATE)


# =============================================================================
# SUFFIXES
# =============================================================================

def build_suffixes(config: ValveConfiguration) -> str:
    """Special requirement suffixes in fixed order: FS, LFE, SILn, NACE."""
    suffixes = []

    if config.fire_test_required:
        suffixes.append("FS")

    if config.low_fugitive_emission:
        suffixes.append("LFE")

    if config.sil_required:
        suffixes.append(config.sil_certification.value)

    if config.nace_compliant:
        suffixes.append("NACE")

    if not suffixes:
        suffixes.append(DEFAULT_SUFFIX)

    return "-".join(suffixes)


# =============================================================================
# MAIN BUILDER
# =============================================================================

def _resolve_connection(config: ValveConfiguration, pack: NormPack) -> Optional[tuple[CatalogItem, str]]:
    if not config.end_type:
        return None

    # Generic FLANGEADO takes its code from the face; FLANGEADO_RF etc. already name one
    if config.end_type.upper() == "FLANGEADO" and config.flange_face is not None:
        face_code = f"FLANGEADO_{config.flange_face.value}"
        item = pack.find_catalog_item("end_connections", face_code)
        if item is not None:
            return item, f"{config.end_type} / {config.flange_face.value}"

    item = pack.find_catalog_item("end_connections", config.end_type)
    if item is None:
        return None
    return item, config.end_type


def build_imex_code(config: ValveConfiguration, pack: NormPack) -> BuildResult:
    """Build the IMEX code for a configuration snapshot.

    Always returns six dot-separated positions followed by the suffix;
    unresolved positions are "???".
    """
    positions: list[Optional[str]] = [None] * SEGMENT_COUNT
    segments: list[DescriptionSegment] = []
    missing: list[str] = []

    # 1. Model
    model_key = config.valve_model or (config.valve_type.value if config.valve_type else None)
    model = pack.find_catalog_item("valve_models", model_key)
    if model is not None:
        positions[0] = model.imex_code
        segments.append(DescriptionSegment("model", "Model", model.imex_code, model_key))
    else:
        missing.append(MISSING_VALVE_TYPE)

    # 2. Size / class
    class_value = config.pressure_class.value if config.pressure_class else None
    class_codes = {i.code: i.imex_code for i in pack.get_catalog("pressure_classes")}
    size_class = encode_size_class(config.diameter_nps, class_value, class_codes or None)
    if size_class is not None:
        positions[1] = size_class
        segments.append(DescriptionSegment(
            "size_class", "Diameter/Class", size_class, f'{config.diameter_nps}" #{class_value}'
        ))
    else:
        if parse_nps_to_inch(config.diameter_nps) is None:
            missing.append(MISSING_DIAMETER)
        if not class_value or class_value not in (class_codes or PRESSURE_CLASS_CODES):
            missing.append(MISSING_PRESSURE_CLASS)

    # 3. Connection
    connection = _resolve_connection(config, pack)
    if connection is not None:
        item, source = connection
        positions[2] = item.imex_code
        segments.append(DescriptionSegment("connection", "Connection", item.imex_code, source))
    else:
        missing.append(MISSING_END_CONNECTION)

    # 4. Body
    body = extract_material_code(
        config.body_material,
        pack.get_catalog("body_materials"),
        pack.legacy_material_codes.get("body"),
    )
    if body is not None:
        positions[3] = body.code
        segments.append(DescriptionSegment("body", "Body", body.code, config.body_material, body.confidence))
    else:
        missing.append(MISSING_BODY_MATERIAL)

    # 5. Trim (seat)
    trim = extract_material_code(
        config.seat_material,
        pack.get_catalog("seat_materials"),
        pack.legacy_material_codes.get("seat"),
    )
    if trim is not None:
        positions[4] = trim.code
        segments.append(DescriptionSegment("trim", "Trim", trim.code, config.seat_material, trim.confidence))
    else:
        missing.append(MISSING_SEAT_MATERIAL)

    # 6. Actuation
    actuation = pack.find_catalog_item("actuation_codes", config.actuation_type)
    if actuation is not None:
        positions[5] = actuation.imex_code
        segments.append(DescriptionSegment("actuation", "Actuation", actuation.imex_code, config.actuation_type))
    else:
        missing.append(MISSING_ACTUATION)

    suffixes = build_suffixes(config)
    segments.append(DescriptionSegment("suffixes", "Suffixes", suffixes, "special requirements"))

    value = ".".join(p if p else PLACEHOLDER for p in positions) + f"-{suffixes}"
    if config.observations and config.observations.strip():
        value += f"({config.observations.strip()})"

    return BuildResult(value=value, segments=segments, missing=missing)
