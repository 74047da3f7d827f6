"""Norm Pack Loader for the Valve Specification Engine.

All reference data (catalog codes, standards, material compatibility,
field rules, calculation constants) is externalized to YAML norm packs
under norm_packs/<pack_id>/config.yaml and validated into pydantic models.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class NormType(str, Enum):
    CONSTRUCTION = "CONSTRUCTION"
    PERFORMANCE = "PERFORMANCE"
    MATERIAL = "MATERIAL"
    INTERFACE = "INTERFACE"
    SAFETY = "SAFETY"


class MaterialRole(str, Enum):
    """Component a material is used for."""
    BODY = "body"
    OBTURATOR = "obturator"
    SEAT = "seat"
    STEM = "stem"


class CatalogStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    DEPRECATED = "DEPRECATED"


CATALOG_CATEGORIES = [
    "valve_models",
    "end_connections",
    "body_materials",
    "trim_materials",
    "seat_materials",
    "stem_materials",
    "actuation_codes",
    "suffixes",
    "pressure_classes",
    "diameters",
    "construction_standards",
    "flange_faces",
]

WILDCARD = "*"


# =============================================================================
# PYDANTIC MODELS FOR NORM PACK VALIDATION
# =============================================================================

class CatalogItem(BaseModel):
    """A (code, imex_code, label) triple from one catalog category."""
    code: str
    imex_code: str
    label: str = ""


class NormConstraint(BaseModel):
    """Conditional rule attached to a norm.

    When every field in `condition` matches the configuration, the values in
    `block` become forbidden for their field and the fields in `require`
    become mandatory.
    """
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    condition: dict[str, Any] = Field(default_factory=dict, alias="if")
    block: dict[str, list[str]] = Field(default_factory=dict)
    require: list[str] = Field(default_factory=list)
    severity: str = "BLOCK"  # BLOCK, WARN, INFO
    message: str = ""
    source_norm: Optional[str] = None


class MaterialQualification(BaseModel):
    """Qualification of one material under a material norm (e.g. NACE)."""
    qualified: bool
    max_hardness: Optional[str] = None
    min_temp: Optional[str] = None
    reason: str = ""


class Norm(BaseModel):
    """A standard: where it applies and what it constrains."""
    code: str
    title: str = ""
    type: NormType
    valve_types: list[str] = Field(default_factory=list)
    service_types: list[str] = Field(default_factory=list)
    precedence: int = 99
    domains: dict[str, list[str]] = Field(default_factory=dict)
    material_qualifications: dict[str, MaterialQualification] = Field(default_factory=dict)
    constraints: list[NormConstraint] = Field(default_factory=list)

    def applies_to_valve(self, valve_type: str) -> bool:
        return WILDCARD in self.valve_types or valve_type in self.valve_types

    def applies_to_service(self, service_type: str) -> bool:
        return WILDCARD in self.service_types or service_type in self.service_types


class MaterialRecord(BaseModel):
    """Role-tagged material admitted by a construction standard."""
    code: str
    name: str = ""
    role: MaterialRole
    nace_qualified: bool = False
    nace_hardness_max: Optional[float] = None
    nace_temperature_min: Optional[float] = None
    fire_test_compatible: bool = False
    low_emission_compatible: bool = False
    compatible_with: list[str] = Field(default_factory=list)


class FireTestCompatibility(BaseModel):
    """Fire-test admissible materials for one valve type."""
    valve_type: str
    allowed_body_materials: list[str] = Field(default_factory=list)
    allowed_seat_materials: list[str] = Field(default_factory=list)
    max_pressure_rating: int = 9999
    norm_code: str = ""


class FieldRuleSpec(BaseModel):
    """Declarative field/value rule as stored in the pack."""
    id: str
    valve_type: Optional[str] = None
    if_attribute: str
    if_value: Any
    then_attribute: str
    action: str  # show, hide, enable, block, require, suggest, validate
    allowed_values: str = ""  # ';' separated
    suggested_value: Optional[str] = None
    error_message: str = ""
    warning_message: str = ""
    priority: int = 0

    def allowed_list(self) -> list[str]:
        """Split the ';' separated allowed values."""
        return [v.strip() for v in self.allowed_values.split(";") if v.strip()]


class ServiceSuggestion(BaseModel):
    """Default value suggested for a field under a service type."""
    service: str
    attribute: str
    value: str
    message: str = ""
    priority: int = 0


class RequiredAttribute(BaseModel):
    """Attribute that must be filled; optionally only for some valve types."""
    attribute: str
    name: str = ""
    applies_to: list[str] = Field(default_factory=list)


class TorqueConstants(BaseModel):
    """Constants for the simplified torque estimate."""
    default_coefficient: float = 0.15
    pressure_factor: float = 0.008
    size_exponent: float = 2.5
    safety_margin: float = 1.15
    coefficients: dict[str, float] = Field(default_factory=dict)

    def coefficient_for(self, seat_material: Optional[str]) -> float:
        if not seat_material:
            return self.default_coefficient
        return self.coefficients.get(seat_material.upper(), self.default_coefficient)


class CatalogVersion(BaseModel):
    version: str
    status: CatalogStatus


class SystemRequirements(BaseModel):
    """Minimum contents for the rule catalog to be considered healthy."""
    min_norms_for_operation: int = 5
    required_domain_completeness: int = 100


# =============================================================================
# MAIN NORM PACK CONTAINER
# =============================================================================

@dataclass
class NormPack:
    """Complete norm pack container."""

    # Pack metadata
    pack_id: str = ""
    name: str = ""
    company: str = ""
    description: str = ""
    version: str = "1.0"
    status: CatalogStatus = CatalogStatus.DRAFT
    source_path: str = ""

    catalog_versions: list[CatalogVersion] = field(default_factory=list)
    system_requirements: SystemRequirements = field(default_factory=SystemRequirements)

    # Code catalogs, keyed by category
    catalog: dict[str, list[CatalogItem]] = field(default_factory=dict)
    legacy_material_codes: dict[str, dict[str, str]] = field(default_factory=dict)

    # Standards in catalog order (first applicable construction norm is primary)
    standards: list[Norm] = field(default_factory=list)
    material_compatibility: dict[str, list[MaterialRecord]] = field(default_factory=dict)
    fire_test_compatibility: list[FireTestCompatibility] = field(default_factory=list)

    # Field rules
    required_attributes: list[RequiredAttribute] = field(default_factory=list)
    rules: list[FieldRuleSpec] = field(default_factory=list)
    service_suggestions: list[ServiceSuggestion] = field(default_factory=list)

    torque: TorqueConstants = field(default_factory=TorqueConstants)

    def get_norm(self, code: Optional[str]) -> Optional[Norm]:
        if not code:
            return None
        for norm in self.standards:
            if norm.code == code:
                return norm
        return None

    def get_catalog(self, category: str) -> list[CatalogItem]:
        return self.catalog.get(category, [])

    def find_catalog_item(self, category: str, value: Optional[str]) -> Optional[CatalogItem]:
        """Find an item by internal code, falling back to its IMEX code."""
        if not value:
            return None
        items = self.get_catalog(category)
        for item in items:
            if item.code == value:
                return item
        for item in items:
            if item.imex_code == value:
                return item
        return None


# =============================================================================
# NORM PACK LOADER
# =============================================================================

# Default pack from environment variable or fallback
DEFAULT_PACK = os.environ.get("NORM_PACK_ID", "imex")

_PACKAGE_DIR = Path(__file__).parent
_PACKS_DIR = _PACKAGE_DIR / "norm_packs"


def _resolve_pack_path(pack_id: str) -> Path:
    """Resolve config file path for a norm pack."""
    return _PACKS_DIR / pack_id / "config.yaml"


def get_available_packs() -> list[dict]:
    """Get list of available norm packs discovered under norm_packs/."""
    packs = []
    if not _PACKS_DIR.exists():
        return packs

    for pack_dir in sorted(_PACKS_DIR.iterdir()):
        config_path = pack_dir / "config.yaml"
        if pack_dir.is_dir() and config_path.exists():
            with open(config_path, 'r', encoding='utf-8') as f:
                raw = yaml.safe_load(f) or {}
            meta = raw.get("pack", {})
            packs.append({
                "id": pack_dir.name,
                "name": meta.get("name", pack_dir.name),
                "company": meta.get("company", "Unknown"),
                "version": meta.get("version", "1.0"),
                "status": meta.get("status", CatalogStatus.DRAFT.value),
                "config_file": str(config_path)
            })

    return packs


def load_norm_pack(config_path: Optional[str] = None, pack_id: Optional[str] = None) -> NormPack:
    """Load and validate a norm pack from YAML.

    Args:
        config_path: Path to config file. If None, NORM_PACK_PATH is used,
            then pack_id.
        pack_id: Pack identifier. If None, uses DEFAULT_PACK.

    Returns:
        Validated NormPack object

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        pydantic.ValidationError: If the file content is malformed.
    """
    if config_path is None:
        config_path = os.environ.get("NORM_PACK_PATH") or None
    if config_path is None:
        if pack_id is None:
            pack_id = DEFAULT_PACK
        config_path = _resolve_pack_path(pack_id)

    logger.info(f"[CONFIG] Loading norm pack from {config_path}")
    with open(config_path, 'r', encoding='utf-8') as f:
        raw = yaml.safe_load(f) or {}

    pack = NormPack(source_path=str(config_path))

    # Pack metadata
    meta = raw.get("pack", {})
    pack.pack_id = meta.get("id", pack_id or "")
    pack.name = meta.get("name", "")
    pack.company = meta.get("company", "")
    pack.description = meta.get("description", "")
    pack.version = str(meta.get("version", "1.0"))
    pack.status = CatalogStatus(meta.get("status", CatalogStatus.DRAFT.value))

    for version in raw.get("catalog_versions", []):
        pack.catalog_versions.append(CatalogVersion(**version))

    pack.system_requirements = SystemRequirements(**raw.get("system_requirements", {}))

    # Code catalogs
    for category, items in raw.get("catalog", {}).items():
        pack.catalog[category] = [CatalogItem(**item) for item in items]

    pack.legacy_material_codes = {
        role: {str(k): str(v) for k, v in mapping.items()}
        for role, mapping in raw.get("legacy_material_codes", {}).items()
    }

    # Standards
    for norm_data in raw.get("standards", []):
        pack.standards.append(Norm(**norm_data))

    for norm_code, materials in raw.get("material_compatibility", {}).items():
        pack.material_compatibility[norm_code] = [MaterialRecord(**m) for m in materials]

    for entry in raw.get("fire_test_compatibility", []):
        pack.fire_test_compatibility.append(FireTestCompatibility(**entry))

    # Field rules
    for attr in raw.get("required_attributes", []):
        pack.required_attributes.append(RequiredAttribute(**attr))

    for rule in raw.get("rules", []):
        pack.rules.append(FieldRuleSpec(**rule))

    for suggestion in raw.get("service_suggestions", []):
        pack.service_suggestions.append(ServiceSuggestion(**suggestion))

    # Calculation constants
    pack.torque = TorqueConstants(**raw.get("torque", {}))

    logger.info(
        f"[CONFIG] Loaded pack '{pack.pack_id}' v{pack.version}: "
        f"{len(pack.standards)} standards, {len(pack.rules)} rules"
    )
    return pack


def get_norm_pack_summary(pack: NormPack) -> dict:
    """Get a summary of a norm pack for the settings/health UI."""
    return {
        "pack": {
            "id": pack.pack_id,
            "name": pack.name,
            "company": pack.company,
            "description": pack.description,
            "version": pack.version,
            "status": pack.status.value,
        },
        "catalog_versions": [
            {"version": v.version, "status": v.status.value}
            for v in pack.catalog_versions
        ],
        "catalog_counts": {
            category: len(items) for category, items in pack.catalog.items()
        },
        "standards": [
            {"code": n.code, "type": n.type.value, "valve_types": n.valve_types, "service_types": n.service_types}
            for n in pack.standards
        ],
        "rules_count": len(pack.rules),
        "required_attributes": [a.attribute for a in pack.required_attributes],
    }
