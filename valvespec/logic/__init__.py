"""Logic module for valve specification: norms, materials, rules, publication."""

from .state import (
    ValveConfiguration,
    ValveType,
    ServiceType,
    PressureClass,
    FlangeFace,
    FireTestOption,
    SILLevel,
    SpecStatus,
)
from .norm_resolver import NormResolver, NormValidationResult, ResolutionTracker
from .material_filter import MaterialRequirements, filter_materials
from .rule_engine import evaluate_rules, evaluate_configuration
from .publication import PublicationValidator, PublicationResult, CheckStatus, finalize_publication
from .imex_code import build_imex_code, parse_nps_to_inch, encode_size_class
from .calculators import calculate_torque, calculate_sil
from .health import check_system_health, ensure_creation_allowed
from .decision_log import DecisionLog, DecisionType
from .lifecycle import build_draft_record, transition_status

__all__ = [
    'ValveConfiguration',
    'ValveType',
    'ServiceType',
    'PressureClass',
    'FlangeFace',
    'FireTestOption',
    'SILLevel',
    'SpecStatus',
    'NormResolver',
    'NormValidationResult',
    'ResolutionTracker',
    'MaterialRequirements',
    'filter_materials',
    'evaluate_rules',
    'evaluate_configuration',
    'PublicationValidator',
    'PublicationResult',
    'CheckStatus',
    'finalize_publication',
    'build_imex_code',
    'parse_nps_to_inch',
    'encode_size_class',
    'calculate_torque',
    'calculate_sil',
    'check_system_health',
    'ensure_creation_allowed',
    'DecisionLog',
    'DecisionType',
    'build_draft_record',
    'transition_status',
]
