"""Field/Value Rule Engine.

Evaluates the declarative if/then rule table of the norm pack against a
configuration snapshot, then runs the fixed engineering checks that are
not data driven (NACE body grades, fire-safe PTFE, seawater, high
temperature seats, H2S, actuator parameters, flange face).

Rules are applied in descending priority. For each field the first error
recorded wins, so a higher-priority rule's message is the one reported.
Hide wins over show regardless of order.

Output maps are keyed by field name:
    errors      - blocking problems; is_valid is True only when empty
    warnings    - non-blocking notes
    suggestions - values proposed for empty fields (never applied)
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..catalog_store import CatalogStore
from ..config_loader import FieldRuleSpec, RequiredAttribute, ServiceSuggestion
from .conditions import Condition, parse_condition
from .state import ValveConfiguration

logger = logging.getLogger(__name__)


class RuleAction(str, Enum):
    SHOW = "show"
    HIDE = "hide"
    ENABLE = "enable"
    BLOCK = "block"
    REQUIRE = "require"
    SUGGEST = "suggest"
    VALIDATE = "validate"


# Carbon steel grades that are not NACE qualified (codes and catalog labels)
NON_NACE_BODY_MATERIALS = {
    "ASTM_A216_WCB", "ASTM_A105", "ASTM_A106",
    "ASTM A216 WCB", "ASTM A105", "ASTM A106",
}

# Duplex and 316 grades suitable for seawater
SEAWATER_BODY_MATERIALS = {
    "ASTM_A995_4A", "ASTM_A995_5A", "ASTM_A995_6A",
    "ASTM_A890_4A", "ASTM_A351_CF8M", "ASTM_A182_F316",
}
SEAWATER_TERMS = ("água do mar", "agua do mar", "seawater", "sea water")

PTFE_SEATS = {"PTFE", "RPTFE"}
PTFE_MAX_TEMPERATURE_C = 200


@dataclass
class FieldRule:
    """A compiled declarative rule."""
    id: str
    condition: Condition
    target: str
    action: RuleAction
    allowed_values: list[str] = field(default_factory=list)
    suggested_value: Optional[str] = None
    error_message: str = ""
    warning_message: str = ""
    priority: int = 0
    valve_type: Optional[str] = None


def compile_rule(spec: FieldRuleSpec) -> FieldRule:
    return FieldRule(
        id=spec.id,
        condition=parse_condition(spec.if_attribute, spec.if_value),
        target=spec.then_attribute,
        action=RuleAction(spec.action.lower()),
        allowed_values=spec.allowed_list(),
        suggested_value=spec.suggested_value,
        error_message=spec.error_message,
        warning_message=spec.warning_message,
        priority=spec.priority,
        valve_type=spec.valve_type,
    )


@dataclass
class Suggestion:
    value: str
    message: str


@dataclass
class AffectedField:
    field: str
    action: RuleAction
    allowed_values: Optional[list[str]] = None
    rule_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "field": self.field,
            "action": self.action.value,
            "allowed_values": self.allowed_values,
            "rule_id": self.rule_id,
        }


@dataclass
class FieldState:
    """Per-field UI state; default is visible and unlocked."""
    visible: bool = True
    blocked: bool = False
    enabled: bool = True
    allowed_values: Optional[list[str]] = None

    def to_dict(self) -> dict:
        return {
            "visible": self.visible,
            "blocked": self.blocked,
            "enabled": self.enabled,
            "allowed_values": self.allowed_values,
        }


@dataclass
class RuleEvaluation:
    errors: dict[str, str] = field(default_factory=dict)
    warnings: dict[str, str] = field(default_factory=dict)
    suggestions: dict[str, Suggestion] = field(default_factory=dict)
    affected_fields: list[AffectedField] = field(default_factory=list)
    field_states: dict[str, FieldState] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def state_for(self, field_name: str) -> FieldState:
        return self.field_states.setdefault(field_name, FieldState())

    def add_error(self, field_name: str, message: str):
        self.errors.setdefault(field_name, message)

    def add_warning(self, field_name: str, message: str):
        self.warnings.setdefault(field_name, message)

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": dict(self.errors),
            "warnings": dict(self.warnings),
            "suggestions": {
                name: {"value": s.value, "message": s.message}
                for name, s in self.suggestions.items()
            },
            "affected_fields": [a.to_dict() for a in self.affected_fields],
            "field_states": {name: s.to_dict() for name, s in self.field_states.items()},
        }


def _not_permitted(value, allowed: list[str]) -> str:
    return f"{value} not permitted; allowed: {', '.join(allowed)}"


def _apply_rule(rule: FieldRule, config: ValveConfiguration, result: RuleEvaluation):
    target_value = config.get_attribute(rule.target)
    has_target = config.has_value(rule.target)
    state = result.state_for(rule.target)
    allowed = rule.allowed_values or None

    if rule.action == RuleAction.SHOW:
        result.affected_fields.append(AffectedField(rule.target, rule.action, allowed, rule.id))
        if allowed:
            state.allowed_values = allowed

    elif rule.action == RuleAction.HIDE:
        result.affected_fields.append(AffectedField(rule.target, rule.action, None, rule.id))
        state.visible = False

    elif rule.action == RuleAction.ENABLE:
        result.affected_fields.append(AffectedField(rule.target, rule.action, None, rule.id))
        state.enabled = True

    elif rule.action in (RuleAction.BLOCK, RuleAction.VALIDATE):
        result.affected_fields.append(AffectedField(rule.target, rule.action, allowed, rule.id))
        if allowed:
            state.allowed_values = allowed
            if has_target and str(target_value) not in allowed:
                result.add_error(rule.target, rule.error_message or _not_permitted(target_value, allowed))
        if rule.action == RuleAction.BLOCK:
            state.blocked = True

    elif rule.action == RuleAction.REQUIRE:
        result.affected_fields.append(AffectedField(rule.target, rule.action, None, rule.id))
        if not has_target:
            result.add_error(
                rule.target,
                rule.error_message or f"field required when {rule.condition.describe()}",
            )

    elif rule.action == RuleAction.SUGGEST:
        if rule.suggested_value and not has_target and rule.target not in result.suggestions:
            result.suggestions[rule.target] = Suggestion(
                rule.suggested_value,
                rule.warning_message or f"Suggestion: {rule.suggested_value}",
            )

    if rule.warning_message and rule.target not in result.errors:
        result.add_warning(rule.target, rule.warning_message)


def _check_required_attributes(
    config: ValveConfiguration,
    required: list[RequiredAttribute],
    result: RuleEvaluation,
):
    valve = config.get_attribute("valve_type")
    for attr in required:
        if attr.attribute == "valve_type":
            continue
        if attr.applies_to and valve not in attr.applies_to:
            continue
        if not config.has_value(attr.attribute):
            result.add_error(attr.attribute, f"{attr.name or attr.attribute} is required")


def _normalize_material(code: Optional[str]) -> str:
    return (code or "").strip().upper().replace(" ", "_")


def apply_fixed_checks(config: ValveConfiguration, result: RuleEvaluation):
    """Engineering checks that always run in addition to the rule table."""
    body = config.body_material
    seat = (config.seat_material or "").strip().upper()
    fluid = (config.fluid or "").lower()

    # NACE / sour service: carbon steel bodies are not qualified
    if config.nace_compliant or config.sour_service:
        if body and (body in NON_NACE_BODY_MATERIALS or _normalize_material(body) in NON_NACE_BODY_MATERIALS):
            result.errors["body_material"] = (
                "Material not qualified for NACE/sour service. Use stainless or duplex."
            )

    # Fire safe with plain PTFE is a warning, the publication gate blocks it
    if config.fire_test_required and seat == "PTFE":
        result.warnings["seat_material"] = (
            "PTFE may not meet full fire-safe requirements. Consider RPTFE or metal seats."
        )

    # Seawater
    if any(term in fluid for term in SEAWATER_TERMS):
        if body and _normalize_material(body) not in SEAWATER_BODY_MATERIALS:
            result.warnings["body_material"] = "For seawater, a duplex or 316 stainless body is recommended."

    # High temperature
    if config.operating_temperature_c is not None and config.operating_temperature_c > PTFE_MAX_TEMPERATURE_C:
        if seat in PTFE_SEATS:
            result.errors["seat_material"] = (
                f"PTFE is not suitable above {PTFE_MAX_TEMPERATURE_C}°C. Use PEEK or metal seats."
            )

    # H2S
    if "h2s" in fluid or config.sour_service:
        if not config.nace_compliant:
            result.warnings["nace_compliant"] = "Fluid contains H2S. NACE MR0175 compliance is recommended."

    # Flange face
    if config.is_flanged and config.flange_face is None:
        result.add_error("flange_face", "Flange face is required for flanged ends")
    elif config.is_flanged and config.flange_face is not None:
        end_face = config.end_type_face
        if end_face and end_face != config.flange_face.value:
            result.add_error(
                "flange_face",
                f"Flange face {config.flange_face.value} contradicts end type {config.end_type}",
            )
    elif config.flange_face is not None and config.end_type and not config.is_flanged:
        result.add_warning("flange_face", f"Flange face is ignored for {config.end_type} ends")

    # Actuator parameters for powered actuation
    for name in config.missing_actuator_parameters():
        result.add_error(
            name,
            f"{name} is required for {config.actuation_type} actuation on {config.get_attribute('valve_type')}",
        )


def evaluate_rules(
    config: ValveConfiguration,
    rules: list[FieldRuleSpec],
    required_attributes: Optional[list[RequiredAttribute]] = None,
    service_suggestions: Optional[list[ServiceSuggestion]] = None,
) -> RuleEvaluation:
    """Evaluate the rule table and fixed checks against a configuration."""
    result = RuleEvaluation()
    valve = config.get_attribute("valve_type")

    if required_attributes:
        _check_required_attributes(config, required_attributes, result)

    compiled = [compile_rule(spec) for spec in rules]
    compiled = [r for r in compiled if r.valve_type is None or r.valve_type == valve]
    compiled.sort(key=lambda r: r.priority, reverse=True)

    for rule in compiled:
        if rule.condition.matches(config):
            _apply_rule(rule, config, result)

    apply_fixed_checks(config, result)

    service = config.get_attribute("service_type")
    if service and service_suggestions:
        for suggestion in sorted(service_suggestions, key=lambda s: s.priority, reverse=True):
            if suggestion.service != service:
                continue
            target = suggestion.attribute
            if config.has_value(target) or target in result.suggestions:
                continue
            result.suggestions[target] = Suggestion(
                suggestion.value,
                suggestion.message or f"Suggestion for {service}: {suggestion.value}",
            )

    if result.errors:
        logger.debug(f"[RULES] {len(result.errors)} field errors: {', '.join(result.errors)}")

    return result


def evaluate_configuration(config: ValveConfiguration, store: CatalogStore) -> RuleEvaluation:
    """Evaluate a configuration against the rules of the active pack."""
    pack = store.pack
    return evaluate_rules(
        config,
        store.get_rules(config.get_attribute("valve_type")),
        pack.required_attributes,
        pack.service_suggestions,
    )
