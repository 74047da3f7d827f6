"""Rule trigger conditions.

A condition compares one configuration attribute against either an
enumerated value or a boolean flag. Pack data writes flags as booleans or
as "Sim"/"Não"; parse_condition turns both into EqualsFlag so every
comparison goes through one matches() call.
"""

from dataclasses import dataclass
from typing import Any, Union

from .state import ValveConfiguration, parse_flag


@dataclass(frozen=True)
class EqualsValue:
    attribute: str
    value: str

    def matches(self, config: ValveConfiguration) -> bool:
        current = config.get_attribute(self.attribute)
        if current is None or isinstance(current, bool):
            return False
        return str(current).strip().upper() == self.value.strip().upper()

    def describe(self) -> str:
        return f"{self.attribute} = {self.value}"


@dataclass(frozen=True)
class EqualsFlag:
    attribute: str
    flag: bool

    def matches(self, config: ValveConfiguration) -> bool:
        raw = config.get_attribute(self.attribute)
        if raw is None or raw == "":
            # Unset flags count as False
            return not self.flag
        return parse_flag(raw) == self.flag

    def describe(self) -> str:
        return f"{self.attribute} = {'Sim' if self.flag else 'Não'}"


Condition = Union[EqualsValue, EqualsFlag]


def parse_condition(attribute: str, value: Any) -> Condition:
    """Build the condition variant for a raw (attribute, value) pair."""
    flag = parse_flag(value)
    if flag is not None:
        return EqualsFlag(attribute, flag)
    return EqualsValue(attribute, str(value))


def conditions_match(conditions: list[Condition], config: ValveConfiguration) -> bool:
    return all(condition.matches(config) for condition in conditions)
