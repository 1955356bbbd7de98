"""
Install-time Variables.

Static variables are plain name/value pairs handed to the installer.
Dynamic variables are lists of conditioned candidates per name; the
installer picks the value whose condition holds.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .merge import DYNAMIC_VARIABLE_POLICY, VARIABLE_POLICY, merge_entry


logger = logging.getLogger(__name__)


class VariableTable:
    """Static install-time variables, last definition wins."""

    def __init__(self):
        self._values: Dict[str, str] = {}

    def add(self, name: str, value: str) -> bool:
        """
        Define a variable.

        Returns:
            True if an earlier definition was replaced
        """
        replaced: List[str] = []
        merge_entry(
            self._values,
            name,
            value,
            VARIABLE_POLICY,
            on_replace=lambda key, old, new: replaced.append(old),
        )
        if replaced:
            logger.debug(f"Variable '{name}' redefined: '{replaced[0]}' -> '{value}'")
        return bool(replaced)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self._values.get(name, default)

    def as_dict(self) -> Dict[str, str]:
        return dict(self._values)

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __bool__(self) -> bool:
        return bool(self._values)


@dataclass
class DynamicVariable:
    """
    One conditioned candidate value of a dynamic variable.

    Two candidates are the same entry when value and condition match; the
    name is the list key and does not take part in equality.
    """
    name: str = field(compare=False)
    value: str
    condition_id: Optional[str] = None
    check_once: bool = field(default=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "condition_id": self.condition_id,
            "check_once": self.check_once,
        }


class DynamicVariableTable:
    """
    Ordered candidate lists keyed by variable name.

    Re-adding an equal candidate moves it to the end of its list and
    reports the replacement.
    """

    def __init__(self):
        self._entries: Dict[str, Dict[Tuple[str, Optional[str]], DynamicVariable]] = {}

    def add(self, variable: DynamicVariable) -> bool:
        """
        Append a candidate.

        Returns:
            True if an equal candidate was replaced
        """
        candidates = self._entries.setdefault(variable.name, {})
        key = (variable.value, variable.condition_id)
        replaced: List[DynamicVariable] = []
        merge_entry(
            candidates,
            key,
            variable,
            DYNAMIC_VARIABLE_POLICY,
            on_replace=lambda k, old, new: replaced.append(old),
        )
        if replaced:
            candidates[key] = candidates.pop(key)
            logger.debug(
                f"Dynamic variable '{variable.name}' with value '{variable.value}' "
                f"and condition '{variable.condition_id}' redefined"
            )
        return bool(replaced)

    def get(self, name: str) -> List[DynamicVariable]:
        return list(self._entries.get(name, {}).values())

    def as_dict(self) -> Dict[str, List[DynamicVariable]]:
        return {name: list(values.values()) for name, values in self._entries.items()}

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)
