"""
Conditions Engine.

Parses <condition> definitions into typed rule objects keyed by id.
Condition types register themselves with the ConditionRegistry via the
`register_condition` decorator; `parse_condition` dispatches on the
`type` attribute.

Example:
    <conditions>
        <condition type="variable" id="is_demo">
            <name>MODE</name>
            <value>demo</value>
        </condition>
        <condition type="and" id="demo_on_windows">
            <condition type="ref" refid="is_demo"/>
            <condition type="os" family="windows"/>
        </condition>
    </conditions>
"""

import logging
import operator
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Set, Type

from .descriptor import DescriptorNode
from .exceptions import DescriptorError, InvalidValueError, MissingRequiredChildError
from .merge import CONDITION_POLICY, merge_entry
from .platform import OsConstraint


logger = logging.getLogger(__name__)


@dataclass
class ConditionContext:
    """What an install-time condition can look at."""
    variables: Mapping[str, str] = field(default_factory=dict)
    selected_packs: Set[str] = field(default_factory=set)
    conditions: Optional["ConditionTable"] = None
    system_family: Optional[str] = None


class Condition(ABC):
    """
    Base class for all condition types.

    Subclasses set `type_name`, implement `from_node` to read their markup
    and `is_true` to evaluate against a ConditionContext.
    """

    type_name: str = "base"

    def __init__(self, condition_id: str):
        self.id = condition_id

    @classmethod
    @abstractmethod
    def from_node(cls, condition_id: str, node: DescriptorNode) -> "Condition":
        """Build the condition from its markup; raises DescriptorError on bad markup."""
        pass

    @abstractmethod
    def is_true(self, context: ConditionContext) -> bool:
        pass

    def referenced_ids(self) -> Set[str]:
        """Ids of other conditions this one depends on."""
        return set()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id!r})"


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------

class ConditionRegistry:
    """Singleton map of condition type names to condition classes."""

    _instance: Optional["ConditionRegistry"] = None
    _types: Dict[str, Type[Condition]] = {}

    def __new__(cls) -> "ConditionRegistry":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._types = {}
        return cls._instance

    def register(self, condition_class: Type[Condition]) -> None:
        if not issubclass(condition_class, Condition):
            raise TypeError(f"{condition_class} must be a subclass of Condition")
        name = condition_class.type_name
        if not name or name == "base":
            raise TypeError("Condition class must define a unique 'type_name' attribute")
        self._types[name.lower()] = condition_class

    def get_class(self, type_name: str) -> Optional[Type[Condition]]:
        return self._types.get(type_name.lower())

    def list_types(self) -> List[str]:
        return list(self._types.keys())

    def __contains__(self, type_name: str) -> bool:
        return type_name.lower() in self._types


def register_condition(cls: Type[Condition]) -> Type[Condition]:
    """Class decorator adding a condition type to the registry."""
    ConditionRegistry().register(cls)
    return cls


def get_condition_registry() -> ConditionRegistry:
    return ConditionRegistry()


# -----------------------------------------------------------------------------
# Parsing
# -----------------------------------------------------------------------------

def _build(node: DescriptorNode, condition_id: str) -> Condition:
    type_name = node.get_attribute("type")
    if not type_name:
        raise InvalidValueError("condition without 'type' attribute", **node.location)
    condition_class = get_condition_registry().get_class(type_name)
    if condition_class is None:
        raise InvalidValueError(f"unknown condition type '{type_name}'", **node.location)
    return condition_class.from_node(condition_id, node)


def parse_nested(node: DescriptorNode) -> Condition:
    """Parse a condition nested inside another one; the id is optional."""
    condition_id = node.get_attribute("id") or f"anonymous-{uuid.uuid4().hex[:8]}"
    return _build(node, condition_id)


def parse_condition(node: DescriptorNode) -> Optional[Condition]:
    """
    Parse a top-level <condition> element.

    Returns:
        The condition, or None if the markup is invalid, the type is
        unknown or the id is missing
    """
    condition_id = node.get_attribute("id")
    if not condition_id:
        logger.debug(f"{node.source}:{node.line}: condition without 'id'")
        return None
    try:
        return _build(node, condition_id)
    except DescriptorError as e:
        logger.debug(f"Condition '{condition_id}' rejected: {e}")
        return None


def _child_text(node: DescriptorNode, name: str) -> str:
    child = node.require_child(name)
    if child.content is None:
        raise MissingRequiredChildError(node.name, name, **child.location)
    return child.content


# -----------------------------------------------------------------------------
# Condition Types
# -----------------------------------------------------------------------------

@register_condition
class VariableCondition(Condition):
    """True when a variable equals a given value."""

    type_name = "variable"

    def __init__(self, condition_id: str, variable: str, value: str):
        super().__init__(condition_id)
        self.variable = variable
        self.value = value

    @classmethod
    def from_node(cls, condition_id: str, node: DescriptorNode) -> "VariableCondition":
        return cls(condition_id, _child_text(node, "name"), _child_text(node, "value"))

    def is_true(self, context: ConditionContext) -> bool:
        return context.variables.get(self.variable) == self.value


class CompositeCondition(Condition):
    """Base for conditions combining nested conditions."""

    minimum_operands = 2

    def __init__(self, condition_id: str, operands: List[Condition]):
        super().__init__(condition_id)
        self.operands = operands

    @classmethod
    def from_node(cls, condition_id: str, node: DescriptorNode) -> "CompositeCondition":
        operands = [parse_nested(child) for child in node.children_named("condition")]
        if len(operands) < cls.minimum_operands:
            raise MissingRequiredChildError(node.name, "condition", **node.location)
        return cls(condition_id, operands)

    def referenced_ids(self) -> Set[str]:
        ids: Set[str] = set()
        for operand in self.operands:
            ids |= operand.referenced_ids()
        return ids


@register_condition
class AndCondition(CompositeCondition):
    type_name = "and"

    def is_true(self, context: ConditionContext) -> bool:
        return all(operand.is_true(context) for operand in self.operands)


@register_condition
class OrCondition(CompositeCondition):
    type_name = "or"

    def is_true(self, context: ConditionContext) -> bool:
        return any(operand.is_true(context) for operand in self.operands)


@register_condition
class XorCondition(CompositeCondition):
    type_name = "xor"

    def is_true(self, context: ConditionContext) -> bool:
        return sum(1 for operand in self.operands if operand.is_true(context)) == 1


@register_condition
class NotCondition(CompositeCondition):
    type_name = "not"

    @classmethod
    def from_node(cls, condition_id: str, node: DescriptorNode) -> "NotCondition":
        operands = [parse_nested(child) for child in node.children_named("condition")]
        if len(operands) != 1:
            raise InvalidValueError("a 'not' condition takes exactly one operand", **node.location)
        return cls(condition_id, operands)

    def is_true(self, context: ConditionContext) -> bool:
        return not self.operands[0].is_true(context)


@register_condition
class RefCondition(Condition):
    """Refers to another condition by id."""

    type_name = "ref"

    def __init__(self, condition_id: str, ref_id: str):
        super().__init__(condition_id)
        self.ref_id = ref_id

    @classmethod
    def from_node(cls, condition_id: str, node: DescriptorNode) -> "RefCondition":
        return cls(condition_id, node.require_attribute("refid"))

    def is_true(self, context: ConditionContext) -> bool:
        if context.conditions is None:
            return False
        target = context.conditions.get(self.ref_id)
        return target is not None and target.is_true(context)

    def referenced_ids(self) -> Set[str]:
        return {self.ref_id}


@register_condition
class PackSelectionCondition(Condition):
    """True when the named pack is selected for installation."""

    type_name = "packselection"

    def __init__(self, condition_id: str, pack_name: str):
        super().__init__(condition_id)
        self.pack_name = pack_name

    @classmethod
    def from_node(cls, condition_id: str, node: DescriptorNode) -> "PackSelectionCondition":
        return cls(condition_id, _child_text(node, "name"))

    def is_true(self, context: ConditionContext) -> bool:
        return self.pack_name in context.selected_packs


@register_condition
class ExistsCondition(Condition):
    """True when a variable is defined or a file exists."""

    type_name = "exists"

    def __init__(self, condition_id: str, variable: Optional[str] = None, file: Optional[str] = None):
        super().__init__(condition_id)
        self.variable = variable
        self.file = file

    @classmethod
    def from_node(cls, condition_id: str, node: DescriptorNode) -> "ExistsCondition":
        variable = node.first_child("variable")
        if variable is not None and variable.content:
            return cls(condition_id, variable=variable.content)
        file = node.first_child("file")
        if file is not None and file.content:
            return cls(condition_id, file=file.content)
        raise MissingRequiredChildError(node.name, "variable|file", **node.location)

    def is_true(self, context: ConditionContext) -> bool:
        if self.variable is not None:
            return self.variable in context.variables
        return Path(self.file).exists()


@register_condition
class OsCondition(Condition):
    """True when the running system matches an OS constraint."""

    type_name = "os"

    def __init__(self, condition_id: str, constraint: OsConstraint):
        super().__init__(condition_id)
        self.constraint = constraint

    @classmethod
    def from_node(cls, condition_id: str, node: DescriptorNode) -> "OsCondition":
        constraint = OsConstraint(
            family=node.get_attribute("family"),
            name=node.get_attribute("name"),
            version=node.get_attribute("version"),
            arch=node.get_attribute("arch"),
        )
        if constraint == OsConstraint():
            raise MissingRequiredChildError(node.name, "family|name|version|arch", **node.location)
        return cls(condition_id, constraint)

    def is_true(self, context: ConditionContext) -> bool:
        return self.constraint.matches(context.system_family)


_COMPARISONS: Dict[str, Callable[[float, float], bool]] = {
    "eq": operator.eq,
    "neq": operator.ne,
    "lt": operator.lt,
    "lteq": operator.le,
    "gt": operator.gt,
    "gteq": operator.ge,
}


@register_condition
class CompareNumericsCondition(Condition):
    """Compares the numeric value of a variable with a constant."""

    type_name = "compare"

    def __init__(self, condition_id: str, variable: str, value: float, op: str = "eq"):
        super().__init__(condition_id)
        self.variable = variable
        self.value = value
        self.op = op

    @classmethod
    def from_node(cls, condition_id: str, node: DescriptorNode) -> "CompareNumericsCondition":
        variable = _child_text(node, "variable")
        raw_value = _child_text(node, "value")
        op_node = node.first_child("operator")
        op = (op_node.content if op_node is not None and op_node.content else "eq").lower()
        if op not in _COMPARISONS:
            raise InvalidValueError(f"unknown comparison operator '{op}'", **node.location)
        try:
            value = float(raw_value)
        except ValueError:
            raise InvalidValueError(f"'{raw_value}' is not a number", **node.location)
        return cls(condition_id, variable, value, op)

    def is_true(self, context: ConditionContext) -> bool:
        raw = context.variables.get(self.variable)
        if raw is None:
            return False
        try:
            actual = float(raw)
        except ValueError:
            return False
        return _COMPARISONS[self.op](actual, self.value)


# -----------------------------------------------------------------------------
# Condition Table
# -----------------------------------------------------------------------------

class ConditionTable:
    """Conditions keyed by id; a redefinition replaces the earlier one."""

    def __init__(self):
        self._conditions: Dict[str, Condition] = {}

    def add(self, condition: Condition) -> bool:
        """
        Register a condition.

        Returns:
            True if a condition with the same id was replaced
        """
        replaced: List[Condition] = []
        merge_entry(
            self._conditions,
            condition.id,
            condition,
            CONDITION_POLICY,
            on_replace=lambda key, old, new: replaced.append(old),
        )
        return bool(replaced)

    def get(self, condition_id: str) -> Optional[Condition]:
        return self._conditions.get(condition_id)

    def unresolved_references(self) -> Set[str]:
        """Ids referenced by registered conditions that are not registered."""
        referenced: Set[str] = set()
        for condition in self._conditions.values():
            referenced |= condition.referenced_ids()
        return {ref for ref in referenced if ref not in self._conditions}

    def as_dict(self) -> Dict[str, Condition]:
        return dict(self._conditions)

    def __contains__(self, condition_id: str) -> bool:
        return condition_id in self._conditions

    def __iter__(self) -> Iterator[Condition]:
        return iter(self._conditions.values())

    def __len__(self) -> int:
        return len(self._conditions)
