"""
Core components of the Install Compiler.
"""

from .descriptor import DescriptorLoader, DescriptorNode, to_xml
from .properties import PropertyLoader, PropertyTable, substitute_tree
from .variables import DynamicVariable, DynamicVariableTable, VariableTable
from .substitution import SubstitutionType, VariableSubstitutor
from .merge import MergePolicy, merge_entry
from .conditions import (
    Condition,
    ConditionContext,
    ConditionTable,
    get_condition_registry,
    parse_condition,
    register_condition,
)
from .platform import OsConstraint, parse_os_constraints

# Exceptions
from .exceptions import (
    CompilerError,
    DescriptorError,
    MalformedDescriptorError,
    VersionMismatchError,
    MissingRequiredAttributeError,
    MissingRequiredChildError,
    InvalidEnumValueError,
    InvalidValueError,
    ResourceNotFoundError,
    InvalidPathError,
    ArchiveReadError,
    CompilerIOError,
    PackGraphError,
    StructuralConflictError,
    DependencyUnresolvedError,
    CircularDependencyError,
    PluginError,
    AmbiguousClassNameError,
    ListenerLoadError,
)

__all__ = [
    # Descriptor
    "DescriptorLoader",
    "DescriptorNode",
    "to_xml",
    # Substitution
    "PropertyLoader",
    "PropertyTable",
    "substitute_tree",
    "DynamicVariable",
    "DynamicVariableTable",
    "VariableTable",
    "SubstitutionType",
    "VariableSubstitutor",
    "MergePolicy",
    "merge_entry",
    # Conditions
    "Condition",
    "ConditionContext",
    "ConditionTable",
    "get_condition_registry",
    "parse_condition",
    "register_condition",
    "OsConstraint",
    "parse_os_constraints",
    # Exceptions
    "CompilerError",
    "DescriptorError",
    "MalformedDescriptorError",
    "VersionMismatchError",
    "MissingRequiredAttributeError",
    "MissingRequiredChildError",
    "InvalidEnumValueError",
    "InvalidValueError",
    "ResourceNotFoundError",
    "InvalidPathError",
    "ArchiveReadError",
    "CompilerIOError",
    "PackGraphError",
    "StructuralConflictError",
    "DependencyUnresolvedError",
    "CircularDependencyError",
    "PluginError",
    "AmbiguousClassNameError",
    "ListenerLoadError",
]
