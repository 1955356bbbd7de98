"""
Merge Policies for Identity Maps.

Properties, variables, conditions and dynamic variables all live in maps
where a later definition may collide with an earlier one. Each kind picks
one explicit policy instead of ad hoc dictionary writes.
"""

from enum import Enum
from typing import Callable, MutableMapping, Optional, TypeVar


K = TypeVar("K")
V = TypeVar("V")


class MergePolicy(str, Enum):
    """What happens when a key is defined again."""
    FIRST_WINS = "first_wins"            # Keep the existing value, ignore silently
    LAST_WINS_WARN = "last_wins_warn"    # Replace the existing value and report it


def merge_entry(
    mapping: MutableMapping[K, V],
    key: K,
    value: V,
    policy: MergePolicy,
    on_replace: Optional[Callable[[K, V, V], None]] = None,
) -> bool:
    """
    Store `value` under `key` according to `policy`.

    Args:
        mapping: Target identity map
        key: Entry key
        value: New value
        policy: Collision policy
        on_replace: Called with (key, old, new) when LAST_WINS_WARN replaces

    Returns:
        True if the value was stored
    """
    if key not in mapping:
        mapping[key] = value
        return True

    if policy == MergePolicy.FIRST_WINS:
        return False

    old = mapping[key]
    mapping[key] = value
    if on_replace is not None:
        on_replace(key, old, value)
    return True


# Policy per entity kind
PROPERTY_POLICY = MergePolicy.FIRST_WINS
VARIABLE_POLICY = MergePolicy.LAST_WINS_WARN
CONDITION_POLICY = MergePolicy.LAST_WINS_WARN
DYNAMIC_VARIABLE_POLICY = MergePolicy.LAST_WINS_WARN
