"""
OS Constraints.

Packs, files, listeners and panels can be restricted to operating systems
with <os family name version arch/> children (or the legacy `os`
attribute naming a family).
"""

import platform
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .descriptor import DescriptorNode


def current_family() -> str:
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform == "darwin":
        return "mac"
    return "unix"


def _family_matches(family: str, system_family: str) -> bool:
    family = family.lower()
    if family == system_family:
        return True
    if family == "osx":
        return system_family == "mac"
    if system_family == "mac":
        # macOS is a unix as far as install constraints go
        return family == "unix"
    if family == "linux":
        return sys.platform.startswith("linux")
    return False


@dataclass(frozen=True)
class OsConstraint:
    """A single OS restriction; unset fields match anything."""
    family: Optional[str] = None
    name: Optional[str] = None
    version: Optional[str] = None
    arch: Optional[str] = None

    def matches(self, system_family: Optional[str] = None) -> bool:
        """Check the constraint against the running system."""
        if self.family and not _family_matches(self.family, system_family or current_family()):
            return False
        if self.name and self.name.lower() != platform.system().lower():
            return False
        if self.arch and self.arch.lower() != platform.machine().lower():
            return False
        if self.version and not platform.release().startswith(self.version):
            return False
        return True

    @property
    def is_windows(self) -> bool:
        return (self.family or "").lower() == "windows"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "family": self.family,
            "name": self.name,
            "version": self.version,
            "arch": self.arch,
        }


def parse_os_constraints(node: DescriptorNode) -> List[OsConstraint]:
    """
    Read the OS constraints of an element.

    <os> children take precedence; otherwise a legacy `os` attribute is
    read as a family name.
    """
    constraints = [
        OsConstraint(
            family=child.get_attribute("family"),
            name=child.get_attribute("name"),
            version=child.get_attribute("version"),
            arch=child.get_attribute("arch"),
        )
        for child in node.children_named("os")
    ]
    if not constraints and node.get_attribute("os"):
        constraints.append(OsConstraint(family=node.get_attribute("os")))
    return constraints


def has_windows_constraint(constraints: List[OsConstraint]) -> bool:
    return any(constraint.is_windows for constraint in constraints)
