"""
Pack Graph Validator.

Whole-graph checks run once after every pack (including ref-pack
contributions) has been assembled:
- every dependency names an assembled pack
- dependencies are acyclic
- exclude groups are structurally consistent
"""

import logging
from typing import Dict, List, Optional, Sequence, Set, Tuple

from install_compiler.core.exceptions import (
    CircularDependencyError,
    DependencyUnresolvedError,
    PackGraphError,
    StructuralConflictError,
)
from install_compiler.packs.models import Pack


logger = logging.getLogger(__name__)


class ValidationError:
    """Represents a validation error."""

    def __init__(
        self,
        code: str,
        message: str,
        path: Optional[str] = None,
        severity: str = "error",
    ):
        self.code = code
        self.message = message
        self.path = path
        self.severity = severity

    def __str__(self) -> str:
        if self.path:
            return f"[{self.code}] {self.path}: {self.message}"
        return f"[{self.code}] {self.message}"


def _location(pack: Pack) -> Dict[str, object]:
    return {"source": pack.source, "line": pack.line}


class PackGraphValidator:
    """
    Validates the assembled pack graph.

    Example:
        validator = PackGraphValidator()

        # Raise on the first problem
        validator.check_dependencies(packs)
        validator.check_excludes(packs)

        # Or collect every problem
        is_valid, errors = validator.validate(packs)
    """

    def check_dependencies(self, packs: Sequence[Pack]) -> None:
        """
        Raises:
            DependencyUnresolvedError: If a dependency names no assembled pack
            CircularDependencyError: If dependencies form a cycle
        """
        known = self._known_names(packs)
        for pack in packs:
            for dependency in pack.dependencies:
                if dependency not in known:
                    raise DependencyUnresolvedError(pack.name, dependency, **_location(pack))

        cycle = self.find_cycle(packs)
        if cycle:
            raise CircularDependencyError(cycle)

        logger.debug(f"Dependencies of {len(packs)} packs resolved")

    def check_excludes(self, packs: Sequence[Pack]) -> None:
        """
        Raises:
            StructuralConflictError: If a required pack has an exclude group,
                or two packs of one exclude group are both preselected
        """
        preselected: Dict[str, Pack] = {}
        for pack in packs:
            if not pack.exclude_group:
                continue
            if pack.required:
                raise StructuralConflictError(
                    f"Pack '{pack.name}' has excludeGroup '{pack.exclude_group}' and can not be required",
                    {"pack": pack.name, "exclude_group": pack.exclude_group},
                    **_location(pack),
                )
            if not pack.preselected:
                continue
            other = preselected.get(pack.exclude_group)
            if other is not None:
                raise StructuralConflictError(
                    f"Packs '{other.name}' and '{pack.name}' belong to the same excludeGroup "
                    f"'{pack.exclude_group}' and are both preselected",
                    {"packs": [other.name, pack.name], "exclude_group": pack.exclude_group},
                    **_location(pack),
                )
            preselected[pack.exclude_group] = pack

    def validate(self, packs: Sequence[Pack]) -> Tuple[bool, List[str]]:
        """
        Run every check without raising.

        Returns:
            Tuple of (is_valid, list of error messages)
        """
        errors: List[ValidationError] = []
        known = self._known_names(packs)

        for pack in packs:
            for dependency in pack.dependencies:
                if dependency not in known:
                    errors.append(ValidationError(
                        "DEPENDENCY_UNRESOLVED",
                        f"depends on unknown pack '{dependency}'",
                        pack.name,
                    ))

        cycle = self.find_cycle(packs)
        if cycle:
            errors.append(ValidationError(
                "CIRCULAR_DEPENDENCY",
                " -> ".join(cycle),
            ))

        try:
            self.check_excludes(packs)
        except PackGraphError as e:
            errors.append(ValidationError("EXCLUDE_GROUP_CONFLICT", e.message))

        return len(errors) == 0, [str(e) for e in errors]

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _known_names(packs: Sequence[Pack]) -> Set[str]:
        known: Set[str] = set()
        for pack in packs:
            known.add(pack.name)
            known.add(pack.pack_id)
        return known

    def find_cycle(self, packs: Sequence[Pack]) -> Optional[List[str]]:
        """Return one dependency cycle as a list of pack names, or None."""
        graph: Dict[str, List[str]] = {}
        for pack in packs:
            graph.setdefault(pack.name, []).extend(pack.dependencies)
            if pack.id and pack.id != pack.name:
                graph.setdefault(pack.id, []).extend(pack.dependencies)

        visiting: List[str] = []
        done: Set[str] = set()

        def visit(name: str) -> Optional[List[str]]:
            if name in visiting:
                return visiting[visiting.index(name):] + [name]
            if name in done:
                return None
            visiting.append(name)
            for dependency in graph.get(name, []):
                cycle = visit(dependency)
                if cycle:
                    return cycle
            visiting.pop()
            done.add(name)
            return None

        for name in graph:
            cycle = visit(name)
            if cycle:
                return cycle
        return None
