"""
Pack Models and Data Structures.

Defines the build model for installable packs:
- Packs and their attributes
- Pack files with override and blockable policies
- Parsable and executable file declarations
- Update checks
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from install_compiler.core.platform import OsConstraint
from install_compiler.core.substitution import SubstitutionType


class KeywordEnum(str, Enum):
    """Enum parsed from case-insensitive descriptor keywords."""

    @classmethod
    def lookup(cls, value: str) -> Optional["KeywordEnum"]:
        for member in cls:
            if member.value == value.lower():
                return member
        return None

    @classmethod
    def literals(cls) -> List[str]:
        return [member.value for member in cls]


class OverridePolicy(KeywordEnum):
    """What happens when a target file already exists at install time."""
    TRUE = "true"            # Always overwrite
    FALSE = "false"          # Never overwrite
    ASK_TRUE = "asktrue"     # Ask, default yes
    ASK_FALSE = "askfalse"   # Ask, default no
    UPDATE = "update"        # Overwrite if newer


class BlockablePolicy(KeywordEnum):
    """Protection of files that may be in use during installation."""
    NONE = "none"
    AUTO = "auto"
    FORCE = "force"


class ExecutionStage(KeywordEnum):
    NEVER = "never"
    POSTINSTALL = "postinstall"
    UNINSTALL = "uninstall"


class ExecutableType(KeywordEnum):
    BIN = "bin"
    JAR = "jar"


class FailurePolicy(KeywordEnum):
    ASK = "ask"
    ABORT = "abort"
    WARN = "warn"
    IGNORE = "ignore"


@dataclass
class PackFile:
    """A file (or empty directory) installed by a pack."""
    source: Path
    target: str
    os_constraints: List[OsConstraint] = field(default_factory=list)
    override: OverridePolicy = OverridePolicy.UPDATE
    blockable: BlockablePolicy = BlockablePolicy.NONE
    additionals: Dict[str, Any] = field(default_factory=dict)
    condition_id: Optional[str] = None
    is_directory: bool = False
    size: int = 0
    relative_source: Optional[str] = None
    # Source lives in the build workspace and is removed after the compile
    transient: bool = False
    content: Optional[bytes] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": str(self.source),
            "target": self.target,
            "os_constraints": [c.to_dict() for c in self.os_constraints],
            "override": self.override.value,
            "blockable": self.blockable.value,
            "additionals": self.additionals,
            "condition_id": self.condition_id,
            "is_directory": self.is_directory,
            "size": self.size,
            "relative_source": self.relative_source,
            "transient": self.transient,
        }


@dataclass
class ParsableFile:
    """An installed file whose install-time variables are substituted."""
    target: str
    substitution_type: SubstitutionType = SubstitutionType.PLAIN
    encoding: Optional[str] = None
    os_constraints: List[OsConstraint] = field(default_factory=list)
    condition_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "substitution_type": self.substitution_type.value,
            "encoding": self.encoding,
            "os_constraints": [c.to_dict() for c in self.os_constraints],
            "condition_id": self.condition_id,
        }


@dataclass
class ExecutableFile:
    """An installed file that is run at a given stage."""
    target: str
    stage: ExecutionStage = ExecutionStage.NEVER
    type: ExecutableType = ExecutableType.BIN
    main_class: Optional[str] = None
    on_failure: FailurePolicy = FailurePolicy.ASK
    keep: bool = False
    args: List[str] = field(default_factory=list)
    os_constraints: List[OsConstraint] = field(default_factory=list)
    condition_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "stage": self.stage.value,
            "type": self.type.value,
            "main_class": self.main_class,
            "on_failure": self.on_failure.value,
            "keep": self.keep,
            "args": self.args,
            "os_constraints": [c.to_dict() for c in self.os_constraints],
            "condition_id": self.condition_id,
        }


@dataclass
class UpdateCheck:
    """Patterns of installed files removed before an update."""
    includes: List[str] = field(default_factory=list)
    excludes: List[str] = field(default_factory=list)
    case_sensitive: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "includes": self.includes,
            "excludes": self.excludes,
            "case_sensitive": self.case_sensitive,
        }


@dataclass
class Pack:
    """
    A named, independently selectable unit of installable content.

    `preselected` defaults to False for packs in an exclude group and to
    True otherwise; the builder applies that default when the descriptor
    does not say.
    """
    name: str
    description: str = ""
    id: Optional[str] = None
    required: bool = False
    loose: bool = False
    exclude_group: Optional[str] = None
    uninstall: bool = True
    group: Optional[str] = None
    install_groups: Set[str] = field(default_factory=set)
    parent: Optional[str] = None
    hidden: bool = False
    preselected: bool = True
    condition_id: Optional[str] = None
    pack_img_id: Optional[str] = None
    os_constraints: List[OsConstraint] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    files: List[PackFile] = field(default_factory=list)
    parsables: List[ParsableFile] = field(default_factory=list)
    executables: List[ExecutableFile] = field(default_factory=list)
    update_checks: List[UpdateCheck] = field(default_factory=list)
    validators: List[str] = field(default_factory=list)

    # Where the pack was declared
    source: Optional[str] = None
    line: Optional[int] = None

    @property
    def pack_id(self) -> str:
        """Explicit id, or the name when none was given."""
        return self.id or self.name

    @property
    def total_size(self) -> int:
        return sum(f.size for f in self.files)

    def add_dependency(self, pack_name: str) -> None:
        if pack_name not in self.dependencies:
            self.dependencies.append(pack_name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "id": self.id,
            "description": self.description,
            "required": self.required,
            "loose": self.loose,
            "exclude_group": self.exclude_group,
            "uninstall": self.uninstall,
            "group": self.group,
            "install_groups": sorted(self.install_groups),
            "parent": self.parent,
            "hidden": self.hidden,
            "preselected": self.preselected,
            "condition_id": self.condition_id,
            "pack_img_id": self.pack_img_id,
            "os_constraints": [c.to_dict() for c in self.os_constraints],
            "dependencies": self.dependencies,
            "files": [f.to_dict() for f in self.files],
            "parsables": [p.to_dict() for p in self.parsables],
            "executables": [e.to_dict() for e in self.executables],
            "update_checks": [u.to_dict() for u in self.update_checks],
            "validators": self.validators,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)
