"""
Install Compiler Packs System.

Packs are the installable units of a product. This package builds them from
the descriptor:
- Pack models (files, parsables, executables, update checks)
- Ant-style filesets
- Archive expansion
- Referenced pack descriptors
- Dependency and exclusion validation
"""

from install_compiler.packs.models import (
    Pack,
    PackFile,
    ParsableFile,
    ExecutableFile,
    UpdateCheck,
    OverridePolicy,
    BlockablePolicy,
)
from install_compiler.packs.builder import PackGraphBuilder
from install_compiler.packs.fileset import DirectoryScanner
from install_compiler.packs.validator import PackGraphValidator

__all__ = [
    "Pack",
    "PackFile",
    "ParsableFile",
    "ExecutableFile",
    "UpdateCheck",
    "OverridePolicy",
    "BlockablePolicy",
    "PackGraphBuilder",
    "DirectoryScanner",
    "PackGraphValidator",
]
