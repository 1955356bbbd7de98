"""
Compiler orchestration.
"""

from install_compiler.compiler.compiler import (
    BuildPhase,
    CompilationResult,
    InstallerCompiler,
    compile_installer,
)
from install_compiler.compiler.context import BuildContext, BuildWarning
from install_compiler.compiler.sections import SectionCompiler

__all__ = [
    "BuildPhase",
    "CompilationResult",
    "InstallerCompiler",
    "compile_installer",
    "BuildContext",
    "BuildWarning",
    "SectionCompiler",
]
