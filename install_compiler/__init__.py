"""
Install Compiler v1.0

Compiles declarative installation descriptors into a validated build model
handed to a packaging backend.
"""

__version__ = "1.0.0"

from .compiler import CompilationResult, InstallerCompiler, compile_installer
from .core.exceptions import CompilerError
from .listeners import BuildListener, SimpleBuildListener
from .packaging import InMemoryPackager, InstallerModel, Packager

__all__ = [
    # Compiler
    "InstallerCompiler",
    "CompilationResult",
    "compile_installer",
    "CompilerError",
    # Extension points
    "BuildListener",
    "SimpleBuildListener",
    "Packager",
    "InMemoryPackager",
    "InstallerModel",
]
