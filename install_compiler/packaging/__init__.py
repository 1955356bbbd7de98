"""
Packager sinks receiving the finished build model.
"""

from install_compiler.packaging.base import Packager
from install_compiler.packaging.memory import InMemoryPackager, InstallerModel

__all__ = [
    "Packager",
    "InMemoryPackager",
    "InstallerModel",
]
