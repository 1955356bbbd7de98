"""
Build listener plugins.
"""

from install_compiler.listeners.base import (
    BuildListener,
    ListenerChain,
    ListenerState,
    LoadedListener,
    SimpleBuildListener,
)
from install_compiler.listeners.loader import ListenerLoader, isolated_import_path

__all__ = [
    "BuildListener",
    "ListenerChain",
    "ListenerState",
    "LoadedListener",
    "SimpleBuildListener",
    "ListenerLoader",
    "isolated_import_path",
]
