"""
Resource location, transformation and localized merging.
"""

from install_compiler.resources.locator import ResourceLocator
from install_compiler.resources.pipeline import (
    FinalizedResource,
    ResourceFlags,
    ResourcePipeline,
)
from install_compiler.resources.merger import LocalizedResourceMerger

__all__ = [
    "ResourceLocator",
    "FinalizedResource",
    "ResourceFlags",
    "ResourcePipeline",
    "LocalizedResourceMerger",
]
