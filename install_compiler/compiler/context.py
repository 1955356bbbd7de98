"""
Build Context.

Holds everything one compile produces before it is handed to the packager:
the property, variable and condition tables, the registered build listeners,
collected warnings and a journal of staged packager calls. The context also
owns the build-scoped temporary workspace, which is released when the
context exits.
"""

import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Tuple

from install_compiler.config import CompilerSettings
from install_compiler.core.conditions import ConditionTable
from install_compiler.core.descriptor import DescriptorLoader, DescriptorNode
from install_compiler.core.properties import PropertyTable
from install_compiler.core.variables import DynamicVariableTable, VariableTable
from install_compiler.listeners.base import ListenerChain
from install_compiler.packaging.base import Packager
from install_compiler.packs.models import Pack
from install_compiler.resources.locator import ResourceLocator
from install_compiler.resources.merger import LocalizedResourceMerger
from install_compiler.resources.pipeline import ResourcePipeline


logger = logging.getLogger(__name__)


@dataclass
class BuildWarning:
    """A non-fatal anomaly found while compiling."""
    message: str
    source: Optional[str] = None
    line: Optional[int] = None

    def __str__(self) -> str:
        if self.source and self.line is not None:
            return f"{self.source}:{self.line}: {self.message}"
        return self.message


StagedCall = Tuple[str, Tuple[Any, ...]]


class BuildContext:
    """
    Per-compile state.

    Use as a context manager; the workspace exists only inside the block.

    Example:
        with BuildContext(base_dir, settings) as context:
            context.stage("add_resource", "readme", b"...")
            context.commit(packager)
    """

    def __init__(self, base_dir: Path, settings: CompilerSettings):
        self.base_dir = Path(base_dir)
        self.settings = settings

        self.properties = PropertyTable()
        self.variables = VariableTable()
        self.dynamic_variables = DynamicVariableTable()
        self.conditions = ConditionTable()
        self.listeners = ListenerChain()
        self.merger = LocalizedResourceMerger(settings.localized_resource_prefixes)
        self.loader = DescriptorLoader(settings.root_element, settings.descriptor_version)

        self.packager: Optional[Packager] = None
        self.packs: List[Pack] = []
        self.warnings: List[BuildWarning] = []
        self.staged: List[StagedCall] = []

        self._tempdir: Optional[tempfile.TemporaryDirectory] = None
        self.workspace: Optional[Path] = None
        self.locator: Optional[ResourceLocator] = None

    def __enter__(self) -> "BuildContext":
        self._tempdir = tempfile.TemporaryDirectory(prefix=f"{self.settings.temp_prefix}build_")
        self.workspace = Path(self._tempdir.name)
        self.locator = ResourceLocator(
            base_dir=self.base_dir,
            installer_home=self.settings.installer_home,
            workspace=self.workspace,
            embedded_package=self.settings.embedded_resource_package,
            warn=self.warn,
        )
        logger.debug(f"Build workspace created at {self.workspace}")
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        if self._tempdir is not None:
            self._tempdir.cleanup()
            logger.debug(f"Build workspace {self.workspace} released")
        self._tempdir = None

    # -------------------------------------------------------------------------
    # Warnings
    # -------------------------------------------------------------------------

    def warn(self, node: Optional[DescriptorNode], message: str) -> None:
        """Record a warning at the node's location and log it."""
        warning = BuildWarning(
            message=message,
            source=node.source if node is not None else None,
            line=node.line if node is not None else None,
        )
        self.warnings.append(warning)
        logger.warning(str(warning))

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def resource_pipeline(self) -> ResourcePipeline:
        """Pipeline bound to the variables defined so far."""
        return ResourcePipeline(
            self.variables.as_dict(),
            warn=self.warn,
            temp_prefix=self.settings.temp_prefix,
        )

    # -------------------------------------------------------------------------
    # Staging
    # -------------------------------------------------------------------------

    def stage(self, method: str, *args: Any) -> None:
        """Queue a packager call to be replayed on commit."""
        if not callable(getattr(Packager, method, None)):
            raise AttributeError(f"Packager has no method '{method}'")
        self.staged.append((method, args))

    def staged_calls(self, method: str) -> List[Tuple[Any, ...]]:
        """Arguments of every staged call to `method`, in order."""
        return [args for name, args in self.staged if name == method]

    def commit(self, packager: Packager) -> None:
        """
        Hand the staged build model to the packager.

        Tables are committed first, then the staged section calls in the
        order they were made, then the packs.
        """
        for name in self.properties:
            packager.add_property(name, self.properties[name])
        for name, value in self.variables.as_dict().items():
            packager.add_variable(name, value)
        for candidates in self.dynamic_variables.as_dict().values():
            for variable in candidates:
                packager.add_dynamic_variable(variable)
        for condition in self.conditions:
            packager.add_condition(condition)

        for method, args in self.staged:
            getattr(packager, method)(*args)

        for pack in self.packs:
            packager.add_pack(pack)

        logger.info(
            f"Committed {len(self.staged)} staged calls and {len(self.packs)} packs "
            f"to {type(packager).__name__}"
        )
