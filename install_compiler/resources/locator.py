"""
Resource Locator.

Finds the files a descriptor refers to:
- project resources, relative to the descriptor's base directory
- built-in resources, shipped inside an embedded Python package or under
  the installer home directory
"""

import logging
import shutil
from importlib import resources as importlib_resources
from pathlib import Path
from typing import Optional, Union

from install_compiler.core.descriptor import DescriptorNode, WarnCallback
from install_compiler.core.exceptions import CompilerIOError, ResourceNotFoundError


logger = logging.getLogger(__name__)


class ResourceLocator:
    """
    Resolves project and built-in resource paths.

    Args:
        base_dir: Project base directory
        installer_home: Directory holding built-in resources
        workspace: Build-scoped directory for materialized embedded resources
        embedded_package: Package searched first for built-in resources
        warn: Callback receiving non-fatal anomalies
    """

    def __init__(
        self,
        base_dir: Union[str, Path],
        installer_home: Union[str, Path],
        workspace: Union[str, Path],
        embedded_package: Optional[str] = None,
        warn: Optional[WarnCallback] = None,
    ):
        self.base_dir = Path(base_dir)
        self.installer_home = Path(installer_home)
        self.workspace = Path(workspace)
        self.embedded_package = embedded_package
        self.warn = warn

    def resolve_project_path(self, path: Union[str, Path]) -> Path:
        """Absolute paths are kept; relative ones are joined to the base directory."""
        path = Path(path)
        if path.is_absolute():
            return path
        return self.base_dir / path

    def find_project_resource(
        self,
        path: Union[str, Path],
        description: str,
        node: Optional[DescriptorNode] = None,
    ) -> Path:
        """
        Locate a resource supplied by the project.

        Raises:
            ResourceNotFoundError: If the resolved path does not exist
        """
        resolved = self.resolve_project_path(path)
        if not resolved.exists():
            location = node.location if node is not None else {}
            raise ResourceNotFoundError(description, str(resolved), **location)
        logger.debug(f"Resolved {description} '{path}' to {resolved}")
        return resolved

    def find_builtin_resource(
        self,
        path: str,
        description: str,
        node: Optional[DescriptorNode] = None,
        ignore_missing: bool = False,
    ) -> Optional[Path]:
        """
        Locate a resource shipped with the compiler.

        The embedded package is searched first, then the installer home.

        Args:
            path: Relative resource path, e.g. "lib/uninstaller.zip"
            description: Human readable resource kind for messages
            node: Requesting node, for error locations
            ignore_missing: Warn and return None instead of raising

        Raises:
            ResourceNotFoundError: If the resource is missing and not ignored
        """
        found = self.locate_builtin(path)
        if found is not None:
            return found

        if ignore_missing:
            message = f"{description} not found: {path}"
            if self.warn is not None and node is not None:
                self.warn(node, message)
            else:
                logger.warning(message)
            return None

        location = node.location if node is not None else {}
        raise ResourceNotFoundError(description, str(self.installer_home / path), **location)

    def locate_builtin(self, path: str) -> Optional[Path]:
        """Built-in resource lookup without warnings or errors."""
        embedded = self._find_embedded(path)
        if embedded is not None:
            return embedded
        candidate = self.installer_home / path
        if candidate.exists():
            return candidate
        return None

    def _find_embedded(self, path: str) -> Optional[Path]:
        if not self.embedded_package:
            return None
        try:
            resource = importlib_resources.files(self.embedded_package).joinpath(path)
        except ModuleNotFoundError:
            logger.debug(f"Embedded resource package '{self.embedded_package}' is not importable")
            return None
        if not resource.is_file():
            return None
        if isinstance(resource, Path):
            return resource

        # Packaged inside an archive: copy it into the build workspace
        target = self.workspace / "embedded" / path
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            with importlib_resources.as_file(resource) as materialized:
                shutil.copyfile(materialized, target)
        except OSError as e:
            raise CompilerIOError(f"Unable to copy embedded resource {path}: {e}")
        logger.debug(f"Materialized embedded resource {path} at {target}")
        return target
