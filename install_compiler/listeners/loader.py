"""
Listener Plugin Loader.

Loads build listeners from plugin archives. An archive is a zip file or a
directory of Python modules; a listener class lives in a module named after
it (`Foo` in `.../Foo.py`).

Archive resolution for <listener compiler="Foo" jar="...">:
1. the explicit `jar` attribute (property-substituted)
2. `<listener_dir>/Foo.zip` (or a `Foo` directory) among built-in resources
3. each directory of the configured search path

Plugin modules are imported in isolation: the archive root is on the import
path only while the class is loaded, and the modules imported from it are
dropped from `sys.modules` afterwards.
"""

import importlib
import logging
import sys
import tempfile
import zipfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from types import ModuleType
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Union

from install_compiler.core.descriptor import DescriptorNode
from install_compiler.core.exceptions import (
    AmbiguousClassNameError,
    ArchiveReadError,
    ListenerLoadError,
    ResourceNotFoundError,
)
from install_compiler.core.platform import parse_os_constraints
from install_compiler.listeners.base import BuildListener, LoadedListener
from install_compiler.packs.archives import resolve_class_name
from install_compiler.resources.locator import ResourceLocator


logger = logging.getLogger(__name__)


ARCHIVE_SUFFIX = ".zip"


# -----------------------------------------------------------------------------
# Isolated import
# -----------------------------------------------------------------------------

def _is_from(module: ModuleType, root: Path) -> bool:
    locations: List[str] = []
    file = getattr(module, "__file__", None)
    if file:
        locations.append(file)
    locations.extend(getattr(module, "__path__", None) or [])
    for location in locations:
        try:
            Path(location).resolve().relative_to(root)
            return True
        except ValueError:
            continue
    return False


@contextmanager
def isolated_import_path(root: Path, top_level: str) -> Iterator[None]:
    """
    Make `root` importable for the duration of the block.

    Modules already loaded under `top_level` are hidden during the block
    and restored afterwards; modules imported from `root` are removed.
    """
    root = root.resolve()
    root_entry = str(root)
    hidden: Dict[str, ModuleType] = {
        name: module for name, module in sys.modules.items()
        if name == top_level or name.startswith(top_level + ".")
    }
    for name in hidden:
        del sys.modules[name]

    sys.path.insert(0, root_entry)
    importlib.invalidate_caches()
    try:
        yield
    finally:
        if root_entry in sys.path:
            sys.path.remove(root_entry)
        sys.path_importer_cache.pop(root_entry, None)
        for name, module in list(sys.modules.items()):
            if _is_from(module, root):
                del sys.modules[name]
        sys.modules.update(hidden)


# -----------------------------------------------------------------------------
# Plugin archives
# -----------------------------------------------------------------------------

class PluginArchive(ABC):
    """Abstract base class for plugin archive sources."""

    def __init__(self, path: Path):
        self.path = path

    @abstractmethod
    def get_root(self) -> Path:
        """Directory from which the archive's modules are imported."""
        pass

    def resolve(self, class_name: str) -> Optional[str]:
        """Fully qualified name of a short class name, or None if absent."""
        return resolve_class_name(self.get_root(), class_name)

    def load_class(self, qualified_name: str) -> type:
        """
        Import the module holding `qualified_name` and return the class.

        `pkg.Foo` is first read as module `pkg.Foo` holding class `Foo`,
        then as module `pkg` holding class `Foo`.

        Raises:
            ListenerLoadError: If the module or class cannot be loaded
        """
        short_name = qualified_name.rpartition(".")[2]
        top_level = qualified_name.partition(".")[0]
        candidates = [qualified_name]
        if "." in qualified_name:
            candidates.append(qualified_name.rpartition(".")[0])

        with isolated_import_path(self.get_root(), top_level):
            for module_name in candidates:
                try:
                    module = importlib.import_module(module_name)
                except ModuleNotFoundError as e:
                    if e.name and module_name.startswith(e.name):
                        continue
                    raise ListenerLoadError(f"Cannot import {module_name} from {self.path}: {e}")
                except Exception as e:
                    raise ListenerLoadError(f"Error importing {module_name} from {self.path}: {e}")
                loaded = getattr(module, short_name, None)
                if isinstance(loaded, type):
                    return loaded

        raise ListenerLoadError(f"Cannot find defined build listener {qualified_name} in {self.path}")


class DirectoryPluginArchive(PluginArchive):
    """Plugin modules in a plain directory."""

    def get_root(self) -> Path:
        return self.path


class ZipPluginArchive(PluginArchive):
    """Plugin modules in a zip file, extracted into the build workspace."""

    def __init__(self, path: Path, workspace: Path):
        super().__init__(path)
        self._root = Path(tempfile.mkdtemp(prefix=f"plugin_{path.stem}_", dir=workspace))
        try:
            with zipfile.ZipFile(path, "r") as zf:
                zf.extractall(self._root)
        except (zipfile.BadZipFile, OSError) as e:
            raise ArchiveReadError(f"Invalid plugin archive {path}: {e}", {"archive": str(path)})

    def get_root(self) -> Path:
        return self._root


def open_plugin_archive(path: Path, workspace: Path) -> PluginArchive:
    if path.is_dir():
        return DirectoryPluginArchive(path)
    return ZipPluginArchive(path, workspace)


# -----------------------------------------------------------------------------
# Loader
# -----------------------------------------------------------------------------

class ListenerLoader:
    """
    Loads build listeners declared by <listener> elements.

    Example:
        loader = ListenerLoader(locator, properties.replace, workspace)
        loaded = loader.load(listener_node)
        if loaded is not None:
            chain.add(loaded)
    """

    def __init__(
        self,
        locator: ResourceLocator,
        replace_properties: Callable[[Optional[str]], Optional[str]],
        workspace: Union[str, Path],
        listener_dir: str = "bin/customActions",
        search_path: Optional[Sequence[Union[str, Path]]] = None,
    ):
        self.locator = locator
        self.replace_properties = replace_properties
        self.workspace = Path(workspace)
        self.listener_dir = listener_dir
        self.search_path = [Path(p) for p in (search_path or [])]

    def load(self, node: DescriptorNode) -> Optional[LoadedListener]:
        """
        Load the build listener named by the node's `compiler` attribute.

        Returns:
            The loaded listener, or None when the node declares none

        Raises:
            ResourceNotFoundError: If no archive can be found
            AmbiguousClassNameError: If the class name only matches case-insensitively
            ListenerLoadError: If the class cannot be loaded or lacks the capability
        """
        class_name = node.get_attribute("compiler")
        if class_name is None:
            return None

        archive_path = self.find_archive(node, class_name)
        try:
            archive = open_plugin_archive(archive_path, self.workspace)
        except ArchiveReadError as e:
            raise ArchiveReadError(e.message, e.details, **node.location)

        if "." in class_name:
            qualified = class_name
        else:
            try:
                qualified = archive.resolve(class_name)
            except AmbiguousClassNameError as e:
                raise AmbiguousClassNameError(e.class_name, e.entry, **node.location)

        if qualified is None:
            raise ListenerLoadError(
                f"Cannot find defined build listener {class_name} in {archive_path}",
                {"class_name": class_name, "archive": str(archive_path)},
                **node.location,
            )

        try:
            listener_class = archive.load_class(qualified)
        except ListenerLoadError as e:
            raise ListenerLoadError(e.message, e.details, **node.location)

        if not issubclass(listener_class, BuildListener):
            raise ListenerLoadError(
                f"'{qualified}' must implement {BuildListener.__name__}",
                {"class_name": qualified},
                **node.location,
            )

        try:
            instance = listener_class()
        except Exception as e:
            raise ListenerLoadError(
                f"Cannot instantiate build listener {qualified}: {e}",
                {"class_name": qualified},
                **node.location,
            )

        logger.info(f"Loaded build listener {qualified} from {archive_path}")
        return LoadedListener(
            instance=instance,
            class_name=qualified,
            os_constraints=parse_os_constraints(node),
        )

    def find_archive(self, node: DescriptorNode, class_name: str) -> Path:
        """
        Locate the archive holding a listener class.

        Raises:
            ResourceNotFoundError: If no candidate exists
        """
        explicit = self.replace_properties(node.get_attribute("jar"))
        if explicit:
            project_path = self.locator.resolve_project_path(explicit)
            if project_path.exists():
                return project_path
            return self.locator.find_builtin_resource(explicit, "Listener archive", node)

        for candidate in self._conventional_names(class_name):
            found = self.locator.locate_builtin(f"{self.listener_dir}/{candidate}")
            if found is not None:
                return found

        for directory in self.search_path:
            for candidate in self._conventional_names(class_name):
                path = directory / candidate
                if path.exists():
                    return path

        raise ResourceNotFoundError(
            "Listener archive",
            f"{self.listener_dir}/{class_name}{ARCHIVE_SUFFIX}",
            **node.location,
        )

    def archive_path_for(self, node: DescriptorNode, class_name: str) -> str:
        """
        Archive path recorded for installer and uninstaller listeners.

        The path is not required to exist at build time.
        """
        explicit = self.replace_properties(node.get_attribute("jar"))
        if explicit:
            return explicit
        conventional = f"{self.listener_dir}/{class_name}{ARCHIVE_SUFFIX}"
        if self.locator.locate_builtin(conventional) is not None:
            return conventional
        for directory in self.search_path:
            path = directory / f"{class_name}{ARCHIVE_SUFFIX}"
            if path.exists():
                return str(path)
        return conventional

    @staticmethod
    def _conventional_names(class_name: str) -> List[str]:
        short_name = class_name.rpartition(".")[2]
        return [f"{short_name}{ARCHIVE_SUFFIX}", short_name]
