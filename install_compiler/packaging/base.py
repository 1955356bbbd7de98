"""
Packager Sink Interface.

The compiler hands the finished build model to a Packager. How the model
is turned into an installer file is entirely the packager's concern.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from install_compiler.core.conditions import Condition
from install_compiler.core.models import CustomData, GUIPrefs, Info, InstallerRequirement, Panel
from install_compiler.core.platform import OsConstraint
from install_compiler.core.variables import DynamicVariable
from install_compiler.packs.models import Pack


class Packager(ABC):
    """
    Receives the build model from the compiler.

    The compiler only calls these methods after every build phase has
    succeeded, followed by `check_dependencies`, `check_excludes` and
    finally `create_installer`.
    """

    # -------------------------------------------------------------------------
    # Properties and variables
    # -------------------------------------------------------------------------

    @abstractmethod
    def set_property(self, name: str, value: str) -> None:
        """Set a property, replacing any previous value."""
        pass

    @abstractmethod
    def add_property(self, name: str, value: str) -> bool:
        """Add a property unless already defined; returns whether it was stored."""
        pass

    @abstractmethod
    def add_variable(self, name: str, value: str) -> None:
        pass

    @abstractmethod
    def add_dynamic_variable(self, variable: DynamicVariable) -> None:
        pass

    @abstractmethod
    def add_condition(self, condition: Condition) -> None:
        pass

    @abstractmethod
    def get_variables(self) -> Dict[str, str]:
        pass

    @abstractmethod
    def get_dynamic_variables(self) -> Dict[str, List[DynamicVariable]]:
        pass

    @abstractmethod
    def get_conditions(self) -> Dict[str, Condition]:
        pass

    # -------------------------------------------------------------------------
    # Installer sections
    # -------------------------------------------------------------------------

    @abstractmethod
    def set_info(self, info: Info) -> None:
        pass

    @abstractmethod
    def set_gui_prefs(self, prefs: GUIPrefs) -> None:
        pass

    @abstractmethod
    def add_configuration_information(self, options: Dict[str, str]) -> None:
        """Options from <packaging><packager><options>."""
        pass

    @abstractmethod
    def add_lang_pack(self, iso3: str, xml_resource: Path, flag_resource: Path) -> None:
        pass

    @abstractmethod
    def add_resource(self, resource_id: str, content: bytes) -> None:
        pass

    @abstractmethod
    def add_native_library(self, name: str, path: Path) -> None:
        pass

    @abstractmethod
    def add_native_uninstaller_library(self, data: CustomData) -> None:
        pass

    @abstractmethod
    def add_jar_content(self, archive: Path) -> None:
        """Merge an archive's content into the installer runtime."""
        pass

    @abstractmethod
    def add_custom_jar(self, data: CustomData, archive: Path) -> None:
        pass

    @abstractmethod
    def add_custom_listener(
        self,
        listener_type: str,
        class_name: str,
        archive_path: str,
        os_constraints: List[OsConstraint],
    ) -> None:
        pass

    @abstractmethod
    def add_panel(self, panel: Panel) -> None:
        pass

    @abstractmethod
    def add_panel_jar(self, panel: Panel, archive: Optional[Path]) -> None:
        pass

    @abstractmethod
    def add_installer_requirement(self, requirements: List[InstallerRequirement]) -> None:
        pass

    # -------------------------------------------------------------------------
    # Packs
    # -------------------------------------------------------------------------

    @abstractmethod
    def add_pack(self, pack: Pack) -> None:
        pass

    @abstractmethod
    def check_dependencies(self) -> None:
        """Raise if a pack depends on a pack that was not added."""
        pass

    @abstractmethod
    def check_excludes(self) -> None:
        """Raise if exclude groups are structurally inconsistent."""
        pass

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    @abstractmethod
    def create_installer(self) -> Any:
        """Produce the installer from everything added so far."""
        pass
