"""
In-Memory Packager.

Keeps the whole build model in memory and returns it from
`create_installer`. Useful for testing, inspection and as the default sink
when no real packaging backend is configured.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from install_compiler.core.conditions import Condition
from install_compiler.core.exceptions import CompilerIOError
from install_compiler.core.models import CustomData, GUIPrefs, Info, InstallerRequirement, Panel
from install_compiler.core.platform import OsConstraint
from install_compiler.core.variables import DynamicVariable, DynamicVariableTable
from install_compiler.packaging.base import Packager
from install_compiler.packs.models import Pack
from install_compiler.packs.validator import PackGraphValidator


logger = logging.getLogger(__name__)


@dataclass
class LangPack:
    iso3: str
    xml_resource: Path
    flag_resource: Path


@dataclass
class CustomListener:
    listener_type: str
    class_name: str
    archive_path: str
    os_constraints: List[OsConstraint] = field(default_factory=list)


@dataclass
class InstallerModel:
    """Everything the compiler handed to the packager."""
    info: Optional[Info] = None
    gui_prefs: Optional[GUIPrefs] = None
    properties: Dict[str, str] = field(default_factory=dict)
    variables: Dict[str, str] = field(default_factory=dict)
    dynamic_variables: Dict[str, List[DynamicVariable]] = field(default_factory=dict)
    conditions: Dict[str, Condition] = field(default_factory=dict)
    configuration: Dict[str, str] = field(default_factory=dict)
    lang_packs: List[LangPack] = field(default_factory=list)
    resources: Dict[str, bytes] = field(default_factory=dict)
    native_libraries: Dict[str, Path] = field(default_factory=dict)
    jar_contents: List[Path] = field(default_factory=list)
    custom_data: List[CustomData] = field(default_factory=list)
    custom_listeners: List[CustomListener] = field(default_factory=list)
    panels: List[Panel] = field(default_factory=list)
    panel_jars: Dict[str, Optional[Path]] = field(default_factory=dict)
    installer_requirements: List[InstallerRequirement] = field(default_factory=list)
    packs: List[Pack] = field(default_factory=list)
    artifacts: Dict[Path, bytes] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    def get_pack(self, name: str) -> Optional[Pack]:
        for pack in self.packs:
            if pack.name == name or pack.id == name:
                return pack
        return None

    def read(self, path: Path) -> bytes:
        """Content of a file handed to the packager, captured when it was added."""
        return self.artifacts[Path(path)]


class InMemoryPackager(Packager):
    """
    Packager that records the build model.

    Example:
        packager = InMemoryPackager()
        result = InstallerCompiler(base_dir, packager=packager).compile("install.xml")
        model = result.installer
    """

    def __init__(self):
        self.model = InstallerModel()
        self._dynamic_variables = DynamicVariableTable()
        self.installers_created = 0

    # Properties and variables

    def set_property(self, name: str, value: str) -> None:
        self.model.properties[name] = value

    def add_property(self, name: str, value: str) -> bool:
        if name in self.model.properties:
            return False
        self.model.properties[name] = value
        return True

    def add_variable(self, name: str, value: str) -> None:
        self.model.variables[name] = value

    def add_dynamic_variable(self, variable: DynamicVariable) -> None:
        self._dynamic_variables.add(variable)

    def add_condition(self, condition: Condition) -> None:
        self.model.conditions[condition.id] = condition

    def get_variables(self) -> Dict[str, str]:
        return self.model.variables

    def get_dynamic_variables(self) -> Dict[str, List[DynamicVariable]]:
        return self._dynamic_variables.as_dict()

    def get_conditions(self) -> Dict[str, Condition]:
        return self.model.conditions

    # Installer sections

    def set_info(self, info: Info) -> None:
        self.model.info = info

    def set_gui_prefs(self, prefs: GUIPrefs) -> None:
        self.model.gui_prefs = prefs

    def add_configuration_information(self, options: Dict[str, str]) -> None:
        self.model.configuration.update(options)

    def add_lang_pack(self, iso3: str, xml_resource: Path, flag_resource: Path) -> None:
        self.model.lang_packs.append(LangPack(iso3, xml_resource, flag_resource))
        self._capture(xml_resource)
        self._capture(flag_resource)

    def add_resource(self, resource_id: str, content: bytes) -> None:
        self.model.resources[resource_id] = content

    def add_native_library(self, name: str, path: Path) -> None:
        self.model.native_libraries[name] = path
        self._capture(path)

    def add_native_uninstaller_library(self, data: CustomData) -> None:
        self.model.custom_data.append(data)

    def add_jar_content(self, archive: Path) -> None:
        self.model.jar_contents.append(archive)
        self._capture(archive)

    def add_custom_jar(self, data: CustomData, archive: Path) -> None:
        self.model.custom_data.append(data)

    def add_custom_listener(
        self,
        listener_type: str,
        class_name: str,
        archive_path: str,
        os_constraints: List[OsConstraint],
    ) -> None:
        self.model.custom_listeners.append(
            CustomListener(listener_type, class_name, archive_path, list(os_constraints))
        )

    def add_panel(self, panel: Panel) -> None:
        self.model.panels.append(panel)

    def add_panel_jar(self, panel: Panel, archive: Optional[Path]) -> None:
        self.model.panel_jars[panel.class_name] = archive
        if archive is not None:
            self._capture(archive)

    def add_installer_requirement(self, requirements: List[InstallerRequirement]) -> None:
        self.model.installer_requirements.extend(requirements)

    # Packs

    def add_pack(self, pack: Pack) -> None:
        self.model.packs.append(pack)

    def check_dependencies(self) -> None:
        PackGraphValidator().check_dependencies(self.model.packs)

    def check_excludes(self) -> None:
        PackGraphValidator().check_excludes(self.model.packs)

    # Output

    def create_installer(self) -> InstallerModel:
        for pack in self.model.packs:
            for pack_file in pack.files:
                if pack_file.transient and not pack_file.is_directory:
                    pack_file.content = self._capture(pack_file.source)
        self.model.dynamic_variables = self._dynamic_variables.as_dict()
        self.model.created_at = datetime.now()
        self.installers_created += 1
        logger.info(
            f"Installer model created: {len(self.model.packs)} packs, "
            f"{len(self.model.panels)} panels, {len(self.model.resources)} resources"
        )
        return self.model

    # Captured content

    def _capture(self, path: Path) -> Optional[bytes]:
        path = Path(path)
        if not path.is_file():
            return None
        try:
            content = path.read_bytes()
        except OSError as e:
            raise CompilerIOError(f"Unable to read {path}: {e}", {"path": str(path)})
        self.model.artifacts[path] = content
        return content
