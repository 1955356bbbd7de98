"""
Installer Section Compilers.

One method per top-level descriptor section except <packs> and
<properties>. Every method reads from the descriptor tree, records anomalies
as warnings on the build context and stages packager calls; nothing reaches
the packager before the whole compile succeeded.
"""

import importlib
import logging
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import AnyUrl, TypeAdapter, ValidationError

from install_compiler.core.conditions import parse_condition
from install_compiler.core.descriptor import DescriptorNode, parse_yes_no
from install_compiler.core.exceptions import (
    AmbiguousClassNameError,
    ArchiveReadError,
    CompilerIOError,
    InvalidEnumValueError,
    InvalidValueError,
    MissingRequiredAttributeError,
    MissingRequiredChildError,
    PluginError,
)
from install_compiler.core.models import (
    Author,
    CustomData,
    CustomDataType,
    GUIPrefs,
    Info,
    InstallerRequirement,
    LookAndFeel,
    Panel,
    PanelAction,
    PanelActionStage,
    RebootAction,
)
from install_compiler.core.platform import parse_os_constraints
from install_compiler.core.variables import DynamicVariable
from install_compiler.listeners.loader import ListenerLoader
from install_compiler.packaging.base import Packager
from install_compiler.packs.archives import list_entries, resolve_class_name
from install_compiler.resources.pipeline import ResourceFlags

from .context import BuildContext


logger = logging.getLogger(__name__)


# Look and feel name -> archive under the look and feel directory
LOOK_AND_FEEL_ARCHIVES: Dict[str, str] = {
    "liquid": "liquidlnf.zip",
    "kunststoff": "kunststoff.zip",
    "metouia": "metouia.zip",
    "looks": "looks.zip",
    "substance": "substance.zip",
    "nimbus": "nimbus.zip",
}

UNINSTALLER_RESOURCE_ID = "uninstaller"
UNINSTALLER_EXT_RESOURCE_ID = "uninstaller-ext"
UNPACKER_CLASS_PROPERTY = "UNPACKER_CLASS"
UNINSTALL_STAGES = ("both", "uninstall")

_url_adapter = TypeAdapter(AnyUrl)


def require_url_content(node: DescriptorNode) -> str:
    """Element content that must be a valid URL."""
    content = node.require_content()
    try:
        _url_adapter.validate_python(content)
    except ValidationError:
        raise InvalidValueError(f"<{node.name}> requires valid URL content: {content}", **node.location)
    return content


def load_class(dotted_name: str, node: Optional[DescriptorNode] = None) -> type:
    """
    Import a class by its dotted name.

    Raises:
        PluginError: If the module or class cannot be found
    """
    location = node.location if node is not None else {}
    module_name, _, class_name = dotted_name.rpartition(".")
    if not module_name:
        raise PluginError(f"'{dotted_name}' is not a dotted class name", **location)
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise PluginError(f"Cannot import {module_name}: {e}", {"class_name": dotted_name}, **location)
    try:
        return getattr(module, class_name)
    except AttributeError:
        raise PluginError(f"Class {class_name} not found in {module_name}", {"class_name": dotted_name}, **location)


class SectionCompiler:
    """
    Compiles the installer-wide descriptor sections into the build context.

    Args:
        context: The active build context
    """

    def __init__(self, context: BuildContext):
        self.context = context
        self.settings = context.settings
        self._write_uninstaller: Optional[bool] = None

    @property
    def locator(self):
        return self.context.locator

    def _read_bytes(self, path: Path, node: DescriptorNode) -> bytes:
        try:
            return Path(path).read_bytes()
        except OSError as e:
            raise CompilerIOError(f"Unable to read {path}: {e}", {"path": str(path)}, **node.location)

    # -------------------------------------------------------------------------
    # Packaging
    # -------------------------------------------------------------------------

    def load_packaging(self, root: DescriptorNode, packager: Optional[Packager]) -> Packager:
        """
        Read <packaging>, instantiating the packager unless one was given.

        The unpacker class is recorded in the UNPACKER_CLASS property.
        """
        packager_class = self.settings.packager_class
        unpacker_class = self.settings.unpacker_class
        packager_node = None

        section = root.first_child("packaging")
        if section is not None:
            packager_node = section.first_child("packager")
            if packager_node is not None:
                packager_class = packager_node.require_attribute("class")
            unpacker_node = section.first_child("unpacker")
            if unpacker_node is not None:
                unpacker_class = unpacker_node.require_attribute("class")

        if packager is None:
            cls = load_class(packager_class, packager_node)
            if not (isinstance(cls, type) and issubclass(cls, Packager)):
                location = packager_node.location if packager_node is not None else {}
                raise PluginError(f"'{packager_class}' is not a Packager", **location)
            packager = cls()
            logger.info(f"Using packager {packager_class}")

        if packager_node is not None:
            options = packager_node.first_child("options")
            if options is not None:
                configuration = dict(options.attributes)
                for option in options.children:
                    configuration[option.name] = option.content or ""
                self.context.stage("add_configuration_information", configuration)

        self.context.properties.add_property(UNPACKER_CLASS_PROPERTY, unpacker_class)
        return packager

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def load_listeners(self, root: DescriptorNode) -> None:
        """Register build listeners and stage installer/uninstaller listeners."""
        section = root.first_child("listeners")
        if section is None:
            return

        loader = ListenerLoader(
            locator=self.locator,
            replace_properties=self.context.properties.replace,
            workspace=self.context.workspace,
            listener_dir=self.settings.listener_dir,
            search_path=self.settings.listener_search_path,
        )
        for node in section.children_named("listener"):
            loaded = loader.load(node)
            if loaded is not None:
                self.context.listeners.add(loaded)

            for attribute, listener_type in (
                ("installer", CustomDataType.INSTALLER_LISTENER),
                ("uninstaller", CustomDataType.UNINSTALLER_LISTENER),
            ):
                class_name = node.get_attribute(attribute)
                if class_name is None:
                    continue
                self.context.stage(
                    "add_custom_listener",
                    listener_type.value,
                    class_name,
                    loader.archive_path_for(node, class_name),
                    parse_os_constraints(node),
                )

    # -------------------------------------------------------------------------
    # Variables and conditions
    # -------------------------------------------------------------------------

    def load_variables(self, root: DescriptorNode) -> None:
        section = root.first_child("variables")
        if section is None:
            return
        for node in section.children_named("variable"):
            name = node.require_attribute("name")
            value = node.require_attribute("value")
            if self.context.variables.add(name, value):
                self.context.warn(node, f"Variable '{name}' being overwritten")

    def load_dynamic_variables(self, root: DescriptorNode) -> None:
        """
        Read <dynamicvariables>.

        A variable takes its value from the `value` attribute or, failing
        that, from a <value> child element.
        """
        section = root.first_child("dynamicvariables")
        if section is None:
            return
        for node in section.children_named("variable"):
            name = node.require_attribute("name")
            value = node.get_attribute("value")
            if value is None:
                value_node = node.first_child("value")
                if value_node is None or value_node.content is None:
                    raise MissingRequiredAttributeError(node.name, "value", **node.location)
                value = value_node.content

            variable = DynamicVariable(
                name=name,
                value=value,
                condition_id=node.get_attribute("condition"),
                check_once=parse_yes_no(node.get_attribute("checkonce")),
            )
            if self.context.dynamic_variables.add(variable):
                self.context.warn(node, f"Dynamic Variable '{name}' will be overwritten")

    def load_conditions(self, root: DescriptorNode) -> None:
        section = root.first_child("conditions")
        if section is None:
            return
        for node in section.children_named("condition"):
            condition = parse_condition(node)
            if condition is None:
                self.context.warn(node, "Condition couldn't be instantiated.")
                continue
            if self.context.conditions.add(condition):
                self.context.warn(node, f"Condition with id '{condition.id}' will be overwritten")

        for missing in sorted(self.context.conditions.unresolved_references()):
            self.context.warn(section, f"Referenced condition '{missing}' is not defined")

    # -------------------------------------------------------------------------
    # Info
    # -------------------------------------------------------------------------

    def writes_uninstaller(self, root: DescriptorNode) -> bool:
        """Value of <uninstaller write="...">, read once per compile."""
        if self._write_uninstaller is None:
            uninstaller = root.require_child("info").first_child("uninstaller")
            self._write_uninstaller = (
                uninstaller is None
                or uninstaller.validate_yes_no_attribute("write", True, self.context.warn)
            )
        return self._write_uninstaller

    def load_info(self, root: DescriptorNode) -> None:
        """
        Build the Info model from <info>.

        Raises:
            MissingRequiredChildError: If <appname> or <appversion> is missing
            InvalidValueError: For invalid URLs or a missing web directory
        """
        section = root.require_child("info")
        info = Info(
            app_name=section.require_child("appname").require_content(),
            app_version=section.require_child("appversion").require_content(),
        )

        subpath = section.first_child("appsubpath")
        if subpath is not None:
            info.app_subpath = subpath.require_content()

        url = section.first_child("url")
        if url is not None:
            info.url = require_url_content(url)

        authors = section.first_child("authors")
        if authors is not None:
            for node in authors.children_named("author"):
                info.authors.append(
                    Author(name=node.require_attribute("name"), email=node.get_attribute("email", ""))
                )

        java_version = section.first_child("javaversion")
        if java_version is not None:
            info.java_version = java_version.require_content()

        requires_jdk = section.first_child("requiresjdk")
        if requires_jdk is not None:
            info.requires_jdk = requires_jdk.content == "yes"

        webdir = section.first_child("webdir")
        if webdir is not None:
            info.web_dir_url = require_url_content(webdir)
        kind = (self.settings.kind or "").lower()
        if kind == "web" and webdir is None:
            raise InvalidValueError('<webdir> required when "web" installer requested', **section.location)
        if kind == "standard" and webdir is not None:
            info.web_dir_url = None

        info.pack200_compression = section.first_child("pack200") is not None

        privileged = section.first_child("run-privileged")
        info.requires_privileges = privileged is not None
        if privileged is not None:
            info.privileged_condition = privileged.get_attribute("condition")

        reboot = section.first_child("rebootaction")
        if reboot is not None:
            content = reboot.content or ""
            try:
                info.reboot_action = RebootAction(content.lower())
            except ValueError:
                raise InvalidEnumValueError(
                    "rebootaction", content, [action.value for action in RebootAction], **reboot.location
                )
            info.reboot_condition = reboot.get_attribute("condition")

        uninstaller = section.first_child("uninstaller")
        info.write_uninstaller = self.writes_uninstaller(root)
        if info.write_uninstaller:
            resource = self.locator.find_builtin_resource(
                self.context.properties.get("uninstaller"), "Uninstaller", section
            )
            self.context.stage("add_resource", UNINSTALLER_RESOURCE_ID, self._read_bytes(resource, section))

            if privileged is not None:
                info.privileged_uninstaller = privileged.validate_yes_no_attribute(
                    "uninstaller", True, self.context.warn
                )
            if uninstaller is not None:
                info.uninstaller_name = uninstaller.get_attribute("name") or None
                info.uninstaller_path = uninstaller.get_attribute("path")
                info.uninstaller_condition = uninstaller.get_attribute("condition")

        summary = section.first_child("summarylogfilepath")
        if summary is not None:
            info.summary_log_file_path = summary.require_content()

        write_information = section.first_child("writeinstallationinformation")
        if write_information is not None:
            info.write_installation_information = parse_yes_no(write_information.require_content())

        info.unpacker_class_name = self.context.properties.get(UNPACKER_CLASS_PROPERTY)
        self.context.stage("set_info", info)

    # -------------------------------------------------------------------------
    # GUI preferences
    # -------------------------------------------------------------------------

    def load_gui_prefs(self, root: DescriptorNode) -> None:
        section = root.first_child("guiprefs")
        prefs = GUIPrefs()
        if section is None:
            self.context.stage("set_gui_prefs", prefs)
            return

        prefs.resizable = section.require_yes_no_attribute("resizable")
        prefs.width = section.require_int_attribute("width")
        prefs.height = section.require_int_attribute("height")

        # The last look and feel declared for a family wins
        family_mapping: Dict[str, str] = {}
        params: Dict[str, Dict[str, str]] = {}
        for laf in section.children_named("laf"):
            name = laf.require_attribute("name")
            laf.require_child("os")
            for os_node in laf.children_named("os"):
                family_mapping[os_node.require_attribute("family")] = name
            params[name] = {
                param.require_attribute("name"): param.require_attribute("value")
                for param in laf.children_named("param")
            }

        for modifier in section.children_named("modifier"):
            prefs.modifiers[modifier.require_attribute("key")] = modifier.require_attribute("value")

        for name in dict.fromkeys(family_mapping.values()):
            archive = LOOK_AND_FEEL_ARCHIVES.get(name)
            if archive is None:
                raise InvalidEnumValueError("laf", name, sorted(LOOK_AND_FEEL_ARCHIVES), **section.location)
            path = self.locator.find_builtin_resource(
                f"{self.settings.laf_dir}/{archive}", "Look and Feel archive", section
            )
            self.context.stage("add_jar_content", path)
            prefs.look_and_feels.append(
                LookAndFeel(
                    name=name,
                    os_families=[family for family, laf in family_mapping.items() if laf == name],
                    params=params.get(name, {}),
                )
            )

        self.context.stage("set_gui_prefs", prefs)

    # -------------------------------------------------------------------------
    # Langpacks, resources, natives, jars
    # -------------------------------------------------------------------------

    def load_lang_packs(self, root: DescriptorNode) -> None:
        section = root.require_child("locale")
        nodes = section.children_named("langpack")
        if not nodes:
            raise MissingRequiredChildError("locale", "langpack", **section.location)

        for node in nodes:
            iso3 = node.require_attribute("iso3")
            xml = self.locator.find_builtin_resource(f"{self.settings.langpack_dir}/{iso3}.xml", "ISO3 file", node)
            flag = self.locator.find_builtin_resource(
                f"{self.settings.flag_dir}/{iso3}.gif", "ISO3 flag image", node
            )
            self.context.stage("add_lang_pack", iso3, xml, flag)
            logger.debug(f"Added langpack {iso3}")

    def add_resources(self, root: DescriptorNode) -> None:
        """
        Finalize every <res> of the root's <resources> section.

        Localized resources are collected for merging instead of being
        registered directly. Used for the main descriptor and every
        referenced pack descriptor.
        """
        section = root.first_child("resources")
        if section is None:
            return

        pipeline = self.context.resource_pipeline()
        for node in section.children_named("res"):
            resource_id = node.require_attribute("id")
            src = node.require_attribute("src")
            flags = ResourceFlags.from_node(node)
            path = self.locator.find_project_resource(src, "Resource", node)
            resource = pipeline.finalize(resource_id, path, flags, node)

            if self.context.merger.is_localized(resource_id):
                self.context.merger.add(resource_id, resource)
            else:
                self.context.stage("add_resource", resource_id, resource.content)

    def load_native_libraries(self, root: DescriptorNode) -> None:
        needs_extensions = False
        for node in root.children_named("native"):
            native_type = node.require_attribute("type")
            name = node.require_attribute("name")
            src = node.get_attribute("src") or f"{self.settings.native_dir}/{native_type}/{name}"
            path = self.locator.find_builtin_resource(src, "Native Library", node)
            self.context.stage("add_native_library", name, path)

            # Libraries used by the uninstaller are copied from the installer
            stage = (node.get_attribute("stage") or "").lower()
            if stage in UNINSTALL_STAGES:
                data = CustomData(
                    type=CustomDataType.UNINSTALLER_LIB,
                    contents=[name],
                    os_constraints=parse_os_constraints(node),
                )
                self.context.stage("add_native_uninstaller_library", data)
                needs_extensions = True

        if needs_extensions and self.writes_uninstaller(root):
            info = root.require_child("info")
            resource = self.locator.find_builtin_resource(
                self.context.properties.get("uninstaller-ext"), "Uninstaller extensions", info
            )
            self.context.stage("add_resource", UNINSTALLER_EXT_RESOURCE_ID, self._read_bytes(resource, info))

    def load_jars(self, root: DescriptorNode) -> None:
        for node in root.children_named("jar"):
            path = self.locator.find_project_resource(node.require_attribute("src"), "Jar file", node)
            self.context.stage("add_jar_content", path)

            stage = (node.get_attribute("stage") or "").lower()
            if stage in UNINSTALL_STAGES:
                try:
                    contents = list_entries(path)
                except ArchiveReadError as e:
                    raise ArchiveReadError(e.message, e.details, **node.location)
                data = CustomData(
                    type=CustomDataType.UNINSTALLER_JAR,
                    archive_path=str(path),
                    contents=contents,
                )
                self.context.stage("add_custom_jar", data, path)

    # -------------------------------------------------------------------------
    # Panels
    # -------------------------------------------------------------------------

    def load_panels(self, root: DescriptorNode) -> None:
        section = root.require_child("panels")
        nodes = section.children_named("panel")
        if not nodes:
            raise MissingRequiredChildError("panels", "panel", **section.location)

        for counter, node in enumerate(nodes, start=1):
            class_name = node.require_attribute("classname")
            panel_id = node.get_attribute("id")
            archive = self._find_panel_archive(node, class_name)

            panel = Panel(
                class_name=self._resolve_panel_class(archive, class_name, node),
                panel_id=panel_id,
                condition_id=node.get_attribute("condition"),
                os_constraints=parse_os_constraints(node),
            )

            configuration = node.first_child("configuration")
            if configuration is not None:
                panel.configuration.update(self._key_values(configuration))

            validator = node.first_child("validator")
            if validator is not None and validator.get_attribute("classname"):
                panel.validator = validator.get_attribute("classname")

            for help_node in node.children_named("help"):
                iso3 = help_node.require_attribute("iso3")
                resource_id = f"{panel_id or class_name}_{counter}_help_{iso3}.html"
                panel.help[iso3] = resource_id
                path = self.locator.find_project_resource(help_node.require_attribute("src"), "Help", help_node)
                self.context.stage("add_resource", resource_id, self._read_bytes(path, help_node))

            panel.actions.extend(self._panel_actions(node))

            self.context.stage("add_panel", panel)
            self.context.stage("add_panel_jar", panel, archive)
            logger.debug(f"Added panel {panel.class_name} (archive: {archive})")

    def _find_panel_archive(self, node: DescriptorNode, class_name: str) -> Optional[Path]:
        jar = node.get_attribute("jar")
        if jar is None:
            jar = f"{self.settings.panel_dir}/{class_name}.zip"
        # An empty jar attribute suppresses the lookup
        if jar == "":
            return None
        project_path = self.locator.resolve_project_path(jar)
        if node.has_attribute("jar") and project_path.exists():
            return project_path
        return self.locator.find_builtin_resource(jar, "Panel archive", node, ignore_missing=True)

    @staticmethod
    def _resolve_panel_class(archive: Optional[Path], class_name: str, node: DescriptorNode) -> str:
        if archive is None:
            return class_name
        try:
            return resolve_class_name(archive, class_name) or class_name
        except AmbiguousClassNameError as e:
            raise AmbiguousClassNameError(e.class_name, e.entry, **node.location)
        except ArchiveReadError as e:
            raise ArchiveReadError(e.message, e.details, **node.location)

    @staticmethod
    def _key_values(node: DescriptorNode) -> Dict[str, Optional[str]]:
        """<param><key/><value/></param> children as a mapping."""
        values: Dict[str, Optional[str]] = {}
        for param in node.children_named("param"):
            key = param.first_child("key")
            value = param.first_child("value")
            if key is not None and value is not None and key.content:
                values[key.content] = value.content
        return values

    def _panel_actions(self, node: DescriptorNode) -> List[PanelAction]:
        section = node.first_child("actions")
        if section is None:
            return []
        action_nodes = section.children_named("action")
        if not action_nodes:
            raise MissingRequiredChildError("actions", "action", **section.location)

        actions = []
        for action in action_nodes:
            stage = action.get_attribute("stage") or ""
            try:
                action_stage = PanelActionStage(stage)
            except ValueError:
                raise InvalidEnumValueError(
                    "stage", stage, [s.value for s in PanelActionStage], **action.location
                )
            params = {key: value or "" for key, value in self._key_values(action).items()}
            actions.append(
                PanelAction(
                    stage=action_stage,
                    class_name=action.require_attribute("classname"),
                    params=params,
                )
            )
        return actions

    # -------------------------------------------------------------------------
    # Installer requirements
    # -------------------------------------------------------------------------

    def load_installer_requirements(self, root: DescriptorNode) -> None:
        requirements = []
        section = root.first_child("installerrequirements")
        if section is not None:
            for node in section.children_named("installerrequirement"):
                requirements.append(
                    InstallerRequirement(
                        condition_id=node.require_attribute("condition"),
                        message=node.require_attribute("message"),
                    )
                )
        self.context.stage("add_installer_requirement", requirements)
