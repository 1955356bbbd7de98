"""
Installer Compiler.

Runs the build phases over a descriptor in a fixed order:

    packaging -> listeners -> properties -> variables -> dynamic variables
    -> conditions -> info -> GUI prefs -> langpacks -> resources
    -> native libraries -> jars -> panels -> packs -> installer requirements
    -> localized resource merge

Registered build listeners are notified before and after every phase. The
packager only sees the build model once every phase has succeeded.
"""

import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from install_compiler.config import CompilerSettings, get_settings
from install_compiler.core.descriptor import DescriptorLoader, DescriptorNode
from install_compiler.core.exceptions import CompilerError, InvalidPathError
from install_compiler.core.properties import PropertyLoader, substitute_tree
from install_compiler.listeners.base import ListenerState
from install_compiler.packaging.base import Packager
from install_compiler.packs.builder import PackGraphBuilder
from install_compiler.packs.validator import PackGraphValidator

from .context import BuildContext, BuildWarning
from .sections import SectionCompiler


logger = logging.getLogger(__name__)


class BuildPhase(str, Enum):
    """Build phases, in execution order. The values are sent to listeners."""
    LOAD_PACKAGER = "load_packager"
    SUBSTITUTE_PROPERTIES = "substitute_properties"
    ADD_VARIABLES = "add_variables"
    ADD_DYNAMIC_VARIABLES = "add_dynamic_variables"
    ADD_CONDITIONS = "add_conditions"
    ADD_INFO = "add_info"
    ADD_GUI_PREFS = "add_gui_prefs"
    ADD_LANGPACKS = "add_langpacks"
    ADD_RESOURCES = "add_resources"
    ADD_NATIVE_LIBRARIES = "add_native_libraries"
    ADD_JARS = "add_jars"
    ADD_PANELS = "add_panels"
    ADD_PACKS = "add_packs"
    ADD_INSTALLER_REQUIREMENTS = "add_installer_requirements"
    MERGE_LOCALIZED_RESOURCES = "merge_localized_resources"
    CREATE_INSTALLER = "create_installer"


class CompilationResult(BaseModel):
    """Outcome of one compile."""

    descriptor: Optional[str] = None
    success: bool
    started_at: datetime
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    warnings: List[BuildWarning] = Field(default_factory=list)
    phases: List[str] = Field(default_factory=list, description="Phases that completed")
    installer: Optional[Any] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()


DescriptorSource = Callable[[DescriptorLoader], DescriptorNode]


class InstallerCompiler:
    """
    Compiles installation descriptors.

    Args:
        base_dir: Project base directory; relative paths resolve against it
        packager: Packager receiving the build model; when omitted one is
            created from the descriptor's <packaging> section or the settings
        settings: Compiler settings (defaults to the global settings)
        environ: Environment used by <property environment="..."/>

    Example:
        compiler = InstallerCompiler("/path/to/project")
        result = compiler.compile("install.xml")
        if result.success:
            model = result.installer
    """

    def __init__(
        self,
        base_dir: Union[str, Path],
        packager: Optional[Packager] = None,
        settings: Optional[CompilerSettings] = None,
        environ: Optional[dict] = None,
    ):
        self.base_dir = Path(base_dir).absolute()
        self.packager = packager
        self.settings = settings or get_settings()
        self.environ = environ

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def compile(self, path: Union[str, Path]) -> CompilationResult:
        """
        Compile a descriptor file.

        Relative descriptor paths resolve against the base directory.
        """
        path = Path(path)
        if not path.is_absolute():
            path = self.base_dir / path
        return self._execute(lambda loader: loader.load(path), str(path))

    def compile_text(self, text: str, source: str = "<string>") -> CompilationResult:
        """Compile a descriptor given as a string."""
        return self._execute(lambda loader: loader.load_text(text, source), source)

    def compile_or_raise(self, path: Union[str, Path]) -> Any:
        """
        Compile a descriptor file and return the installer.

        Raises:
            CompilerError: On the first fatal error
        """
        path = Path(path)
        if not path.is_absolute():
            path = self.base_dir / path
        context = BuildContext(self.base_dir, self.settings)
        return self._run(context, lambda loader: loader.load(path), str(path), [])

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _execute(self, load: DescriptorSource, descriptor: str) -> CompilationResult:
        result = CompilationResult(
            descriptor=descriptor,
            success=False,
            started_at=datetime.now(),
        )
        context = BuildContext(self.base_dir, self.settings)

        try:
            result.installer = self._run(context, load, descriptor, result.phases)
            result.success = True
        except CompilerError as e:
            result.error = str(e)
            result.error_type = type(e).__name__
            logger.error(f"Compilation of {descriptor} failed: {e}")

        result.warnings = list(context.warnings)
        result.completed_at = datetime.now()
        logger.info(
            f"Compilation of {descriptor} finished: success={result.success}, "
            f"{len(result.warnings)} warnings"
        )
        return result

    def _run(
        self,
        context: BuildContext,
        load: DescriptorSource,
        descriptor: str,
        completed: List[str],
    ) -> Any:
        with context:
            if not self.base_dir.is_dir():
                raise InvalidPathError(
                    f"Base directory does not exist or is not a directory: {self.base_dir}",
                    {"base_dir": str(self.base_dir)},
                )
            self._set_builtin_properties(context, descriptor)

            root = load(context.loader)
            context.loader.check_root(root)
            sections = SectionCompiler(context)

            def phase(build_phase: BuildPhase, action: Callable[[], Any]) -> Any:
                logger.info(f"Phase {build_phase.value}")
                context.listeners.notify(build_phase.value, ListenerState.BEGIN, root, context.packager)
                value = action()
                context.listeners.notify(build_phase.value, ListenerState.END, root, context.packager)
                completed.append(build_phase.value)
                return value

            context.packager = phase(
                BuildPhase.LOAD_PACKAGER,
                lambda: sections.load_packaging(root, self.packager),
            )
            # Listeners are registered in between, so they only see later phases
            sections.load_listeners(root)

            root = phase(BuildPhase.SUBSTITUTE_PROPERTIES, lambda: self._substitute_properties(context, root))

            phase(BuildPhase.ADD_VARIABLES, lambda: sections.load_variables(root))
            phase(BuildPhase.ADD_DYNAMIC_VARIABLES, lambda: sections.load_dynamic_variables(root))
            phase(BuildPhase.ADD_CONDITIONS, lambda: sections.load_conditions(root))
            phase(BuildPhase.ADD_INFO, lambda: sections.load_info(root))
            phase(BuildPhase.ADD_GUI_PREFS, lambda: sections.load_gui_prefs(root))
            phase(BuildPhase.ADD_LANGPACKS, lambda: sections.load_lang_packs(root))
            phase(BuildPhase.ADD_RESOURCES, lambda: sections.add_resources(root))
            phase(BuildPhase.ADD_NATIVE_LIBRARIES, lambda: sections.load_native_libraries(root))
            phase(BuildPhase.ADD_JARS, lambda: sections.load_jars(root))
            phase(BuildPhase.ADD_PANELS, lambda: sections.load_panels(root))
            phase(BuildPhase.ADD_PACKS, lambda: self._add_packs(context, sections, root))
            phase(BuildPhase.ADD_INSTALLER_REQUIREMENTS, lambda: sections.load_installer_requirements(root))
            phase(BuildPhase.MERGE_LOCALIZED_RESOURCES, lambda: self._merge_localized(context))

            return phase(BuildPhase.CREATE_INSTALLER, lambda: self._create_installer(context))

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    def _set_builtin_properties(self, context: BuildContext, descriptor: str) -> None:
        properties = context.properties
        properties.set_property("basedir", str(self.base_dir))
        properties.set_property("descriptor.file", descriptor)
        properties.set_property("uninstaller", self.settings.uninstaller_resource)
        properties.set_property("uninstaller-ext", self.settings.uninstaller_ext_resource)

    def _substitute_properties(self, context: BuildContext, root: DescriptorNode) -> DescriptorNode:
        PropertyLoader(context.properties, self.base_dir, self.environ).execute(root)
        substituted = substitute_tree(root, context.properties)
        logger.debug(f"{len(context.properties)} properties defined after substitution")
        return substituted

    def _add_packs(self, context: BuildContext, sections: SectionCompiler, root: DescriptorNode) -> None:
        builder = PackGraphBuilder(
            base_dir=self.base_dir,
            locator=context.locator,
            listeners=context.listeners,
            variables=context.variables.as_dict(),
            workspace=context.workspace,
            loader=context.loader,
            prepare_descriptor=lambda ref_root: self._substitute_properties(context, ref_root),
            collect_resources=sections.add_resources,
            warn=context.warn,
            refpack_entry=self.settings.refpack_archive_entry,
        )
        context.packs = builder.build(root)

        validator = PackGraphValidator()
        validator.check_dependencies(context.packs)
        validator.check_excludes(context.packs)

    def _merge_localized(self, context: BuildContext) -> None:
        for resource in context.merger.merge():
            context.stage("add_resource", resource.id, resource.content)

    def _create_installer(self, context: BuildContext) -> Any:
        packager = context.packager
        context.commit(packager)
        packager.check_dependencies()
        packager.check_excludes()
        return packager.create_installer()


def compile_installer(
    descriptor: Union[str, Path],
    base_dir: Optional[Union[str, Path]] = None,
    packager: Optional[Packager] = None,
    settings: Optional[CompilerSettings] = None,
) -> CompilationResult:
    """
    Convenience function to compile a descriptor file.

    Args:
        descriptor: Descriptor path
        base_dir: Project base directory (defaults to the descriptor's directory)
        packager: Optional packager instance
        settings: Optional compiler settings

    Returns:
        CompilationResult
    """
    descriptor = Path(descriptor).absolute()
    compiler = InstallerCompiler(
        base_dir=base_dir if base_dir is not None else descriptor.parent,
        packager=packager,
        settings=settings,
    )
    return compiler.compile(descriptor)
