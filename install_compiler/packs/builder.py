"""
Pack Graph Builder.

Builds Pack objects from the <packs> section of a descriptor:
- <pack> definitions with their files, filesets, archives, parsables,
  executables, update checks, dependencies and validators
- <refpack> references to other descriptors, optionally bundled in a
  self-contained zip
- <refpackset> directories scanned for referenced descriptors

Referenced descriptors are version-checked, get their own property and
resource pass and are then built recursively as if inlined.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from install_compiler.core.descriptor import DescriptorLoader, DescriptorNode, WarnCallback
from install_compiler.core.exceptions import (
    ArchiveReadError,
    InvalidEnumValueError,
    InvalidPathError,
    MissingRequiredChildError,
    StructuralConflictError,
)
from install_compiler.core.platform import OsConstraint, has_windows_constraint, parse_os_constraints
from install_compiler.core.substitution import SubstitutionType, VariableSubstitutor
from install_compiler.listeners.base import ListenerChain
from install_compiler.packs.archives import extract_entries, read_entry
from install_compiler.packs.fileset import DirectoryScanner, split_patterns
from install_compiler.packs.models import (
    BlockablePolicy,
    ExecutableFile,
    ExecutableType,
    ExecutionStage,
    FailurePolicy,
    KeywordEnum,
    OverridePolicy,
    Pack,
    PackFile,
    ParsableFile,
    UpdateCheck,
)
from install_compiler.resources.locator import ResourceLocator


logger = logging.getLogger(__name__)


DescriptorHook = Callable[[DescriptorNode], DescriptorNode]
ResourceHook = Callable[[DescriptorNode], None]


class FileOptions:
    """Attributes shared by every file-bearing element."""

    def __init__(
        self,
        os_constraints: List[OsConstraint],
        override: OverridePolicy,
        blockable: BlockablePolicy,
        additionals: Dict[str, Any],
        condition_id: Optional[str],
    ):
        self.os_constraints = os_constraints
        self.override = override
        self.blockable = blockable
        self.additionals = additionals
        self.condition_id = condition_id


class PackGraphBuilder:
    """
    Builds the pack graph of a descriptor and everything it references.

    Example:
        builder = PackGraphBuilder(
            base_dir=base_dir,
            locator=locator,
            listeners=chain,
            variables=variables.as_dict(),
            workspace=workspace,
            loader=DescriptorLoader(),
            prepare_descriptor=substitute_properties,
            collect_resources=add_resources,
        )
        packs = builder.build(root)
    """

    def __init__(
        self,
        base_dir: Path,
        locator: ResourceLocator,
        listeners: ListenerChain,
        variables: Mapping[str, str],
        workspace: Path,
        loader: DescriptorLoader,
        prepare_descriptor: DescriptorHook,
        collect_resources: ResourceHook,
        warn: Optional[WarnCallback] = None,
        refpack_entry: str = "META-INF/installation.xml",
    ):
        self.base_dir = Path(base_dir)
        self.locator = locator
        self.listeners = listeners
        self.variables = variables
        self.workspace = Path(workspace)
        self.loader = loader
        self.prepare_descriptor = prepare_descriptor
        self.collect_resources = collect_resources
        self.warn = warn
        self.refpack_entry = refpack_entry
        self.packs: List[Pack] = []

    def build(self, root: DescriptorNode) -> List[Pack]:
        """Build every pack reachable from `root`, in declaration order."""
        self._build_packs(root)
        logger.info(f"Built {len(self.packs)} packs")
        return self.packs

    def _warn(self, node: DescriptorNode, message: str) -> None:
        if self.warn is not None:
            self.warn(node, message)
        else:
            logger.warning(f"{node.source}:{node.line}: {message}")

    # -------------------------------------------------------------------------
    # <packs>
    # -------------------------------------------------------------------------

    def _build_packs(self, root: DescriptorNode) -> None:
        section = root.require_child("packs")
        pack_nodes = section.children_named("pack")
        refpack_nodes = section.children_named("refpack")
        refpackset_nodes = section.children_named("refpackset")
        if not (pack_nodes or refpack_nodes or refpackset_nodes):
            raise MissingRequiredChildError("packs", "pack|refpack|refpackset", **section.location)

        for node in pack_nodes:
            self.packs.append(self.parse_pack(node))

        for node in refpack_nodes:
            file_name = node.require_attribute("file")
            self_contained = (node.get_attribute("selfcontained") or "").lower() == "true"
            self._include_refpack(file_name, self_contained, node)

        for node in refpackset_nodes:
            directory = self.locator.resolve_project_path(node.require_attribute("dir"))
            if not directory.is_dir():
                raise InvalidPathError(
                    f"Invalid refpackset directory 'dir': {node.get_attribute('dir')}",
                    **node.location,
                )
            includes = split_patterns(node.require_attribute("includes"))
            scanner = DirectoryScanner(includes=includes, case_sensitive=True, default_excludes=False)
            for relative in scanner.scan(directory).files:
                self._include_refpack(str(directory / relative), False, node)

    def _include_refpack(self, file_name: str, self_contained: bool, node: DescriptorNode) -> None:
        path = self.locator.resolve_project_path(file_name)
        if not path.is_file():
            raise InvalidPathError(f"Invalid file: {path}", {"file": str(path)}, **node.location)

        if self_contained:
            if path.suffix.lower() != ".zip":
                raise InvalidPathError(
                    f"Invalid file: {path}. Selfcontained files can only be of type zip.",
                    {"file": str(path)},
                    **node.location,
                )
            try:
                data = read_entry(path, self.refpack_entry)
            except ArchiveReadError as e:
                raise ArchiveReadError(e.message, e.details, **node.location)
            ref_root = self.loader.load_bytes(data, f"{path}!{self.refpack_entry}")
        else:
            ref_root = self.loader.load(path)

        logger.info(f"Reading refpack from {path}")
        self.loader.check_root(ref_root)
        ref_root = self.prepare_descriptor(ref_root)
        self.collect_resources(ref_root)
        self._build_packs(ref_root)

    # -------------------------------------------------------------------------
    # <pack>
    # -------------------------------------------------------------------------

    def parse_pack(self, node: DescriptorNode) -> Pack:
        """
        Build one Pack from a <pack> element.

        Raises:
            StructuralConflictError: If the pack is required and has an exclude group
        """
        name = node.require_attribute("name")
        description = node.require_child("description").content or ""
        required = node.require_yes_no_attribute("required")
        exclude_group = node.get_attribute("excludeGroup")

        if required and exclude_group is not None:
            raise StructuralConflictError(
                "Pack, which has excludeGroup can not be required.",
                {"pack": name, "exclude_group": exclude_group},
                **node.location,
            )

        pack = Pack(
            name=name,
            description=description,
            id=node.get_attribute("id"),
            required=required,
            loose=(node.get_attribute("loose") or "false").lower() == "true",
            exclude_group=exclude_group,
            uninstall=(node.get_attribute("uninstall") or "yes").lower() == "yes",
            group=node.get_attribute("group"),
            parent=node.get_attribute("parent"),
            hidden=(node.get_attribute("hidden") or "false").lower() == "true",
            condition_id=node.get_attribute("condition"),
            pack_img_id=node.get_attribute("packImgId"),
            os_constraints=parse_os_constraints(node),
            source=node.source,
            line=node.line,
        )
        # Packs in an exclude group are not preselected unless stated
        pack.preselected = node.validate_yes_no_attribute(
            "preselected", exclude_group is None, self.warn
        )

        for install_group in (node.get_attribute("installGroups") or "").split(","):
            if install_group.strip():
                pack.install_groups.add(install_group.strip())

        for child in node.children_named("parsable"):
            pack.parsables.append(self._parse_parsable(child))
        for child in node.children_named("executable"):
            pack.executables.append(self._parse_executable(child))
        for child in node.children_named("file"):
            self._add_file_element(pack, child)
        for child in node.children_named("singlefile"):
            self._add_single_file(pack, child)
        for child in node.children_named("fileset"):
            self._add_fileset(pack, child)
        for child in node.children_named("updatecheck"):
            pack.update_checks.append(self._parse_update_check(child))
        for child in node.children_named("depends"):
            pack.add_dependency(child.require_attribute("packname"))
        for child in node.children_named("validator"):
            pack.validators.append(child.require_content())

        logger.debug(f"Pack '{pack.name}': {len(pack.files)} files, dependencies={pack.dependencies}")
        return pack

    def _parse_parsable(self, node: DescriptorNode) -> ParsableFile:
        raw_type = node.get_attribute("type", "plain")
        substitution_type = SubstitutionType.lookup(raw_type)
        if substitution_type is None:
            raise InvalidEnumValueError(
                "type", raw_type, [t.value for t in SubstitutionType], **node.location
            )
        return ParsableFile(
            target=node.require_attribute("targetfile"),
            substitution_type=substitution_type,
            encoding=node.get_attribute("encoding"),
            os_constraints=parse_os_constraints(node),
            condition_id=node.get_attribute("condition"),
        )

    def _parse_executable(self, node: DescriptorNode) -> ExecutableFile:
        executable = ExecutableFile(
            target=node.require_attribute("targetfile"),
            stage=self._keyword(node, "stage", ExecutionStage, ExecutionStage.NEVER),
            type=self._keyword(node, "type", ExecutableType, ExecutableType.BIN),
            on_failure=self._keyword(node, "failure", FailurePolicy, FailurePolicy.ASK),
            keep=(node.get_attribute("keep") or "").lower() == "true",
            os_constraints=parse_os_constraints(node),
            condition_id=node.get_attribute("condition"),
        )
        if executable.type == ExecutableType.JAR:
            executable.main_class = node.get_attribute("class")

        args = node.first_child("args")
        if args is not None:
            for arg in args.children_named("arg"):
                executable.args.append(arg.require_attribute("value"))
        return executable

    def _parse_update_check(self, node: DescriptorNode) -> UpdateCheck:
        return UpdateCheck(
            includes=[child.require_attribute("name") for child in node.children_named("include")],
            excludes=[child.require_attribute("name") for child in node.children_named("exclude")],
            case_sensitive=node.get_attribute("casesensitive"),
        )

    @staticmethod
    def _keyword(node: DescriptorNode, attribute: str, enum_class: type, default: KeywordEnum) -> Any:
        value = node.get_attribute(attribute)
        if value is None:
            return default
        member = enum_class.lookup(value)
        if member is None:
            raise InvalidEnumValueError(attribute, value, enum_class.literals(), **node.location)
        return member

    # -------------------------------------------------------------------------
    # File-bearing elements
    # -------------------------------------------------------------------------

    def _file_options(self, node: DescriptorNode) -> FileOptions:
        os_constraints = parse_os_constraints(node)
        override = self._keyword(node, "override", OverridePolicy, OverridePolicy.UPDATE)
        blockable = self._keyword(node, "blockable", BlockablePolicy, BlockablePolicy.NONE)
        if blockable != BlockablePolicy.NONE and not has_windows_constraint(os_constraints):
            # The constraint is not added: the files may be multi-platform
            self._warn(node, "'blockable' will implicitly apply only on Windows target systems")
        return FileOptions(
            os_constraints=os_constraints,
            override=override,
            blockable=blockable,
            additionals=self.listeners.revise_additional_data(node),
            condition_id=node.get_attribute("condition"),
        )

    def resolve_source(self, src: str, node: DescriptorNode) -> Path:
        """
        Resolve a file source attribute.

        Absolute paths are used as given, relative ones against the base
        directory. A path that does not exist is retried after substituting
        install-time variables into it.

        Raises:
            InvalidPathError: If neither form exists
        """
        path = self.locator.resolve_project_path(src)
        if path.exists():
            return path

        substituted = VariableSubstitutor(self.variables).substitute(src)
        if substituted != src:
            retry = self.locator.resolve_project_path(substituted)
            if retry.exists():
                logger.debug(f"Resolved '{src}' to {retry} after variable substitution")
                return retry

        raise InvalidPathError(f"File not found: {path}", {"src": src}, **node.location)

    def _make_file(
        self,
        source: Path,
        target: str,
        options: FileOptions,
        node: DescriptorNode,
        transient: bool = False,
    ) -> PackFile:
        is_directory = source.is_dir()
        try:
            size = 0 if is_directory else source.stat().st_size
        except OSError as e:
            raise InvalidPathError(
                f"Unable to read file {source}: {e.strerror or e}",
                {"source": str(source), "target": target},
                **node.location,
            )
        try:
            relative = source.resolve().relative_to(self.base_dir.resolve()).as_posix()
        except ValueError:
            relative = None
        return PackFile(
            source=source,
            target=target,
            os_constraints=list(options.os_constraints),
            override=options.override,
            blockable=options.blockable,
            additionals=dict(options.additionals),
            condition_id=options.condition_id,
            is_directory=is_directory,
            size=size,
            relative_source=relative,
            transient=transient,
        )

    def _add_file_element(self, pack: Pack, node: DescriptorNode) -> None:
        src = node.require_attribute("src")
        target_dir = node.require_attribute("targetdir")
        options = self._file_options(node)
        unpack = (node.get_attribute("unpack") or "").lower() == "true"
        source = self.resolve_source(src, node)

        if unpack:
            self._add_archive_content(pack, source, target_dir, options, node)
        else:
            self._add_recursively(pack, source, target_dir, options, node)

    def _add_recursively(
        self,
        pack: Pack,
        source: Path,
        target_dir: str,
        options: FileOptions,
        node: DescriptorNode,
    ) -> None:
        target = f"{target_dir}/{source.name}"
        if not source.is_dir():
            pack.files.append(self._make_file(source, target, options, node))
            return

        try:
            children = sorted(source.iterdir())
        except OSError as e:
            raise InvalidPathError(f"Unable to list directory {source}: {e.strerror or e}", **node.location)
        if not children:
            # Empty directories are kept as explicit entries
            pack.files.append(self._make_file(source, target, options, node))
            return
        for child in children:
            self._add_recursively(pack, child, target, options, node)

    def _add_archive_content(
        self,
        pack: Pack,
        archive: Path,
        target_dir: str,
        options: FileOptions,
        node: DescriptorNode,
    ) -> None:
        try:
            entries = extract_entries(archive, self.workspace)
        except ArchiveReadError as e:
            raise ArchiveReadError(e.message, e.details, **node.location)
        for entry_name, extracted in entries:
            pack.files.append(
                self._make_file(extracted, f"{target_dir}/{entry_name}", options, node, transient=True)
            )

    def _add_single_file(self, pack: Pack, node: DescriptorNode) -> None:
        src = node.require_attribute("src")
        target = node.require_attribute("target")
        options = self._file_options(node)
        source = self.resolve_source(src, node)
        pack.files.append(self._make_file(source, target, options, node))

    def _add_fileset(self, pack: Pack, node: DescriptorNode) -> None:
        dir_attr = node.require_attribute("dir")
        directory = self.locator.resolve_project_path(dir_attr)
        if not directory.is_dir():
            raise InvalidPathError(f"Invalid directory 'dir': {dir_attr}", **node.location)

        case_sensitive = node.validate_yes_no_attribute("casesensitive", True, self.warn)
        default_excludes = node.validate_yes_no_attribute("defaultexcludes", True, self.warn)
        target_dir = node.require_attribute("targetdir")
        options = self._file_options(node)

        includes = self._patterns(node, "include", "includes")
        excludes = self._patterns(node, "exclude", "excludes")
        scanner = DirectoryScanner(
            includes=includes,
            excludes=excludes,
            case_sensitive=case_sensitive,
            default_excludes=default_excludes,
        )
        result = scanner.scan(directory)

        for relative in result.files:
            pack.files.append(self._make_file(directory / relative, f"{target_dir}/{relative}", options, node))
        for relative in result.directories:
            pack.files.append(self._make_file(directory / relative, f"{target_dir}/{relative}", options, node))

    @staticmethod
    def _patterns(node: DescriptorNode, child_name: str, attribute: str) -> Sequence[str]:
        """Child element patterns followed by the attribute's patterns."""
        patterns = [child.require_attribute("name") for child in node.children_named(child_name)]
        patterns.extend(split_patterns(node.get_attribute(attribute)))
        return patterns
