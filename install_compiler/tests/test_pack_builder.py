"""
Tests for building packs from the <packs> section.
"""

import pytest

from install_compiler.core.descriptor import DescriptorLoader
from install_compiler.core.exceptions import (
    CompilerError,
    InvalidEnumValueError,
    InvalidPathError,
    MissingRequiredAttributeError,
    MissingRequiredChildError,
    StructuralConflictError,
    VersionMismatchError,
)
from install_compiler.core.substitution import SubstitutionType
from install_compiler.listeners.base import ListenerChain, LoadedListener, SimpleBuildListener
from install_compiler.packs.builder import PackGraphBuilder
from install_compiler.packs.models import (
    BlockablePolicy,
    ExecutableType,
    ExecutionStage,
    FailurePolicy,
    OverridePolicy,
)
from install_compiler.resources.locator import ResourceLocator

from .conftest import write_file, write_zip


class OwnerListener(SimpleBuildListener):
    """Tags every file-bearing element with an owner."""

    def revise_additional_data_map(self, existing, node):
        data = dict(existing or {})
        data["owner"] = node.get_attribute("owner", "root")
        return data


class BrokenListener(SimpleBuildListener):

    def revise_additional_data_map(self, existing, node):
        raise RuntimeError("boom")


@pytest.fixture
def workspace(tmp_path):
    path = tmp_path / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def warnings():
    return []


@pytest.fixture
def hooks():
    """Records the descriptors handed to the refpack hooks."""
    return {"prepared": [], "collected": []}


@pytest.fixture
def builder(project_dir, installer_home, workspace, warnings, hooks):
    def prepare(node):
        hooks["prepared"].append(node.source)
        return node

    def collect(node):
        hooks["collected"].append(node.source)

    def warn(node, message):
        warnings.append(message)

    return PackGraphBuilder(
        base_dir=project_dir,
        locator=ResourceLocator(project_dir, installer_home, workspace),
        listeners=ListenerChain(),
        variables={"VERSION": "2.0"},
        workspace=workspace,
        loader=DescriptorLoader(),
        prepare_descriptor=prepare,
        collect_resources=collect,
        warn=warn,
    )


def _node(markup: str):
    return DescriptorLoader().load_text(markup, "install.xml")


def _pack(body: str = "", attributes: str = 'name="core" required="no"'):
    return _node(f"<pack {attributes}><description>Core files</description>{body}</pack>")


def _installation(packs: str) -> str:
    return f'<installation version="1.0"><packs>{packs}</packs></installation>'


# =============================================================================
# Pack attributes
# =============================================================================

class TestPackAttributes:
    """Tests for <pack> attribute handling."""

    def test_basic_pack(self, builder):
        pack = builder.parse_pack(_pack(attributes=(
            'name="core" id="core.pack" required="yes" loose="true" hidden="true" '
            'uninstall="no" group="base" parent="root" condition="c1" packImgId="img"'
        )))

        assert pack.name == "core"
        assert pack.pack_id == "core.pack"
        assert pack.description == "Core files"
        assert pack.required is True
        assert pack.loose is True
        assert pack.hidden is True
        assert pack.uninstall is False
        assert pack.group == "base"
        assert pack.parent == "root"
        assert pack.condition_id == "c1"
        assert pack.pack_img_id == "img"
        assert pack.source == "install.xml"

    def test_name_required(self, builder):
        with pytest.raises(MissingRequiredAttributeError):
            builder.parse_pack(_pack(attributes='required="no"'))

    def test_description_required(self, builder):
        with pytest.raises(MissingRequiredChildError):
            builder.parse_pack(_node('<pack name="core" required="no"/>'))

    def test_required_must_be_yes_or_no(self, builder):
        with pytest.raises(CompilerError):
            builder.parse_pack(_pack(attributes='name="core" required="maybe"'))

    def test_required_with_exclude_group_rejected(self, builder):
        """Test that a required pack cannot belong to an exclude group."""
        with pytest.raises(StructuralConflictError) as exc_info:
            builder.parse_pack(_pack(attributes='name="core" required="yes" excludeGroup="g"'))

        assert "excludeGroup" in str(exc_info.value)
        assert exc_info.value.line == 1

    @pytest.mark.parametrize("attributes,expected", [
        ('name="a" required="no"', True),
        ('name="a" required="no" excludeGroup="g"', False),
        ('name="a" required="no" excludeGroup="g" preselected="yes"', True),
        ('name="a" required="no" preselected="no"', False),
    ])
    def test_preselected_defaults(self, builder, attributes, expected):
        assert builder.parse_pack(_pack(attributes=attributes)).preselected is expected

    def test_invalid_preselected_warns(self, builder, warnings):
        pack = builder.parse_pack(_pack(attributes='name="a" required="no" preselected="perhaps"'))

        assert pack.preselected is True
        assert len(warnings) == 1
        assert "preselected" in warnings[0]

    def test_install_groups(self, builder):
        pack = builder.parse_pack(_pack(attributes='name="a" required="no" installGroups="full, minimal,,"'))

        assert pack.install_groups == {"full", "minimal"}

    def test_children(self, builder):
        """Test dependencies, validators, update checks and OS constraints."""
        pack = builder.parse_pack(_pack("""
            <os family="unix"/>
            <depends packname="base"/>
            <depends packname="base"/>
            <depends packname="docs"/>
            <validator>com.acme.CoreValidator</validator>
            <updatecheck casesensitive="yes">
                <include name="lib/**"/>
                <exclude name="lib/keep.jar"/>
            </updatecheck>
        """))

        assert pack.dependencies == ["base", "docs"]
        assert pack.validators == ["com.acme.CoreValidator"]
        assert pack.update_checks[0].includes == ["lib/**"]
        assert pack.update_checks[0].excludes == ["lib/keep.jar"]
        assert pack.os_constraints[0].family == "unix"


# =============================================================================
# Parsables and executables
# =============================================================================

class TestParsablesAndExecutables:

    def test_parsable(self, builder):
        pack = builder.parse_pack(_pack(
            '<parsable targetfile="$INSTALL_PATH/run.sh" type="shell" encoding="utf-8"/>'
        ))

        parsable = pack.parsables[0]
        assert parsable.target == "$INSTALL_PATH/run.sh"
        assert parsable.substitution_type == SubstitutionType.SHELL
        assert parsable.encoding == "utf-8"

    def test_parsable_default_type(self, builder):
        pack = builder.parse_pack(_pack('<parsable targetfile="a.txt"/>'))
        assert pack.parsables[0].substitution_type == SubstitutionType.PLAIN

    def test_parsable_invalid_type(self, builder):
        with pytest.raises(InvalidEnumValueError):
            builder.parse_pack(_pack('<parsable targetfile="a.txt" type="bogus"/>'))

    def test_parsable_requires_target(self, builder):
        with pytest.raises(MissingRequiredAttributeError):
            builder.parse_pack(_pack('<parsable type="plain"/>'))

    def test_executable(self, builder):
        """Test executable attributes and arguments."""
        pack = builder.parse_pack(_pack("""
            <executable targetfile="$INSTALL_PATH/setup.jar" stage="postinstall" type="jar"
                        class="com.acme.Setup" failure="abort" keep="true">
                <args>
                    <arg value="--quiet"/>
                    <arg value="$INSTALL_PATH"/>
                </args>
            </executable>
        """))

        executable = pack.executables[0]
        assert executable.stage == ExecutionStage.POSTINSTALL
        assert executable.type == ExecutableType.JAR
        assert executable.main_class == "com.acme.Setup"
        assert executable.on_failure == FailurePolicy.ABORT
        assert executable.keep is True
        assert executable.args == ["--quiet", "$INSTALL_PATH"]

    def test_executable_defaults(self, builder):
        pack = builder.parse_pack(_pack('<executable targetfile="run" class="Ignored"/>'))

        executable = pack.executables[0]
        assert executable.stage == ExecutionStage.NEVER
        assert executable.type == ExecutableType.BIN
        assert executable.on_failure == FailurePolicy.ASK
        assert executable.main_class is None
        assert executable.keep is False

    @pytest.mark.parametrize("attribute", ["stage", "type", "failure"])
    def test_executable_invalid_keyword(self, builder, attribute):
        with pytest.raises(InvalidEnumValueError) as exc_info:
            builder.parse_pack(_pack(f'<executable targetfile="run" {attribute}="bogus"/>'))

        assert exc_info.value.attribute == attribute


# =============================================================================
# Files
# =============================================================================

class TestFiles:
    """Tests for file, singlefile and fileset elements."""

    @pytest.mark.parametrize("literal,expected", [
        ("true", OverridePolicy.TRUE),
        ("false", OverridePolicy.FALSE),
        ("asktrue", OverridePolicy.ASK_TRUE),
        ("askfalse", OverridePolicy.ASK_FALSE),
        ("update", OverridePolicy.UPDATE),
        ("ASKTRUE", OverridePolicy.ASK_TRUE),
    ])
    def test_override_literals(self, builder, project_dir, literal, expected):
        write_file(project_dir / "readme.txt", "hello")

        pack = builder.parse_pack(_pack(
            f'<file src="readme.txt" targetdir="$INSTALL_PATH" override="{literal}"/>'
        ))

        assert pack.files[0].override == expected

    def test_override_invalid(self, builder, project_dir):
        write_file(project_dir / "readme.txt", "hello")

        with pytest.raises(InvalidEnumValueError) as exc_info:
            builder.parse_pack(_pack('<file src="readme.txt" targetdir="$INSTALL_PATH" override="sometimes"/>'))

        assert exc_info.value.allowed == ["true", "false", "asktrue", "askfalse", "update"]

    def test_file_defaults(self, builder, project_dir):
        write_file(project_dir / "readme.txt", "hello")

        pack = builder.parse_pack(_pack('<file src="readme.txt" targetdir="$INSTALL_PATH"/>'))

        pack_file = pack.files[0]
        assert pack_file.target == "$INSTALL_PATH/readme.txt"
        assert pack_file.override == OverridePolicy.UPDATE
        assert pack_file.blockable == BlockablePolicy.NONE
        assert pack_file.size == 5
        assert pack_file.relative_source == "readme.txt"

    def test_directory_is_added_recursively(self, builder, project_dir):
        """Test that directories recurse and empty directories are kept."""
        write_file(project_dir / "docs" / "a.txt", "a")
        write_file(project_dir / "docs" / "sub" / "b.txt", "b")
        (project_dir / "docs" / "empty").mkdir()

        pack = builder.parse_pack(_pack('<file src="docs" targetdir="$INSTALL_PATH"/>'))

        targets = [(f.target, f.is_directory) for f in pack.files]
        assert targets == [
            ("$INSTALL_PATH/docs/a.txt", False),
            ("$INSTALL_PATH/docs/empty", True),
            ("$INSTALL_PATH/docs/sub/b.txt", False),
        ]

    def test_unpack_archive(self, builder, project_dir, workspace):
        """Test that unpack adds each archive entry under the target directory."""
        write_zip(project_dir / "dist.zip", {"bin/run.sh": "#!/bin/sh\n", "lib/": "", "lib/core.jar": "jar"})

        pack = builder.parse_pack(_pack('<file src="dist.zip" targetdir="$INSTALL_PATH" unpack="true"/>'))

        assert [f.target for f in pack.files] == ["$INSTALL_PATH/bin/run.sh", "$INSTALL_PATH/lib/core.jar"]
        assert all(f.source.parent == workspace for f in pack.files)
        assert all(f.transient for f in pack.files)
        assert pack.files[1].source.read_text() == "jar"

    def test_unpack_invalid_archive(self, builder, project_dir):
        write_file(project_dir / "dist.zip", "not a zip")

        with pytest.raises(CompilerError) as exc_info:
            builder.parse_pack(_pack('<file src="dist.zip" targetdir="$INSTALL_PATH" unpack="true"/>'))

        assert exc_info.value.source == "install.xml"

    def test_missing_source(self, builder):
        with pytest.raises(InvalidPathError):
            builder.parse_pack(_pack('<file src="missing.txt" targetdir="$INSTALL_PATH"/>'))

    def test_source_retried_with_variables(self, builder, project_dir):
        """Test that a missing source is retried after variable substitution."""
        write_file(project_dir / "dist-2.0.txt", "release")

        pack = builder.parse_pack(_pack('<singlefile src="dist-${VERSION}.txt" target="$INSTALL_PATH/dist.txt"/>'))

        assert pack.files[0].source == project_dir / "dist-2.0.txt"
        assert pack.files[0].target == "$INSTALL_PATH/dist.txt"

    def test_blockable_without_windows_warns(self, builder, project_dir, warnings):
        write_file(project_dir / "app.dll", "dll")

        pack = builder.parse_pack(_pack('<file src="app.dll" targetdir="$INSTALL_PATH" blockable="auto"/>'))

        assert pack.files[0].blockable == BlockablePolicy.AUTO
        assert pack.files[0].os_constraints == []
        assert warnings == ["'blockable' will implicitly apply only on Windows target systems"]

    def test_blockable_with_windows_is_silent(self, builder, project_dir, warnings):
        write_file(project_dir / "app.dll", "dll")

        builder.parse_pack(_pack("""
            <file src="app.dll" targetdir="$INSTALL_PATH" blockable="force">
                <os family="windows"/>
            </file>
        """))

        assert warnings == []

    def test_fileset(self, builder, project_dir):
        """Test fileset patterns from attributes and children."""
        write_file(project_dir / "src" / "readme.txt", "r")
        write_file(project_dir / "src" / "notes.md", "n")
        write_file(project_dir / "src" / "lib" / "core.py", "c")
        write_file(project_dir / "src" / "lib" / "core.py~", "backup")
        write_file(project_dir / "src" / "tmp" / "scratch.txt", "s")

        pack = builder.parse_pack(_pack("""
            <fileset dir="src" targetdir="$INSTALL_PATH" includes="*.txt" excludes="tmp/">
                <include name="lib/"/>
            </fileset>
        """))

        assert [f.target for f in pack.files] == [
            "$INSTALL_PATH/readme.txt",
            "$INSTALL_PATH/lib/core.py",
            "$INSTALL_PATH/lib",
        ]
        assert pack.files[-1].is_directory

    def test_fileset_default_excludes_off(self, builder, project_dir):
        write_file(project_dir / "src" / "a.txt~", "backup")

        pack = builder.parse_pack(_pack('<fileset dir="src" targetdir="$T" defaultexcludes="no"/>'))

        assert [f.target for f in pack.files] == ["$T/a.txt~"]

    def test_fileset_invalid_directory(self, builder):
        with pytest.raises(InvalidPathError) as exc_info:
            builder.parse_pack(_pack('<fileset dir="nowhere" targetdir="$INSTALL_PATH"/>'))

        assert "Invalid directory" in str(exc_info.value)

    def test_listener_additional_data(self, builder, project_dir):
        """Test that listeners contribute per-file metadata."""
        write_file(project_dir / "readme.txt", "hello")
        builder.listeners.add(LoadedListener(OwnerListener(), "OwnerListener"))

        pack = builder.parse_pack(_pack('<file src="readme.txt" targetdir="$T" owner="admin"/>'))

        assert pack.files[0].additionals == {"owner": "admin"}

    def test_failing_listener_carries_location(self, builder, project_dir):
        write_file(project_dir / "readme.txt", "hello")
        builder.listeners.add(LoadedListener(BrokenListener(), "BrokenListener"))

        with pytest.raises(CompilerError) as exc_info:
            builder.parse_pack(_pack('<file src="readme.txt" targetdir="$T"/>'))

        assert "boom" in str(exc_info.value)
        assert exc_info.value.source == "install.xml"


# =============================================================================
# <packs>, refpacks and refpacksets
# =============================================================================

class TestBuild:
    """Tests for the whole <packs> section."""

    def test_packs_section_required(self, builder):
        with pytest.raises(MissingRequiredChildError):
            builder.build(_node('<installation version="1.0"/>'))

    def test_packs_section_must_not_be_empty(self, builder):
        with pytest.raises(MissingRequiredChildError) as exc_info:
            builder.build(_node(_installation("")))

        assert exc_info.value.child == "pack|refpack|refpackset"

    def test_packs_in_declaration_order(self, builder):
        root = _node(_installation("""
            <pack name="a" required="yes"><description>A</description></pack>
            <pack name="b" required="no"><description>B</description></pack>
        """))

        assert [p.name for p in builder.build(root)] == ["a", "b"]

    def test_refpack(self, builder, project_dir, hooks):
        """Test that a referenced descriptor is prepared and its packs appended."""
        ref = write_file(project_dir / "modules" / "docs.xml", _installation(
            '<pack name="docs" required="no"><description>Docs</description></pack>'
        ))
        root = _node(_installation("""
            <pack name="core" required="yes"><description>Core</description></pack>
            <refpack file="modules/docs.xml"/>
        """))

        packs = builder.build(root)

        assert [p.name for p in packs] == ["core", "docs"]
        assert hooks["prepared"] == [str(ref)]
        assert hooks["collected"] == [str(ref)]

    def test_refpack_missing(self, builder):
        root = _node(_installation('<refpack file="missing.xml"/>'))

        with pytest.raises(InvalidPathError):
            builder.build(root)

    def test_refpack_version_checked(self, builder, project_dir):
        write_file(project_dir / "old.xml", '<installation version="0.9"><packs/></installation>')

        with pytest.raises(VersionMismatchError):
            builder.build(_node(_installation('<refpack file="old.xml"/>')))

    def test_self_contained_refpack(self, builder, project_dir):
        write_zip(project_dir / "addon.zip", {
            "META-INF/installation.xml": _installation(
                '<pack name="addon" required="no"><description>Addon</description></pack>'
            ),
        })

        packs = builder.build(_node(_installation('<refpack file="addon.zip" selfcontained="true"/>')))

        assert [p.name for p in packs] == ["addon"]
        assert packs[0].source.endswith("addon.zip!META-INF/installation.xml")

    def test_self_contained_requires_zip(self, builder, project_dir):
        write_file(project_dir / "addon.jar", "jar")

        with pytest.raises(InvalidPathError) as exc_info:
            builder.build(_node(_installation('<refpack file="addon.jar" selfcontained="true"/>')))

        assert "zip" in str(exc_info.value)

    def test_self_contained_without_descriptor(self, builder, project_dir):
        write_zip(project_dir / "addon.zip", {"readme.txt": "no descriptor"})

        with pytest.raises(CompilerError) as exc_info:
            builder.build(_node(_installation('<refpack file="addon.zip" selfcontained="true"/>')))

        assert exc_info.value.line == 1

    def test_refpackset(self, builder, project_dir):
        """Test that a refpackset includes every matching descriptor."""
        for name in ("b", "a"):
            write_file(project_dir / "refs" / f"{name}.xml", _installation(
                f'<pack name="{name}" required="no"><description>{name}</description></pack>'
            ))
        write_file(project_dir / "refs" / "notes.txt", "ignored")

        packs = builder.build(_node(_installation('<refpackset dir="refs" includes="*.xml"/>')))

        assert [p.name for p in packs] == ["a", "b"]

    def test_refpackset_invalid_directory(self, builder):
        with pytest.raises(InvalidPathError):
            builder.build(_node(_installation('<refpackset dir="nowhere" includes="*.xml"/>')))

    def test_nested_refpacks(self, builder, project_dir):
        write_file(project_dir / "inner.xml", _installation(
            '<pack name="inner" required="no"><description>I</description></pack>'
        ))
        write_file(project_dir / "outer.xml", _installation('<refpack file="inner.xml"/>'))

        packs = builder.build(_node(_installation('<refpack file="outer.xml"/>')))

        assert [p.name for p in packs] == ["inner"]
