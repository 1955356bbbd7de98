"""
Tests for the packager sink and the build context journal.
"""

import pytest

from install_compiler.compiler.context import BuildContext, BuildWarning
from install_compiler.config import CompilerSettings
from install_compiler.core.conditions import VariableCondition
from install_compiler.core.exceptions import DependencyUnresolvedError
from install_compiler.core.models import Info
from install_compiler.core.variables import DynamicVariable
from install_compiler.packaging import InMemoryPackager, Packager
from install_compiler.packs.models import Pack, PackFile


class TestInMemoryPackager:
    """Tests for InMemoryPackager."""

    def test_add_property_first_wins(self, packager):
        assert packager.add_property("a", "1") is True
        assert packager.add_property("a", "2") is False

        packager.set_property("a", "3")

        assert packager.model.properties == {"a": "3"}

    def test_tables(self, packager):
        packager.add_variable("A", "1")
        packager.add_dynamic_variable(DynamicVariable("HOME", "/opt"))
        packager.add_condition(VariableCondition("c", "A", "1"))

        assert packager.get_variables() == {"A": "1"}
        assert [v.value for v in packager.get_dynamic_variables()["HOME"]] == ["/opt"]
        assert "c" in packager.get_conditions()

    def test_check_dependencies(self, packager):
        packager.add_pack(Pack(name="docs", dependencies=["core"]))

        with pytest.raises(DependencyUnresolvedError):
            packager.check_dependencies()

    def test_create_installer(self, packager):
        """Test that the returned model carries everything added."""
        packager.set_info(Info(app_name="Demo", app_version="1.0"))
        packager.add_pack(Pack(name="core", id="core.id"))

        model = packager.create_installer()

        assert model.info.app_name == "Demo"
        assert model.get_pack("core.id").name == "core"
        assert model.get_pack("missing") is None
        assert model.created_at is not None
        assert packager.installers_created == 1

    def test_captures_transient_and_builtin_content(self, packager, tmp_path):
        """Test that the model keeps bytes of files that may be removed later."""
        extracted = tmp_path / "workspace" / "run.sh"
        extracted.parent.mkdir()
        extracted.write_bytes(b"#!/bin/sh\n")
        kept = tmp_path / "kept.txt"
        kept.write_bytes(b"kept")
        xml = tmp_path / "eng.xml"
        xml.write_bytes(b"<langpack/>")
        pack = Pack(name="core", files=[
            PackFile(source=extracted, target="$INSTALL_PATH/run.sh", transient=True),
            PackFile(source=kept, target="$INSTALL_PATH/kept.txt"),
        ])
        packager.add_pack(pack)
        packager.add_lang_pack("eng", xml, tmp_path / "missing.gif")

        model = packager.create_installer()
        extracted.unlink()

        assert model.packs[0].files[0].content == b"#!/bin/sh\n"
        assert model.read(extracted) == b"#!/bin/sh\n"
        assert model.packs[0].files[1].content is None
        assert model.read(xml) == b"<langpack/>"
        assert tmp_path / "missing.gif" not in model.artifacts

    def test_is_a_packager(self, packager):
        assert isinstance(packager, Packager)


class TestBuildContext:
    """Tests for the staging journal and workspace lifecycle."""

    @pytest.fixture
    def context(self, project_dir, installer_home):
        return BuildContext(project_dir, CompilerSettings(installer_home=str(installer_home)))

    def test_workspace_released_on_exit(self, context):
        with context:
            workspace = context.workspace
            assert workspace.is_dir()
            assert context.locator is not None

        assert not workspace.exists()

    def test_stage_rejects_unknown_method(self, context):
        with pytest.raises(AttributeError):
            context.stage("add_everything", 1)

    def test_staged_calls(self, context):
        context.stage("add_resource", "a", b"1")
        context.stage("set_info", Info(app_name="Demo", app_version="1.0"))
        context.stage("add_resource", "b", b"2")

        assert context.staged_calls("add_resource") == [("a", b"1"), ("b", b"2")]

    def test_commit_replays_in_order(self, context, packager):
        """Test that tables come first, then staged calls, then packs."""
        context.properties.add_property("app", "Demo")
        context.variables.add("A", "1")
        context.stage("add_resource", "readme", b"hello")
        context.packs = [Pack(name="core")]

        context.commit(packager)

        assert packager.model.properties == {"app": "Demo"}
        assert packager.model.variables == {"A": "1"}
        assert packager.model.resources == {"readme": b"hello"}
        assert [pack.name for pack in packager.model.packs] == ["core"]

    def test_nothing_reaches_packager_before_commit(self, context, packager):
        context.packager = packager
        context.stage("add_resource", "readme", b"hello")

        assert packager.model.resources == {}

    def test_warn(self, context):
        class Node:
            source = "install.xml"
            line = 7

        context.warn(Node(), "careful")
        context.warn(None, "no location")

        assert context.warnings == [
            BuildWarning("careful", "install.xml", 7),
            BuildWarning("no location"),
        ]
        assert str(context.warnings[0]) == "install.xml:7: careful"
        assert str(context.warnings[1]) == "no location"
