"""
Tests for build-time properties and descriptor substitution.
"""

import pytest

from install_compiler.core.descriptor import DescriptorLoader
from install_compiler.core.exceptions import CompilerIOError, MissingRequiredAttributeError
from install_compiler.core.properties import (
    PropertyLoader,
    PropertyTable,
    parse_key_file,
    substitute_tree,
)


@pytest.fixture
def table():
    return PropertyTable()


def _root(body: str):
    return DescriptorLoader().load_text(f'<installation version="1.0">{body}</installation>', "install.xml")


class TestPropertyTable:
    """Tests for PropertyTable."""

    def test_first_writer_wins(self, table):
        """Test that a redefinition is ignored."""
        assert table.add_property("app", "first") is True
        assert table.add_property("app", "second") is False

        assert table["app"] == "first"

    def test_set_property_overwrites(self, table):
        """Test that set_property always wins."""
        table.add_property("basedir", "/a")
        table.set_property("basedir", "/b")

        assert table.get("basedir") == "/b"

    def test_replace_leaves_unknown_verbatim(self, table):
        """Test that unresolved placeholders survive."""
        table.add_property("name", "Demo")

        assert table.replace("${name} ${unknown}") == "Demo ${unknown}"

    def test_replacement_is_not_reexpanded(self, table):
        """Test that replacement text containing placeholders is not rescanned."""
        table.add_property("a", "${b}")
        table.add_property("b", "deep")

        assert table.replace("${a}") == "${b}"

    def test_replace_none(self, table):
        assert table.replace(None) is None


class TestKeyFileParsing:
    """Tests for the flat key file format."""

    def test_separators_and_comments(self):
        """Test '=', ':' and whitespace separators with comments."""
        text = "# comment\n! another\n\na=1\nb: 2\nc 3\n"

        assert parse_key_file(text) == [("a", "1"), ("b", "2"), ("c", "3")]

    def test_line_continuation(self):
        """Test backslash continued values."""
        text = "path=one,\\\n    two\n"

        assert parse_key_file(text) == [("path", "one,two")]

    def test_escapes(self):
        """Test escaped separators and unicode escapes."""
        text = "key\\=name=caf\\u00e9\\tbar\n"

        assert parse_key_file(text) == [("key=name", "café\tbar")]


class TestPropertyLoader:
    """Tests for executing <property> declarations."""

    def test_literal_values_resolve_in_order(self, table, tmp_path):
        """Test that values see properties defined before them."""
        root = _root("""<properties>
            <property name="app" value="Demo"/>
            <property name="title" value="${app} Installer"/>
        </properties>""")

        PropertyLoader(table, tmp_path).execute(root)

        assert table["title"] == "Demo Installer"

    def test_file_with_prefix(self, table, tmp_path):
        """Test loading a key file relative to the base directory."""
        (tmp_path / "build.properties").write_text("version=2.1\nvendor=ACME\n", encoding="latin-1")
        root = _root('<properties><property file="build.properties" prefix="build"/></properties>')

        PropertyLoader(table, tmp_path).execute(root)

        assert table["build.version"] == "2.1"
        assert table["build.vendor"] == "ACME"

    def test_missing_file(self, table, tmp_path):
        """Test that an unreadable property file is an IO error."""
        root = _root('<properties><property file="missing.properties"/></properties>')

        with pytest.raises(CompilerIOError):
            PropertyLoader(table, tmp_path).execute(root)

    def test_environment(self, table, tmp_path):
        """Test importing the environment under a prefix."""
        root = _root('<properties><property environment="env"/></properties>')

        PropertyLoader(table, tmp_path, environ={"HOME": "/home/demo"}).execute(root)

        assert table["env.HOME"] == "/home/demo"

    def test_property_without_form(self, table, tmp_path):
        """Test that a property with no recognized form is rejected."""
        root = _root('<properties><property prefix="x"/></properties>')

        with pytest.raises(MissingRequiredAttributeError):
            PropertyLoader(table, tmp_path).execute(root)

    def test_name_without_value(self, table, tmp_path):
        root = _root('<properties><property name="x"/></properties>')

        with pytest.raises(MissingRequiredAttributeError):
            PropertyLoader(table, tmp_path).execute(root)


class TestSubstituteTree:
    """Tests for substituting properties through the descriptor."""

    def test_attributes_and_content(self, table):
        """Test that attributes and text content are substituted."""
        table.add_property("app", "Demo")
        root = _root('<info><appname>${app}</appname></info><pack name="${app}-core"/>')

        result = substitute_tree(root, table)

        assert result.require_child("info").require_child("appname").content == "Demo"
        assert result.require_child("pack").get_attribute("name") == "Demo-core"

    def test_original_tree_untouched(self, table):
        """Test that substitution builds a new tree."""
        table.add_property("app", "Demo")
        root = _root('<pack name="${app}"/>')

        substitute_tree(root, table)

        assert root.require_child("pack").get_attribute("name") == "${app}"

    def test_properties_subtree_kept_in_place(self, table):
        """Test that <properties> is neither substituted nor moved."""
        table.add_property("app", "Demo")
        root = _root('<a/><properties><property name="x" value="${app}"/></properties><b/>')

        result = substitute_tree(root, table)

        assert [child.name for child in result.children] == ["a", "properties", "b"]
        prop = result.require_child("properties").require_child("property")
        assert prop.get_attribute("value") == "${app}"

    def test_idempotent_once_defined(self, table):
        """Test that substituting twice equals substituting once."""
        table.add_property("app", "Demo")
        table.add_property("ver", "1.0")
        root = _root('<pack name="${app}" version="${ver}">${app} ${missing}</pack>')

        once = substitute_tree(root, table)
        twice = substitute_tree(once, table)

        assert once == twice
