"""
Tests for variable substitution, merge policies and variable tables.
"""

import pytest

from install_compiler.core.merge import MergePolicy, merge_entry
from install_compiler.core.substitution import SubstitutionType, VariableSubstitutor
from install_compiler.core.variables import DynamicVariable, DynamicVariableTable, VariableTable


class TestVariableSubstitutor:
    """Tests for install-time substitution syntaxes."""

    @pytest.fixture
    def substitutor(self):
        return VariableSubstitutor({"APP": "Demo", "PATH_SEP": "a=b", "QUOTE": '<"x">'})

    def test_plain(self, substitutor):
        """Test both plain forms."""
        assert substitutor.substitute("$APP and ${APP}") == "Demo and Demo"

    def test_unknown_left_verbatim(self, substitutor):
        assert substitutor.substitute("$NOPE ${NOPE}") == "$NOPE ${NOPE}"

    def test_shell(self, substitutor):
        assert substitutor.substitute("%APP %{APP}", SubstitutionType.SHELL) == "Demo Demo"

    def test_at_and_ant(self, substitutor):
        assert substitutor.substitute("@APP@", SubstitutionType.AT) == "Demo"
        assert substitutor.substitute("@APP@", SubstitutionType.ANT) == "Demo"

    def test_xml_escapes_values(self, substitutor):
        result = substitutor.substitute("<v>${QUOTE}</v>", SubstitutionType.XML)
        assert result == "<v>&lt;&quot;x&quot;&gt;</v>"

    def test_java_properties_escapes_values(self, substitutor):
        result = substitutor.substitute("sep=${PATH_SEP}", SubstitutionType.JAVA_PROPERTIES)
        assert result == "sep=a\\=b"

    @pytest.mark.parametrize("value,expected", [
        (None, SubstitutionType.PLAIN),
        ("", SubstitutionType.PLAIN),
        ("SHELL", SubstitutionType.SHELL),
        ("javaprop", SubstitutionType.JAVA_PROPERTIES),
        ("bogus", None),
    ])
    def test_lookup(self, value, expected):
        assert SubstitutionType.lookup(value) is expected


class TestMergeEntry:
    """Tests for the explicit merge policies."""

    def test_first_wins(self):
        """Test that FIRST_WINS keeps the existing value."""
        mapping = {"a": 1}

        assert merge_entry(mapping, "a", 2, MergePolicy.FIRST_WINS) is False
        assert mapping == {"a": 1}

    def test_last_wins_reports_replacement(self):
        """Test that LAST_WINS_WARN replaces and calls back."""
        mapping = {"a": 1}
        replaced = []

        stored = merge_entry(
            mapping, "a", 2, MergePolicy.LAST_WINS_WARN,
            on_replace=lambda key, old, new: replaced.append((key, old, new)),
        )

        assert stored is True
        assert mapping == {"a": 2}
        assert replaced == [("a", 1, 2)]

    def test_new_key_stored_without_callback(self):
        replaced = []
        mapping = {}

        merge_entry(mapping, "a", 1, MergePolicy.LAST_WINS_WARN, on_replace=lambda *args: replaced.append(args))

        assert mapping == {"a": 1}
        assert replaced == []


class TestVariableTable:
    """Tests for static variables."""

    def test_last_definition_wins(self):
        variables = VariableTable()

        assert variables.add("A", "1") is False
        assert variables.add("A", "2") is True
        assert variables.get("A") == "2"
        assert len(variables) == 1

    def test_empty_table_is_falsy(self):
        assert not VariableTable()


class TestDynamicVariableTable:
    """Tests for conditioned dynamic variables."""

    def test_identity_is_value_and_condition(self):
        """Test that equal value and condition count as the same entry."""
        table = DynamicVariableTable()

        assert table.add(DynamicVariable("HOME", "/opt", "linux")) is False
        assert table.add(DynamicVariable("HOME", "C:/", "windows")) is False
        assert table.add(DynamicVariable("HOME", "/opt", "linux")) is True

        values = [(v.value, v.condition_id) for v in table.get("HOME")]
        assert values == [("C:/", "windows"), ("/opt", "linux")]

    def test_distinct_conditions_kept(self):
        table = DynamicVariableTable()
        table.add(DynamicVariable("X", "1", None))
        table.add(DynamicVariable("X", "1", "cond"))

        assert len(table.get("X")) == 2
        assert "X" in table
