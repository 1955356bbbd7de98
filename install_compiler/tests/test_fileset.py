"""
Tests for fileset scanning and archive helpers.
"""

import pytest

from install_compiler.core.exceptions import AmbiguousClassNameError, ArchiveReadError
from install_compiler.packs.archives import (
    extract_entries,
    list_entries,
    module_names,
    read_entry,
    resolve_class_name,
)
from install_compiler.packs.fileset import DirectoryScanner, compile_pattern, split_patterns

from .conftest import write_file, write_zip


@pytest.fixture
def tree(tmp_path):
    """A small source tree with VCS metadata and an editor backup."""
    root = tmp_path / "src"
    write_file(root / "readme.txt", "readme")
    write_file(root / "readme.txt~", "backup")
    write_file(root / "docs" / "guide.txt", "guide")
    write_file(root / "docs" / "img" / "logo.png", "png")
    write_file(root / "lib" / "core.py", "code")
    write_file(root / ".git" / "HEAD", "ref")
    (root / "empty").mkdir()
    return root


class TestPatterns:
    """Tests for Ant-style pattern translation."""

    @pytest.mark.parametrize("pattern,path,expected", [
        ("*.txt", "readme.txt", True),
        ("*.txt", "docs/guide.txt", False),
        ("**/*.txt", "docs/guide.txt", True),
        ("**/*.txt", "readme.txt", True),
        ("docs/**", "docs", True),
        ("docs/**", "docs/img/logo.png", True),
        ("docs/", "docs/guide.txt", True),
        ("doc?/*.txt", "docs/guide.txt", True),
        ("lib/*.py", "lib/sub/core.py", False),
    ])
    def test_matching(self, pattern, path, expected):
        assert bool(compile_pattern(pattern).match(path)) is expected

    def test_case_insensitive(self):
        assert compile_pattern("*.TXT", case_sensitive=False).match("a.txt")
        assert not compile_pattern("*.TXT").match("a.txt")

    def test_split_patterns(self):
        assert split_patterns("a/**, *.txt  b") == ["a/**", "*.txt", "b"]
        assert split_patterns(None) == []


class TestDirectoryScanner:
    """Tests for DirectoryScanner."""

    def test_default_includes_everything_but_default_excludes(self, tree):
        """Test that VCS metadata and backups are skipped by default."""
        result = DirectoryScanner().scan(tree)

        assert result.files == ["readme.txt", "docs/guide.txt", "docs/img/logo.png", "lib/core.py"]
        assert result.directories == ["docs", "empty", "lib", "docs/img"]

    def test_default_excludes_disabled(self, tree):
        result = DirectoryScanner(default_excludes=False).scan(tree)

        assert "readme.txt~" in result.files
        assert ".git/HEAD" in result.files

    def test_includes_and_excludes(self, tree):
        """Test explicit include/exclude patterns."""
        result = DirectoryScanner(includes=["**/*.txt", "lib/"], excludes=["docs/**"]).scan(tree)

        assert result.files == ["readme.txt", "lib/core.py"]
        assert result.directories == ["lib"]

    def test_root_directory_not_reported(self, tree):
        result = DirectoryScanner().scan(tree)
        assert "" not in result.directories
        assert "." not in result.directories


class TestArchives:
    """Tests for the archive helpers."""

    @pytest.fixture
    def archive(self, tmp_path):
        return write_zip(tmp_path / "plugin.zip", {
            "acme/__init__.py": "",
            "acme/listeners/AuditListener.py": "class AuditListener: pass\n",
            "acme/data/": "",
            "acme/data/values.txt": "values",
        })

    def test_list_entries_skips_directories(self, archive):
        assert list_entries(archive) == [
            "acme/__init__.py",
            "acme/listeners/AuditListener.py",
            "acme/data/values.txt",
        ]

    def test_list_entries_of_directory(self, tmp_path):
        root = tmp_path / "plugin"
        write_file(root / "b.py")
        write_file(root / "a" / "c.py")

        assert list_entries(root) == ["b.py", "a/c.py"]

    def test_extract_entries(self, archive, tmp_path):
        """Test that every file entry is extracted to its own file."""
        workspace = tmp_path / "workspace"
        workspace.mkdir()

        extracted = extract_entries(archive, workspace)

        assert [name for name, _ in extracted] == list_entries(archive)
        values = dict(extracted)["acme/data/values.txt"]
        assert values.parent == workspace
        assert values.read_text() == "values"

    def test_extract_bad_archive(self, tmp_path):
        bogus = write_file(tmp_path / "bogus.zip", "not a zip")

        with pytest.raises(ArchiveReadError):
            extract_entries(bogus, tmp_path)

    def test_read_entry(self, archive):
        assert read_entry(archive, "acme/data/values.txt") == b"values"
        with pytest.raises(ArchiveReadError):
            read_entry(archive, "missing")

    def test_module_names(self, archive):
        assert module_names(archive) == ["acme.listeners.AuditListener"]

    def test_resolve_class_name(self, archive):
        """Test short name resolution and case-insensitive ambiguity."""
        assert resolve_class_name(archive, "AuditListener") == "acme.listeners.AuditListener"
        assert resolve_class_name(archive, "Missing") is None
        with pytest.raises(AmbiguousClassNameError):
            resolve_class_name(archive, "auditlistener")
