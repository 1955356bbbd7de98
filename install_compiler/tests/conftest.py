"""
Shared fixtures for the install compiler tests.

Builds a throwaway project directory and an installer home holding the
built-in resources every compile needs (langpack, flag, uninstaller).
"""

import zipfile
from pathlib import Path
from typing import Dict

import pytest

from install_compiler.config import CompilerSettings
from install_compiler.compiler import InstallerCompiler
from install_compiler.core.descriptor import DescriptorLoader
from install_compiler.packaging import InMemoryPackager


# =============================================================================
# Helpers
# =============================================================================

def write_zip(path: Path, entries: Dict[str, str]) -> Path:
    """Write a zip file with the given entry name -> text content."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in entries.items():
            zf.writestr(name, content)
    return path


def write_file(path: Path, content: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def descriptor(packs: str, extra: str = "", info: str = "") -> str:
    """A minimal valid descriptor around the given <packs> body."""
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<installation version="1.0">
    <info>
        <appname>Demo</appname>
        <appversion>1.0</appversion>
        {info}
    </info>
    <locale>
        <langpack iso3="eng"/>
    </locale>
    <panels>
        <panel classname="HelloPanel" jar=""/>
    </panels>
    {extra}
    <packs>
        {packs}
    </packs>
</installation>
"""


def simple_pack(name: str, body: str = "", attributes: str = 'required="no"') -> str:
    return f"""<pack name="{name}" {attributes}>
            <description>{name} pack</description>
            {body}
        </pack>"""


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def installer_home(tmp_path: Path) -> Path:
    """Directory with the built-in resources of a standard compile."""
    home = tmp_path / "home"
    write_file(home / "bin" / "langpacks" / "installer" / "eng.xml", "<langpack/>")
    write_file(home / "bin" / "langpacks" / "flags" / "eng.gif", "GIF89a")
    write_zip(home / "lib" / "uninstaller.zip", {"uninstaller/main.py": "# uninstaller\n"})
    write_zip(home / "lib" / "uninstaller-ext.zip", {"uninstaller/ext.py": "# extensions\n"})
    return home


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    project = tmp_path / "project"
    project.mkdir()
    return project


@pytest.fixture
def settings(installer_home: Path) -> CompilerSettings:
    return CompilerSettings(installer_home=str(installer_home))


@pytest.fixture
def packager() -> InMemoryPackager:
    return InMemoryPackager()


@pytest.fixture
def compiler(project_dir: Path, packager: InMemoryPackager, settings: CompilerSettings) -> InstallerCompiler:
    return InstallerCompiler(project_dir, packager=packager, settings=settings, environ={})


@pytest.fixture
def loader() -> DescriptorLoader:
    return DescriptorLoader()
