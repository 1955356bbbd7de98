"""
Tests for compiler settings.
"""

import pytest

from install_compiler import config
from install_compiler.config import CompilerSettings, configure, get_settings


@pytest.fixture
def restore_settings():
    saved = config._settings
    yield
    config._settings = saved


def test_defaults():
    settings = CompilerSettings()

    assert settings.descriptor_version == "1.0"
    assert settings.kind == "standard"
    assert settings.localized_resource_prefixes == ["packsLang.xml"]
    assert settings.packager_class == "install_compiler.packaging.memory.InMemoryPackager"


def test_environment_prefix(monkeypatch):
    """Test that IC_ environment variables override defaults."""
    monkeypatch.setenv("IC_KIND", "web")
    monkeypatch.setenv("IC_INSTALLER_HOME", "/opt/installer")

    settings = CompilerSettings()

    assert settings.kind == "web"
    assert settings.installer_home == "/opt/installer"


def test_configure_replaces_global(restore_settings, installer_home):
    custom = CompilerSettings(installer_home=str(installer_home))

    configure(custom)

    assert get_settings() is custom
