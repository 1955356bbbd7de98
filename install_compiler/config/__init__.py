"""
Install Compiler Configuration.

Settings and configuration management.
"""

from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class CompilerSettings(BaseSettings):
    """Global settings for the install compiler."""

    model_config = SettingsConfigDict(env_prefix="IC_", env_file=".env", extra="ignore")

    # Descriptor
    descriptor_version: str = Field(default="1.0", description="Descriptor version accepted by the compiler")
    root_element: str = Field(default="installation", description="Expected root element name")
    kind: str = Field(default="standard", description="Installer kind (standard or web)")

    # Built-in resources
    installer_home: str = Field(default=".", description="Directory holding built-in resources")
    embedded_resource_package: Optional[str] = Field(
        default=None,
        description="Python package searched for built-in resources before installer_home",
    )
    listener_dir: str = Field(default="bin/customActions", description="Conventional listener archive directory")
    listener_search_path: List[str] = Field(default_factory=list, description="Fallback listener archive directories")
    panel_dir: str = Field(default="bin/panels", description="Conventional panel archive directory")
    native_dir: str = Field(default="bin/native", description="Native library directory")
    langpack_dir: str = Field(default="bin/langpacks/installer", description="Langpack directory")
    flag_dir: str = Field(default="bin/langpacks/flags", description="Langpack flag directory")
    laf_dir: str = Field(default="lib", description="Look and feel archive directory")
    uninstaller_resource: str = Field(default="lib/uninstaller.zip", description="Uninstaller resource path")
    uninstaller_ext_resource: str = Field(
        default="lib/uninstaller-ext.zip",
        description="Uninstaller extensions resource path",
    )

    # Packaging
    packager_class: str = Field(
        default="install_compiler.packaging.memory.InMemoryPackager",
        description="Default packager implementation",
    )
    unpacker_class: str = Field(default="install_compiler.runtime.Unpacker", description="Default unpacker class name")

    # Resources and packs
    localized_resource_prefixes: List[str] = Field(
        default_factory=lambda: ["packsLang.xml"],
        description="Resource id prefixes merged across contributions",
    )
    refpack_archive_entry: str = Field(
        default="META-INF/installation.xml",
        description="Descriptor entry inside self-contained refpack archives",
    )
    temp_prefix: str = Field(default="ic_", description="Prefix for temporary artifacts")


# Global settings instance
_settings: Optional[CompilerSettings] = None


def get_settings() -> CompilerSettings:
    """Get global settings instance."""
    global _settings
    if _settings is None:
        _settings = CompilerSettings()
    return _settings


def configure(settings: CompilerSettings) -> None:
    """Set global settings."""
    global _settings
    _settings = settings
