"""
Installer Section Models.

Pydantic models for the installer-wide sections of a descriptor: product
info, GUI preferences, panels, installer requirements and custom data
(listeners and uninstaller libraries).
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .platform import OsConstraint


class RebootAction(str, Enum):
    """Reboot behavior after installation."""
    IGNORE = "ignore"
    NOTICE = "notice"
    ASK = "ask"
    ALWAYS = "always"


class Author(BaseModel):
    """Author of the installed product."""
    name: str
    email: str = ""


class Info(BaseModel):
    """Product metadata from <info>."""

    app_name: str = Field(..., description="Product name")
    app_version: str = Field(..., description="Product version")
    app_subpath: Optional[str] = Field(default=None, description="Default install subpath")
    url: Optional[str] = Field(default=None, description="Product home page")
    authors: List[Author] = Field(default_factory=list)
    java_version: Optional[str] = Field(default=None, description="Minimum runtime version")
    requires_jdk: bool = False
    web_dir_url: Optional[str] = Field(default=None, description="Download location of web packs")
    pack200_compression: bool = False
    requires_privileges: bool = False
    privileged_condition: Optional[str] = None
    privileged_uninstaller: bool = True
    reboot_action: RebootAction = RebootAction.IGNORE
    reboot_condition: Optional[str] = None
    write_uninstaller: bool = True
    uninstaller_name: Optional[str] = None
    uninstaller_path: Optional[str] = None
    uninstaller_condition: Optional[str] = None
    summary_log_file_path: Optional[str] = None
    write_installation_information: bool = True
    unpacker_class_name: Optional[str] = None


class LookAndFeel(BaseModel):
    """A look and feel selected for some OS families."""
    name: str
    os_families: List[str] = Field(default_factory=list)
    params: Dict[str, str] = Field(default_factory=dict)


class GUIPrefs(BaseModel):
    """Window preferences from <guiprefs>."""
    resizable: bool = False
    width: int = 800
    height: int = 600
    look_and_feels: List[LookAndFeel] = Field(default_factory=list)
    modifiers: Dict[str, str] = Field(default_factory=dict)


class PanelActionStage(str, Enum):
    """When a panel action runs."""
    PRE_CONSTRUCT = "preconstruct"
    PRE_ACTIVATE = "preactivate"
    PRE_VALIDATE = "prevalidate"
    POST_VALIDATE = "postvalidate"


class PanelAction(BaseModel):
    stage: PanelActionStage
    class_name: str
    params: Dict[str, str] = Field(default_factory=dict)


class Panel(BaseModel):
    """A wizard panel declared by <panel>."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    class_name: str
    panel_id: Optional[str] = None
    condition_id: Optional[str] = None
    os_constraints: List[OsConstraint] = Field(default_factory=list)
    configuration: Dict[str, Optional[str]] = Field(default_factory=dict)
    validator: Optional[str] = None
    help: Dict[str, str] = Field(default_factory=dict, description="ISO3 code to help resource id")
    actions: List[PanelAction] = Field(default_factory=list)

    def actions_for(self, stage: PanelActionStage) -> List[PanelAction]:
        return [action for action in self.actions if action.stage == stage]


class InstallerRequirement(BaseModel):
    """A condition that must hold before installation proceeds."""
    condition_id: str
    message: str


class CustomDataType(str, Enum):
    INSTALLER_LISTENER = "installer_listener"
    UNINSTALLER_LISTENER = "uninstaller_listener"
    UNINSTALLER_LIB = "uninstaller_lib"
    UNINSTALLER_JAR = "uninstaller_jar"


class CustomData(BaseModel):
    """Extra runtime content: listeners and uninstaller libraries."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    type: CustomDataType
    class_name: Optional[str] = None
    archive_path: Optional[str] = None
    contents: List[str] = Field(default_factory=list)
    os_constraints: List[OsConstraint] = Field(default_factory=list)
