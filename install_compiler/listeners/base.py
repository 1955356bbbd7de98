"""
Build Listener Capability.

A build listener observes the compile and may attach extra metadata to
pack files. Any class with `notify` and `revise_additional_data_map`
methods satisfies the capability, whether or not it inherits from
BuildListener.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from install_compiler.core.descriptor import DescriptorNode
from install_compiler.core.exceptions import CompilerError
from install_compiler.core.platform import OsConstraint

if TYPE_CHECKING:
    from install_compiler.packaging.base import Packager


logger = logging.getLogger(__name__)


class ListenerState(str, Enum):
    """Which side of a phase a notification is sent on."""
    BEGIN = "begin"
    END = "end"


class BuildListener(ABC):
    """Interface for build-time listeners."""

    @abstractmethod
    def notify(
        self,
        phase: str,
        state: ListenerState,
        node: Optional[DescriptorNode],
        packager: "Packager",
    ) -> None:
        """Called before and after every build phase."""
        pass

    @abstractmethod
    def revise_additional_data_map(
        self,
        existing: Optional[Dict[str, Any]],
        node: DescriptorNode,
    ) -> Optional[Dict[str, Any]]:
        """Return the additional metadata for a file-bearing node."""
        pass

    @classmethod
    def __subclasshook__(cls, subclass: type) -> Any:
        if cls is BuildListener:
            required = ("notify", "revise_additional_data_map")
            if all(callable(getattr(subclass, name, None)) for name in required):
                return True
        return NotImplemented


class SimpleBuildListener(BuildListener):
    """Listener with no-op hooks, for subclasses that need only one of them."""

    def notify(self, phase, state, node, packager) -> None:
        pass

    def revise_additional_data_map(self, existing, node):
        return existing


@dataclass
class LoadedListener:
    """A listener instance together with where it came from."""
    instance: Any
    class_name: str
    os_constraints: List[OsConstraint] = field(default_factory=list)


class ListenerChain:
    """Registered listeners, invoked in registration order."""

    def __init__(self):
        self._listeners: List[LoadedListener] = []

    def add(self, listener: LoadedListener) -> None:
        self._listeners.append(listener)
        logger.debug(f"Registered build listener {listener.class_name}")

    def notify(
        self,
        phase: str,
        state: ListenerState,
        node: Optional[DescriptorNode],
        packager: "Packager",
    ) -> None:
        for listener in self._listeners:
            try:
                listener.instance.notify(phase, state, node, packager)
            except CompilerError:
                raise
            except Exception as e:
                location = node.location if node is not None else {}
                raise CompilerError(
                    f"Listener {listener.class_name} failed on {phase} ({state.value}): {e}",
                    {"listener": listener.class_name, "phase": phase},
                    **location,
                ) from e

    def revise_additional_data(self, node: DescriptorNode) -> Dict[str, Any]:
        """
        Let every listener contribute metadata for a file-bearing node.

        Raises:
            CompilerError: If a listener fails; carries the node's location
        """
        data: Optional[Dict[str, Any]] = None
        for listener in self._listeners:
            try:
                data = listener.instance.revise_additional_data_map(data, node)
            except CompilerError as e:
                raise CompilerError(e.message, e.details, **node.location) from e
            except Exception as e:
                raise CompilerError(
                    f"Listener {listener.class_name} failed: {e}",
                    {"listener": listener.class_name},
                    **node.location,
                ) from e
        return dict(data) if data else {}

    def __iter__(self):
        return iter(self._listeners)

    def __len__(self) -> int:
        return len(self._listeners)
