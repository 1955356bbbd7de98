"""
Descriptor Tree and Loader.

Parses installation descriptors into an immutable tree of DescriptorNode
objects. Nodes remember the file and line they came from so every error can
point at the offending markup.
"""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

from lxml import etree

from .exceptions import (
    CompilerIOError,
    InvalidValueError,
    MalformedDescriptorError,
    MissingRequiredAttributeError,
    MissingRequiredChildError,
    VersionMismatchError,
)


logger = logging.getLogger(__name__)


WarnCallback = Callable[["DescriptorNode", str], None]


@dataclass(frozen=True)
class DescriptorNode:
    """
    A single element of a parsed descriptor.

    Nodes are never mutated; transformations such as property substitution
    build a new tree with `with_changes`.
    """
    name: str
    attributes: Dict[str, str] = field(default_factory=dict)
    content: Optional[str] = None
    children: Tuple["DescriptorNode", ...] = ()
    line: Optional[int] = None
    source: Optional[str] = None

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get_attribute(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.attributes.get(name, default)

    def has_attribute(self, name: str) -> bool:
        return name in self.attributes

    def first_child(self, name: str) -> Optional["DescriptorNode"]:
        for child in self.children:
            if child.name == name:
                return child
        return None

    def children_named(self, name: str) -> List["DescriptorNode"]:
        return [child for child in self.children if child.name == name]

    def iter(self) -> Iterator["DescriptorNode"]:
        """Iterate over this node and all descendants in document order."""
        yield self
        for child in self.children:
            yield from child.iter()

    def with_changes(self, **changes: Any) -> "DescriptorNode":
        """Return a copy of this node with the given fields replaced."""
        return replace(self, **changes)

    @property
    def location(self) -> Dict[str, Any]:
        """Keyword arguments locating this node, for exception constructors."""
        return {"source": self.source, "line": self.line}

    # -------------------------------------------------------------------------
    # Validating accessors
    # -------------------------------------------------------------------------

    def require_attribute(self, name: str) -> str:
        value = self.attributes.get(name)
        if value is None:
            raise MissingRequiredAttributeError(self.name, name, **self.location)
        return value

    def require_child(self, name: str) -> "DescriptorNode":
        child = self.first_child(name)
        if child is None:
            raise MissingRequiredChildError(self.name, name, **self.location)
        return child

    def require_content(self) -> str:
        if not self.content:
            raise InvalidValueError(f"<{self.name}> requires content", **self.location)
        return self.content

    def require_int_attribute(self, name: str) -> int:
        value = self.attributes.get(name)
        if not value:
            raise MissingRequiredAttributeError(self.name, name, **self.location)
        try:
            return int(value)
        except ValueError:
            raise InvalidValueError(f"'{name}' must be an integer", **self.location)

    def require_yes_no_attribute(self, name: str) -> bool:
        value = self.require_attribute(name)
        if value.lower() == "yes":
            return True
        if value.lower() == "no":
            return False
        raise InvalidValueError(
            f"<{self.name}> invalid attribute '{name}': Expected (yes|no)",
            **self.location,
        )

    def validate_yes_no_attribute(
        self,
        name: str,
        default: bool,
        warn: Optional[WarnCallback] = None,
    ) -> bool:
        """
        Read an optional yes/no attribute.

        Invalid values produce a warning and fall back to the default.
        """
        value = self.attributes.get(name)
        if value is None:
            return default
        if value.lower() == "yes":
            return True
        if value.lower() == "no":
            return False

        message = f"<{self.name}> invalid attribute '{name}': Expected (yes|no) if present"
        if warn is not None:
            warn(self, message)
        else:
            logger.warning(f"{self.source}:{self.line}: {message}")
        return default


def parse_yes_no(value: Optional[str]) -> bool:
    """Lenient boolean parsing: yes/no first, then true/false."""
    if value is None:
        return False
    lowered = value.strip().lower()
    if lowered == "yes":
        return True
    if lowered == "no":
        return False
    return lowered == "true"


# -----------------------------------------------------------------------------
# Loading
# -----------------------------------------------------------------------------

class DescriptorLoader:
    """
    Loads descriptor documents into DescriptorNode trees.

    Example:
        loader = DescriptorLoader(version="1.0")
        root = loader.load("install.xml")
        loader.check_root(root)
    """

    def __init__(self, root_name: str = "installation", version: str = "1.0"):
        self.root_name = root_name
        self.version = version

    def _parser(self) -> etree.XMLParser:
        return etree.XMLParser(
            remove_comments=True,
            remove_pis=True,
            resolve_entities=False,
            no_network=True,
        )

    def load(self, path: Union[str, Path]) -> DescriptorNode:
        """
        Load and parse a descriptor file.

        Args:
            path: Path to the descriptor

        Returns:
            Root node of the parsed tree
        """
        path = Path(path).absolute()
        if not path.is_file():
            raise CompilerIOError(f"Descriptor file does not exist or is not a regular file: {path}")
        try:
            data = path.read_bytes()
        except OSError as e:
            raise CompilerIOError(f"Descriptor file is not readable: {path} ({e})")
        return self.load_bytes(data, str(path))

    def load_text(self, text: str, source: str = "<string>") -> DescriptorNode:
        return self.load_bytes(text.encode("utf-8"), source)

    def load_bytes(self, data: bytes, source: str = "<bytes>") -> DescriptorNode:
        try:
            element = etree.fromstring(data, self._parser())
        except etree.XMLSyntaxError as e:
            raise MalformedDescriptorError(
                f"invalid XML: {e}",
                source=source,
                line=getattr(e, "lineno", None),
            )
        return element_to_node(element, source)

    def check_root(self, root: DescriptorNode) -> None:
        """
        Validate the root element name and version attribute.

        Raises:
            MalformedDescriptorError: If the root is not an installation element
            VersionMismatchError: If the version differs from the compiler's
        """
        if root.name.lower() != self.root_name.lower():
            raise MalformedDescriptorError(
                f"this is not an installation descriptor (root element <{root.name}>)",
                **root.location,
            )
        found = root.require_attribute("version")
        if found.lower() != self.version.lower():
            raise VersionMismatchError(found, self.version, **root.location)


def element_to_node(element: etree._Element, source: Optional[str]) -> DescriptorNode:
    """Convert an lxml element (and its subtree) into a DescriptorNode."""
    children = tuple(
        element_to_node(child, source)
        for child in element
        if isinstance(child.tag, str)
    )
    text = element.text.strip() if element.text else ""
    attributes = {
        key: value for key, value in element.attrib.items()
        if not key.startswith("{")
    }
    return DescriptorNode(
        name=etree.QName(element).localname,
        attributes=attributes,
        content=text or None,
        children=children,
        line=element.sourceline,
        source=source,
    )


def node_to_element(node: DescriptorNode) -> etree._Element:
    element = etree.Element(node.name)
    for key, value in node.attributes.items():
        element.set(key, value)
    if node.content is not None:
        element.text = node.content
    for child in node.children:
        element.append(node_to_element(child))
    return element


def to_xml(node: DescriptorNode) -> bytes:
    """Serialize a node tree back into a UTF-8 XML document."""
    return etree.tostring(
        node_to_element(node),
        xml_declaration=True,
        encoding="UTF-8",
        pretty_print=True,
    )
