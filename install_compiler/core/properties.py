"""
Build-time Properties.

Properties are declared under <properties> and expanded as `${name}`
placeholders throughout the descriptor before any other section is read.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union

from .descriptor import DescriptorNode
from .exceptions import CompilerIOError, MissingRequiredAttributeError
from .merge import PROPERTY_POLICY, merge_entry
from .substitution import replace_placeholders


logger = logging.getLogger(__name__)


PROPERTIES_ELEMENT = "properties"


class PropertyTable:
    """
    Name to value map of build-time properties.

    The first definition of a name wins; later ones are ignored. Built-in
    properties are written with `set_property`, which always overwrites.
    """

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._values: Dict[str, str] = dict(initial or {})

    def add_property(self, name: str, value: str) -> bool:
        """
        Add a property unless it is already defined.

        Returns:
            True if the property was stored
        """
        stored = merge_entry(self._values, name, value, PROPERTY_POLICY)
        if not stored:
            logger.debug(f"Property '{name}' already defined, ignoring new value '{value}'")
        return stored

    def set_property(self, name: str, value: str) -> None:
        self._values[name] = value

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self._values.get(name, default)

    def replace(self, text: Optional[str]) -> Optional[str]:
        """Expand `${name}` placeholders in `text` against this table."""
        return replace_placeholders(text, self._values)

    def as_dict(self) -> Dict[str, str]:
        return dict(self._values)

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def __getitem__(self, name: str) -> str:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"PropertyTable(names={list(self._values)})"


# -----------------------------------------------------------------------------
# Key file parsing
# -----------------------------------------------------------------------------

_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}


def _unescape(text: str) -> str:
    out: List[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch != "\\" or i + 1 >= len(text):
            out.append(ch)
            i += 1
            continue
        nxt = text[i + 1]
        if nxt == "u" and i + 6 <= len(text):
            try:
                out.append(chr(int(text[i + 2:i + 6], 16)))
                i += 6
                continue
            except ValueError:
                pass
        out.append(_ESCAPES.get(nxt, nxt))
        i += 2
    return "".join(out)


def _logical_lines(text: str) -> Iterator[str]:
    """Join backslash-continued lines and drop blanks and comments."""
    pending = ""
    for raw in text.splitlines():
        line = raw.lstrip()
        if not pending and (not line or line[0] in "#!"):
            continue
        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            pending += line[:-1]
            continue
        yield pending + line
        pending = ""
    if pending:
        yield pending


def _split_key_value(line: str) -> Tuple[str, str]:
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == "\\":
            i += 2
            continue
        if ch in "=:" or ch.isspace():
            break
        i += 1
    key = line[:i]
    rest = line[i:].lstrip()
    if rest[:1] in ("=", ":"):
        rest = rest[1:].lstrip()
    return _unescape(key), _unescape(rest)


def parse_key_file(text: str) -> List[Tuple[str, str]]:
    """
    Parse a flat key file.

    Supports `key=value`, `key: value` and `key value` lines, `#`/`!`
    comments, backslash line continuations and the usual escapes.

    Returns:
        (key, value) pairs in file order
    """
    return [_split_key_value(line) for line in _logical_lines(text)]


# -----------------------------------------------------------------------------
# <properties> execution
# -----------------------------------------------------------------------------

class PropertyLoader:
    """
    Executes <property> declarations against a PropertyTable.

    Args:
        table: Target property table
        base_dir: Directory against which relative property files resolve
        environ: Environment mapping (defaults to os.environ)
    """

    def __init__(
        self,
        table: PropertyTable,
        base_dir: Union[str, Path],
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.table = table
        self.base_dir = Path(base_dir)
        self.environ = environ if environ is not None else os.environ

    def execute(self, root: DescriptorNode) -> None:
        """Run every <property> of the root's <properties> sections in document order."""
        for section in root.children_named(PROPERTIES_ELEMENT):
            for node in section.children_named("property"):
                self.execute_property(node)

    def execute_property(self, node: DescriptorNode) -> None:
        name = node.get_attribute("name")
        if name is not None:
            value = node.get_attribute("value")
            if value is None:
                raise MissingRequiredAttributeError(node.name, "value", **node.location)
            self.table.add_property(name, self.table.replace(value))
            return

        if node.has_attribute("file"):
            self._load_file(node)
            return

        if node.has_attribute("environment"):
            self._load_environment(node.get_attribute("environment"))
            return

        raise MissingRequiredAttributeError(node.name, "name|file|environment", **node.location)

    def _load_file(self, node: DescriptorNode) -> None:
        path = Path(self.table.replace(node.get_attribute("file")))
        if not path.is_absolute():
            path = self.base_dir / path
        prefix = node.get_attribute("prefix", "")
        if prefix and not prefix.endswith("."):
            prefix += "."

        try:
            text = path.read_text(encoding="latin-1")
        except OSError as e:
            raise CompilerIOError(f"Unable to read property file {path}: {e}", **node.location)

        entries = parse_key_file(text)
        logger.debug(f"Loaded {len(entries)} properties from {path}")
        for key, value in entries:
            self.table.add_property(prefix + key, self.table.replace(value))

    def _load_environment(self, prefix: str) -> None:
        if not prefix.endswith("."):
            prefix += "."
        for key, value in self.environ.items():
            self.table.add_property(prefix + key, value)


# -----------------------------------------------------------------------------
# Tree substitution
# -----------------------------------------------------------------------------

def substitute_tree(node: DescriptorNode, table: PropertyTable) -> DescriptorNode:
    """
    Return a copy of `node` with `${name}` placeholders expanded.

    Attribute values and text content are substituted in every element except
    <properties> subtrees, which are returned unchanged in place.
    """
    if node.name == PROPERTIES_ELEMENT:
        return node

    attributes = {key: table.replace(value) for key, value in node.attributes.items()}
    children = tuple(substitute_tree(child, table) for child in node.children)
    return node.with_changes(
        attributes=attributes,
        content=table.replace(node.content),
        children=children,
    )
