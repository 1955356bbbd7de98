"""
Install Compiler Exception Hierarchy.

Centralized exception definitions for consistent error handling.
Every fatal condition raised while handling a descriptor node carries the
node's source file and line so the build log points at the offending markup.
"""

from typing import Optional


class CompilerError(Exception):
    """Base exception for all install compiler errors."""

    def __init__(
        self,
        message: str,
        details: dict = None,
        source: Optional[str] = None,
        line: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.source = source
        self.line = line

    @property
    def location(self) -> str:
        if self.source and self.line is not None:
            return f"{self.source}:{self.line}"
        if self.source:
            return self.source
        if self.line is not None:
            return f"line {self.line}"
        return ""

    def __str__(self) -> str:
        location = self.location
        if location:
            return f"{location}: {self.message}"
        return self.message


# -----------------------------------------------------------------------------
# Descriptor Errors
# -----------------------------------------------------------------------------

class DescriptorError(CompilerError):
    """Base exception for problems in the descriptor markup."""
    pass


class MalformedDescriptorError(DescriptorError):
    """Raised when the document is not a well-formed installation descriptor."""
    pass


class VersionMismatchError(DescriptorError):
    """Raised when the descriptor version differs from the compiler version."""

    def __init__(
        self,
        found: str,
        expected: str,
        source: Optional[str] = None,
        line: Optional[int] = None,
    ):
        super().__init__(
            f"the file version '{found}' is different from the compiler version '{expected}'",
            {"found": found, "expected": expected},
            source,
            line,
        )
        self.found = found
        self.expected = expected


class MissingRequiredAttributeError(DescriptorError):
    """Raised when an element lacks a mandatory attribute."""

    def __init__(
        self,
        element: str,
        attribute: str,
        source: Optional[str] = None,
        line: Optional[int] = None,
    ):
        super().__init__(
            f"<{element}> requires attribute '{attribute}'",
            {"element": element, "attribute": attribute},
            source,
            line,
        )
        self.element = element
        self.attribute = attribute


class MissingRequiredChildError(DescriptorError):
    """Raised when an element lacks a mandatory child element."""

    def __init__(
        self,
        element: str,
        child: str,
        source: Optional[str] = None,
        line: Optional[int] = None,
    ):
        super().__init__(
            f"<{element}> requires child <{child}>",
            {"element": element, "child": child},
            source,
            line,
        )
        self.element = element
        self.child = child


class InvalidEnumValueError(DescriptorError):
    """Raised when a keyword attribute holds a value outside its allowed set."""

    def __init__(
        self,
        attribute: str,
        value: str,
        allowed: list,
        source: Optional[str] = None,
        line: Optional[int] = None,
    ):
        super().__init__(
            f"invalid value '{value}' for attribute \"{attribute}\", "
            f"expected one of ({'|'.join(allowed)})",
            {"attribute": attribute, "value": value, "allowed": list(allowed)},
            source,
            line,
        )
        self.attribute = attribute
        self.value = value
        self.allowed = list(allowed)


class InvalidValueError(DescriptorError):
    """Raised when a value is present but unusable (bad integer, URL, empty content)."""
    pass


# -----------------------------------------------------------------------------
# Resource / Path Errors
# -----------------------------------------------------------------------------

class ResourceNotFoundError(CompilerError):
    """Raised when a referenced resource cannot be located."""

    def __init__(
        self,
        description: str,
        path: str,
        source: Optional[str] = None,
        line: Optional[int] = None,
    ):
        super().__init__(
            f"{description} not found: {path}",
            {"description": description, "path": str(path)},
            source,
            line,
        )
        self.description = description
        self.path = str(path)


class InvalidPathError(CompilerError):
    """Raised when a file or directory path does not resolve to something usable."""
    pass


class ArchiveReadError(CompilerError):
    """Raised when an archive cannot be opened or read."""
    pass


class CompilerIOError(CompilerError):
    """Raised when reading or writing a file fails."""
    pass


# -----------------------------------------------------------------------------
# Pack Graph Errors
# -----------------------------------------------------------------------------

class PackGraphError(CompilerError):
    """Base exception for pack graph inconsistencies."""
    pass


class StructuralConflictError(PackGraphError):
    """Raised when pack attributes contradict each other."""
    pass


class DependencyUnresolvedError(PackGraphError):
    """Raised when a pack depends on a pack that is not part of the build."""

    def __init__(
        self,
        pack_name: str,
        missing: str,
        source: Optional[str] = None,
        line: Optional[int] = None,
    ):
        super().__init__(
            f"Pack '{pack_name}' depends on unknown pack '{missing}'",
            {"pack_name": pack_name, "missing": missing},
            source,
            line,
        )
        self.pack_name = pack_name
        self.missing = missing


class CircularDependencyError(PackGraphError):
    """Raised when pack dependencies form a cycle."""

    def __init__(self, cycle: list):
        super().__init__(
            f"Circular dependency detected: {' -> '.join(cycle)}",
            {"cycle": list(cycle)},
        )
        self.cycle = list(cycle)


# -----------------------------------------------------------------------------
# Plugin Errors
# -----------------------------------------------------------------------------

class PluginError(CompilerError):
    """Base exception for listener and panel class resolution errors."""
    pass


class AmbiguousClassNameError(PluginError):
    """Raised when a short class name only matches an archive entry case-insensitively."""

    def __init__(
        self,
        class_name: str,
        entry: str,
        source: Optional[str] = None,
        line: Optional[int] = None,
    ):
        super().__init__(
            f"The declared class name ({class_name}) differs in case "
            f"from the archive entry found ({entry})",
            {"class_name": class_name, "entry": entry},
            source,
            line,
        )
        self.class_name = class_name
        self.entry = entry


class ListenerLoadError(PluginError):
    """Raised when a build listener cannot be loaded or has the wrong type."""
    pass
