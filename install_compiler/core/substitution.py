"""
Placeholder Substitution.

Two substitution flavors share this module:
- build-time property placeholders (`${name}`) applied to the descriptor
- install-time variable placeholders applied to resource contents, in the
  syntax selected by a SubstitutionType

Substitution is a single regex pass: replacement text is never re-scanned,
so property values that contain placeholders cannot loop.
"""

import re
from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Pattern
from xml.sax.saxutils import escape as xml_escape


PROPERTY_PATTERN = re.compile(r"\$\{([^${}]+)\}")


def replace_placeholders(text: Optional[str], values: Mapping[str, str]) -> Optional[str]:
    """
    Replace `${name}` placeholders using `values`.

    Unknown names are left verbatim.
    """
    if not text or "${" not in text:
        return text

    def _lookup(match: "re.Match[str]") -> str:
        value = values.get(match.group(1))
        return match.group(0) if value is None else value

    return PROPERTY_PATTERN.sub(_lookup, text)


class SubstitutionType(str, Enum):
    """Placeholder syntaxes understood in parsable files and resources."""
    PLAIN = "plain"          # $name or ${name}
    JAVA_PROPERTIES = "javaprop"  # plain, values escaped for key=value files
    XML = "xml"              # plain, values XML-escaped
    SHELL = "shell"          # %name or %{name}
    AT = "at"                # @name@
    ANT = "ant"              # @name@

    @classmethod
    def lookup(cls, value: Optional[str]) -> Optional["SubstitutionType"]:
        """Resolve a type keyword; missing means plain, unknown means None."""
        if value is None or value == "":
            return cls.PLAIN
        try:
            return cls(value.lower())
        except ValueError:
            return None


_NAME = r"[A-Za-z0-9_][\w.\-]*"

_PATTERNS: Dict[SubstitutionType, Pattern[str]] = {
    SubstitutionType.PLAIN: re.compile(r"\$\{(" + _NAME + r")\}|\$(" + _NAME + r")"),
    SubstitutionType.JAVA_PROPERTIES: re.compile(r"\$\{(" + _NAME + r")\}|\$(" + _NAME + r")"),
    SubstitutionType.XML: re.compile(r"\$\{(" + _NAME + r")\}|\$(" + _NAME + r")"),
    SubstitutionType.SHELL: re.compile(r"%\{(" + _NAME + r")\}|%(" + _NAME + r")"),
    SubstitutionType.AT: re.compile(r"@(" + _NAME + r")@"),
    SubstitutionType.ANT: re.compile(r"@(" + _NAME + r")@"),
}


def _escape_java_property(value: str) -> str:
    out = []
    for ch in value:
        if ch in "\\=:#!":
            out.append("\\" + ch)
        elif ord(ch) > 0x7E:
            out.append(f"\\u{ord(ch):04x}")
        else:
            out.append(ch)
    return "".join(out)


_ESCAPERS: Dict[SubstitutionType, Callable[[str], str]] = {
    SubstitutionType.JAVA_PROPERTIES: _escape_java_property,
    SubstitutionType.XML: lambda value: xml_escape(value, {'"': "&quot;", "'": "&apos;"}),
}


class VariableSubstitutor:
    """
    Substitutes install-time variables into text.

    Example:
        substitutor = VariableSubstitutor({"APP_NAME": "Demo"})
        substitutor.substitute("Welcome to $APP_NAME")  # "Welcome to Demo"
    """

    def __init__(self, variables: Mapping[str, str]):
        self.variables = variables

    def substitute(
        self,
        text: str,
        substitution_type: SubstitutionType = SubstitutionType.PLAIN,
    ) -> str:
        pattern = _PATTERNS[substitution_type]
        escape = _ESCAPERS.get(substitution_type)

        def _lookup(match: "re.Match[str]") -> str:
            name = next(group for group in match.groups() if group is not None)
            value = self.variables.get(name)
            if value is None:
                return match.group(0)
            return escape(value) if escape else value

        return pattern.sub(_lookup, text)
