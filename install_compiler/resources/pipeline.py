"""
Resource Transform Pipeline.

Turns a located resource file into its finalized content. Stages run in a
fixed order and each one writes a new temporary artifact:

1. re-encode to UTF-8 when an explicit source encoding is given
2. XML canonicalization when `parsexml` is requested
3. install-time variable substitution when `parse` is requested

All artifacts live in a temporary directory scoped to one `finalize` call;
the source file is never modified.
"""

import codecs
import logging
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from lxml import etree

from install_compiler.core.descriptor import DescriptorNode, WarnCallback, parse_yes_no
from install_compiler.core.exceptions import CompilerIOError, InvalidEnumValueError
from install_compiler.core.substitution import SubstitutionType, VariableSubstitutor


logger = logging.getLogger(__name__)


CANONICAL_ENCODING = "utf-8"

XML_DECLARATION_ENCODING = re.compile(r"""\A(\ufeff?<\?xml[^>]*?\bencoding\s*=\s*)(["'])[^"']*\2""")


@dataclass
class FinalizedResource:
    """A resource ready to be handed to the packager."""
    id: str
    content: bytes
    origin: Optional[str] = None
    source: Optional[str] = None
    line: Optional[int] = None

    @property
    def location(self) -> Dict[str, Any]:
        """Location of the <res> element that produced this resource."""
        return {"source": self.source, "line": self.line}

    def __repr__(self) -> str:
        return f"FinalizedResource(id={self.id!r}, size={len(self.content)}, origin={self.origin!r})"


@dataclass
class ResourceFlags:
    """Transform options of a <res> element."""
    parse: bool = False
    parse_xml: bool = False
    encoding: Optional[str] = None
    substitution_type: SubstitutionType = SubstitutionType.PLAIN

    @classmethod
    def from_node(cls, node: DescriptorNode) -> "ResourceFlags":
        raw_type = node.get_attribute("type")
        substitution_type = SubstitutionType.lookup(raw_type)
        if substitution_type is None:
            raise InvalidEnumValueError(
                "type",
                raw_type,
                [member.value for member in SubstitutionType],
                **node.location,
            )
        return cls(
            parse=parse_yes_no(node.get_attribute("parse")),
            parse_xml=parse_yes_no(node.get_attribute("parsexml")),
            encoding=node.get_attribute("encoding") or None,
            substitution_type=substitution_type,
        )


def _is_canonical(encoding: str) -> bool:
    try:
        return codecs.lookup(encoding).name == CANONICAL_ENCODING
    except LookupError:
        return False


class ResourcePipeline:
    """
    Finalizes resources for the packager.

    Args:
        variables: Install-time variables used by the substitution stage
        warn: Callback receiving non-fatal anomalies
        temp_prefix: Prefix for the per-call temporary directory
    """

    def __init__(
        self,
        variables: Mapping[str, str],
        warn: Optional[WarnCallback] = None,
        temp_prefix: str = "ic_",
    ):
        self.variables = variables
        self.warn = warn
        self.temp_prefix = temp_prefix

    def finalize(
        self,
        resource_id: str,
        src: Path,
        flags: ResourceFlags,
        node: DescriptorNode,
    ) -> FinalizedResource:
        """
        Run the transform stages for one resource.

        Args:
            resource_id: Resource id
            src: Located source file
            flags: Requested transforms
            node: The <res> node, for error locations and warnings

        Raises:
            CompilerIOError: If any stage fails
        """
        try:
            with tempfile.TemporaryDirectory(prefix=self.temp_prefix) as stage_dir:
                stage = Path(stage_dir)
                current = src
                xml_encoding = None

                if flags.encoding and not _is_canonical(flags.encoding):
                    current = self._reencode(current, flags.encoding, stage / "reencoded")
                    xml_encoding = CANONICAL_ENCODING

                if flags.parse_xml:
                    current = self._canonicalize_xml(current, stage / "canonical.xml", xml_encoding)

                if flags.parse:
                    current = self._substitute(current, flags.substitution_type, stage / "parsed", node)

                content = current.read_bytes()
        except (OSError, UnicodeError, LookupError, etree.XMLSyntaxError) as e:
            raise CompilerIOError(
                f"Error processing resource '{resource_id}' from {src}: {e}",
                {"resource_id": resource_id, "src": str(src)},
                **node.location,
            )

        logger.debug(f"Finalized resource '{resource_id}' ({len(content)} bytes) from {src}")
        return FinalizedResource(id=resource_id, content=content, origin=str(src), **node.location)

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def _reencode(self, src: Path, encoding: str, target: Path) -> Path:
        text = src.read_bytes().decode(encoding)
        # keep an XML declaration in step with the new encoding
        text = XML_DECLARATION_ENCODING.sub(rf"\g<1>\g<2>{CANONICAL_ENCODING}\g<2>", text, count=1)
        target.write_bytes(text.encode(CANONICAL_ENCODING))
        return target

    def _canonicalize_xml(self, src: Path, target: Path, encoding: Optional[str] = None) -> Path:
        parser = etree.XMLParser(resolve_entities=False, no_network=True, encoding=encoding)
        tree = etree.parse(str(src), parser)
        tree.write(str(target), xml_declaration=True, encoding="UTF-8", pretty_print=True)
        return target

    def _substitute(
        self,
        src: Path,
        substitution_type: SubstitutionType,
        target: Path,
        node: DescriptorNode,
    ) -> Path:
        if not self.variables:
            message = f"No variables defined, {src.name} not parsed"
            if self.warn is not None:
                self.warn(node, message)
            else:
                logger.warning(message)
            return src

        text = src.read_bytes().decode(CANONICAL_ENCODING)
        substituted = VariableSubstitutor(self.variables).substitute(text, substitution_type)
        target.write_bytes(substituted.encode(CANONICAL_ENCODING))
        return target
