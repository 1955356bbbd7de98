"""
Localized Resource Merge.

Resources of a localized family (e.g. packsLang.xml_eng) may be contributed
several times: once by the main descriptor and again by every ref-pack.
The contributions are collected during the build and merged into one
document per id at the very end.
"""

import copy
import logging
from typing import Dict, List, Sequence

from lxml import etree

from install_compiler.core.exceptions import CompilerIOError
from install_compiler.resources.pipeline import FinalizedResource


logger = logging.getLogger(__name__)


STRING_ENTRY = "str"


class LocalizedResourceMerger:
    """
    Collects and merges localized resource contributions.

    Example:
        merger = LocalizedResourceMerger(["packsLang.xml"])
        merger.add("packsLang.xml_eng", main_contribution)
        merger.add("packsLang.xml_eng", refpack_contribution)
        merged = merger.merge()
    """

    def __init__(self, prefixes: Sequence[str]):
        self.prefixes = list(prefixes)
        self._contributions: Dict[str, List[FinalizedResource]] = {}

    def is_localized(self, resource_id: str) -> bool:
        return any(resource_id.startswith(prefix) for prefix in self.prefixes)

    def add(self, resource_id: str, resource: FinalizedResource) -> None:
        self._contributions.setdefault(resource_id, []).append(resource)
        logger.debug(
            f"Collected localized resource '{resource_id}' "
            f"(contribution {len(self._contributions[resource_id])})"
        )

    def contribution_count(self, resource_id: str) -> int:
        return len(self._contributions.get(resource_id, []))

    def merge(self) -> List[FinalizedResource]:
        """
        Produce one resource per collected id.

        Single contributions pass through unchanged. Otherwise the first
        document is the base and every <str> child of each later document's
        root is appended to it in order.

        Raises:
            CompilerIOError: If a contribution is not valid XML
        """
        merged: List[FinalizedResource] = []
        for resource_id, contributions in self._contributions.items():
            if len(contributions) == 1:
                merged.append(contributions[0])
                continue
            merged.append(self._merge_documents(resource_id, contributions))
        return merged

    def _merge_documents(
        self,
        resource_id: str,
        contributions: List[FinalizedResource],
    ) -> FinalizedResource:
        parser = etree.XMLParser(resolve_entities=False, no_network=True, remove_blank_text=True)
        base = self._parse(resource_id, contributions[0], parser)
        for contribution in contributions[1:]:
            document = self._parse(resource_id, contribution, parser)
            for entry in document.iterchildren(STRING_ENTRY):
                base.append(copy.deepcopy(entry))

        content = etree.tostring(base, xml_declaration=True, encoding="UTF-8", pretty_print=True)
        logger.info(f"Merged {len(contributions)} contributions into resource '{resource_id}'")
        first = contributions[0]
        return FinalizedResource(id=resource_id, content=content, origin=first.origin, **first.location)

    def _parse(self, resource_id: str, contribution: FinalizedResource, parser: etree.XMLParser):
        try:
            return etree.fromstring(contribution.content, parser)
        except etree.XMLSyntaxError as e:
            raise CompilerIOError(
                f"Error merging localized resource '{resource_id}': {e}",
                {"resource_id": resource_id, "origin": contribution.origin},
                **contribution.location,
            )
