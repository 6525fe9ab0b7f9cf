"""
Translation Resolver

Forward (source code -> targets) and reverse (target code -> sources)
resolution over ConceptMap edges. Edges are directed; reverse resolution
reads the reverse index and never inverts forward edges.
"""

import structlog

from tmbridge.errors import InvalidArgument
from tmbridge.models.results import ForwardMapping, ReverseMapping
from tmbridge.models.terminology import ConceptMap
from tmbridge.store.base import MappingEdge, MappingStore, flatten_edges

logger = structlog.get_logger(__name__)


def _require(value: str | None, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument(f"'{name}' is required")
    return value.strip()


def forward_mapping(edge: MappingEdge) -> ForwardMapping:
    return ForwardMapping(
        target_system=edge.map_target_uri,
        target_code=edge.target_code,
        target_display=edge.target_display,
        equivalence=edge.equivalence,
        comment=edge.comment,
        concept_map_url=edge.concept_map_url,
        depends_on=list(edge.depends_on),
    )


def reverse_mapping(edge: MappingEdge) -> ReverseMapping:
    return ReverseMapping(
        source_system=edge.map_source_uri,
        source_code=edge.source_code,
        source_display=edge.source_display,
        equivalence=edge.equivalence,
        comment=edge.comment,
        concept_map_url=edge.concept_map_url,
    )


class TranslationResolver:
    """
    Resolves mapping edges for a code.

    Absence of mapping data is an empty list, never NotFound; whether the
    code itself exists is the caller's question for the concept store.
    """

    def __init__(self, mappings: MappingStore):
        self.mappings = mappings

    async def forward(
        self,
        code: str,
        source_system: str,
        target_system: str | None = None,
    ) -> list[ForwardMapping]:
        """
        Every target of every element matching code, across every ConceptMap
        from source_system (restricted to target_system when given).
        """
        code = _require(code, "code")
        source_system = _require(source_system, "system")
        if target_system is not None and not target_system.strip():
            target_system = None

        edges = await self.mappings.find_edges_from(source_system, code, target_system)
        logger.debug(
            "Forward translation",
            system=source_system,
            code=code,
            target=target_system,
            count=len(edges),
        )
        return [forward_mapping(edge) for edge in edges]

    async def reverse(self, code: str, target_system: str) -> list[ReverseMapping]:
        """One reverse mapping per (element, target) edge whose target code matches."""
        code = _require(code, "code")
        target_system = _require(target_system, "targetsystem")

        edges = await self.mappings.find_edges_to(target_system, code)
        logger.debug(
            "Reverse translation",
            system=target_system,
            code=code,
            count=len(edges),
        )
        return [reverse_mapping(edge) for edge in edges]

    # =========================================================================
    # Single ConceptMap
    # =========================================================================

    def forward_in_map(
        self,
        concept_map: ConceptMap,
        code: str,
        source_system: str,
        target_system: str | None = None,
    ) -> list[ForwardMapping]:
        """Targets of code within one ConceptMap; empty unless source_system is its sourceUri."""
        code = _require(code, "code")
        source_system = _require(source_system, "system")
        if source_system != concept_map.source_uri:
            return []
        if target_system and target_system.strip() != concept_map.target_uri:
            return []

        return [
            forward_mapping(edge)
            for edge in flatten_edges(concept_map)
            if edge.source_code == code
        ]

    def reverse_in_map(
        self,
        concept_map: ConceptMap,
        code: str,
        target_system: str,
    ) -> list[ReverseMapping]:
        code = _require(code, "code")
        target_system = _require(target_system, "system")
        if target_system != concept_map.target_uri:
            return []

        return [
            reverse_mapping(edge)
            for edge in flatten_edges(concept_map)
            if edge.target_code == code
        ]
