"""
Dual-Code Lookup

Resolves a traditional-medicine code (slot A) and/or an ICD-11 code
(slot B) to its concept and surfaces the mapped counterparts, with an
explicit status per supplied code.
"""

import asyncio

import structlog

from tmbridge.errors import InvalidArgument
from tmbridge.models.results import (
    ConceptSummary,
    DualCodeResult,
    DualCodeSlot,
    LookupStatus,
    MappedCode,
)
from tmbridge.models.terminology import Concept
from tmbridge.store.base import ConceptStore
from tmbridge.terminology.systems import SystemRegistry
from tmbridge.terminology.translation import TranslationResolver

logger = structlog.get_logger(__name__)


class DualCodeLookup:
    """
    Dual-coding lookup over the concept store and translation resolver.

    Slot A codes are looked up in the source-like family (NAMASTE, then
    Unani) and resolved forward; slot B codes in the target-like family
    (ICD-11 TM2, then ICD-11 MMS) and resolved in reverse.
    """

    def __init__(
        self,
        concepts: ConceptStore,
        resolver: TranslationResolver,
        registry: SystemRegistry,
    ):
        self.concepts = concepts
        self.resolver = resolver
        self.registry = registry

    async def lookup(
        self,
        code_a: str | None = None,
        code_b: str | None = None,
        include_details: bool = False,
        include_hierarchy: bool = False,
    ) -> DualCodeResult:
        code_a = code_a.strip() if code_a else None
        code_b = code_b.strip() if code_b else None
        if not code_a and not code_b:
            raise InvalidArgument("At least one of namasteCode or icd11Code is required")

        async def none() -> None:
            return None

        slot_a, slot_b = await asyncio.gather(
            self._resolve_a(code_a, include_details, include_hierarchy) if code_a else none(),
            self._resolve_b(code_b, include_details, include_hierarchy) if code_b else none(),
        )

        logger.info(
            "Dual-code lookup",
            code_a=code_a,
            status_a=slot_a.status.value if slot_a else None,
            code_b=code_b,
            status_b=slot_b.status.value if slot_b else None,
        )
        return DualCodeResult(a=slot_a, b=slot_b)

    async def _find(self, code: str, systems: list[str]) -> Concept | None:
        """First concept with this code, trying systems in order."""
        for system_url in systems:
            concept = await self.concepts.find_concept(system_url, code)
            if concept is not None:
                return concept
        return None

    async def _resolve_a(self, code: str, details: bool, hierarchy: bool) -> DualCodeSlot:
        concept = await self._find(code, self.registry.source_systems)
        if concept is None:
            return DualCodeSlot(status=LookupStatus.NOT_FOUND, query_code=code)

        forward = await self.resolver.forward(code, concept.system)
        mapped = [
            MappedCode(
                system=m.target_system,
                code=m.target_code,
                display=m.target_display,
                equivalence=m.equivalence,
            )
            for m in forward
        ]
        return await self._slot(code, concept, mapped, details, hierarchy)

    async def _resolve_b(self, code: str, details: bool, hierarchy: bool) -> DualCodeSlot:
        concept = await self._find(code, self.registry.target_systems)
        if concept is None:
            return DualCodeSlot(status=LookupStatus.NOT_FOUND, query_code=code)

        reverse = await self.resolver.reverse(code, concept.system)
        mapped = [
            MappedCode(
                system=m.source_system,
                code=m.source_code,
                display=m.source_display,
                equivalence=m.equivalence,
            )
            for m in reverse
        ]
        return await self._slot(code, concept, mapped, details, hierarchy)

    async def _slot(
        self,
        code: str,
        concept: Concept,
        mapped: list[MappedCode],
        details: bool,
        hierarchy: bool,
    ) -> DualCodeSlot:
        summary = ConceptSummary(
            system=concept.system,
            code=concept.code,
            display=concept.display,
        )
        if details:
            summary.definition = concept.definition
            summary.designations = list(concept.designations)
        if hierarchy:
            children = await self.concepts.get_children(concept.system, concept.code)
            summary.parent = concept.parent
            summary.children = [child.code for child in children]

        status = LookupStatus.FOUND_MAPPED if mapped else LookupStatus.FOUND_UNMAPPED
        return DualCodeSlot(status=status, query_code=code, concept=summary, mapped=mapped)
