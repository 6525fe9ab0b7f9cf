"""
Terminology Service

Facade over the autocomplete, translation, dual-coding, lookup and ValueSet
components. Every operation runs under a deadline; expiry cancels the
outstanding store queries and surfaces as StoreUnavailable.
"""

import asyncio
from typing import Awaitable, TypeVar

import structlog

from tmbridge.config import TerminologySettings
from tmbridge.errors import InvalidArgument, StoreUnavailable
from tmbridge.models.results import (
    AutocompleteResult,
    Coding,
    ConceptSearchResult,
    DualCodeResult,
    ForwardMapping,
    LookupResult,
    MappingValidationResult,
    ReverseMapping,
    ReverseTranslateResult,
    TranslateResult,
    ValidationResult,
    ValueSetExpansion,
)
from tmbridge.store.base import TerminologyStore
from tmbridge.terminology.autocomplete import AutocompleteOrchestrator
from tmbridge.terminology.dual_coding import DualCodeLookup
from tmbridge.terminology.lookup import ConceptLookup
from tmbridge.terminology.systems import SystemRegistry
from tmbridge.terminology.translation import TranslationResolver
from tmbridge.terminology.valuesets import ValueSetExpander

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class TerminologyService:
    """
    Terminology engine entry point.

    Usage:
        service = TerminologyService(store, settings.terminology)
        result = await service.translate("SR11", NAMASTE_URL)
        matches = await service.autocomplete("fever", systems=["namaste"])
    """

    def __init__(self, store: TerminologyStore, settings: TerminologySettings | None = None):
        self.store = store
        self.settings = settings or TerminologySettings()
        self.registry = SystemRegistry.from_settings(self.settings)
        self.resolver = TranslationResolver(store)
        self.autocompleter = AutocompleteOrchestrator(
            store, self.resolver, self.registry, self.settings
        )
        self.dual_coder = DualCodeLookup(store, self.resolver, self.registry)
        self.concept_lookup = ConceptLookup(store)
        self.expander = ValueSetExpander(store)

    async def _run(self, operation: str, awaitable: Awaitable[T], timeout: float | None) -> T:
        deadline = self.settings.query_timeout_seconds if timeout is None else timeout
        try:
            return await asyncio.wait_for(awaitable, timeout=deadline)
        except asyncio.TimeoutError as e:
            logger.warning("Terminology operation timed out", operation=operation, timeout=deadline)
            raise StoreUnavailable(f"{operation} timed out after {deadline}s") from e

    def _system(self, value: str | None) -> str | None:
        """Accept an alias or a URL."""
        if value is None or not value.strip():
            return value
        return self.registry.resolve(value) or value.strip()

    # =========================================================================
    # Autocomplete
    # =========================================================================

    async def autocomplete(
        self,
        search_term: str,
        systems: list[str] | None = None,
        target_system: str | None = None,
        limit: int | None = None,
        include_designations: bool = True,
        include_mappings: bool = True,
        timeout: float | None = None,
    ) -> AutocompleteResult:
        return await self._run(
            "autocomplete",
            self.autocompleter.search(
                search_term,
                systems=systems,
                target_system=target_system,
                limit=limit,
                include_designations=include_designations,
                include_mappings=include_mappings,
            ),
            timeout,
        )

    async def code_system_autocomplete(
        self,
        system: str,
        search_term: str,
        limit: int | None = None,
        include_designations: bool = True,
        timeout: float | None = None,
    ) -> ConceptSearchResult:
        return await self._run(
            "code_system_autocomplete",
            self.autocompleter.search_code_system(
                system, search_term, limit=limit, include_designations=include_designations
            ),
            timeout,
        )

    # =========================================================================
    # Translation
    # =========================================================================

    async def translate(
        self,
        code: str,
        source_system: str,
        target_system: str | None = None,
        timeout: float | None = None,
    ) -> TranslateResult:
        """
        Translate a source code to its mapped targets.

        found=False (no matches) when the code is unknown in its system;
        found=True with no matches when it is known but unmapped.
        """
        return await self._run(
            "translate",
            self._translate(code, self._system(source_system), self._system(target_system)),
            timeout,
        )

    async def _translate(
        self,
        code: str,
        source_system: str,
        target_system: str | None,
    ) -> TranslateResult:
        # Validates code/system before touching the concept store
        matches = await self.resolver.forward(code, source_system, target_system)

        concept = await self.store.find_concept(source_system.strip(), code.strip())
        if concept is None:
            logger.info("Translate source not found", system=source_system, code=code)
            return TranslateResult(found=False)

        return TranslateResult(
            found=True,
            source=Coding(system=concept.system, code=concept.code, display=concept.display),
            matches=matches,
        )

    async def translate_reverse(
        self,
        code: str,
        target_system: str,
        timeout: float | None = None,
    ) -> ReverseTranslateResult:
        """Source codes mapped onto a target code; found reflects the target concept."""
        return await self._run(
            "translate_reverse",
            self._translate_reverse(code, self._system(target_system)),
            timeout,
        )

    async def _translate_reverse(self, code: str, target_system: str) -> ReverseTranslateResult:
        matches = await self.resolver.reverse(code, target_system)

        concept = await self.store.find_concept(target_system.strip(), code.strip())
        if concept is None:
            logger.info("Reverse translate target not found", system=target_system, code=code)
            return ReverseTranslateResult(found=False)

        return ReverseTranslateResult(
            found=True,
            target=Coding(system=concept.system, code=concept.code, display=concept.display),
            matches=matches,
        )

    async def translate_in_map(
        self,
        concept_map: str,
        code: str,
        system: str,
        target_system: str | None = None,
        reverse: bool = False,
        timeout: float | None = None,
    ) -> list[ForwardMapping] | list[ReverseMapping]:
        """
        Translate through one ConceptMap (url or id).

        Forward, system is the map's sourceUri; reverse, its targetUri.
        Raises NotFound for an unknown ConceptMap.
        """
        return await self._run(
            "translate_in_map",
            self._translate_in_map(
                concept_map, code, self._system(system), self._system(target_system), reverse
            ),
            timeout,
        )

    async def _translate_in_map(
        self,
        concept_map: str,
        code: str,
        system: str,
        target_system: str | None,
        reverse: bool,
    ) -> list[ForwardMapping] | list[ReverseMapping]:
        resource = await self.store.get_concept_map(concept_map)
        if reverse:
            return self.resolver.reverse_in_map(resource, code, system)
        return self.resolver.forward_in_map(resource, code, system, target_system)

    # =========================================================================
    # Dual coding
    # =========================================================================

    async def dual_code_lookup(
        self,
        code_a: str | None = None,
        code_b: str | None = None,
        include_details: bool = False,
        include_hierarchy: bool = False,
        timeout: float | None = None,
    ) -> DualCodeResult:
        return await self._run(
            "dual_code_lookup",
            self.dual_coder.lookup(
                code_a,
                code_b,
                include_details=include_details,
                include_hierarchy=include_hierarchy,
            ),
            timeout,
        )

    # =========================================================================
    # Lookup / validation
    # =========================================================================

    async def lookup(
        self,
        system: str,
        code: str,
        properties: list[str] | tuple[str, ...] = (),
        timeout: float | None = None,
    ) -> LookupResult:
        return await self._run(
            "lookup",
            self.concept_lookup.lookup(self._system(system), code, properties),
            timeout,
        )

    async def validate_code(
        self,
        system: str,
        code: str,
        display: str | None = None,
        timeout: float | None = None,
    ) -> ValidationResult:
        return await self._run(
            "validate_code",
            self.concept_lookup.validate_code(self._system(system), code, display),
            timeout,
        )

    async def validate_mapping(
        self,
        concept_map: str,
        code: str,
        timeout: float | None = None,
    ) -> MappingValidationResult:
        return await self._run(
            "validate_mapping",
            self.concept_lookup.validate_mapping(concept_map, code),
            timeout,
        )

    # =========================================================================
    # ValueSets
    # =========================================================================

    async def expand_value_set(
        self,
        value_set: str,
        filter: str | None = None,
        count: int = 20,
        offset: int = 0,
        timeout: float | None = None,
    ) -> ValueSetExpansion:
        return await self._run(
            "expand_value_set",
            self._expand_value_set(value_set, filter, count, offset),
            timeout,
        )

    async def _expand_value_set(
        self,
        value_set: str,
        filter: str | None,
        count: int,
        offset: int,
    ) -> ValueSetExpansion:
        resource = await self.store.get_value_set(value_set)
        return await self.expander.expand(resource, filter=filter, count=count, offset=offset)

    async def validate_value_set_code(
        self,
        value_set: str,
        code: str,
        system: str | None = None,
        display: str | None = None,
        timeout: float | None = None,
    ) -> ValidationResult:
        return await self._run(
            "validate_value_set_code",
            self._validate_value_set_code(value_set, code, self._system(system), display),
            timeout,
        )

    async def _validate_value_set_code(
        self,
        value_set: str,
        code: str,
        system: str | None,
        display: str | None,
    ) -> ValidationResult:
        if not code:
            raise InvalidArgument("code parameter is required")
        resource = await self.store.get_value_set(value_set)
        return await self.expander.validate_code(resource, code, system, display)
