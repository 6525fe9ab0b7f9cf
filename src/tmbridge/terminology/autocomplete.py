"""
Autocomplete Orchestrator

Fans a search term out across code systems, scores each hit, annotates it
with its forward mappings, then merges, ranks and truncates. Also serves the
unranked single-CodeSystem search behind CodeSystem $autocomplete.
"""

import asyncio

import structlog

from tmbridge.config import TerminologySettings
from tmbridge.errors import InvalidArgument
from tmbridge.models.results import (
    AutocompleteMatch,
    AutocompleteResult,
    ConceptSearchResult,
    ForwardMapping,
)
from tmbridge.models.terminology import Concept
from tmbridge.store.base import ConceptStore
from tmbridge.terminology.scoring import score
from tmbridge.terminology.systems import SystemRegistry, terminology_label
from tmbridge.terminology.translation import TranslationResolver

logger = structlog.get_logger(__name__)


class AutocompleteOrchestrator:
    """
    Cross-system ranked concept search.

    Usage:
        orchestrator = AutocompleteOrchestrator(store, resolver, registry, settings)
        result = await orchestrator.search("fever", systems=["namaste"])
    """

    def __init__(
        self,
        concepts: ConceptStore,
        resolver: TranslationResolver,
        registry: SystemRegistry,
        settings: TerminologySettings,
    ):
        self.concepts = concepts
        self.resolver = resolver
        self.registry = registry
        self.settings = settings

    def clamp_limit(self, limit: int | None) -> int:
        if limit is None:
            limit = self.settings.default_limit
        return max(1, min(limit, self.settings.max_limit))

    def _check_term(self, search_term: str | None) -> str:
        term = (search_term or "").strip()
        if len(term) < self.settings.min_search_length:
            raise InvalidArgument(
                f"Search term must be at least {self.settings.min_search_length} characters"
            )
        return term

    async def search(
        self,
        search_term: str,
        systems: list[str] | None = None,
        target_system: str | None = None,
        limit: int | None = None,
        include_designations: bool = True,
        include_mappings: bool = True,
    ) -> AutocompleteResult:
        """
        Search concepts across systems.

        Args:
            search_term: Text or code fragment, at least min_search_length after trimming
            systems: System aliases to search (default: configured systems)
            target_system: Restrict the search to this one of systems (URL or alias)
            limit: Maximum matches, per system and overall
            include_designations: Match and return designations
            include_mappings: Attach forward mappings to each match

        Returns:
            AutocompleteResult ordered by descending score
        """
        term = self._check_term(search_term)
        limit = self.clamp_limit(limit)

        urls = self.registry.resolve_all(systems or self.settings.default_systems)
        if target_system:
            # Narrows the requested systems; never adds one
            restrict = self.registry.resolve(target_system) or target_system.strip()
            urls = [url for url in urls if url == restrict]

        per_system = await asyncio.gather(*(
            self._search_system(url, term, limit, include_designations, include_mappings)
            for url in urls
        ))

        # Concatenated in requested-system order; sorted() is stable on ties
        candidates = [match for matches in per_system for match in matches]
        ranked = sorted(candidates, key=lambda m: m.score, reverse=True)[:limit]
        for rank, match in enumerate(ranked, start=1):
            match.rank = rank

        logger.info(
            "Autocomplete",
            term=term,
            systems=urls,
            candidates=len(candidates),
            count=len(ranked),
        )
        return AutocompleteResult(
            search_term=term,
            systems_searched=urls,
            match_count=len(ranked),
            matches=ranked,
        )

    async def search_code_system(
        self,
        system: str,
        search_term: str,
        limit: int | None = None,
        include_designations: bool = True,
    ) -> ConceptSearchResult:
        """
        Search one CodeSystem (url, alias or id) in store order.

        Raises NotFound for an unknown CodeSystem.
        """
        if not system or not system.strip():
            raise InvalidArgument("system parameter is required")
        term = self._check_term(search_term)

        code_system = await self.concepts.get_code_system(
            self.registry.resolve(system) or system.strip()
        )
        concepts = await self.concepts.search_concepts(
            code_system.url,
            term,
            self.clamp_limit(limit),
            include_designations=include_designations,
        )
        if not include_designations:
            concepts = [c.model_copy(update={"designations": []}) for c in concepts]

        logger.info("CodeSystem autocomplete", system=code_system.url, term=term, count=len(concepts))
        return ConceptSearchResult(
            system=code_system.url,
            version=code_system.version,
            search_term=term,
            concepts=concepts,
        )

    async def _search_system(
        self,
        system_url: str,
        term: str,
        limit: int,
        include_designations: bool,
        include_mappings: bool,
    ) -> list[AutocompleteMatch]:
        code_system = await self.concepts.find_code_system(system_url)
        if code_system is None:
            logger.debug("System not loaded, skipping", system=system_url)
            return []

        concepts = await self.concepts.search_concepts(
            system_url, term, limit, include_designations=include_designations
        )

        mappings: list[list[ForwardMapping] | None]
        if include_mappings:
            mappings = list(await asyncio.gather(*(
                self.resolver.forward(concept.code, system_url) for concept in concepts
            )))
        else:
            mappings = [None] * len(concepts)

        return [
            self._to_match(concept, term, code_system.name, include_designations, edges)
            for concept, edges in zip(concepts, mappings)
        ]

    @staticmethod
    def _to_match(
        concept: Concept,
        term: str,
        system_name: str,
        include_designations: bool,
        mappings: list[ForwardMapping] | None,
    ) -> AutocompleteMatch:
        if include_designations:
            relevance = score(concept, term)
        else:
            relevance = score(concept.model_copy(update={"designations": []}), term)

        return AutocompleteMatch(
            rank=0,
            score=relevance,
            system=concept.system,
            system_name=system_name,
            terminology=terminology_label(concept.system),
            code=concept.code,
            display=concept.display,
            definition=concept.definition,
            designations=list(concept.designations) if include_designations else None,
            mappings=mappings,
        )
