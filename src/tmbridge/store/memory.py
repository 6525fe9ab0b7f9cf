"""
In-Memory Terminology Store

Arena + index store used for development, tests and packaged seed data.

Concepts live in one arena per CodeSystem keyed by code; the hierarchy is
kept as parent back-references plus a derived children index. ConceptMaps
are flattened at load time into a forward index keyed by
(source uri, source code) and a reverse index keyed by
(target uri, target code), each preserving every edge.

Writes build replacement indexes off to the side and publish them without
yielding to the event loop, so readers see either the old state or the
complete new entity.
"""

import asyncio
from uuid import uuid4

import structlog

from tmbridge.errors import DuplicateResource, InvalidArgument, NotFound
from tmbridge.models.terminology import CodeSystem, Concept, ConceptMap, ValueSet
from tmbridge.store.base import MappingEdge, TerminologyStore, flatten_edges

logger = structlog.get_logger(__name__)

EdgeIndex = dict[tuple[str, str], list[MappingEdge]]


def concept_matches(concept: Concept, needle: str, include_designations: bool = True) -> bool:
    """Case-insensitive substring test over code/display/definition/designations."""
    if needle in concept.code.lower():
        return True
    if concept.display and needle in concept.display.lower():
        return True
    if concept.definition and needle in concept.definition.lower():
        return True
    if include_designations:
        return any(needle in d.value.lower() for d in concept.designations)
    return False


class InMemoryTerminologyStore(TerminologyStore):
    """
    Terminology store held entirely in process memory.

    Usage:
        store = InMemoryTerminologyStore()
        await store.create_code_system(code_system, concepts)
        await store.create_concept_map(concept_map)
        edges = await store.find_edges_from(NAMASTE_URL, "SR11")
    """

    def __init__(self):
        self._code_systems: dict[str, CodeSystem] = {}
        self._code_system_ids: dict[str, str] = {}

        # Arena: system url -> code -> Concept
        self._concepts: dict[str, dict[str, Concept]] = {}
        # Search order per system (display, then code)
        self._ordered: dict[str, list[str]] = {}
        # (system url, parent code) -> child codes
        self._children: dict[tuple[str, str], list[str]] = {}

        self._concept_maps: dict[str, ConceptMap] = {}
        self._concept_map_ids: dict[str, str] = {}
        self._forward: EdgeIndex = {}
        self._reverse: EdgeIndex = {}

        self._value_sets: dict[str, ValueSet] = {}
        self._value_set_ids: dict[str, str] = {}

        self._write_lock = asyncio.Lock()

    # =========================================================================
    # CodeSystems and concepts
    # =========================================================================

    async def find_code_system(self, url: str) -> CodeSystem | None:
        return self._code_systems.get(url)

    async def find_code_system_by_id(self, id: str) -> CodeSystem | None:
        url = self._code_system_ids.get(id)
        return self._code_systems.get(url) if url else None

    async def list_code_systems(
        self,
        name: str | None = None,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[CodeSystem]:
        systems = list(self._code_systems.values())
        if name:
            systems = [s for s in systems if name.lower() in s.name.lower()]
        if status:
            systems = [s for s in systems if s.status == status]
        return systems[offset:offset + limit]

    async def count_concepts(self, system_url: str) -> int:
        return len(self._concepts.get(system_url, {}))

    async def find_concept(self, system_url: str, code: str) -> Concept | None:
        return self._concepts.get(system_url, {}).get(code)

    async def search_concepts(
        self,
        system_url: str,
        term: str,
        limit: int,
        include_designations: bool = True,
    ) -> list[Concept]:
        needle = term.strip().lower()
        arena = self._concepts.get(system_url, {})
        results = []
        for code in self._ordered.get(system_url, []):
            if len(results) >= limit:
                break
            concept = arena[code]
            if concept_matches(concept, needle, include_designations):
                results.append(concept)
        return results

    async def list_concepts(self, system_url: str, limit: int | None = None) -> list[Concept]:
        concepts = list(self._concepts.get(system_url, {}).values())
        return concepts if limit is None else concepts[:limit]

    async def get_children(self, system_url: str, code: str) -> list[Concept]:
        arena = self._concepts.get(system_url, {})
        return [arena[c] for c in self._children.get((system_url, code), [])]

    async def create_code_system(
        self,
        code_system: CodeSystem,
        concepts: list[Concept],
    ) -> CodeSystem:
        async with self._write_lock:
            if code_system.url in self._code_systems:
                raise DuplicateResource(f"CodeSystem with URL {code_system.url} already exists")

            stored = code_system.model_copy(update={"id": code_system.id or str(uuid4())})
            if stored.id in self._code_system_ids:
                raise DuplicateResource(f"CodeSystem with id {stored.id} already exists")

            arena, children = self._build_arena(stored.url, {}, concepts)

            # Publish; the CodeSystem itself becomes visible last
            self._concepts[stored.url] = arena
            self._ordered[stored.url] = self._sort_codes(arena)
            self._children.update(children)
            self._code_system_ids[stored.id] = stored.url
            self._code_systems[stored.url] = stored

        logger.info(
            "CodeSystem created",
            url=stored.url,
            name=stored.name,
            concepts=len(arena),
        )
        return stored

    async def add_concepts(self, system_url: str, concepts: list[Concept]) -> int:
        async with self._write_lock:
            if system_url not in self._code_systems:
                raise NotFound("CodeSystem", system_url)

            existing = self._concepts.get(system_url, {})
            arena, children = self._build_arena(system_url, existing, concepts)

            self._concepts[system_url] = arena
            self._ordered[system_url] = self._sort_codes(arena)
            self._children.update(children)

        logger.info("Concepts added", url=system_url, added=len(concepts))
        return len(concepts)

    def _build_arena(
        self,
        system_url: str,
        existing: dict[str, Concept],
        concepts: list[Concept],
    ) -> tuple[dict[str, Concept], dict[tuple[str, str], list[str]]]:
        """Validate new concepts and build replacement arena + children entries."""
        arena = dict(existing)
        added = []
        for concept in concepts:
            if concept.system != system_url:
                concept = concept.model_copy(update={"system": system_url})
            if concept.code in arena:
                raise InvalidArgument(
                    f"Duplicate code '{concept.code}' in CodeSystem {system_url}"
                )
            arena[concept.code] = concept
            added.append(concept)

        children: dict[tuple[str, str], list[str]] = {}
        for concept in added:
            if concept.parent is None:
                continue
            if concept.parent not in arena:
                raise InvalidArgument(
                    f"Concept '{concept.code}' references unknown parent '{concept.parent}'"
                )
            key = (system_url, concept.parent)
            if key not in children:
                children[key] = list(self._children.get(key, []))
            children[key].append(concept.code)

        for concept in added:
            self._check_acyclic(arena, concept)

        return arena, children

    @staticmethod
    def _check_acyclic(arena: dict[str, Concept], concept: Concept) -> None:
        seen = {concept.code}
        parent = concept.parent
        while parent is not None:
            if parent in seen:
                raise InvalidArgument(f"Concept hierarchy cycle at '{concept.code}'")
            seen.add(parent)
            parent = arena[parent].parent

    @staticmethod
    def _sort_codes(arena: dict[str, Concept]) -> list[str]:
        return [
            c.code for c in sorted(arena.values(), key=lambda c: (c.display, c.code))
        ]

    # =========================================================================
    # ConceptMaps and edges
    # =========================================================================

    async def find_edges_from(
        self,
        source_system: str,
        code: str,
        target_system: str | None = None,
    ) -> list[MappingEdge]:
        edges = self._forward.get((source_system, code), [])
        if target_system:
            edges = [e for e in edges if e.map_target_uri == target_system]
        return list(edges)

    async def find_edges_to(self, target_system: str, code: str) -> list[MappingEdge]:
        return list(self._reverse.get((target_system, code), []))

    async def find_concept_map(self, url: str) -> ConceptMap | None:
        return self._concept_maps.get(url)

    async def find_concept_map_by_id(self, id: str) -> ConceptMap | None:
        url = self._concept_map_ids.get(id)
        return self._concept_maps.get(url) if url else None

    async def list_concept_maps(
        self,
        source_uri: str | None = None,
        target_uri: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ConceptMap]:
        maps = list(self._concept_maps.values())
        if source_uri:
            maps = [m for m in maps if m.source_uri == source_uri]
        if target_uri:
            maps = [m for m in maps if m.target_uri == target_uri]
        return maps[offset:offset + limit]

    async def create_concept_map(self, concept_map: ConceptMap) -> ConceptMap:
        async with self._write_lock:
            if concept_map.url in self._concept_maps:
                raise DuplicateResource(f"ConceptMap with URL {concept_map.url} already exists")

            stored = concept_map.model_copy(update={"id": concept_map.id or str(uuid4())})
            if stored.id in self._concept_map_ids:
                raise DuplicateResource(f"ConceptMap with id {stored.id} already exists")

            edges = flatten_edges(stored)
            forward = self._extend_index(
                self._forward, edges, lambda e: (e.map_source_uri, e.source_code)
            )
            reverse = self._extend_index(
                self._reverse, edges, lambda e: (e.map_target_uri, e.target_code)
            )

            self._forward = forward
            self._reverse = reverse
            self._concept_map_ids[stored.id] = stored.url
            self._concept_maps[stored.url] = stored

        logger.info(
            "ConceptMap created",
            url=stored.url,
            source=stored.source_uri,
            target=stored.target_uri,
            edges=len(edges),
        )
        return stored

    @staticmethod
    def _extend_index(index: EdgeIndex, edges: list[MappingEdge], key) -> EdgeIndex:
        extended = dict(index)
        for edge in edges:
            k = key(edge)
            if extended.get(k) is index.get(k):
                extended[k] = list(index.get(k, []))
            extended[k].append(edge)
        return extended

    # =========================================================================
    # ValueSets
    # =========================================================================

    async def find_value_set(self, url: str) -> ValueSet | None:
        return self._value_sets.get(url)

    async def find_value_set_by_id(self, id: str) -> ValueSet | None:
        url = self._value_set_ids.get(id)
        return self._value_sets.get(url) if url else None

    async def list_value_sets(
        self,
        name: str | None = None,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ValueSet]:
        value_sets = list(self._value_sets.values())
        if name:
            value_sets = [v for v in value_sets if name.lower() in (v.name or "").lower()]
        if status:
            value_sets = [v for v in value_sets if v.status == status]
        return value_sets[offset:offset + limit]

    async def create_value_set(self, value_set: ValueSet) -> ValueSet:
        async with self._write_lock:
            if value_set.url in self._value_sets:
                raise DuplicateResource(f"ValueSet with URL {value_set.url} already exists")

            stored = value_set.model_copy(update={"id": value_set.id or str(uuid4())})
            if stored.id in self._value_set_ids:
                raise DuplicateResource(f"ValueSet with id {stored.id} already exists")

            self._value_set_ids[stored.id] = stored.url
            self._value_sets[stored.url] = stored

        logger.info("ValueSet created", url=stored.url, includes=len(stored.includes))
        return stored
