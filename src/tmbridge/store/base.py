"""Base Stores - Query interfaces the terminology engine reads through"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from tmbridge.errors import NotFound
from tmbridge.models.terminology import (
    CodeSystem,
    Concept,
    ConceptMap,
    DependsOn,
    Equivalence,
    ValueSet,
)


@dataclass(frozen=True)
class MappingEdge:
    """
    One element -> target edge of a ConceptMap, flattened for indexing.

    Edges are matched and reported on the ConceptMap's source/target uri;
    group_source/group_target carry the group's own systems, if declared.
    """
    concept_map_url: str
    map_source_uri: str
    map_target_uri: str
    source_code: str
    source_display: str | None
    target_code: str
    target_display: str | None
    equivalence: Equivalence
    group_source: str | None = None
    group_target: str | None = None
    comment: str | None = None
    depends_on: tuple[DependsOn, ...] = field(default_factory=tuple)


def flatten_edges(concept_map: ConceptMap) -> list[MappingEdge]:
    """Walk ConceptMap -> groups -> elements -> targets in document order."""
    edges = []
    for group in concept_map.groups:
        for element in group.elements:
            for target in element.targets:
                edges.append(MappingEdge(
                    concept_map_url=concept_map.url,
                    map_source_uri=concept_map.source_uri,
                    map_target_uri=concept_map.target_uri,
                    source_code=element.code,
                    source_display=element.display,
                    target_code=target.code,
                    target_display=target.display,
                    equivalence=target.equivalence,
                    comment=target.comment,
                    depends_on=tuple(target.depends_on),
                    group_source=group.source,
                    group_target=group.target,
                ))
    return edges


class ConceptStore(ABC):
    """
    Read/write access to CodeSystems and their concepts.

    Implementations raise StoreUnavailable when the backend cannot be
    reached; absence of a concept is expressed as None, never an error.
    """

    @abstractmethod
    async def find_code_system(self, url: str) -> CodeSystem | None:
        """Get a CodeSystem by canonical url."""
        pass

    @abstractmethod
    async def find_code_system_by_id(self, id: str) -> CodeSystem | None:
        """Get a CodeSystem by store id."""
        pass

    @abstractmethod
    async def list_code_systems(
        self,
        name: str | None = None,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[CodeSystem]:
        """List CodeSystems, optionally filtered by name substring and status."""
        pass

    @abstractmethod
    async def count_concepts(self, system_url: str) -> int:
        pass

    @abstractmethod
    async def find_concept(self, system_url: str, code: str) -> Concept | None:
        """Exact code lookup within one system."""
        pass

    @abstractmethod
    async def search_concepts(
        self,
        system_url: str,
        term: str,
        limit: int,
        include_designations: bool = True,
    ) -> list[Concept]:
        """
        Case-insensitive substring search over code, display, definition
        and (optionally) designation values, ordered display then code.
        """
        pass

    @abstractmethod
    async def list_concepts(
        self,
        system_url: str,
        limit: int | None = None,
    ) -> list[Concept]:
        pass

    @abstractmethod
    async def get_children(self, system_url: str, code: str) -> list[Concept]:
        """Direct children of a concept, in insertion order."""
        pass

    @abstractmethod
    async def create_code_system(
        self,
        code_system: CodeSystem,
        concepts: list[Concept],
    ) -> CodeSystem:
        """
        Create a CodeSystem and its initial concepts as one unit.

        Raises DuplicateResource if the url exists and InvalidArgument for
        duplicate codes or dangling parent references.
        """
        pass

    @abstractmethod
    async def add_concepts(self, system_url: str, concepts: list[Concept]) -> int:
        """
        Add concepts to an existing CodeSystem as one unit.

        Raises NotFound for an unknown system; returns the number added.
        """
        pass

    async def get_code_system(self, id_or_url: str) -> CodeSystem:
        """Resolve a CodeSystem by id or url, raising NotFound."""
        code_system = await self.find_code_system(id_or_url)
        if code_system is None:
            code_system = await self.find_code_system_by_id(id_or_url)
        if code_system is None:
            raise NotFound("CodeSystem", id_or_url)
        return code_system


class MappingStore(ABC):
    """Read/write access to ConceptMaps and their mapping edges."""

    @abstractmethod
    async def find_edges_from(
        self,
        source_system: str,
        code: str,
        target_system: str | None = None,
    ) -> list[MappingEdge]:
        """
        Edges of every ConceptMap whose source uri is source_system (and
        target uri is target_system, if given) whose element code matches.
        """
        pass

    @abstractmethod
    async def find_edges_to(self, target_system: str, code: str) -> list[MappingEdge]:
        """Edges of every ConceptMap whose target uri is target_system whose target code matches."""
        pass

    @abstractmethod
    async def find_concept_map(self, url: str) -> ConceptMap | None:
        pass

    @abstractmethod
    async def find_concept_map_by_id(self, id: str) -> ConceptMap | None:
        pass

    @abstractmethod
    async def list_concept_maps(
        self,
        source_uri: str | None = None,
        target_uri: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ConceptMap]:
        pass

    @abstractmethod
    async def create_concept_map(self, concept_map: ConceptMap) -> ConceptMap:
        """Create a ConceptMap with its whole group/element/target tree as one unit."""
        pass

    async def get_concept_map(self, id_or_url: str) -> ConceptMap:
        """Resolve a ConceptMap by id or url, raising NotFound."""
        concept_map = await self.find_concept_map(id_or_url)
        if concept_map is None:
            concept_map = await self.find_concept_map_by_id(id_or_url)
        if concept_map is None:
            raise NotFound("ConceptMap", id_or_url)
        return concept_map


class ValueSetStore(ABC):
    """Read/write access to ValueSet definitions."""

    @abstractmethod
    async def find_value_set(self, url: str) -> ValueSet | None:
        pass

    @abstractmethod
    async def find_value_set_by_id(self, id: str) -> ValueSet | None:
        pass

    @abstractmethod
    async def list_value_sets(
        self,
        name: str | None = None,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ValueSet]:
        pass

    @abstractmethod
    async def create_value_set(self, value_set: ValueSet) -> ValueSet:
        """Create a ValueSet; raises DuplicateResource if the url exists."""
        pass

    async def get_value_set(self, id_or_url: str) -> ValueSet:
        """Resolve a ValueSet by id or url, raising NotFound."""
        value_set = await self.find_value_set(id_or_url)
        if value_set is None:
            value_set = await self.find_value_set_by_id(id_or_url)
        if value_set is None:
            raise NotFound("ValueSet", id_or_url)
        return value_set


class TerminologyStore(ConceptStore, MappingStore, ValueSetStore):
    """A backend serving concept, mapping and ValueSet queries."""

    async def close(self) -> None:
        pass
