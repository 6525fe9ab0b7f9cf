"""
Terminology Domain Models

Pydantic models for CodeSystem, Concept and ConceptMap resources.
Field names are snake_case; the FHIR camelCase forms are produced by
tmbridge.terminology.fhir and parsed by tmbridge.store.loader.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Equivalence(str, Enum):
    """How closely a mapping target matches its source concept."""
    EQUIVALENT = "equivalent"
    RELATEDTO = "relatedto"
    WIDER = "wider"
    NARROWER = "narrower"
    INEXACT = "inexact"
    UNMATCHED = "unmatched"


class Designation(BaseModel):
    """Language-tagged alternate text for a concept."""

    language: str = Field(..., description="BCP-47 language tag (hi, sa, ta, ar, ...)")
    value: str = Field(..., description="Designation text")
    use: dict[str, Any] | None = Field(default=None, description="FHIR Coding for the designation use")


class CodeSystem(BaseModel):
    """
    CodeSystem entity.

    A named, versioned collection of codes. Identity (id, url) is fixed
    once created; concepts are owned separately by the store.
    """

    id: str | None = Field(default=None, description="Store identifier")
    url: str = Field(..., description="Canonical url (unique)")
    name: str = Field(..., description="Computer-friendly name")
    status: str = Field(default="active", description="draft | active | retired | unknown")

    title: str | None = None
    version: str | None = None
    description: str | None = None
    publisher: str | None = None
    content: str = "complete"

    class Config:
        from_attributes = True


class Concept(BaseModel):
    """
    Concept entity.

    One code within a CodeSystem. The hierarchy is a single-parent tree
    expressed as a parent code back-reference; children are derived by
    the store.
    """

    system: str = Field(..., description="Owning CodeSystem url")
    code: str = Field(..., description="Code, unique within the system")
    display: str = Field(default="", description="Preferred display text")
    definition: str | None = Field(default=None, description="Formal definition")
    designations: list[Designation] = Field(default_factory=list)
    parent: str | None = Field(default=None, description="Parent concept code")

    class Config:
        from_attributes = True


class DependsOn(BaseModel):
    """Condition qualifying when a mapping target applies (metadata only)."""

    property: str
    system: str | None = None
    value: str
    display: str | None = None


class MappingTarget(BaseModel):
    """Destination side of a mapping edge."""

    code: str
    display: str | None = None
    equivalence: Equivalence = Equivalence.EQUIVALENT
    comment: str | None = None
    depends_on: list[DependsOn] = Field(default_factory=list)


class MappingElement(BaseModel):
    """Source-side anchor owning one or more targets."""

    code: str
    display: str | None = None
    targets: list[MappingTarget] = Field(default_factory=list)


class MappingGroup(BaseModel):
    """Group of elements mapped from one system to another."""

    source: str | None = Field(default=None, description="Source CodeSystem url")
    target: str | None = Field(default=None, description="Target CodeSystem url")
    elements: list[MappingElement] = Field(default_factory=list)


class ConceptMap(BaseModel):
    """
    ConceptMap entity.

    A directed mapping between two CodeSystems. Edges run from group
    elements (source codes) to their targets; the inverse direction is a
    separate query, not an implied edge.
    """

    id: str | None = None
    url: str = Field(..., description="Canonical url (unique)")
    name: str | None = None
    title: str | None = None
    version: str | None = None
    status: str = "active"
    description: str | None = None
    publisher: str | None = None

    source_uri: str = Field(..., description="Source CodeSystem url")
    target_uri: str = Field(..., description="Target CodeSystem url")
    groups: list[MappingGroup] = Field(default_factory=list)

    class Config:
        from_attributes = True

    def edge_count(self) -> int:
        return sum(
            len(element.targets)
            for group in self.groups
            for element in group.elements
        )


class ValueSetConcept(BaseModel):
    """An explicitly enumerated code of a compose.include entry."""

    code: str
    display: str | None = None


class ValueSetInclude(BaseModel):
    """
    One compose.include rule.

    Without concepts the whole CodeSystem is included; with concepts only
    those codes are.
    """

    system: str
    version: str | None = None
    concepts: list[ValueSetConcept] = Field(default_factory=list)


class ValueSet(BaseModel):
    """ValueSet entity: a selection of codes drawn from loaded CodeSystems."""

    id: str | None = None
    url: str = Field(..., description="Canonical url (unique)")
    name: str | None = None
    title: str | None = None
    version: str | None = None
    status: str = "active"
    description: str | None = None
    publisher: str | None = None

    includes: list[ValueSetInclude] = Field(default_factory=list)

    class Config:
        from_attributes = True
