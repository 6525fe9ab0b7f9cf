"""
Engine Result Models

Return types of the autocomplete, translation, dual-coding and lookup
operations. Transport-independent; tmbridge.terminology.fhir renders
them as FHIR Parameters.
"""

from enum import Enum

from pydantic import BaseModel, Field

from tmbridge.models.terminology import Concept, DependsOn, Designation, Equivalence


# =============================================================================
# Translation
# =============================================================================

class ForwardMapping(BaseModel):
    """A source -> target edge found for a source code."""
    target_system: str
    target_code: str
    target_display: str | None = None
    equivalence: Equivalence
    comment: str | None = None
    concept_map_url: str | None = None
    depends_on: list[DependsOn] = Field(default_factory=list)


class ReverseMapping(BaseModel):
    """A source -> target edge found from its target code."""
    source_system: str
    source_code: str
    source_display: str | None = None
    equivalence: Equivalence
    comment: str | None = None
    concept_map_url: str | None = None


class Coding(BaseModel):
    """system + code + display triple."""
    system: str
    code: str
    display: str | None = None


class TranslateResult(BaseModel):
    """
    Result of a forward translation.

    found=False means the source code is unknown in its system;
    found=True with no matches means it is known but unmapped.
    """
    found: bool
    source: Coding | None = None
    matches: list[ForwardMapping] = Field(default_factory=list)


class ReverseTranslateResult(BaseModel):
    """Result of a reverse translation (target code -> source codes)."""
    found: bool
    target: Coding | None = None
    matches: list[ReverseMapping] = Field(default_factory=list)


# =============================================================================
# Autocomplete
# =============================================================================

class AutocompleteMatch(BaseModel):
    """One ranked autocomplete hit."""
    rank: int
    score: int
    system: str
    system_name: str | None = None
    terminology: str | None = None
    code: str
    display: str
    definition: str | None = None
    designations: list[Designation] | None = None
    mappings: list[ForwardMapping] | None = None


class AutocompleteResult(BaseModel):
    """Ranked, truncated autocomplete result across systems."""
    search_term: str
    systems_searched: list[str] = Field(default_factory=list)
    match_count: int = 0
    matches: list[AutocompleteMatch] = Field(default_factory=list)


class ConceptSearchResult(BaseModel):
    """Unranked search within a single CodeSystem."""
    system: str
    version: str | None = None
    search_term: str
    concepts: list[Concept] = Field(default_factory=list)


# =============================================================================
# Dual coding
# =============================================================================

class LookupStatus(str, Enum):
    """Per-code outcome of a dual-code lookup."""
    FOUND_MAPPED = "found-mapped"
    FOUND_UNMAPPED = "found-unmapped"
    NOT_FOUND = "not-found"


class ConceptSummary(BaseModel):
    system: str
    code: str
    display: str
    definition: str | None = None
    designations: list[Designation] | None = None
    parent: str | None = None
    children: list[str] | None = None


class MappedCode(BaseModel):
    """Counterpart code surfaced by a dual-code lookup."""
    system: str
    code: str
    display: str | None = None
    equivalence: Equivalence


class DualCodeSlot(BaseModel):
    status: LookupStatus
    query_code: str
    concept: ConceptSummary | None = None
    mapped: list[MappedCode] = Field(default_factory=list)


class DualCodeResult(BaseModel):
    """Result for the supplied codes; an omitted code has no slot."""
    a: DualCodeSlot | None = None
    b: DualCodeSlot | None = None

    @property
    def any_found(self) -> bool:
        return any(
            slot is not None and slot.status != LookupStatus.NOT_FOUND
            for slot in (self.a, self.b)
        )


# =============================================================================
# Lookup / validation
# =============================================================================

class LookupResult(BaseModel):
    """CodeSystem $lookup result."""
    found: bool
    system: str
    name: str
    version: str | None = None
    code: str
    display: str | None = None
    definition: str | None = None
    designations: list[Designation] = Field(default_factory=list)
    parent: str | None = None
    children: list[str] = Field(default_factory=list)


class ValidationResult(BaseModel):
    """CodeSystem or ValueSet $validate-code result."""
    valid: bool
    system: str | None = None
    code: str
    version: str | None = None
    display: str | None = None
    definition: str | None = None
    message: str | None = None


class MappingValidationResult(BaseModel):
    """ConceptMap $validate result."""
    valid: bool
    concept_map_url: str
    code: str
    message: str
    target: Coding | None = None
    equivalence: Equivalence | None = None


# =============================================================================
# ValueSets
# =============================================================================

class ValueSetExpansion(BaseModel):
    """
    One page of a ValueSet expansion.

    total counts every included concept passing the filter; contains is
    the page selected by offset and count.
    """
    url: str
    id: str | None = None
    version: str | None = None
    total: int
    offset: int = 0
    contains: list[Concept] = Field(default_factory=list)
