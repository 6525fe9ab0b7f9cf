"""
tmbridge Data Models

Pydantic models for terminology resources and engine results.
"""

from tmbridge.models.terminology import (
    CodeSystem,
    Concept,
    ConceptMap,
    DependsOn,
    Designation,
    Equivalence,
    MappingElement,
    MappingGroup,
    MappingTarget,
    ValueSet,
    ValueSetConcept,
    ValueSetInclude,
)
from tmbridge.models.results import (
    AutocompleteMatch,
    AutocompleteResult,
    Coding,
    ConceptSearchResult,
    ConceptSummary,
    DualCodeResult,
    DualCodeSlot,
    ForwardMapping,
    LookupResult,
    LookupStatus,
    MappedCode,
    MappingValidationResult,
    ReverseMapping,
    ReverseTranslateResult,
    TranslateResult,
    ValidationResult,
    ValueSetExpansion,
)

__all__ = [
    # Resources
    "CodeSystem",
    "Concept",
    "ConceptMap",
    "DependsOn",
    "Designation",
    "Equivalence",
    "MappingElement",
    "MappingGroup",
    "MappingTarget",
    "ValueSet",
    "ValueSetConcept",
    "ValueSetInclude",
    # Results
    "AutocompleteMatch",
    "AutocompleteResult",
    "Coding",
    "ConceptSearchResult",
    "ConceptSummary",
    "DualCodeResult",
    "DualCodeSlot",
    "ForwardMapping",
    "LookupResult",
    "LookupStatus",
    "MappedCode",
    "MappingValidationResult",
    "ReverseMapping",
    "ReverseTranslateResult",
    "TranslateResult",
    "ValidationResult",
    "ValueSetExpansion",
]
