"""
tmbridge Terminology Engine

Relevance scoring, cross-system autocomplete, forward/reverse
translation, dual-code lookup and ValueSet expansion.
"""

from tmbridge.terminology.scoring import score
from tmbridge.terminology.systems import SystemRegistry, terminology_label
from tmbridge.terminology.translation import TranslationResolver
from tmbridge.terminology.autocomplete import AutocompleteOrchestrator
from tmbridge.terminology.dual_coding import DualCodeLookup
from tmbridge.terminology.lookup import ConceptLookup
from tmbridge.terminology.valuesets import ValueSetExpander
from tmbridge.terminology.service import TerminologyService

__all__ = [
    "score",
    "SystemRegistry",
    "terminology_label",
    "TranslationResolver",
    "AutocompleteOrchestrator",
    "DualCodeLookup",
    "ConceptLookup",
    "ValueSetExpander",
    "TerminologyService",
]
