"""
Relevance Scorer

Cumulative, case-insensitive match score between a search term and a
concept. Matches on several fields add up; there is no cap.
"""

from tmbridge.models.terminology import Concept


CODE_EXACT = 100
CODE_CONTAINS = 50
DISPLAY_EXACT = 90
DISPLAY_PREFIX = 70
DISPLAY_CONTAINS = 40
DEFINITION_CONTAINS = 20
DESIGNATION_EXACT = 60
DESIGNATION_CONTAINS = 30


def score(concept: Concept, search_term: str) -> int:
    """
    Score a concept against a search term.

    Args:
        concept: Concept to score
        search_term: Free text or code fragment (surrounding whitespace ignored)

    Returns:
        Non-negative score; 0 when no field contains the term
    """
    term = search_term.strip().lower()
    if not term:
        return 0

    total = 0

    code = concept.code.lower()
    if code == term:
        total += CODE_EXACT
    elif term in code:
        total += CODE_CONTAINS

    display = (concept.display or "").lower()
    if display == term:
        total += DISPLAY_EXACT
    elif display.startswith(term):
        total += DISPLAY_PREFIX
    elif term in display:
        total += DISPLAY_CONTAINS

    if concept.definition and term in concept.definition.lower():
        total += DEFINITION_CONTAINS

    # Every designation counts
    for designation in concept.designations:
        value = designation.value.lower()
        if value == term:
            total += DESIGNATION_EXACT
        elif term in value:
            total += DESIGNATION_CONTAINS

    return total
