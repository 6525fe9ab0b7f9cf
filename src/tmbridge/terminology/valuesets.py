"""
ValueSet Expander

$expand and $validate-code over a ValueSet's compose.include rules.
"""

import structlog

from tmbridge.errors import InvalidArgument
from tmbridge.models.results import ValidationResult, ValueSetExpansion
from tmbridge.models.terminology import Concept, ValueSet, ValueSetInclude
from tmbridge.store.base import ConceptStore

logger = structlog.get_logger(__name__)


class ValueSetExpander:
    """
    Resolves ValueSet membership against the loaded CodeSystems.

    An include with a concept list contributes those codes (in listed
    order) that exist in its system; an include without one contributes
    the whole system. Includes naming a system that is not loaded
    contribute nothing.
    """

    def __init__(self, concepts: ConceptStore):
        self.concepts = concepts

    async def _members(self, include: ValueSetInclude) -> list[Concept]:
        if await self.concepts.find_code_system(include.system) is None:
            logger.debug("ValueSet include system not loaded", system=include.system)
            return []

        if not include.concepts:
            return await self.concepts.list_concepts(include.system)

        members = []
        for listed in include.concepts:
            concept = await self.concepts.find_concept(include.system, listed.code)
            if concept is not None:
                members.append(concept)
        return members

    async def expand(
        self,
        value_set: ValueSet,
        filter: str | None = None,
        count: int = 20,
        offset: int = 0,
    ) -> ValueSetExpansion:
        """
        Expand a ValueSet.

        Args:
            value_set: ValueSet to expand
            filter: Case-insensitive substring of display or code
            count: Page size
            offset: Index of the first member returned

        Returns:
            ValueSetExpansion whose total counts every filtered member
        """
        if count < 0 or offset < 0:
            raise InvalidArgument("count and offset must not be negative")

        members: list[Concept] = []
        for include in value_set.includes:
            members.extend(await self._members(include))

        needle = (filter or "").strip().lower()
        if needle:
            members = [
                c for c in members
                if needle in (c.display or "").lower() or needle in c.code.lower()
            ]

        logger.info("ValueSet expanded", url=value_set.url, total=len(members))
        return ValueSetExpansion(
            url=value_set.url,
            id=value_set.id,
            version=value_set.version,
            total=len(members),
            offset=offset,
            contains=members[offset:offset + count],
        )

    async def validate_code(
        self,
        value_set: ValueSet,
        code: str,
        system: str | None = None,
        display: str | None = None,
    ) -> ValidationResult:
        """Whether code (optionally in system) is a member of the ValueSet."""
        if not code:
            raise InvalidArgument("code parameter is required")

        for include in value_set.includes:
            if system and include.system != system:
                continue
            if include.concepts and code not in {c.code for c in include.concepts}:
                continue

            concept = await self.concepts.find_concept(include.system, code)
            if concept is None:
                continue

            message = None
            if display and display != concept.display:
                message = f"Display mismatch: expected '{concept.display}', got '{display}'"
            return ValidationResult(
                valid=True,
                system=concept.system,
                code=concept.code,
                display=concept.display,
                definition=concept.definition,
                message=message,
            )

        return ValidationResult(
            valid=False,
            system=system,
            code=code,
            message=f"Code '{code}' not found in ValueSet '{value_set.name or value_set.url}'",
        )
