"""
Concept Lookup

CodeSystem $lookup / $validate-code and ConceptMap $validate.
"""

from tmbridge.errors import InvalidArgument
from tmbridge.models.results import (
    Coding,
    LookupResult,
    MappingValidationResult,
    ValidationResult,
)
from tmbridge.store.base import TerminologyStore, flatten_edges

LOOKUP_PROPERTIES = {"parent", "child"}


class ConceptLookup:
    """Single-concept queries against a CodeSystem or ConceptMap."""

    def __init__(self, store: TerminologyStore):
        self.store = store

    async def lookup(
        self,
        system: str,
        code: str,
        properties: list[str] | tuple[str, ...] = (),
    ) -> LookupResult:
        """
        Look up a code in a CodeSystem (addressed by url or id).

        Raises NotFound for an unknown CodeSystem; an unknown code is
        found=False. Hierarchy is reported only for the requested
        properties ("parent", "child").
        """
        if not code:
            raise InvalidArgument("code parameter is required")
        if not system:
            raise InvalidArgument("system parameter is required")

        unknown = set(properties) - LOOKUP_PROPERTIES
        if unknown:
            raise InvalidArgument(f"Unsupported lookup property: {', '.join(sorted(unknown))}")

        code_system = await self.store.get_code_system(system)
        concept = await self.store.find_concept(code_system.url, code)
        if concept is None:
            return LookupResult(
                found=False,
                system=code_system.url,
                name=code_system.name,
                version=code_system.version,
                code=code,
            )

        result = LookupResult(
            found=True,
            system=code_system.url,
            name=code_system.name,
            version=code_system.version,
            code=concept.code,
            display=concept.display,
            definition=concept.definition,
            designations=list(concept.designations),
        )
        if "parent" in properties:
            result.parent = concept.parent
        if "child" in properties:
            children = await self.store.get_children(code_system.url, concept.code)
            result.children = [child.code for child in children]
        return result

    async def validate_code(
        self,
        system: str,
        code: str,
        display: str | None = None,
    ) -> ValidationResult:
        if not code:
            raise InvalidArgument("code parameter is required")
        if not system:
            raise InvalidArgument("system parameter is required")

        code_system = await self.store.get_code_system(system)
        concept = await self.store.find_concept(code_system.url, code)

        if concept is None:
            return ValidationResult(
                valid=False,
                system=code_system.url,
                code=code,
                version=code_system.version,
                message=f"Code '{code}' not found in CodeSystem '{code_system.name}'",
            )

        message = None
        if display and display != concept.display:
            message = f"Display mismatch: expected '{concept.display}', got '{display}'"

        return ValidationResult(
            valid=True,
            system=code_system.url,
            code=concept.code,
            version=code_system.version,
            display=concept.display,
            definition=concept.definition,
            message=message,
        )

    async def validate_mapping(self, concept_map: str, code: str) -> MappingValidationResult:
        """Whether the ConceptMap (url or id) maps code; reports its first target."""
        if not code:
            raise InvalidArgument("concept parameter is required")

        resource = await self.store.get_concept_map(concept_map)
        edge = next((e for e in flatten_edges(resource) if e.source_code == code), None)

        if edge is None:
            return MappingValidationResult(
                valid=False,
                concept_map_url=resource.url,
                code=code,
                message=f"No valid mapping found for concept '{code}' to target system",
            )

        return MappingValidationResult(
            valid=True,
            concept_map_url=resource.url,
            code=code,
            message="Concept mapping is valid",
            target=Coding(
                system=edge.map_target_uri,
                code=edge.target_code,
                display=edge.target_display,
            ),
            equivalence=edge.equivalence,
        )
