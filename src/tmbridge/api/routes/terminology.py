"""
Terminology Routes

$autocomplete, $translate and $dual-code-lookup operations.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Query

from tmbridge.api.deps import (
    code_and_system,
    first,
    get_service,
    parse_bool,
    read_parameters,
    string_value,
)
from tmbridge.errors import InvalidArgument
from tmbridge.terminology import fhir
from tmbridge.terminology.service import TerminologyService

router = APIRouter(prefix="/terminology", tags=["Terminology"])


@router.get("/$autocomplete")
async def autocomplete(
    search: str = Query("", description="Search text or code fragment (min 2 characters)"),
    systems: str | None = Query(None, description="Comma-separated system aliases"),
    system: str | None = Query(None, description="Restrict search to one system URL"),
    limit: int | None = Query(None, description="Maximum matches (clamped to 1-50)"),
    includeDesignations: bool = Query(True),
    includeMappings: bool = Query(True),
    service: TerminologyService = Depends(get_service),
) -> dict[str, Any]:
    """
    Ranked concept search across NAMASTE, Unani and ICD-11 TM2.

    Each match carries its relevance score and, optionally, its
    designations and forward mappings.
    """
    aliases = [s.strip() for s in systems.split(",") if s.strip()] if systems else None
    result = await service.autocomplete(
        search,
        systems=aliases,
        target_system=system,
        limit=limit,
        include_designations=includeDesignations,
        include_mappings=includeMappings,
    )
    return fhir.autocomplete_parameters(result)


@router.post("/$translate")
async def translate(
    body: dict[str, Any] = Body(...),
    service: TerminologyService = Depends(get_service),
) -> dict[str, Any]:
    """
    Translate a code through the loaded ConceptMaps.

    Parameters: code, system, target (optional), reverse (optional).
    With reverse=true, system is the target-side system and the result
    lists the source codes mapped onto the code.
    """
    values = read_parameters(body)
    code, system = code_and_system(values)
    target = string_value(values, "target") or string_value(values, "targetsystem")
    reverse = parse_bool(first(values, "reverse") or False)

    if not code or not system:
        raise InvalidArgument("code and system parameters are required")

    if reverse:
        result = await service.translate_reverse(code, system)
        return fhir.reverse_translate_parameters(result, code, system)

    result = await service.translate(code, system, target)
    return fhir.translate_parameters(result, code, system, target)


@router.get("/$dual-code-lookup")
async def dual_code_lookup(
    namasteCode: str | None = Query(None, description="NAMASTE or Unani code"),
    icd11Code: str | None = Query(None, description="ICD-11 TM2 or MMS code"),
    includeDetails: bool = Query(True),
    includeHierarchy: bool = Query(False),
    service: TerminologyService = Depends(get_service),
) -> dict[str, Any]:
    """Concept and mapped counterparts for either or both codes."""
    result = await service.dual_code_lookup(
        namasteCode,
        icd11Code,
        include_details=includeDetails,
        include_hierarchy=includeHierarchy,
    )
    return fhir.dual_code_parameters(result)
