"""
CodeSystem Routes

Search, read and create CodeSystems, plus $lookup, $validate-code and
$autocomplete.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Request, status

from tmbridge.api.deps import (
    code_and_system,
    get_service,
    get_store,
    read_parameters,
    string_value,
)
from tmbridge.errors import InvalidArgument
from tmbridge.store.base import TerminologyStore
from tmbridge.store.loader import parse_code_system_resource
from tmbridge.terminology import fhir
from tmbridge.terminology.service import TerminologyService

router = APIRouter(prefix="/CodeSystem", tags=["CodeSystem"])


@router.get("")
async def search_code_systems(
    request: Request,
    name: str | None = Query(None),
    status_: str | None = Query(None, alias="status"),
    count: int = Query(20, alias="_count", ge=1, le=100),
    offset: int = Query(0, alias="_offset", ge=0),
    store: TerminologyStore = Depends(get_store),
) -> dict[str, Any]:
    code_systems = await store.list_code_systems(name, status_, limit=count, offset=offset)
    resources = [
        fhir.code_system_resource(cs, count=await store.count_concepts(cs.url))
        for cs in code_systems
    ]
    return fhir.search_bundle(resources, str(request.url_for("search_code_systems")))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_code_system(
    body: dict[str, Any] = Body(...),
    store: TerminologyStore = Depends(get_store),
) -> dict[str, Any]:
    """Create a CodeSystem with its (possibly nested) concepts."""
    code_system, concepts = parse_code_system_resource(body)
    created = await store.create_code_system(code_system, concepts)
    return fhir.code_system_resource(created, count=len(concepts))


async def _lookup(service: TerminologyService, values: dict, system: str | None) -> dict[str, Any]:
    code, given_system = code_and_system(values)
    if not code:
        raise InvalidArgument("code parameter is required")
    properties = [p for p in values.get("property", []) if p]
    if not all(isinstance(p, str) for p in properties):
        raise InvalidArgument("property parameters must be codes")
    result = await service.lookup(system or given_system, code, properties)
    return fhir.lookup_parameters(result)


async def _validate_code(
    service: TerminologyService,
    values: dict,
    system: str | None,
) -> dict[str, Any]:
    code, given_system = code_and_system(values)
    if not code:
        raise InvalidArgument("code parameter is required")
    display = string_value(values, "display")
    result = await service.validate_code(system or given_system, code, display)
    return fhir.validate_code_parameters(result)


@router.post("/$lookup")
async def lookup(
    body: dict[str, Any] = Body(...),
    service: TerminologyService = Depends(get_service),
) -> dict[str, Any]:
    """Look up a code; the CodeSystem is given by the system parameter."""
    return await _lookup(service, read_parameters(body), None)


@router.post("/$validate-code")
async def validate_code(
    body: dict[str, Any] = Body(...),
    service: TerminologyService = Depends(get_service),
) -> dict[str, Any]:
    return await _validate_code(service, read_parameters(body), None)


@router.get("/$autocomplete")
async def autocomplete(
    system: str | None = Query(None, description="CodeSystem url, alias or id"),
    search: str | None = Query(None),
    limit: int = Query(10, ge=1),
    includeDesignations: bool = Query(True),
    service: TerminologyService = Depends(get_service),
) -> dict[str, Any]:
    """Unranked concept search within one CodeSystem."""
    if not system:
        raise InvalidArgument("system parameter is required")
    result = await service.code_system_autocomplete(
        system, search or "", limit=limit, include_designations=includeDesignations
    )
    return fhir.code_system_autocomplete_parameters(result)


@router.get("/{id}")
async def read_code_system(
    id: str,
    store: TerminologyStore = Depends(get_store),
) -> dict[str, Any]:
    code_system = await store.get_code_system(id)
    concepts = await store.list_concepts(code_system.url)
    return fhir.code_system_resource(code_system, concepts, count=len(concepts))


@router.post("/{id}/$lookup")
async def lookup_in(
    id: str,
    body: dict[str, Any] = Body(...),
    service: TerminologyService = Depends(get_service),
) -> dict[str, Any]:
    return await _lookup(service, read_parameters(body), id)


@router.post("/{id}/$validate-code")
async def validate_code_in(
    id: str,
    body: dict[str, Any] = Body(...),
    service: TerminologyService = Depends(get_service),
) -> dict[str, Any]:
    return await _validate_code(service, read_parameters(body), id)
