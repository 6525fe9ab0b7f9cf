"""
ConceptMap Routes

Search, read and create ConceptMaps, plus $translate and $validate.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Request, status

from tmbridge.api.deps import (
    code_and_system,
    first,
    get_service,
    get_store,
    parse_bool,
    read_parameters,
    string_value,
)
from tmbridge.errors import InvalidArgument
from tmbridge.store.base import TerminologyStore
from tmbridge.store.loader import parse_concept_map_resource
from tmbridge.terminology import fhir
from tmbridge.terminology.service import TerminologyService

router = APIRouter(prefix="/ConceptMap", tags=["ConceptMap"])


@router.get("")
async def search_concept_maps(
    request: Request,
    source: str | None = Query(None, description="Source CodeSystem url"),
    target: str | None = Query(None, description="Target CodeSystem url"),
    count: int = Query(20, alias="_count", ge=1, le=100),
    offset: int = Query(0, alias="_offset", ge=0),
    store: TerminologyStore = Depends(get_store),
) -> dict[str, Any]:
    concept_maps = await store.list_concept_maps(source, target, limit=count, offset=offset)
    resources = [fhir.concept_map_resource(cm) for cm in concept_maps]
    return fhir.search_bundle(resources, str(request.url_for("search_concept_maps")))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_concept_map(
    body: dict[str, Any] = Body(...),
    store: TerminologyStore = Depends(get_store),
) -> dict[str, Any]:
    created = await store.create_concept_map(parse_concept_map_resource(body))
    return fhir.concept_map_resource(created)


@router.get("/{id}")
async def read_concept_map(
    id: str,
    store: TerminologyStore = Depends(get_store),
) -> dict[str, Any]:
    return fhir.concept_map_resource(await store.get_concept_map(id))


@router.post("/{id}/$translate")
async def translate_in_map(
    id: str,
    body: dict[str, Any] = Body(...),
    service: TerminologyService = Depends(get_service),
) -> dict[str, Any]:
    """
    Translate a code through this ConceptMap only.

    system must be the map's sourceUri (or its targetUri with reverse=true);
    any other system yields result=false.
    """
    values = read_parameters(body)
    code, system = code_and_system(values)
    if not code or not system:
        raise InvalidArgument("code and system parameters are required")
    target = string_value(values, "target") or string_value(values, "targetsystem")
    reverse = parse_bool(first(values, "reverse") or False)

    matches = await service.translate_in_map(id, code, system, target, reverse=reverse)
    return fhir.map_translate_parameters(matches, reverse=reverse)


@router.post("/{id}/$validate")
async def validate_mapping(
    id: str,
    body: dict[str, Any] = Body(...),
    service: TerminologyService = Depends(get_service),
) -> dict[str, Any]:
    """Whether the ConceptMap maps the concept parameter (code or Coding)."""
    values = read_parameters(body)
    concept, _ = code_and_system(values, "concept")
    if concept is None:
        concept, _ = code_and_system(values)
    if not concept:
        raise InvalidArgument("concept parameter is required")

    result = await service.validate_mapping(id, concept)
    return fhir.validate_mapping_parameters(result)
