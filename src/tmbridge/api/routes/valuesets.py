"""
ValueSet Routes

Search, read and create ValueSets, plus $expand and $validate-code.
"""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Request, status

from tmbridge.api.deps import get_service, get_store
from tmbridge.errors import InvalidArgument
from tmbridge.store.base import TerminologyStore
from tmbridge.store.loader import parse_value_set_resource
from tmbridge.terminology import fhir
from tmbridge.terminology.service import TerminologyService

router = APIRouter(prefix="/ValueSet", tags=["ValueSet"])


@router.get("")
async def search_value_sets(
    request: Request,
    name: str | None = Query(None),
    status_: str | None = Query(None, alias="status"),
    count: int = Query(20, alias="_count", ge=1, le=100),
    offset: int = Query(0, alias="_offset", ge=0),
    store: TerminologyStore = Depends(get_store),
) -> dict[str, Any]:
    value_sets = await store.list_value_sets(name, status_, limit=count, offset=offset)
    resources = [fhir.value_set_resource(vs) for vs in value_sets]
    return fhir.search_bundle(resources, str(request.url_for("search_value_sets")))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_value_set(
    body: dict[str, Any] = Body(...),
    store: TerminologyStore = Depends(get_store),
) -> dict[str, Any]:
    created = await store.create_value_set(parse_value_set_resource(body))
    return fhir.value_set_resource(created)


@router.get("/{id}")
async def read_value_set(
    id: str,
    store: TerminologyStore = Depends(get_store),
) -> dict[str, Any]:
    return fhir.value_set_resource(await store.get_value_set(id))


@router.get("/{id}/$expand")
async def expand(
    id: str,
    filter: str | None = Query(None, description="Substring of display or code"),
    count: int = Query(20, ge=0, le=1000),
    offset: int = Query(0, ge=0),
    service: TerminologyService = Depends(get_service),
) -> dict[str, Any]:
    expansion = await service.expand_value_set(id, filter=filter, count=count, offset=offset)
    timestamp = datetime.now(timezone.utc).isoformat()
    return fhir.value_set_expansion_resource(expansion, timestamp)


@router.get("/{id}/$validate-code")
async def validate_code(
    id: str,
    code: str | None = Query(None),
    system: str | None = Query(None),
    display: str | None = Query(None),
    service: TerminologyService = Depends(get_service),
) -> dict[str, Any]:
    """Whether code belongs to the ValueSet; system narrows the includes checked."""
    if not code:
        raise InvalidArgument("code parameter is required")
    result = await service.validate_value_set_code(id, code, system=system, display=display)
    return fhir.validate_code_parameters(result, with_version=False)
