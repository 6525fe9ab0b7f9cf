"""
API Dependencies

Request-scoped access to the terminology service and FHIR Parameters
parsing shared by the route modules.
"""

from typing import Any

from fastapi import Request

from tmbridge.errors import InvalidArgument, StoreUnavailable
from tmbridge.store.base import TerminologyStore
from tmbridge.terminology.service import TerminologyService


def get_service(request: Request) -> TerminologyService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise StoreUnavailable("Terminology service not initialized")
    return service


def get_store(request: Request) -> TerminologyStore:
    return get_service(request).store


def read_parameters(body: dict[str, Any]) -> dict[str, list[Any]]:
    """
    Collect FHIR Parameters values by name.

    Each parameter contributes its single value[x] entry; repeated names
    accumulate in order.
    """
    if not isinstance(body, dict) or body.get("resourceType") != "Parameters":
        raise InvalidArgument("Request body must be a FHIR Parameters resource")

    params = body.get("parameter", [])
    if not isinstance(params, list):
        raise InvalidArgument("Parameters.parameter must be a list")

    values: dict[str, list[Any]] = {}
    for param in params:
        if not isinstance(param, dict):
            raise InvalidArgument("Each Parameters.parameter entry must be an object")
        name = param.get("name")
        if not name:
            continue
        value = next((v for k, v in param.items() if k.startswith("value")), None)
        values.setdefault(name, []).append(value)
    return values


def first(values: dict[str, list[Any]], name: str) -> Any:
    found = values.get(name)
    return found[0] if found else None


def string_value(values: dict[str, list[Any]], name: str) -> str | None:
    """First value of a parameter that must carry a code, uri or string."""
    value = first(values, name)
    if value is not None and not isinstance(value, str):
        raise InvalidArgument(f"Parameter '{name}' must be a code, uri or string")
    return value


def _coding_part(coding: Any, name: str, key: str) -> str | None:
    if not isinstance(coding, dict):
        raise InvalidArgument(f"Parameter '{name}' must be a code or a Coding")
    value = coding.get(key)
    if value is not None and not isinstance(value, str):
        raise InvalidArgument(f"Coding.{key} of parameter '{name}' must be a string")
    return value


def code_and_system(
    values: dict[str, list[Any]],
    code_name: str = "code",
) -> tuple[str | None, str | None]:
    """code/system from plain parameters, or from a Coding given as code or coding."""
    code = first(values, code_name)
    system = string_value(values, "system")
    if code is not None and not isinstance(code, str):
        system = system or _coding_part(code, code_name, "system")
        code = _coding_part(code, code_name, "code")

    coding = first(values, "coding")
    if code is None and coding is not None:
        code = _coding_part(coding, "coding", "code")
        system = system or _coding_part(coding, "coding", "system")
    return code, system


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)
