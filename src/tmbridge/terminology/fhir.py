"""
FHIR Response Assembly

Renders engine results as FHIR R4 Parameters, CodeSystem, ConceptMap,
ValueSet, Bundle and OperationOutcome JSON.
"""

from typing import Any

from tmbridge.models.results import (
    AutocompleteResult,
    ConceptSearchResult,
    DualCodeResult,
    DualCodeSlot,
    ForwardMapping,
    LookupResult,
    MappingValidationResult,
    ReverseMapping,
    ReverseTranslateResult,
    TranslateResult,
    ValidationResult,
    ValueSetExpansion,
)
from tmbridge.models.terminology import CodeSystem, Concept, ConceptMap, Designation, ValueSet


def _param(name: str, **value: Any) -> dict[str, Any]:
    return {"name": name, **value}


def _parts(name: str, parts: list[dict[str, Any]]) -> dict[str, Any]:
    return {"name": name, "part": parts}


def _coding(system: str, code: str, display: str | None) -> dict[str, Any]:
    coding = {"system": system, "code": code}
    if display is not None:
        coding["display"] = display
    return coding


def _designation(designation: Designation) -> dict[str, Any]:
    resource: dict[str, Any] = {"language": designation.language, "value": designation.value}
    if designation.use:
        resource["use"] = designation.use
    return resource


def _designation_parts(designation: Designation) -> dict[str, Any]:
    return _parts("designation", [
        _param("language", valueCode=designation.language),
        _param("value", valueString=designation.value),
    ])


def parameters(params: list[dict[str, Any]]) -> dict[str, Any]:
    return {"resourceType": "Parameters", "parameter": params}


def operation_outcome(
    diagnostics: str,
    code: str = "exception",
    severity: str = "error",
) -> dict[str, Any]:
    return {
        "resourceType": "OperationOutcome",
        "issue": [{
            "severity": severity,
            "code": code,
            "diagnostics": diagnostics,
        }],
    }


# =============================================================================
# Operation results
# =============================================================================

def autocomplete_parameters(result: AutocompleteResult) -> dict[str, Any]:
    params = [
        _param("result", valueBoolean=result.match_count > 0),
        _param("matches", valueInteger=result.match_count),
        _param("searchTerm", valueString=result.search_term),
    ]
    params.extend(_param("systemSearched", valueUri=url) for url in result.systems_searched)

    for match in result.matches:
        parts = [
            _param("rank", valueInteger=match.rank),
            _param("score", valueInteger=match.score),
            _param("code", valueCoding=_coding(match.system, match.code, match.display)),
        ]
        if match.terminology:
            parts.append(_param("terminology", valueString=match.terminology))
        if match.definition:
            parts.append(_param("definition", valueString=match.definition))
        if match.designations:
            parts.extend(_designation_parts(d) for d in match.designations)
        if match.mappings:
            parts.append(_parts("mappings", [
                _parts("mapping", [
                    _param("targetSystem", valueUri=m.target_system),
                    _param("targetCode", valueCode=m.target_code),
                    *([_param("targetDisplay", valueString=m.target_display)]
                      if m.target_display else []),
                    _param("equivalence", valueCode=m.equivalence.value),
                ])
                for m in match.mappings
            ]))
        params.append(_parts("match", parts))

    return parameters(params)


def code_system_autocomplete_parameters(result: ConceptSearchResult) -> dict[str, Any]:
    params = [
        _param("result", valueBoolean=bool(result.concepts)),
        _param("matches", valueInteger=len(result.concepts)),
    ]
    for index, concept in enumerate(result.concepts):
        coding = _coding(result.system, concept.code, concept.display)
        if result.version:
            coding["version"] = result.version
        parts = [
            _param("index", valueInteger=index),
            _param("code", valueCoding=coding),
        ]
        parts.extend(_designation_parts(d) for d in concept.designations)
        params.append(_parts("match", parts))
    return parameters(params)


def _forward_match(match: ForwardMapping) -> dict[str, Any]:
    parts = [
        _param("equivalence", valueCode=match.equivalence.value),
        _param("concept", valueCoding=_coding(
            match.target_system, match.target_code, match.target_display
        )),
    ]
    if match.comment:
        parts.append(_param("comment", valueString=match.comment))
    if match.concept_map_url:
        parts.append(_param("source", valueUri=match.concept_map_url))
    for condition in match.depends_on:
        parts.append(_parts("dependsOn", [
            _param("property", valueUri=condition.property),
            _param("value", valueCoding=_coding(
                condition.system or "", condition.value, condition.display
            )),
        ]))
    return _parts("match", parts)


def _reverse_match(match: ReverseMapping) -> dict[str, Any]:
    parts = [
        _param("equivalence", valueCode=match.equivalence.value),
        _param("concept", valueCoding=_coding(
            match.source_system, match.source_code, match.source_display
        )),
    ]
    if match.comment:
        parts.append(_param("comment", valueString=match.comment))
    if match.concept_map_url:
        parts.append(_param("source", valueUri=match.concept_map_url))
    return _parts("match", parts)


def translate_parameters(
    result: TranslateResult,
    code: str,
    system: str,
    target: str | None = None,
) -> dict[str, Any]:
    params = [
        _param("result", valueBoolean=bool(result.matches)),
        _param("found", valueBoolean=result.found),
    ]
    if not result.found:
        params.append(_param("message", valueString=f"Code '{code}' not found in system '{system}'"))
        return parameters(params)

    params.append(_param(
        "source",
        valueCoding=_coding(result.source.system, result.source.code, result.source.display),
    ))
    if not result.matches:
        params.append(_param(
            "message",
            valueString=(
                f"No mappings found for code '{code}' from '{system}' "
                f"to '{target or 'any target system'}'"
            ),
        ))

    params.extend(_forward_match(match) for match in result.matches)
    return parameters(params)


def reverse_translate_parameters(
    result: ReverseTranslateResult,
    code: str,
    system: str,
) -> dict[str, Any]:
    params = [
        _param("result", valueBoolean=bool(result.matches)),
        _param("found", valueBoolean=result.found),
    ]
    if not result.found:
        params.append(_param("message", valueString=f"Code '{code}' not found in system '{system}'"))
        return parameters(params)

    params.append(_param(
        "target",
        valueCoding=_coding(result.target.system, result.target.code, result.target.display),
    ))
    params.extend(_reverse_match(match) for match in result.matches)
    return parameters(params)


def map_translate_parameters(
    matches: list[ForwardMapping] | list[ReverseMapping],
    reverse: bool = False,
) -> dict[str, Any]:
    """ConceptMap instance $translate: result plus one match per mapped concept."""
    params = [_param("result", valueBoolean=bool(matches))]
    render = _reverse_match if reverse else _forward_match
    params.extend(render(match) for match in matches)
    return parameters(params)


def _slot_parameter(name: str, slot: DualCodeSlot) -> dict[str, Any]:
    parts = [
        _param("status", valueCode=slot.status.value),
        _param("queryCode", valueCode=slot.query_code),
    ]
    concept = slot.concept
    if concept is not None:
        parts.append(_param("code", valueCoding=_coding(concept.system, concept.code, concept.display)))
        if concept.definition:
            parts.append(_param("definition", valueString=concept.definition))
        if concept.designations:
            parts.extend(_designation_parts(d) for d in concept.designations)
        if concept.parent:
            parts.append(_param("parent", valueCode=concept.parent))
        for child in concept.children or []:
            parts.append(_param("child", valueCode=child))

    for mapped in slot.mapped:
        parts.append(_parts("mapping", [
            _param("code", valueCoding=_coding(mapped.system, mapped.code, mapped.display)),
            _param("equivalence", valueCode=mapped.equivalence.value),
        ]))
    return _parts(name, parts)


def dual_code_parameters(result: DualCodeResult) -> dict[str, Any]:
    params = [_param("result", valueBoolean=result.any_found)]
    if result.a is not None:
        params.append(_slot_parameter("namaste", result.a))
    if result.b is not None:
        params.append(_slot_parameter("icd11", result.b))
    return parameters(params)


def lookup_parameters(result: LookupResult) -> dict[str, Any]:
    if not result.found:
        return parameters([_param("result", valueBoolean=False)])

    params = [
        _param("result", valueBoolean=True),
        _param("name", valueString=result.name),
        _param("version", valueString=result.version or "1.0"),
        _param("display", valueString=result.display or ""),
        _param("code", valueCode=result.code),
        _param("system", valueUri=result.system),
    ]
    if result.definition:
        params.append(_param("definition", valueString=result.definition))
    params.extend(_designation_parts(d) for d in result.designations)
    if result.parent:
        params.append(_parts("property", [
            _param("code", valueCode="parent"),
            _param("value", valueCode=result.parent),
        ]))
    for child in result.children:
        params.append(_parts("property", [
            _param("code", valueCode="child"),
            _param("value", valueCode=child),
        ]))
    return parameters(params)


def validate_code_parameters(result: ValidationResult, with_version: bool = True) -> dict[str, Any]:
    params = [
        _param("result", valueBoolean=result.valid),
        _param("code", valueCode=result.code),
    ]
    if result.system:
        params.append(_param("system", valueUri=result.system))
    if with_version:
        params.append(_param("version", valueString=result.version or "1.0"))
    if result.display is not None:
        params.append(_param("display", valueString=result.display))
    if result.definition:
        params.append(_param("definition", valueString=result.definition))
    if result.message:
        params.append(_param("message", valueString=result.message))
    return parameters(params)


def validate_mapping_parameters(result: MappingValidationResult) -> dict[str, Any]:
    params = [
        _param("result", valueBoolean=result.valid),
        _param("message", valueString=result.message),
    ]
    if result.target is not None:
        params.append(_param(
            "target",
            valueCoding=_coding(result.target.system, result.target.code, result.target.display),
        ))
    if result.equivalence is not None:
        params.append(_param("equivalence", valueCode=result.equivalence.value))
    return parameters(params)


# =============================================================================
# Resources
# =============================================================================

def _metadata(resource: CodeSystem | ConceptMap | ValueSet) -> dict[str, Any]:
    fields = {
        "id": resource.id,
        "url": resource.url,
        "version": resource.version,
        "name": resource.name,
        "title": resource.title,
        "status": resource.status,
        "publisher": resource.publisher,
        "description": resource.description,
    }
    return {key: value for key, value in fields.items() if value is not None}


def code_system_resource(
    code_system: CodeSystem,
    concepts: list[Concept] | None = None,
    count: int | None = None,
) -> dict[str, Any]:
    """CodeSystem JSON; concepts are nested under their parents."""
    resource = {"resourceType": "CodeSystem", **_metadata(code_system), "content": code_system.content}
    if count is not None:
        resource["count"] = count
    if concepts is None:
        return resource

    nodes: dict[str, dict[str, Any]] = {}
    for concept in concepts:
        node: dict[str, Any] = {"code": concept.code, "display": concept.display}
        if concept.definition:
            node["definition"] = concept.definition
        if concept.designations:
            node["designation"] = [_designation(d) for d in concept.designations]
        nodes[concept.code] = node

    roots = []
    for concept in concepts:
        parent = nodes.get(concept.parent) if concept.parent else None
        if parent is None:
            roots.append(nodes[concept.code])
        else:
            parent.setdefault("concept", []).append(nodes[concept.code])
    resource["concept"] = roots
    return resource


def concept_map_resource(concept_map: ConceptMap) -> dict[str, Any]:
    groups = []
    for group in concept_map.groups:
        elements = []
        for element in group.elements:
            targets = []
            for target in element.targets:
                item: dict[str, Any] = {"code": target.code, "equivalence": target.equivalence.value}
                if target.display is not None:
                    item["display"] = target.display
                if target.comment:
                    item["comment"] = target.comment
                if target.depends_on:
                    item["dependsOn"] = [
                        d.model_dump(exclude_none=True) for d in target.depends_on
                    ]
                targets.append(item)
            entry: dict[str, Any] = {"code": element.code, "target": targets}
            if element.display is not None:
                entry["display"] = element.display
            elements.append(entry)
        entry_group: dict[str, Any] = {"element": elements}
        if group.source:
            entry_group["source"] = group.source
        if group.target:
            entry_group["target"] = group.target
        groups.append(entry_group)

    return {
        "resourceType": "ConceptMap",
        **_metadata(concept_map),
        "sourceUri": concept_map.source_uri,
        "targetUri": concept_map.target_uri,
        "group": groups,
    }


def value_set_resource(value_set: ValueSet) -> dict[str, Any]:
    includes = []
    for include in value_set.includes:
        item: dict[str, Any] = {"system": include.system}
        if include.version:
            item["version"] = include.version
        if include.concepts:
            item["concept"] = [c.model_dump(exclude_none=True) for c in include.concepts]
        includes.append(item)

    return {
        "resourceType": "ValueSet",
        **_metadata(value_set),
        "compose": {"include": includes},
    }


def value_set_expansion_resource(
    expansion: ValueSetExpansion,
    timestamp: str,
) -> dict[str, Any]:
    contains = []
    for concept in expansion.contains:
        item = _coding(concept.system, concept.code, concept.display)
        if concept.designations:
            item["designation"] = [_designation(d) for d in concept.designations]
        contains.append(item)

    resource: dict[str, Any] = {"resourceType": "ValueSet", "url": expansion.url}
    if expansion.id:
        resource["id"] = expansion.id
    if expansion.version:
        resource["version"] = expansion.version
    resource["expansion"] = {
        "timestamp": timestamp,
        "total": expansion.total,
        "offset": expansion.offset,
        "contains": contains,
    }
    return resource

def search_bundle(resources: list[dict[str, Any]], base_url: str) -> dict[str, Any]:
    return {
        "resourceType": "Bundle",
        "type": "searchset",
        "total": len(resources),
        "entry": [
            {"fullUrl": f"{base_url}/{r['id']}", "resource": r}
            for r in resources
        ],
    }
