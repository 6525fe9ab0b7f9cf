"""
Terminology Loader

Parses FHIR CodeSystem, ConceptMap and ValueSet JSON resources (and Bundles
of them) into the domain models, and imports the NAMASTE CSV export into a store.
"""

import csv
import json
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from tmbridge.config import NAMASTE_URL, UNANI_URL
from tmbridge.errors import InvalidArgument
from tmbridge.models.terminology import (
    CodeSystem,
    Concept,
    ConceptMap,
    DependsOn,
    Designation,
    MappingElement,
    MappingGroup,
    MappingTarget,
    ValueSet,
    ValueSetConcept,
    ValueSetInclude,
)
from tmbridge.store.base import TerminologyStore

logger = structlog.get_logger(__name__)


DESIGNATION_USE = {
    "system": "http://terminology.hl7.org/CodeSystem/designation-usage",
    "code": "display",
}

NAMASTE_CSV_COLUMNS = [
    "srNo",
    "namcId",
    "namcCode",
    "namcTermDevanagari",
    "system",
    "namcTerm2",
    "tamilTerm",
    "numcId",
    "numcCode",
    "arabicTerm",
    "numcTerm",
    "definition",
]

SAMPLE_BUNDLE_PATH = Path(__file__).resolve().parent.parent / "data" / "sample_bundle.json"


# =============================================================================
# FHIR resource parsing
# =============================================================================

def _require(resource: dict[str, Any], key: str, resource_type: str) -> Any:
    value = resource.get(key)
    if not value:
        raise InvalidArgument(f"{resource_type} requires '{key}'")
    return value


def _flatten_concepts(
    system_url: str,
    items: list[dict[str, Any]],
    parent: str | None,
    out: list[Concept],
) -> None:
    """Depth-first flatten of nested FHIR concepts, recording parent codes."""
    for item in items:
        code = _require(item, "code", "Concept")
        designations = [
            Designation(
                language=d.get("language", "en"),
                value=d["value"],
                use=d.get("use"),
            )
            for d in item.get("designation", [])
        ]
        out.append(Concept(
            system=system_url,
            code=code,
            display=item.get("display") or "",
            definition=item.get("definition"),
            designations=designations,
            parent=item.get("parent", parent),
        ))
        _flatten_concepts(system_url, item.get("concept", []), code, out)


def parse_code_system_resource(resource: dict[str, Any]) -> tuple[CodeSystem, list[Concept]]:
    """
    Parse a FHIR CodeSystem resource.

    Nested ``concept`` children are flattened with their parent code.

    Returns:
        (CodeSystem, concepts)
    """
    if resource.get("resourceType", "CodeSystem") != "CodeSystem":
        raise InvalidArgument(f"Expected CodeSystem, got {resource.get('resourceType')}")

    url = _require(resource, "url", "CodeSystem")
    name = _require(resource, "name", "CodeSystem")

    code_system = CodeSystem(
        id=resource.get("id"),
        url=url,
        name=name,
        status=resource.get("status", "active"),
        title=resource.get("title"),
        version=resource.get("version"),
        description=resource.get("description"),
        publisher=resource.get("publisher"),
        content=resource.get("content", "complete"),
    )

    concepts: list[Concept] = []
    try:
        _flatten_concepts(url, resource.get("concept", []), None, concepts)
    except (KeyError, ValidationError) as e:
        raise InvalidArgument(f"Invalid concept in CodeSystem {url}: {e}") from e
    return code_system, concepts


def parse_concept_map_resource(resource: dict[str, Any]) -> ConceptMap:
    """
    Parse a FHIR ConceptMap resource.

    Accepts sourceUri/targetUri or their sourceCanonical/targetCanonical
    forms. Equivalence values outside the closed set are rejected.
    """
    if resource.get("resourceType", "ConceptMap") != "ConceptMap":
        raise InvalidArgument(f"Expected ConceptMap, got {resource.get('resourceType')}")

    url = _require(resource, "url", "ConceptMap")
    source_uri = resource.get("sourceUri") or resource.get("sourceCanonical")
    target_uri = resource.get("targetUri") or resource.get("targetCanonical")
    if not source_uri or not target_uri:
        raise InvalidArgument(f"ConceptMap {url} requires sourceUri and targetUri")

    try:
        groups = [
            MappingGroup(
                source=g.get("source"),
                target=g.get("target"),
                elements=[
                    MappingElement(
                        code=e["code"],
                        display=e.get("display"),
                        targets=[
                            MappingTarget(
                                code=t["code"],
                                display=t.get("display"),
                                equivalence=t.get("equivalence", "equivalent"),
                                comment=t.get("comment"),
                                depends_on=[
                                    DependsOn(
                                        property=d["property"],
                                        system=d.get("system"),
                                        value=d["value"],
                                        display=d.get("display"),
                                    )
                                    for d in t.get("dependsOn", [])
                                ],
                            )
                            for t in e.get("target", [])
                        ],
                    )
                    for e in g.get("element", [])
                ],
            )
            for g in resource.get("group", [])
        ]
    except KeyError as e:
        raise InvalidArgument(f"ConceptMap {url} is missing required field {e}") from e
    except ValidationError as e:
        raise InvalidArgument(f"Invalid mapping in ConceptMap {url}: {e}") from e

    return ConceptMap(
        id=resource.get("id"),
        url=url,
        name=resource.get("name"),
        title=resource.get("title"),
        version=resource.get("version"),
        status=resource.get("status", "active"),
        description=resource.get("description"),
        publisher=resource.get("publisher"),
        source_uri=source_uri,
        target_uri=target_uri,
        groups=groups,
    )


def parse_value_set_resource(resource: dict[str, Any]) -> ValueSet:
    """
    Parse a FHIR ValueSet resource.

    Only compose.include entries naming a system are kept; filters and
    nested valueSet references are not evaluated.
    """
    if resource.get("resourceType", "ValueSet") != "ValueSet":
        raise InvalidArgument(f"Expected ValueSet, got {resource.get('resourceType')}")

    url = _require(resource, "url", "ValueSet")

    try:
        includes = [
            ValueSetInclude(
                system=include["system"],
                version=include.get("version"),
                concepts=[
                    ValueSetConcept(code=c["code"], display=c.get("display"))
                    for c in include.get("concept", [])
                ],
            )
            for include in (resource.get("compose") or {}).get("include", [])
            if include.get("system")
        ]
        return ValueSet(
            id=resource.get("id"),
            url=url,
            name=resource.get("name"),
            title=resource.get("title"),
            version=resource.get("version"),
            status=resource.get("status", "active"),
            description=resource.get("description"),
            publisher=resource.get("publisher"),
            includes=includes,
        )
    except KeyError as e:
        raise InvalidArgument(f"ValueSet {url} is missing required field {e}") from e
    except ValidationError as e:
        raise InvalidArgument(f"Invalid ValueSet {url}: {e}") from e


# =============================================================================
# Bundle loading
# =============================================================================

async def load_bundle(store: TerminologyStore, bundle: dict[str, Any]) -> dict[str, int]:
    """
    Load every CodeSystem, then every ConceptMap, then every ValueSet, from a
    FHIR Bundle.

    Returns:
        Counts of created resources by type
    """
    resources = [entry.get("resource", {}) for entry in bundle.get("entry", [])]
    stats = {"code_systems": 0, "concepts": 0, "concept_maps": 0, "value_sets": 0}

    for resource in resources:
        if resource.get("resourceType") == "CodeSystem":
            code_system, concepts = parse_code_system_resource(resource)
            await store.create_code_system(code_system, concepts)
            stats["code_systems"] += 1
            stats["concepts"] += len(concepts)

    for resource in resources:
        if resource.get("resourceType") == "ConceptMap":
            await store.create_concept_map(parse_concept_map_resource(resource))
            stats["concept_maps"] += 1

    for resource in resources:
        if resource.get("resourceType") == "ValueSet":
            await store.create_value_set(parse_value_set_resource(resource))
            stats["value_sets"] += 1

    logger.info("Bundle loaded", **stats)
    return stats


async def load_bundle_file(store: TerminologyStore, path: str | Path) -> dict[str, int]:
    """Read a Bundle JSON file and load it into the store."""
    with open(path, encoding="utf-8") as f:
        bundle = json.load(f)
    logger.info("Loading bundle", path=str(path))
    return await load_bundle(store, bundle)


# =============================================================================
# NAMASTE CSV import
# =============================================================================

NAMASTE_CODE_SYSTEM = CodeSystem(
    url=NAMASTE_URL,
    name="NAMASTE",
    title="National AYUSH Morbidity & Standardized Terminologies Electronic",
    description="Standardized terminologies for Ayurveda, Siddha, and Unani disorders",
    publisher="Ministry of AYUSH",
)

UNANI_CODE_SYSTEM = CodeSystem(
    url=UNANI_URL,
    name="UNANI",
    title="Unani Medicine Terminology",
    description="Standardized terminologies for Unani medicine",
    publisher="Ministry of AYUSH",
)


def namaste_concept_from_row(row: dict[str, str]) -> Concept | None:
    """NAMASTE concept of one CSV row; display prefers the Devanagari term."""
    code = (row.get("namcCode") or "").strip()
    if not code:
        return None

    devanagari = (row.get("namcTermDevanagari") or "").strip()
    term = (row.get("namcTerm2") or "").strip()
    tamil = (row.get("tamilTerm") or "").strip()

    designations = []
    if devanagari and devanagari != code:
        designations.append(Designation(language="sa", value=devanagari, use=DESIGNATION_USE))
    if tamil:
        designations.append(Designation(language="ta", value=tamil, use=DESIGNATION_USE))

    return Concept(
        system=NAMASTE_URL,
        code=code,
        display=devanagari or term or code,
        definition=(row.get("definition") or "").strip() or None,
        designations=designations,
    )


def unani_concept_from_row(row: dict[str, str]) -> Concept | None:
    """Unani concept of one CSV row; display prefers the Arabic term."""
    code = (row.get("numcCode") or "").strip()
    if not code:
        return None

    arabic = (row.get("arabicTerm") or "").strip()
    term = (row.get("numcTerm") or "").strip()

    designations = []
    if arabic:
        designations.append(Designation(language="ar", value=arabic, use=DESIGNATION_USE))

    return Concept(
        system=UNANI_URL,
        code=code,
        display=arabic or term or code,
        definition=(row.get("definition") or "").strip() or None,
        designations=designations,
    )


async def _ensure_code_system(store: TerminologyStore, code_system: CodeSystem) -> None:
    if await store.find_code_system(code_system.url) is None:
        await store.create_code_system(code_system, [])


async def _add_new(store: TerminologyStore, system_url: str, concepts: list[Concept]) -> int:
    """Add the concepts whose codes the system does not hold yet."""
    fresh = []
    seen = set()
    for concept in concepts:
        if concept.code in seen:
            continue
        seen.add(concept.code)
        if await store.find_concept(system_url, concept.code) is None:
            fresh.append(concept)
    if not fresh:
        return 0
    return await store.add_concepts(system_url, fresh)


async def import_namaste_csv(store: TerminologyStore, path: str | Path) -> dict[str, int]:
    """
    Import the NAMASTE CSV export.

    Each row may yield a NAMASTE concept (namcCode) and a Unani concept
    (numcCode). Rows with fewer than the expected columns are skipped;
    codes already present are left untouched.
    """
    await _ensure_code_system(store, NAMASTE_CODE_SYSTEM)
    await _ensure_code_system(store, UNANI_CODE_SYSTEM)

    namaste: list[Concept] = []
    unani: list[Concept] = []
    skipped = 0

    with open(path, encoding="utf-8", newline="") as f:
        reader = csv.reader(f)
        next(reader, None)  # header
        for line_no, values in enumerate(reader, start=2):
            if not any(v.strip() for v in values):
                continue
            if len(values) < len(NAMASTE_CSV_COLUMNS):
                logger.warning("Skipping CSV row: insufficient data", line=line_no)
                skipped += 1
                continue

            row = dict(zip(NAMASTE_CSV_COLUMNS, values))
            concept = namaste_concept_from_row(row)
            if concept:
                namaste.append(concept)
            concept = unani_concept_from_row(row)
            if concept:
                unani.append(concept)

    stats = {
        "namaste": await _add_new(store, NAMASTE_URL, namaste),
        "unani": await _add_new(store, UNANI_URL, unani),
        "skipped": skipped,
    }
    logger.info("NAMASTE CSV imported", path=str(path), **stats)
    return stats
