"""
Tests for FHIR resource parsing, Bundle loading and NAMASTE CSV import
"""

import csv

import pytest

from tmbridge.config import ICD11_TM2_URL, NAMASTE_URL, UNANI_URL
from tmbridge.errors import InvalidArgument
from tmbridge.models.terminology import Equivalence
from tmbridge.store.loader import (
    SAMPLE_BUNDLE_PATH,
    import_namaste_csv,
    load_bundle_file,
    parse_code_system_resource,
    parse_concept_map_resource,
    parse_value_set_resource,
)
from tmbridge.store.memory import InMemoryTerminologyStore


CODE_SYSTEM = {
    "resourceType": "CodeSystem",
    "id": "demo",
    "url": "urn:demo",
    "name": "DEMO",
    "version": "2",
    "concept": [
        {
            "code": "R",
            "display": "Root",
            "designation": [{"language": "sa", "value": "मूल"}],
            "concept": [
                {"code": "R.1", "display": "Child", "concept": [{"code": "R.1.1", "display": "Leaf"}]},
            ],
        },
        {"code": "S", "display": "Sibling"},
    ],
}


class TestParsing:
    def test_nested_concepts_flattened_with_parents(self):
        code_system, concepts = parse_code_system_resource(CODE_SYSTEM)

        assert code_system.url == "urn:demo"
        assert code_system.version == "2"
        assert [(c.code, c.parent) for c in concepts] == [
            ("R", None),
            ("R.1", "R"),
            ("R.1.1", "R.1"),
            ("S", None),
        ]
        assert concepts[0].designations[0].value == "मूल"
        assert all(c.system == "urn:demo" for c in concepts)

    def test_code_system_requires_url(self):
        with pytest.raises(InvalidArgument):
            parse_code_system_resource({"resourceType": "CodeSystem", "name": "X"})

    def test_wrong_resource_type(self):
        with pytest.raises(InvalidArgument):
            parse_code_system_resource({"resourceType": "ValueSet", "url": "u", "name": "n"})

    def test_concept_map(self):
        concept_map = parse_concept_map_resource({
            "resourceType": "ConceptMap",
            "url": "urn:map",
            "sourceCanonical": "urn:a",
            "targetCanonical": "urn:b",
            "group": [{
                "element": [{
                    "code": "A1",
                    "target": [
                        {"code": "B1", "equivalence": "wider", "comment": "broader"},
                        {
                            "code": "B2",
                            "equivalence": "narrower",
                            "dependsOn": [{"property": "stage", "value": "chronic"}],
                        },
                    ],
                }],
            }],
        })

        assert concept_map.source_uri == "urn:a"
        assert concept_map.target_uri == "urn:b"
        targets = concept_map.groups[0].elements[0].targets
        assert [t.equivalence for t in targets] == [Equivalence.WIDER, Equivalence.NARROWER]
        assert targets[1].depends_on[0].value == "chronic"
        assert concept_map.edge_count() == 2

    def test_unknown_equivalence_rejected(self):
        with pytest.raises(InvalidArgument):
            parse_concept_map_resource({
                "url": "urn:map",
                "sourceUri": "urn:a",
                "targetUri": "urn:b",
                "group": [{"element": [{"code": "A1", "target": [
                    {"code": "B1", "equivalence": "similar"},
                ]}]}],
            })

    def test_concept_map_requires_systems(self):
        with pytest.raises(InvalidArgument):
            parse_concept_map_resource({"url": "urn:map", "sourceUri": "urn:a"})

    def test_target_requires_code(self):
        with pytest.raises(InvalidArgument):
            parse_concept_map_resource({
                "url": "urn:map",
                "sourceUri": "urn:a",
                "targetUri": "urn:b",
                "group": [{"element": [{"code": "A1", "target": [{"equivalence": "wider"}]}]}],
            })

    def test_value_set_includes(self):
        value_set = parse_value_set_resource({
            "resourceType": "ValueSet",
            "id": "vs",
            "url": "urn:vs",
            "compose": {"include": [
                {"system": "urn:a", "concept": [{"code": "A1", "display": "First"}, {"code": "A2"}]},
                {"valueSet": ["urn:other"]},
                {"system": "urn:b", "version": "3"},
            ]},
        })

        assert value_set.id == "vs"
        assert [(i.system, i.version) for i in value_set.includes] == [("urn:a", None), ("urn:b", "3")]
        assert [(c.code, c.display) for c in value_set.includes[0].concepts] == [
            ("A1", "First"),
            ("A2", None),
        ]
        assert value_set.includes[1].concepts == []

    @pytest.mark.parametrize("resource", [
        {"resourceType": "ValueSet"},
        {"resourceType": "CodeSystem", "url": "urn:vs"},
        {"url": "urn:vs", "compose": {"include": [{"system": "urn:a", "concept": [{"display": "x"}]}]}},
    ])
    def test_invalid_value_set(self, resource):
        with pytest.raises(InvalidArgument):
            parse_value_set_resource(resource)


class TestBundle:
    @pytest.mark.asyncio
    async def test_sample_bundle_counts(self):
        store = InMemoryTerminologyStore()
        stats = await load_bundle_file(store, SAMPLE_BUNDLE_PATH)

        assert stats == {
            "code_systems": 4,
            "concepts": 13,
            "concept_maps": 5,
            "value_sets": 1,
        }
        value_set = await store.find_value_set_by_id("dosha-disorders")
        assert [i.system for i in value_set.includes] == [NAMASTE_URL, ICD11_TM2_URL]

    @pytest.mark.asyncio
    async def test_seed_contains_fever_mapping(self, store):
        concept = await store.find_concept(NAMASTE_URL, "N001")
        assert concept.display == "Fever (Jvara)"
        edges = await store.find_edges_from(NAMASTE_URL, "N001")
        assert [(e.target_code, e.equivalence.value) for e in edges] == [("MD11.0", "equivalent")]


def write_csv(path, rows):
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        writer.writerow([
            "Sr No.", "NAMC_ID", "NAMC_CODE", "NAMC_term_DEVANAGARI", "System", "NAMC_TERM",
            "Tamil_term", "NUMC_ID", "NUMC_CODE", "Arabic_term", "NUMC_TERM", "Definition",
        ])
        writer.writerows(rows)


class TestNamasteCsv:
    @pytest.mark.asyncio
    async def test_import_creates_both_systems(self, tmp_path):
        path = tmp_path / "namaste.csv"
        write_csv(path, [
            ["1", "10", "AAA-1", "अतिसारः", "Ayurveda", "Atisara", "", "", "", "", "", "Diarrhoea, acute"],
            ["2", "11", "AAA-2", "", "Siddha", "Suram", "சுரம்", "", "", "", "", ""],
            ["3", "", "", "", "Unani", "", "", "20", "U-9", "نزلہ", "Nazla", "Catarrh"],
            ["4", "12", "AAA-3"],
        ])
        store = InMemoryTerminologyStore()

        stats = await import_namaste_csv(store, path)

        assert stats == {"namaste": 2, "unani": 1, "skipped": 1}

        first = await store.find_concept(NAMASTE_URL, "AAA-1")
        assert first.display == "अतिसारः"
        assert first.definition == "Diarrhoea, acute"
        assert [(d.language, d.value) for d in first.designations] == [("sa", "अतिसारः")]
        assert first.designations[0].use["code"] == "display"

        second = await store.find_concept(NAMASTE_URL, "AAA-2")
        assert second.display == "Suram"
        assert [(d.language, d.value) for d in second.designations] == [("ta", "சுரம்")]

        unani = await store.find_concept(UNANI_URL, "U-9")
        assert unani.display == "نزلہ"
        assert [d.language for d in unani.designations] == ["ar"]

    @pytest.mark.asyncio
    async def test_reimport_skips_existing_codes(self, tmp_path, store):
        path = tmp_path / "namaste.csv"
        write_csv(path, [
            ["1", "10", "SR11", "वातसञ्चयः", "Ayurveda", "", "", "", "", "", "", ""],
            ["2", "11", "NEW-1", "नव", "Ayurveda", "", "", "", "", "", "", ""],
        ])

        stats = await import_namaste_csv(store, path)

        assert stats["namaste"] == 1
        assert (await store.find_code_system(NAMASTE_URL)).name == "NAMASTE"
        assert await store.find_concept(NAMASTE_URL, "NEW-1") is not None
