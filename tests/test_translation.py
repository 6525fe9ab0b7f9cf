"""
Tests for the Translation Resolver
"""

import pytest

from tmbridge.config import ICD11_BROWSER_URL, ICD11_TM2_URL, NAMASTE_URL, UNANI_URL
from tmbridge.errors import InvalidArgument
from tmbridge.models.terminology import (
    ConceptMap,
    Equivalence,
    MappingElement,
    MappingGroup,
    MappingTarget,
)
from tmbridge.store.memory import InMemoryTerminologyStore
from tmbridge.terminology.translation import TranslationResolver


@pytest.fixture
def resolver(store):
    return TranslationResolver(store)


class TestForward:
    @pytest.mark.asyncio
    async def test_sr11_maps_to_tm26(self, resolver):
        matches = await resolver.forward("SR11", NAMASTE_URL)

        assert len(matches) == 1
        match = matches[0]
        assert match.target_code == "TM26.0"
        assert match.target_system == ICD11_TM2_URL
        assert match.equivalence == Equivalence.EQUIVALENT
        assert match.comment == "Vata accumulation maps to vata dosha disorders"
        assert match.concept_map_url == "https://ayush.gov.in/fhir/ConceptMap/namaste-to-icd11-tm2"

    @pytest.mark.asyncio
    async def test_all_targets_of_an_element_returned(self, resolver):
        matches = await resolver.forward("NAM001", NAMASTE_URL)

        assert [(m.target_code, m.equivalence.value) for m in matches] == [
            ("TM26.0", "equivalent"),
            ("TM27.0", "inexact"),
        ]
        assert matches[1].depends_on[0].property == "dosha"

    @pytest.mark.asyncio
    async def test_target_system_restricts_concept_maps(self, resolver):
        assert [m.target_code for m in await resolver.forward("N001", NAMASTE_URL)] == ["MD11.0"]
        assert await resolver.forward("N001", NAMASTE_URL, ICD11_TM2_URL) == []

        matches = await resolver.forward("N001", NAMASTE_URL, ICD11_BROWSER_URL)
        assert matches[0].target_system == ICD11_BROWSER_URL

    @pytest.mark.asyncio
    async def test_unmapped_code_is_empty_not_error(self, resolver):
        assert await resolver.forward("ZZZZ", NAMASTE_URL) == []
        assert await resolver.forward("SR11", "urn:unknown-system") == []

    @pytest.mark.asyncio
    async def test_code_is_exact_match(self, resolver):
        assert await resolver.forward("sr11", NAMASTE_URL) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code,system", [("", NAMASTE_URL), ("SR11", ""), ("  ", NAMASTE_URL)])
    async def test_missing_arguments_rejected(self, resolver, code, system):
        with pytest.raises(InvalidArgument):
            await resolver.forward(code, system)


class TestReverse:
    @pytest.mark.asyncio
    async def test_every_edge_returned(self, resolver):
        matches = await resolver.reverse("TM27.0", ICD11_TM2_URL)

        assert [(m.source_code, m.equivalence.value) for m in matches] == [
            ("SR16", "equivalent"),
            ("NAM001", "inexact"),
            ("NAM002", "relatedto"),
        ]
        assert all(m.source_system == NAMASTE_URL for m in matches)

    @pytest.mark.asyncio
    async def test_equivalence_belongs_to_the_matching_target(self, resolver):
        # NAM001's first target is TM26.0 (equivalent); the TM27.0 edge is inexact
        matches = await resolver.reverse("TM27.0", ICD11_TM2_URL)
        nam001 = [m for m in matches if m.source_code == "NAM001"]
        assert len(nam001) == 1
        assert nam001[0].equivalence == Equivalence.INEXACT

    @pytest.mark.asyncio
    async def test_edges_across_concept_maps(self, resolver):
        matches = await resolver.reverse("MD11.0", ICD11_BROWSER_URL)

        assert [(m.source_system, m.source_code, m.equivalence.value) for m in matches] == [
            (NAMASTE_URL, "N001", "equivalent"),
            (NAMASTE_URL, "N001.1", "wider"),
            (UNANI_URL, "U001", "equivalent"),
        ]

    @pytest.mark.asyncio
    async def test_unmapped_target_is_empty(self, resolver):
        assert await resolver.reverse("MD11.0", ICD11_TM2_URL) == []

    @pytest.mark.asyncio
    async def test_missing_arguments_rejected(self, resolver):
        with pytest.raises(InvalidArgument):
            await resolver.reverse("", ICD11_TM2_URL)
        with pytest.raises(InvalidArgument):
            await resolver.reverse("TM26.0", "")


class TestNonSymmetry:
    @pytest.mark.asyncio
    async def test_forward_and_reverse_are_independent(self, resolver):
        # NAMASTE -> TM2 says equivalent
        forward = await resolver.forward("SR11", NAMASTE_URL, ICD11_TM2_URL)
        assert [(m.target_code, m.equivalence) for m in forward] == [
            ("TM26.0", Equivalence.EQUIVALENT)
        ]

        # The separately authored TM2 -> NAMASTE map says narrower
        reverse = await resolver.reverse("SR11", NAMASTE_URL)
        assert [(m.source_code, m.equivalence) for m in reverse] == [
            ("TM26.0", Equivalence.NARROWER)
        ]

        assert forward[0].equivalence != reverse[0].equivalence

    @pytest.mark.asyncio
    async def test_reverse_is_not_derived_from_forward(self, resolver):
        # SR12 -> TM26.0 exists, but nothing maps onto SR12
        assert await resolver.forward("SR12", NAMASTE_URL)
        assert await resolver.reverse("SR12", NAMASTE_URL) == []

        # TM26.0 -> SR11 exists only in the TM2 -> NAMASTE direction
        back = await resolver.forward("TM26.0", ICD11_TM2_URL, NAMASTE_URL)
        assert [(m.target_code, m.equivalence.value) for m in back] == [("SR11", "narrower")]


class TestReportedSystems:
    @pytest.mark.asyncio
    async def test_systems_come_from_the_concept_map(self):
        store = InMemoryTerminologyStore()
        await store.create_concept_map(ConceptMap(
            url="urn:map:a-to-b",
            source_uri="urn:A",
            target_uri="urn:B",
            groups=[MappingGroup(
                source="urn:A-group",
                target="urn:B-group",
                elements=[MappingElement(code="X", targets=[MappingTarget(code="Y")])],
            )],
        ))
        resolver = TranslationResolver(store)

        forward = await resolver.forward("X", "urn:A")
        assert [(m.target_system, m.target_code) for m in forward] == [("urn:B", "Y")]

        reverse = await resolver.reverse("Y", "urn:B")
        assert [(m.source_system, m.source_code) for m in reverse] == [("urn:A", "X")]

        # group systems are not lookup keys
        assert await resolver.forward("X", "urn:A-group") == []
        assert await resolver.reverse("Y", "urn:B-group") == []

        edge = (await store.find_edges_from("urn:A", "X"))[0]
        assert (edge.group_source, edge.group_target) == ("urn:A-group", "urn:B-group")


class TestSingleConceptMap:
    @pytest.mark.asyncio
    async def test_forward_within_map(self, store, resolver):
        concept_map = await store.get_concept_map("namaste-to-icd11-tm2")

        matches = resolver.forward_in_map(concept_map, "NAM001", NAMASTE_URL)
        assert [(m.target_code, m.equivalence.value) for m in matches] == [
            ("TM26.0", "equivalent"),
            ("TM27.0", "inexact"),
        ]
        assert all(m.target_system == ICD11_TM2_URL for m in matches)

        # N001 is mapped only by namaste-to-icd11
        assert resolver.forward_in_map(concept_map, "N001", NAMASTE_URL) == []

    @pytest.mark.asyncio
    async def test_system_must_match_the_map(self, store, resolver):
        concept_map = await store.get_concept_map("namaste-to-icd11-tm2")

        assert resolver.forward_in_map(concept_map, "SR11", UNANI_URL) == []
        assert resolver.forward_in_map(concept_map, "SR11", NAMASTE_URL, ICD11_BROWSER_URL) == []
        assert [m.target_code for m in resolver.forward_in_map(
            concept_map, "SR11", NAMASTE_URL, ICD11_TM2_URL
        )] == ["TM26.0"]

    @pytest.mark.asyncio
    async def test_reverse_within_map(self, store, resolver):
        concept_map = await store.get_concept_map("namaste-to-icd11-tm2")

        matches = resolver.reverse_in_map(concept_map, "TM27.0", ICD11_TM2_URL)
        assert [m.source_code for m in matches] == ["SR16", "NAM001", "NAM002"]
        assert resolver.reverse_in_map(concept_map, "TM27.0", NAMASTE_URL) == []

    @pytest.mark.asyncio
    async def test_non_string_code_rejected(self, store, resolver):
        concept_map = await store.get_concept_map("namaste-to-icd11-tm2")

        with pytest.raises(InvalidArgument):
            resolver.forward_in_map(concept_map, 11, NAMASTE_URL)
        with pytest.raises(InvalidArgument):
            await resolver.forward("SR11", {"code": NAMASTE_URL})
