"""
Tests for the Dual-Code Lookup
"""

import pytest

from tmbridge.config import ICD11_BROWSER_URL, ICD11_TM2_URL, NAMASTE_URL, UNANI_URL
from tmbridge.errors import InvalidArgument
from tmbridge.models.results import LookupStatus
from tmbridge.models.terminology import Concept


class TestDualCodeLookup:
    @pytest.mark.asyncio
    async def test_known_mapped_code_a_only(self, service):
        result = await service.dual_code_lookup(code_a="SR11")

        assert result.b is None
        assert result.a.status == LookupStatus.FOUND_MAPPED
        assert result.a.concept.system == NAMASTE_URL
        assert [(m.system, m.code, m.equivalence.value) for m in result.a.mapped] == [
            (ICD11_TM2_URL, "TM26.0", "equivalent")
        ]
        assert result.any_found

    @pytest.mark.asyncio
    async def test_both_absent_rejected(self, service):
        with pytest.raises(InvalidArgument):
            await service.dual_code_lookup()
        with pytest.raises(InvalidArgument):
            await service.dual_code_lookup(code_a="  ", code_b="")

    @pytest.mark.asyncio
    async def test_unknown_code_does_not_fail_other_slot(self, service):
        result = await service.dual_code_lookup(code_a="ZZZZ", code_b="TM26.0")

        assert result.a.status == LookupStatus.NOT_FOUND
        assert result.a.query_code == "ZZZZ"
        assert result.a.concept is None
        assert result.b.status == LookupStatus.FOUND_MAPPED
        assert {m.code for m in result.b.mapped} == {"SR11", "SR12", "NAM001"}

    @pytest.mark.asyncio
    async def test_both_unknown(self, service):
        result = await service.dual_code_lookup(code_a="ZZZZ", code_b="YYYY")
        assert result.a.status == LookupStatus.NOT_FOUND
        assert result.b.status == LookupStatus.NOT_FOUND
        assert not result.any_found

    @pytest.mark.asyncio
    async def test_code_a_falls_back_to_unani(self, service):
        result = await service.dual_code_lookup(code_a="A-2")

        assert result.a.concept.system == UNANI_URL
        assert [(m.code, m.system) for m in result.a.mapped] == [("SK01", ICD11_TM2_URL)]

    @pytest.mark.asyncio
    async def test_code_b_falls_back_to_mms(self, service):
        result = await service.dual_code_lookup(code_b="MD11.0")

        assert result.b.concept.system == ICD11_BROWSER_URL
        assert [(m.system, m.code) for m in result.b.mapped] == [
            (NAMASTE_URL, "N001"),
            (NAMASTE_URL, "N001.1"),
            (UNANI_URL, "U001"),
        ]

    @pytest.mark.asyncio
    async def test_found_unmapped(self, service, store):
        await store.add_concepts(NAMASTE_URL, [
            Concept(system=NAMASTE_URL, code="N999", display="Unmapped disorder"),
        ])
        result = await service.dual_code_lookup(code_a="N999")

        assert result.a.status == LookupStatus.FOUND_UNMAPPED
        assert result.a.mapped == []
        assert result.a.concept.display == "Unmapped disorder"

    @pytest.mark.asyncio
    async def test_details_and_hierarchy_flags(self, service):
        plain = await service.dual_code_lookup(code_a="N001")
        assert plain.a.concept.definition is None
        assert plain.a.concept.designations is None
        assert plain.a.concept.children is None

        detailed = await service.dual_code_lookup(
            code_a="N001", include_details=True, include_hierarchy=True
        )
        concept = detailed.a.concept
        assert concept.definition.startswith("Elevated body temperature")
        assert {d.language for d in concept.designations} == {"hi", "sa"}
        assert concept.parent is None
        assert concept.children == ["N001.1"]

        child = await service.dual_code_lookup(code_a="N001.1", include_hierarchy=True)
        assert child.a.concept.parent == "N001"
        assert child.a.concept.children == []
