"""
Tests for the TerminologyService facade
"""

import asyncio

import pytest

from tmbridge.config import ICD11_TM2_URL, NAMASTE_URL, TerminologySettings
from tmbridge.errors import InvalidArgument, NotFound, StoreUnavailable
from tmbridge.models.terminology import Equivalence
from tmbridge.store.loader import SAMPLE_BUNDLE_PATH, load_bundle_file
from tmbridge.store.memory import InMemoryTerminologyStore
from tmbridge.terminology.service import TerminologyService


class SlowStore(InMemoryTerminologyStore):
    async def find_concept(self, system_url, code):
        await asyncio.sleep(1)
        return await super().find_concept(system_url, code)


class BrokenStore(InMemoryTerminologyStore):
    async def find_edges_from(self, source_system, code, target_system=None):
        raise StoreUnavailable("connection refused")


class TestTranslate:
    @pytest.mark.asyncio
    async def test_sr11_translates_to_tm26(self, service):
        result = await service.translate("SR11", NAMASTE_URL)

        assert result.found is True
        assert result.source.code == "SR11"
        assert result.source.system == NAMASTE_URL
        assert any(
            m.target_code == "TM26.0" and m.equivalence == Equivalence.EQUIVALENT
            for m in result.matches
        )

    @pytest.mark.asyncio
    async def test_unknown_code_not_found(self, service):
        result = await service.translate("ZZZZ", NAMASTE_URL)
        assert result.found is False
        assert result.matches == []
        assert result.source is None

    @pytest.mark.asyncio
    async def test_unknown_system_not_found(self, service):
        result = await service.translate("SR11", "urn:unknown")
        assert result.found is False
        assert result.matches == []

    @pytest.mark.asyncio
    async def test_known_but_unmapped(self, service):
        result = await service.translate("TM27.0", ICD11_TM2_URL)
        assert result.found is True
        assert result.matches == []

    @pytest.mark.asyncio
    async def test_aliases_accepted(self, service):
        result = await service.translate("N001", "namaste", target_system="icd11")
        assert [m.target_code for m in result.matches] == ["MD11.0"]

        restricted = await service.translate("N001", "namaste", target_system="icd11-tm2")
        assert restricted.found is True
        assert restricted.matches == []

    @pytest.mark.asyncio
    async def test_missing_code_rejected(self, service):
        with pytest.raises(InvalidArgument):
            await service.translate("", NAMASTE_URL)

    @pytest.mark.asyncio
    async def test_reverse(self, service):
        result = await service.translate_reverse("TM27.0", "icd11-tm2")

        assert result.found is True
        assert result.target.display == "Disorders of pitta dosha"
        assert [m.source_code for m in result.matches] == ["SR16", "NAM001", "NAM002"]

    @pytest.mark.asyncio
    async def test_reverse_unknown_target(self, service):
        result = await service.translate_reverse("ZZZZ", ICD11_TM2_URL)
        assert result.found is False
        assert result.matches == []


class TestLookup:
    @pytest.mark.asyncio
    async def test_lookup_with_properties(self, service):
        result = await service.lookup("namaste", "N001", properties=["parent", "child"])

        assert result.found is True
        assert result.name == "NAMASTE"
        assert result.version == "1.0.0"
        assert result.display == "Fever (Jvara)"
        assert result.children == ["N001.1"]
        assert result.parent is None

    @pytest.mark.asyncio
    async def test_lookup_hierarchy_only_on_request(self, service):
        result = await service.lookup(NAMASTE_URL, "N001.1")
        assert result.parent is None
        assert result.children == []

        with_parent = await service.lookup(NAMASTE_URL, "N001.1", properties=["parent"])
        assert with_parent.parent == "N001"

    @pytest.mark.asyncio
    async def test_lookup_unknown_code(self, service):
        result = await service.lookup("namaste", "ZZZZ")
        assert result.found is False

    @pytest.mark.asyncio
    async def test_lookup_unknown_system(self, service):
        with pytest.raises(NotFound):
            await service.lookup("urn:unknown", "N001")

    @pytest.mark.asyncio
    async def test_lookup_unsupported_property(self, service):
        with pytest.raises(InvalidArgument):
            await service.lookup("namaste", "N001", properties=["inactive"])

    @pytest.mark.asyncio
    async def test_validate_code(self, service):
        valid = await service.validate_code("namaste", "N001")
        assert valid.valid is True
        assert valid.message is None

        mismatch = await service.validate_code("namaste", "N001", display="Jvara")
        assert mismatch.valid is True
        assert mismatch.message == "Display mismatch: expected 'Fever (Jvara)', got 'Jvara'"

        missing = await service.validate_code("namaste", "ZZZZ")
        assert missing.valid is False
        assert missing.message == "Code 'ZZZZ' not found in CodeSystem 'NAMASTE'"

    @pytest.mark.asyncio
    async def test_validate_mapping(self, service):
        result = await service.validate_mapping("namaste-to-icd11-tm2", "NAM001")
        assert result.valid is True
        assert result.target.code == "TM26.0"
        assert result.equivalence == Equivalence.EQUIVALENT

        missing = await service.validate_mapping("namaste-to-icd11-tm2", "N001")
        assert missing.valid is False
        assert missing.target is None

        with pytest.raises(NotFound):
            await service.validate_mapping("no-such-map", "N001")


class TestDeadlines:
    @pytest.mark.asyncio
    async def test_timeout_raises_store_unavailable(self):
        store = SlowStore()
        await load_bundle_file(store, SAMPLE_BUNDLE_PATH)
        service = TerminologyService(store, TerminologySettings(query_timeout_seconds=0.05))

        with pytest.raises(StoreUnavailable) as exc:
            await service.translate("SR11", NAMASTE_URL)
        assert "timed out" in exc.value.message
        assert exc.value.status_code == 503

    @pytest.mark.asyncio
    async def test_per_call_timeout_overrides_default(self):
        store = SlowStore()
        await load_bundle_file(store, SAMPLE_BUNDLE_PATH)
        service = TerminologyService(store, TerminologySettings(query_timeout_seconds=10))

        with pytest.raises(StoreUnavailable):
            await service.dual_code_lookup(code_a="SR11", timeout=0.05)

    @pytest.mark.asyncio
    async def test_store_failure_is_not_an_empty_result(self):
        store = BrokenStore()
        await load_bundle_file(store, SAMPLE_BUNDLE_PATH)
        service = TerminologyService(store)

        with pytest.raises(StoreUnavailable):
            await service.translate("SR11", NAMASTE_URL)
        with pytest.raises(StoreUnavailable):
            await service.autocomplete("fever")


class TestCodeSystemAutocomplete:
    @pytest.mark.asyncio
    async def test_alias_and_store_order(self, service):
        result = await service.code_system_autocomplete("namaste", "fever")

        assert result.system == NAMASTE_URL
        assert result.version == "1.0.0"
        assert [c.code for c in result.concepts] == ["N001", "N001.1"]

    @pytest.mark.asyncio
    async def test_designations_toggle(self, service):
        with_designations = await service.code_system_autocomplete(NAMASTE_URL, "ज्वर")
        assert [c.code for c in with_designations.concepts] == ["N001"]
        assert with_designations.concepts[0].designations

        without = await service.code_system_autocomplete(
            NAMASTE_URL, "fever", include_designations=False
        )
        assert all(c.designations == [] for c in without.concepts)

    @pytest.mark.asyncio
    async def test_unknown_system_not_found(self, service):
        with pytest.raises(NotFound):
            await service.code_system_autocomplete("urn:unknown", "fever")

    @pytest.mark.asyncio
    async def test_short_term_rejected(self, service):
        with pytest.raises(InvalidArgument):
            await service.code_system_autocomplete("namaste", "f")


class TestTranslateInMap:
    @pytest.mark.asyncio
    async def test_forward_and_reverse(self, service):
        forward = await service.translate_in_map("namaste-to-icd11-tm2", "SR16", "namaste")
        assert [(m.target_code, m.target_system) for m in forward] == [("TM27.0", ICD11_TM2_URL)]

        reverse = await service.translate_in_map(
            "namaste-to-icd11-tm2", "TM26.0", "icd11-tm2", reverse=True
        )
        assert [m.source_code for m in reverse] == ["SR11", "SR12", "NAM001"]

    @pytest.mark.asyncio
    async def test_other_map_systems_give_no_matches(self, service):
        assert await service.translate_in_map("namaste-to-icd11-tm2", "U001", "unani") == []

    @pytest.mark.asyncio
    async def test_unknown_map(self, service):
        with pytest.raises(NotFound):
            await service.translate_in_map("no-such-map", "SR11", NAMASTE_URL)


class TestValueSets:
    @pytest.mark.asyncio
    async def test_expand_by_id(self, service):
        expansion = await service.expand_value_set("dosha-disorders", filter="dosha", count=1)
        assert expansion.total == 2
        assert [c.code for c in expansion.contains] == ["TM26.0"]

    @pytest.mark.asyncio
    async def test_validate_accepts_system_alias(self, service):
        result = await service.validate_value_set_code("dosha-disorders", "SR11", system="namaste")
        assert result.valid is True

    @pytest.mark.asyncio
    async def test_unknown_value_set(self, service):
        with pytest.raises(NotFound):
            await service.expand_value_set("nope")
        with pytest.raises(InvalidArgument):
            await service.validate_value_set_code("dosha-disorders", "")
