"""
Tests for ValueSet expansion and membership
"""

import pytest
import pytest_asyncio

from tmbridge.config import ICD11_TM2_URL, NAMASTE_URL
from tmbridge.errors import DuplicateResource, InvalidArgument, NotFound
from tmbridge.models.terminology import ValueSet, ValueSetConcept, ValueSetInclude
from tmbridge.terminology.valuesets import ValueSetExpander


@pytest.fixture
def expander(store):
    return ValueSetExpander(store)


@pytest_asyncio.fixture
async def dosha(store):
    return await store.get_value_set("dosha-disorders")


class TestExpand:
    @pytest.mark.asyncio
    async def test_includes_in_order(self, expander, dosha):
        expansion = await expander.expand(dosha)

        assert expansion.total == 6
        assert expansion.id == "dosha-disorders"
        assert [(c.system, c.code) for c in expansion.contains] == [
            (NAMASTE_URL, "SR11"),
            (NAMASTE_URL, "SR12"),
            (NAMASTE_URL, "SR16"),
            (ICD11_TM2_URL, "TM26.0"),
            (ICD11_TM2_URL, "TM27.0"),
            (ICD11_TM2_URL, "SK01"),
        ]

    @pytest.mark.asyncio
    async def test_filter_on_display_or_code(self, expander, dosha):
        by_display = await expander.expand(dosha, filter="VATA")
        assert [c.code for c in by_display.contains] == ["TM26.0"]

        by_code = await expander.expand(dosha, filter="sr1")
        assert [c.code for c in by_code.contains] == ["SR11", "SR12", "SR16"]
        assert by_code.total == 3

    @pytest.mark.asyncio
    async def test_paging_keeps_total(self, expander, dosha):
        page = await expander.expand(dosha, count=2, offset=2)

        assert page.total == 6
        assert page.offset == 2
        assert [c.code for c in page.contains] == ["SR16", "TM26.0"]

        past_end = await expander.expand(dosha, offset=10)
        assert past_end.contains == []
        assert past_end.total == 6

    @pytest.mark.asyncio
    async def test_unknown_codes_and_systems_contribute_nothing(self, expander):
        value_set = ValueSet(url="urn:vs", includes=[
            ValueSetInclude(system=NAMASTE_URL, concepts=[
                ValueSetConcept(code="N001"),
                ValueSetConcept(code="NOPE"),
            ]),
            ValueSetInclude(system="urn:not-loaded"),
        ])

        expansion = await expander.expand(value_set)
        assert [c.code for c in expansion.contains] == ["N001"]

    @pytest.mark.asyncio
    async def test_negative_paging_rejected(self, expander, dosha):
        with pytest.raises(InvalidArgument):
            await expander.expand(dosha, count=-1)


class TestValidateCode:
    @pytest.mark.asyncio
    async def test_member(self, expander, dosha):
        result = await expander.validate_code(dosha, "TM27.0", system=ICD11_TM2_URL)

        assert result.valid is True
        assert result.system == ICD11_TM2_URL
        assert result.display == "Disorders of pitta dosha"
        assert result.message is None

    @pytest.mark.asyncio
    async def test_code_outside_enumerated_concepts(self, expander, dosha):
        # N001 exists in NAMASTE but is not listed by the include
        result = await expander.validate_code(dosha, "N001")

        assert result.valid is False
        assert result.message == "Code 'N001' not found in ValueSet 'DoshaDisorders'"

    @pytest.mark.asyncio
    async def test_system_narrows_includes(self, expander, dosha):
        assert (await expander.validate_code(dosha, "TM27.0", system=NAMASTE_URL)).valid is False
        assert (await expander.validate_code(dosha, "SR11", system=NAMASTE_URL)).valid is True

    @pytest.mark.asyncio
    async def test_display_mismatch(self, expander, dosha):
        result = await expander.validate_code(dosha, "SK01", display="Migraine")

        assert result.valid is True
        assert result.message == "Display mismatch: expected 'Migraine disorder', got 'Migraine'"


class TestValueSetStore:
    @pytest.mark.asyncio
    async def test_lookup_by_id_or_url(self, store):
        by_url = await store.get_value_set("https://ayush.gov.in/fhir/ValueSet/dosha-disorders")
        assert by_url.id == "dosha-disorders"

        with pytest.raises(NotFound):
            await store.get_value_set("no-such-value-set")

    @pytest.mark.asyncio
    async def test_list_and_duplicates(self, store):
        created = await store.create_value_set(ValueSet(url="urn:vs:new", name="Fevers"))
        assert created.id

        assert [vs.url for vs in await store.list_value_sets(name="fever")] == ["urn:vs:new"]
        assert len(await store.list_value_sets()) == 2

        with pytest.raises(DuplicateResource):
            await store.create_value_set(ValueSet(url="urn:vs:new"))
