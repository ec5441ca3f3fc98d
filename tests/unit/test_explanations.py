"""Unit tests for the explanation cache."""

from unittest.mock import AsyncMock

import httpx
import pytest

from medbuddy.data.models import (
    HOW_IT_HELPS_DEFAULT,
    IMPORTANT_NOTES_DEFAULT,
    WHAT_IT_DOES_DEFAULT,
    ExplanationRecord,
)
from medbuddy.llm import GroqRateLimitError
from medbuddy.reference import OpenFDAClient, ReferenceLookupError
from medbuddy.services.explanations import (
    NO_REFERENCE_DATA,
    ExplanationCache,
    parse_explanation_sections,
    summarize_label,
)
from medbuddy.utils import ExplanationUnavailableError


def prompt_of(generator):
    return generator.generate.await_args.args[0]


# TC-EXPL-001: Section Parsing
def test_parse_three_sections(mock_text_generator):
    what, how, notes = parse_explanation_sections(mock_text_generator.generate.return_value)

    assert what == "Metformin lowers the amount of sugar in your blood."
    assert how == "It keeps your diabetes under control."
    assert notes == "Take it with meals to avoid an upset stomach."


def test_parse_drops_echoed_section_titles():
    """Test that the headings requested by the prompt are not kept as content."""
    text = (
        "SECTION 1: What This Medication Does\n"
        "Lowers sugar.\n"
        "SECTION 2: how it helps you:\n"
        "Keeps you well.\n"
        "SECTION 3: Important Things to Know"
    )

    what, how, notes = parse_explanation_sections(text)

    assert what == "Lowers sugar."
    assert how == "Keeps you well."
    # A section holding only its title has no content
    assert notes == IMPORTANT_NOTES_DEFAULT


def test_parse_markers_are_case_insensitive():
    text = "section 1 - Lowers sugar.\nSection2: Helps.\nSECTION 3 Notes."

    assert parse_explanation_sections(text) == ("Lowers sugar.", "Helps.", "Notes.")


def test_parse_missing_next_marker_keeps_default():
    """Test that section 1 needs the section 2 marker after it."""
    text = "SECTION 1: Lowers sugar.\nSECTION 3: Take with food."

    what, how, notes = parse_explanation_sections(text)

    assert what == WHAT_IT_DOES_DEFAULT
    assert how == HOW_IT_HELPS_DEFAULT
    assert notes == "Take with food."


def test_parse_empty_section_keeps_default():
    text = "SECTION 1: Lowers sugar.\nSECTION 2:\nSECTION 3:   "

    assert parse_explanation_sections(text) == (
        "Lowers sugar.", HOW_IT_HELPS_DEFAULT, IMPORTANT_NOTES_DEFAULT
    )


def test_parse_text_without_markers():
    assert parse_explanation_sections("Just take it.") == (
        WHAT_IT_DOES_DEFAULT, HOW_IT_HELPS_DEFAULT, IMPORTANT_NOTES_DEFAULT
    )


# TC-EXPL-002: Label Summary
def test_summarize_label(mock_reference_lookup):
    summary = summarize_label(mock_reference_lookup.fetch.return_value)

    assert summary.startswith("Indication: Metformin is indicated")
    assert "Purpose: Blood glucose control" in summary
    assert "Dosage Info: 500 mg twice a day" in summary


def test_summarize_label_without_fields():
    assert summarize_label({"warnings": ["Do not drive."]}) == ""


# TC-EXPL-003: Cache Miss Then Hit
@pytest.mark.asyncio
async def test_miss_generates_then_hit_serves_cache(
    explanation_cache, data_manager, mock_reference_lookup, mock_text_generator
):
    """Test that the second lookup performs no fetch or generation."""
    # When: First lookup on an empty cache
    record = await explanation_cache.explanation_for("Metformin")

    # Then: Reference fetched, text generated and record stored
    assert mock_reference_lookup.fetch.await_count == 1
    assert mock_text_generator.generate.await_count == 1
    assert record.is_valid
    assert record.what_it_does == "Metformin lowers the amount of sugar in your blood."
    assert record.fda_data_fetched is not None
    assert record.last_updated is not None
    assert await data_manager.get_explanation("Metformin") == record

    # When: Second lookup
    cached = await explanation_cache.explanation_for("Metformin")

    # Then: Served from the store
    assert cached == record
    assert mock_reference_lookup.fetch.await_count == 1
    assert mock_text_generator.generate.await_count == 1


# TC-EXPL-004: Invalid Record Is Regenerated
@pytest.mark.asyncio
async def test_record_with_default_first_section_regenerates(
    explanation_cache, data_manager, mock_text_generator
):
    await data_manager.save_explanation(ExplanationRecord(name="Metformin"))

    record = await explanation_cache.explanation_for("Metformin")

    assert mock_text_generator.generate.await_count == 1
    assert record.is_valid


@pytest.mark.asyncio
async def test_record_with_default_later_sections_is_served(
    explanation_cache, data_manager, mock_text_generator
):
    """Test that only the first section decides validity."""
    stored = ExplanationRecord(name="Metformin", what_it_does="Lowers blood sugar.")
    await data_manager.save_explanation(stored)

    record = await explanation_cache.explanation_for("Metformin")

    assert record == stored
    assert record.how_it_helps == HOW_IT_HELPS_DEFAULT
    mock_text_generator.generate.assert_not_called()


# TC-EXPL-005: Key Handling
@pytest.mark.asyncio
async def test_key_is_trimmed_but_case_sensitive(
    explanation_cache, data_manager, mock_text_generator
):
    await explanation_cache.explanation_for("  Metformin ")
    await explanation_cache.explanation_for("metformin")

    assert mock_text_generator.generate.await_count == 2
    assert await data_manager.get_explanation("Metformin") is not None
    assert await data_manager.get_explanation("metformin") is not None


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["", "   ", None])
async def test_blank_name_rejected(explanation_cache, mock_reference_lookup, name):
    with pytest.raises(ValueError):
        await explanation_cache.explanation_for(name)
    mock_reference_lookup.fetch.assert_not_called()


# TC-EXPL-006: Reference Lookup Order
@pytest.mark.asyncio
async def test_reference_falls_back_brand_generic_substance(
    explanation_cache, mock_reference_lookup
):
    """Test that lookup failures and misses move on to the next query."""
    mock_reference_lookup.fetch = AsyncMock(side_effect=[
        ReferenceLookupError("timeout"),
        None,
        {"purpose": ["Lowers blood sugar in type 2 diabetes"]},
    ])

    text = await explanation_cache.fetch_reference_text("Metformin")

    queries = [call.args[0] for call in mock_reference_lookup.fetch.await_args_list]
    assert queries == [
        'openfda.brand_name:"metformin"',
        'openfda.generic_name:"metformin"',
        'openfda.substance_name:"metformin"',
    ]
    assert "Purpose: Lowers blood sugar in type 2 diabetes" in text


@pytest.mark.asyncio
async def test_reference_stops_at_first_usable_label(explanation_cache, mock_reference_lookup):
    await explanation_cache.fetch_reference_text("Metformin")
    assert mock_reference_lookup.fetch.await_count == 1


@pytest.mark.asyncio
async def test_no_reference_data_uses_placeholder(
    explanation_cache, mock_reference_lookup, mock_text_generator
):
    """Test that generation proceeds with the placeholder when nothing is found."""
    mock_reference_lookup.fetch = AsyncMock(side_effect=ReferenceLookupError("offline"))

    record = await explanation_cache.explanation_for("Metformin")

    assert mock_reference_lookup.fetch.await_count == 3
    assert NO_REFERENCE_DATA in prompt_of(mock_text_generator)
    assert record.is_valid


@pytest.mark.asyncio
async def test_label_without_useful_fields_is_skipped(explanation_cache, mock_reference_lookup):
    mock_reference_lookup.fetch = AsyncMock(return_value={"warnings": ["Do not drive."]})

    assert await explanation_cache.fetch_reference_text("Aspirin") == NO_REFERENCE_DATA
    assert mock_reference_lookup.fetch.await_count == 3


@pytest.mark.asyncio
async def test_reference_text_is_truncated_in_prompt(
    data_manager, mock_reference_lookup, mock_text_generator
):
    mock_reference_lookup.fetch = AsyncMock(
        return_value={"indications_and_usage": ["x" * 5000]}
    )
    cache = ExplanationCache(
        data_manager, mock_reference_lookup, mock_text_generator, reference_text_limit=1500
    )

    await cache.explanation_for("Metformin")

    prompt = prompt_of(mock_text_generator)
    assert "x" * 1480 in prompt
    assert "x" * 1500 not in prompt
    assert "Medication Name: Metformin" in prompt


# TC-EXPL-007: Generation Failure
@pytest.mark.asyncio
async def test_generation_error_persists_nothing(
    explanation_cache, data_manager, mock_text_generator
):
    mock_text_generator.generate = AsyncMock(side_effect=GroqRateLimitError("Rate limit exceeded"))

    with pytest.raises(ExplanationUnavailableError):
        await explanation_cache.explanation_for("Metformin")

    assert await data_manager.get_explanation("Metformin") is None


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   \n"])
async def test_empty_generation_persists_nothing(
    explanation_cache, data_manager, mock_text_generator, text
):
    mock_text_generator.generate = AsyncMock(return_value=text)

    with pytest.raises(ExplanationUnavailableError):
        await explanation_cache.explanation_for("Metformin")

    assert await data_manager.get_explanation("Metformin") is None


@pytest.mark.asyncio
async def test_unstructured_generation_is_stored_with_defaults(
    explanation_cache, data_manager, mock_text_generator
):
    """Test that text without section markers is stored and retried next time."""
    mock_text_generator.generate = AsyncMock(return_value="Take one tablet daily.")

    record = await explanation_cache.explanation_for("Metformin")

    assert record.what_it_does == WHAT_IT_DOES_DEFAULT
    assert await data_manager.get_explanation("Metformin") == record

    await explanation_cache.explanation_for("Metformin")
    assert mock_text_generator.generate.await_count == 2


@pytest.mark.asyncio
async def test_unexpected_label_shape_moves_to_next_query(data_manager, mock_text_generator):
    """Test that a brand result that is not a label falls through to the generic query."""
    searches = []

    def handler(request):
        searches.append(request.url.params["search"])
        if len(searches) == 1:
            return httpx.Response(200, json={"results": ["unexpected"]})
        return httpx.Response(200, json={
            "results": [{"purpose": ["Lowers blood sugar in type 2 diabetes"]}],
        })

    lookup = OpenFDAClient(base_url="https://api.fda.gov/drug/label.json",
                           transport=httpx.MockTransport(handler))
    cache = ExplanationCache(data_manager, lookup, mock_text_generator)

    text = await cache.fetch_reference_text("Metformin")

    assert searches == ['openfda.brand_name:"metformin"', 'openfda.generic_name:"metformin"']
    assert "Purpose: Lowers blood sugar in type 2 diabetes" in text
