"""Cache-aside service for plain-language medication explanations."""

import re
import time
from typing import Any, Dict, Optional, Protocol

from loguru import logger

from medbuddy.config import settings
from medbuddy.data.models import (
    HOW_IT_HELPS_DEFAULT,
    IMPORTANT_NOTES_DEFAULT,
    WHAT_IT_DOES_DEFAULT,
    ExplanationRecord,
)
from medbuddy.data.storage import DataManager
from medbuddy.llm import GroqAPIError
from medbuddy.llm.prompts import SECTION_TITLES, get_explanation_prompt
from medbuddy.reference import ReferenceLookupError
from medbuddy.utils import ExplanationUnavailableError, log_performance, utc_timestamp

NO_REFERENCE_DATA = "No specific FDA data available for this medication."

REFERENCE_QUERIES = (
    'openfda.brand_name:"{name}"',
    'openfda.generic_name:"{name}"',
    'openfda.substance_name:"{name}"',
)

_SECTION_MARKERS = [
    re.compile(rf"SECTION\s*{number}\W*", re.IGNORECASE) for number in (1, 2, 3)
]


class ReferenceLookup(Protocol):
    async def fetch(self, query: str) -> Optional[Dict[str, Any]]: ...


class TextGenerator(Protocol):
    async def generate(self, prompt: str) -> str: ...


def summarize_label(label: Dict[str, Any]) -> str:
    """Combine the useful fields of a drug label into reference text.

    Returns:
        Reference text, or an empty string if the label has none of the fields
    """
    def first(field_name: str) -> str:
        values = label.get(field_name) or []
        return values[0].strip() if values and isinstance(values[0], str) else ""

    usage = first("indications_and_usage")
    purpose = first("purpose")
    dosage = first("dosage_and_administration")

    if not (usage or purpose or dosage):
        return ""
    return f"Indication: {usage}\nPurpose: {purpose}\nDosage Info: {dosage}".strip()


def _strip_title(content: str, title: str) -> str:
    """Drop a leading heading line equal to the section title the prompt asks for."""
    head, _, rest = content.partition("\n")
    if head.strip().rstrip(":").strip().lower() == title.lower():
        return rest
    return content


def parse_explanation_sections(text: str) -> tuple[str, str, str]:
    """Split generated text into its three sections.

    Section N runs from the "SECTION N" marker to the next "SECTION N+1"
    marker; section 3 runs to the end of the text. An echoed section title
    ("What This Medication Does", ...) on the marker line is dropped. A
    section whose marker (or closing marker) is missing, or whose text is
    empty, keeps its default sentence.

    Args:
        text: Generated text

    Returns:
        (what_it_does, how_it_helps, important_notes)
    """
    sections = [WHAT_IT_DOES_DEFAULT, HOW_IT_HELPS_DEFAULT, IMPORTANT_NOTES_DEFAULT]

    for index, marker in enumerate(_SECTION_MARKERS):
        start = marker.search(text)
        if start is None:
            logger.debug(f"Section {index + 1} marker not found")
            continue

        if index + 1 < len(_SECTION_MARKERS):
            end = _SECTION_MARKERS[index + 1].search(text, start.end())
            if end is None:
                logger.debug(f"Section {index + 2} marker not found after section {index + 1}")
                continue
            content = text[start.end():end.start()]
        else:
            content = text[start.end():]

        content = _strip_title(content.strip(), SECTION_TITLES[index]).strip()
        if content:
            sections[index] = content

    return sections[0], sections[1], sections[2]


class ExplanationCache:
    """Returns a medication explanation, generating and storing it on a miss.

    A stored record counts as a hit when its first section holds real text.
    Sections 2 and 3 are not checked, so a record whose later sections fell
    back to their defaults is served as-is and never regenerated.

    There is no single-flight: two concurrent misses for one name both
    generate, and the last write wins.
    """

    def __init__(
        self,
        data_manager: DataManager,
        reference_lookup: ReferenceLookup,
        text_generator: TextGenerator,
        reference_text_limit: Optional[int] = None,
    ):
        """Initialize explanation cache.

        Args:
            data_manager: Store holding explanation records
            reference_lookup: Drug label lookup (e.g. OpenFDAClient)
            text_generator: LLM client (e.g. GroqClient)
            reference_text_limit: Max reference characters put in the prompt
        """
        self.data_manager = data_manager
        self.reference_lookup = reference_lookup
        self.text_generator = text_generator
        self.reference_text_limit = (
            reference_text_limit
            if reference_text_limit is not None
            else settings.reference_text_limit
        )

    async def explanation_for(self, medication_name: str) -> ExplanationRecord:
        """Return the explanation for a medication.

        Args:
            medication_name: Medication name; surrounding whitespace is ignored,
                case is kept as given

        Returns:
            Cached or freshly generated ExplanationRecord

        Raises:
            ValueError: If the name is blank
            ExplanationUnavailableError: If no text could be generated at all
            StorageError: If the store cannot be read or written
        """
        key = (medication_name or "").strip()
        if not key:
            raise ValueError("Medication name cannot be empty")

        cached = await self.data_manager.get_explanation(key)
        if cached is not None and cached.is_valid:
            logger.debug(f"Explanation cache hit for {key}")
            return cached

        if cached is not None:
            logger.info(f"Cached explanation for {key} seems invalid. Regenerating...")
        else:
            logger.info(f"Generating explanation for {key}...")

        return await self._regenerate(key)

    async def _regenerate(self, key: str) -> ExplanationRecord:
        start_time = time.time()

        reference_text = await self.fetch_reference_text(key)
        fetched_at = utc_timestamp()

        prompt = get_explanation_prompt(key, reference_text, self.reference_text_limit)
        try:
            text = await self.text_generator.generate(prompt)
        except GroqAPIError as e:
            logger.error(f"Explanation generation failed for {key}: {e}")
            raise ExplanationUnavailableError(f"Generation failed for {key}") from e

        if not text or not text.strip():
            logger.error(f"Explanation generation returned no text for {key}")
            raise ExplanationUnavailableError(f"No text generated for {key}")

        what_it_does, how_it_helps, important_notes = parse_explanation_sections(text)
        record = ExplanationRecord(
            name=key,
            what_it_does=what_it_does,
            how_it_helps=how_it_helps,
            important_notes=important_notes,
            fda_data_fetched=fetched_at,
            last_updated=utc_timestamp(),
        )

        if not record.is_valid:
            logger.warning(f"Explanation for {key} has no usable first section; stored anyway")

        await self.data_manager.save_explanation(record)
        log_performance("explanation_generation", (time.time() - start_time) * 1000)
        return record

    async def fetch_reference_text(self, medication_name: str) -> str:
        """Look up label text by brand, then generic, then substance name.

        Lookup failures are skipped; if nothing usable is found the fixed
        "no data" sentence is returned.
        """
        clean_name = medication_name.lower().strip()

        for template in REFERENCE_QUERIES:
            query = template.format(name=clean_name)
            try:
                label = await self.reference_lookup.fetch(query)
            except ReferenceLookupError as e:
                logger.debug(f"Reference lookup {query} failed: {e}")
                continue

            if not label:
                continue

            combined = summarize_label(label)
            if len(combined) > 20:
                logger.debug(f"Reference data found with {query}")
                return combined

        logger.info(f"No reference data found for {medication_name}")
        return NO_REFERENCE_DATA
