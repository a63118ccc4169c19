"""
Entity Extraction Service: one LLM call plus a tolerant interpreter for its answer.
"""

import json
from typing import Any, List

from ..models.core import ExtractedEntities
from ..utils.bedrock_llm import BedrockLLMError, TextCompletion
from ..utils.json_utils import clean_json_response, slice_json_object
from ..utils.logging_config import get_logger
from ..utils.query_builder import has_unsafe_control

logger = get_logger(__name__)

EXTRACTION_KEYS = ('people', 'topics', 'tasks', 'documents')

EXTRACTION_PROMPT = """You are an expert entity extractor for an AI agent's memory system.
Extract the following types of entities from the user's message:

1. PEOPLE: Names of individuals mentioned
2. TOPICS: Subjects, concepts, technologies, projects, or areas of interest
3. TASKS: Action items, todos, or work that needs to be done
4. DOCUMENTS: Files, links, resources, or references mentioned

Return your response as a JSON object with this exact structure:
{
  "people": ["name1", "name2"],
  "topics": ["topic1", "topic2"],
  "tasks": ["task1", "task2"],
  "documents": ["doc1", "doc2"]
}

Guidelines:
- Only extract entities that are explicitly mentioned or clearly implied
- For topics, include both specific technologies and general concepts
- For tasks, extract actionable items in imperative form
- If a category has no entities, use an empty array []
- Be precise and avoid over-extraction

Return ONLY the JSON object, no additional text."""


class ExtractionParseError(Exception):
    """Raised when an extraction answer is not a JSON object."""
    pass


class EntityExtractionError(Exception):
    """Custom exception for entity extraction errors."""
    pass


def _string_list(value: Any) -> List[str]:
    """Keep the non-blank, storable strings of a list, dropping exact duplicates in order."""
    if not isinstance(value, list):
        return []
    seen = set()
    items = []
    for item in value:
        if not isinstance(item, str):
            continue
        item = item.strip()
        if has_unsafe_control(item):
            logger.warning(f'Dropping mention with control characters: {item!r}')
            continue
        if item and item not in seen:
            seen.add(item)
            items.append(item)
    return items


def _load_object(response: str) -> dict:
    if not isinstance(response, str):
        raise ExtractionParseError(f'Expected text, got {type(response).__name__}')
    try:
        data = json.loads(slice_json_object(clean_json_response(response)))
    except json.JSONDecodeError as e:
        raise ExtractionParseError(f'Failed to parse entity extraction JSON: {e}') from e
    if not isinstance(data, dict):
        raise ExtractionParseError(f'Expected object, got {type(data).__name__}')
    return data


def parse_extraction_response(response: str) -> ExtractedEntities:
    """Interpret a raw extraction answer.

    Missing keys and non-list values become empty lists, unknown keys are
    ignored, and an answer that is not a JSON object yields empty entities.

    Args:
        response: Raw LLM output

    Returns:
        ExtractedEntities with duplicates removed
    """
    try:
        data = _load_object(response)
    except ExtractionParseError as e:
        logger.warning(f'Ignoring unparseable extraction output: {e}')
        return ExtractedEntities()

    return ExtractedEntities(**{key: _string_list(data.get(key)) for key in EXTRACTION_KEYS})


class EntityExtractionService:
    """Extract people, topics, tasks and documents from a conversation turn."""

    def __init__(self, llm: TextCompletion):
        """Initialize the entity extraction service."""
        self.llm = llm

        logger.info('Initialized EntityExtractionService')

    def extract(self, message: str) -> ExtractedEntities:
        """
        Extract entities from a message.

        Args:
            message: Turn text

        Returns:
            ExtractedEntities, empty when the message is blank or the answer is unusable

        Raises:
            EntityExtractionError: If the LLM call itself fails
        """
        if not message or not message.strip():
            logger.debug('Empty message provided for entity extraction')
            return ExtractedEntities()

        try:
            response = self.llm.complete(EXTRACTION_PROMPT, message)
        except BedrockLLMError as e:
            logger.error(f'LLM error during entity extraction: {e}')
            raise EntityExtractionError(f'Entity extraction failed: {e}') from e
        except Exception as e:
            logger.error(f'Unexpected error during entity extraction: {e}')
            raise EntityExtractionError(f'Unexpected entity extraction error: {e}') from e

        entities = parse_extraction_response(response)
        logger.debug(f'Extracted entities: {entities.to_dict()}')
        return entities
