"""
Structure extraction and query interpretation.

StructureExtractor asks the language model for entities/relations in a note
or a query. QueryInterpreter turns a raw query into a QueryPlan for either the
tag strategy (normalized tag names) or the vector strategy (query embedding).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fieldnotes.core.domain.query import QueryPlan, Strategy
from fieldnotes.core.domain.tag import TagType, normalize_key
from fieldnotes.core.errors import DependencyUnavailable, ParseFailure
from fieldnotes.core.interfaces.ports import IEmbeddingProvider, ILLMProvider
from fieldnotes.core.services.entity_resolver import EntityMention
from fieldnotes.core.services.extraction_prompts import (
    EXTRACT_NOTE_PROMPT,
    EXTRACTION_SYSTEM_PROMPT,
    PARSE_QUERY_PROMPT,
    QUERY_SYSTEM_PROMPT,
    list_field,
    parse_json_response,
)

logger = logging.getLogger(__name__)


@dataclass
class TagProposal:
    """A non-entity tag (quantity, time, relation) with its association payload."""
    mention: EntityMention
    value: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class NoteStructure:
    entities: List[EntityMention] = field(default_factory=list)
    extras: List[TagProposal] = field(default_factory=list)


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


class StructureExtractor:
    def __init__(self, llm: ILLMProvider):
        self.llm = llm

    def _ask(self, prompt: str, system_prompt: str) -> Dict[str, Any]:
        try:
            response = self.llm.generate(prompt, system_prompt=system_prompt, json_mode=True)
        except DependencyUnavailable as e:
            raise ParseFailure(f"Extraction failed: {e}") from e
        return parse_json_response(response)

    def extract_note(self, note_text: str) -> NoteStructure:
        data = self._ask(EXTRACT_NOTE_PROMPT.format(note_text=note_text), EXTRACTION_SYSTEM_PROMPT)
        structure = NoteStructure()

        for item in list_field(data, "entities"):
            name = _text(item.get("name"))
            key = normalize_key(_text(item.get("normalized_name")) or name)
            if not name or not key:
                continue
            structure.entities.append(EntityMention(name, TagType.parse(item.get("type")), key))

        for item in list_field(data, "quantities"):
            subject = _text(item.get("subject"))
            unit = _text(item.get("unit"))
            label = subject or unit
            if not label or item.get("value") is None:
                continue
            structure.extras.append(TagProposal(
                EntityMention(label, TagType.QUANTITY, normalize_key(label)),
                value=_text(item.get("value")),
                metadata={"unit": unit, "subject": subject},
            ))

        for item in list_field(data, "event_times"):
            when = _text(item.get("time_value"))
            if not when:
                continue
            structure.extras.append(TagProposal(
                EntityMention(when, TagType.TIME, normalize_key(when)),
                value=when,
                metadata={
                    "is_approximate": bool(item.get("is_approximate", False)),
                    "reference_type": _text(item.get("reference_type")) or None,
                },
            ))

        for item in list_field(data, "relations"):
            subject = _text(item.get("subject"))
            relation = _text(item.get("relation_type"))
            obj = _text(item.get("object"))
            if not relation:
                continue
            structure.extras.append(TagProposal(
                EntityMention(relation, TagType.RELATION, normalize_key(relation)),
                value=" ".join(p for p in (subject, relation, obj) if p),
                metadata={"subject": subject, "object": obj},
            ))

        return structure

    def extract_query_terms(self, query: str) -> List[str]:
        """Normalized, deduplicated names of every entity and relation part in a query."""
        data = self._ask(PARSE_QUERY_PROMPT.format(query=query), QUERY_SYSTEM_PROMPT)
        names = [_text(e.get("name")) for e in list_field(data, "entities")]
        for rel in list_field(data, "relations"):
            names.extend(_text(rel.get(k)) for k in ("subject", "relation_type", "object"))

        keys = []
        for name in names:
            key = normalize_key(name)
            if key and key not in keys:
                keys.append(key)
        return keys


class QueryInterpreter:
    def __init__(
        self,
        strategy: Strategy,
        extractor: Optional[StructureExtractor] = None,
        embedder: Optional[IEmbeddingProvider] = None,
    ):
        if strategy == Strategy.TAG and extractor is None:
            raise ValueError("Tag strategy requires a structure extractor")
        self.strategy = strategy
        self.extractor = extractor
        self.embedder = embedder

    def interpret(self, query: str) -> QueryPlan:
        """
        Raises ParseFailure when the tag strategy cannot structure the query.

        The vector strategy degrades to a plan without a vector when the
        embedding cannot be produced.
        """
        if self.strategy == Strategy.TAG:
            keys = self.extractor.extract_query_terms(query)
            logger.info("Query '%s' -> tag names %s", query, keys)
            return QueryPlan.for_tags(keys)

        if self.embedder is None:
            return QueryPlan.for_vector(None)
        try:
            return QueryPlan.for_vector(self.embedder.embed(query))
        except Exception as e:
            logger.warning("Error embedding search query, falling back to recent notes: %s", e)
            return QueryPlan.for_vector(None)
