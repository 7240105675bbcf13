"""
NoteService - ingestion and query orchestration for the note retrieval engine.

A query moves through Parsing -> Resolving Candidates -> Synthesizing -> Done,
short-circuiting to a fixed "no matches" summary when no candidates are found.
Only a parse failure is surfaced; index and provider failures degrade.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from tqdm import tqdm

from fieldnotes.config import Settings
from fieldnotes.core.domain.note import Note
from fieldnotes.core.domain.query import IngestResult, QueryPlan, SearchResult, Strategy
from fieldnotes.core.domain.tag import Tag, TagType, normalize_key
from fieldnotes.core.errors import ConfigError, NotFound
from fieldnotes.core.interfaces.ports import (
    IAnswerStrategy,
    IEmbeddingProvider,
    ILLMProvider,
    INoteRepository,
    ITagRepository,
)
from fieldnotes.core.services.answer_synthesizer import AnswerSynthesizer
from fieldnotes.core.services.embedding_index import EmbeddingIndex
from fieldnotes.core.services.entity_resolver import EntityResolver, dedupe_mentions
from fieldnotes.core.services.query_interpreter import (
    NoteStructure,
    QueryInterpreter,
    StructureExtractor,
    TagProposal,
)
from fieldnotes.core.services.similarity_cache import SimilarityCache
from fieldnotes.core.services.tag_index import TagGraphIndex

logger = logging.getLogger(__name__)

NO_MATCHES = "No matching entries found for your query."
APOLOGY = "I couldn't generate an answer for this query."


def merge_payloads(proposals: List[TagProposal]) -> Tuple[Optional[str], Optional[Dict[str, Any]]]:
    """
    Collapse the payloads of every extra that resolved to one tag on one note.

    A single payload is stored as-is. Several (two "saw" relations, say) are
    joined: values with "; " and each payload kept under metadata["entries"].
    """
    if not proposals:
        return None, None
    if len(proposals) == 1:
        return proposals[0].value, proposals[0].metadata
    values = [p.value for p in proposals if p.value]
    entries = [{"value": p.value, **(p.metadata or {})} for p in proposals]
    return "; ".join(values) or None, {"entries": entries}


class NoteService:
    def __init__(
        self,
        notes: INoteRepository,
        tags: ITagRepository,
        answerer: IAnswerStrategy,
        interpreter: QueryInterpreter,
        embedder: Optional[IEmbeddingProvider] = None,
        extractor: Optional[StructureExtractor] = None,
        embedding_index: Optional[EmbeddingIndex] = None,
        search_limit: int = 5,
        tag_candidate_limit: int = 10,
    ):
        self.notes = notes
        self.tags = tags
        self.answerer = answerer
        self.interpreter = interpreter
        self.embedder = embedder
        self.extractor = extractor
        self.resolver = EntityResolver(tags)
        self.tag_index = TagGraphIndex(tags)
        self.embedding_index = embedding_index or EmbeddingIndex(notes)
        self.search_limit = search_limit
        self.tag_candidate_limit = tag_candidate_limit

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def answer_query(self, query: str) -> SearchResult:
        """Raises ParseFailure if the query cannot be interpreted; never fails otherwise."""
        if not query or not query.strip():
            raise ValueError("Search query is required")

        logger.info("Processing search query: %r", query)
        plan = self.interpreter.interpret(query)

        candidates = self._resolve_candidates(plan)
        if not candidates:
            return SearchResult(query=query, entries=[], summary=NO_MATCHES)

        try:
            answer = self.answerer.answer(query, candidates)
        except Exception as e:
            logger.error("Error getting answer from answer strategy: %s", e)
            return SearchResult(query=query, entries=candidates, summary=APOLOGY)

        return SearchResult(
            query=query,
            entries=candidates,
            summary=answer.answer,
            cited_note_ids=answer.cited_note_ids,
        )

    def _resolve_candidates(self, plan: QueryPlan) -> List[Note]:
        try:
            if plan.strategy == Strategy.TAG:
                matched = self.tag_index.tags_for_keys(plan.tag_names)
                if not matched:
                    logger.info("No tags matched %s", plan.tag_names)
                    return []
                return self.tag_index.entries_for_any_tag(
                    [t.id for t in matched], limit=self.tag_candidate_limit
                )
            return self.embedding_index.find_similar(plan.vector, self.search_limit)
        except Exception as e:
            logger.warning("Candidate lookup failed, continuing with no candidates: %s", e)
            return []

    def entries_for_tag_name(self, name: str) -> List[Note]:
        return self.tag_index.entries_for_tag_name(name)

    # -------------------------------------------------------------------------
    # Notes
    # -------------------------------------------------------------------------

    def ingest_note(self, text: str) -> IngestResult:
        """
        Store a note with its embedding and extracted tags.

        Extraction and storage failures are raised; an embedding failure only
        leaves the note without an embedding.
        """
        if not text or not text.strip():
            raise ValueError("Note text is required")

        structure = self.extractor.extract_note(text) if self.extractor else None
        embedding = self._embed(text)

        note = self.notes.create_note(text, embedding)
        try:
            tags = self._write_tags(note.id, self._resolve_structure(structure)) if structure else []
        except Exception:
            logger.error("Tagging note %s failed, removing it", note.id)
            self.notes.delete_note(note.id)
            raise
        if embedding is not None:
            self.embedding_index.invalidate()

        note.tags = tags
        logger.info("Processed note %s with %d tags", note.id, len(tags))
        return IngestResult(note=note, tags=tags)

    def update_note(self, note_id: int, text: str) -> IngestResult:
        if not text or not text.strip():
            raise ValueError("Note text is required")
        if self.notes.get_note(note_id) is None:
            raise NotFound("note", note_id)

        structure = self.extractor.extract_note(text) if self.extractor else None
        resolved = self._resolve_structure(structure) if structure is not None else None
        self.notes.update_text(note_id, text)
        if self.embedder is not None:
            # Cleared on failure so backfill_embeddings picks it up
            self.embedding_index.store_embedding(note_id, self._embed(text))

        tags = self.tags.tags_for_note(note_id)
        if resolved is not None:
            self.tags.clear_note_tags(note_id)
            tags = self._write_tags(note_id, resolved)

        note = self.notes.get_note(note_id)
        note.tags = tags
        return IngestResult(note=note, tags=tags)

    def get_note(self, note_id: int) -> Optional[Note]:
        note = self.notes.get_note(note_id)
        if note is not None:
            note.tags = self.tags.tags_for_note(note_id)
        return note

    def list_notes(self, limit: int = 50, offset: int = 0) -> List[Note]:
        return self.notes.list_notes(limit=limit, offset=offset)

    def delete_note(self, note_id: int) -> bool:
        deleted = self.notes.delete_note(note_id)
        if deleted:
            self.embedding_index.invalidate()
        return deleted

    def backfill_embeddings(self) -> int:
        """Embed every note stored without an embedding. Returns the number updated."""
        if self.embedder is None:
            logger.warning("No embedding provider configured, nothing to backfill")
            return 0

        missing = self.notes.list_missing_embeddings()
        updated = 0
        for note in tqdm(missing, desc="Embedding notes"):
            try:
                self.notes.update_embedding(note.id, self.embedder.embed(note.text))
                updated += 1
            except Exception as e:
                logger.warning("Error embedding note %s: %s", note.id, e)
        if updated:
            self.embedding_index.invalidate()
        return updated

    def _embed(self, text: str) -> Optional[List[float]]:
        if self.embedder is None:
            return None
        try:
            return self.embedder.embed(text)
        except Exception as e:
            logger.warning("Error generating embedding, continuing without: %s", e)
            return None

    def _resolve_structure(self, structure: NoteStructure) -> Dict[int, Tuple[Tag, List[TagProposal]]]:
        """Resolve every mention to a tag, grouping extra payloads by the tag they landed on."""
        tags: Dict[int, Tag] = {}
        payloads: Dict[int, List[TagProposal]] = {}
        for mention in dedupe_mentions(structure.entities):
            tag = self.resolver.resolve_mention(mention)
            tags[tag.id] = tag
            payloads.setdefault(tag.id, [])
        for proposal in structure.extras:
            if not proposal.mention.normalized_name:
                continue
            # May resolve to an entity tag of the same name
            tag = self.resolver.resolve_mention(proposal.mention)
            tags[tag.id] = tag
            payloads.setdefault(tag.id, []).append(proposal)
        return {tag_id: (tag, payloads[tag_id]) for tag_id, tag in tags.items()}

    def _write_tags(self, note_id: int, resolved: Dict[int, Tuple[Tag, List[TagProposal]]]) -> List[Tag]:
        for tag_id, (_, payloads) in resolved.items():
            value, metadata = merge_payloads(payloads)
            self.tags.add_note_tag(note_id, tag_id, value, metadata)
        return [tag for tag, _ in resolved.values()]

    # -------------------------------------------------------------------------
    # Tags
    # -------------------------------------------------------------------------

    def create_tag(self, name: str, tag_type: str, normalized_name: Optional[str] = None) -> Tag:
        if not name or not tag_type:
            raise ValueError("Tag name and type are required")
        key = normalize_key(normalized_name or name)
        return self.resolver.resolve(name, TagType.parse(tag_type), key)

    def get_tag(self, tag_id: int) -> Optional[Tag]:
        return self.tags.get_tag(tag_id)

    def delete_tag(self, tag_id: int) -> bool:
        return self.tags.delete_tag(tag_id)

    def list_tags(self, tag_type: Optional[str] = None) -> List[Tuple[Tag, int]]:
        return self.tag_index.tags_with_counts(TagType.parse(tag_type) if tag_type else None)

    def search_tags(self, query: str, tag_type: Optional[str] = None) -> List[Tag]:
        return self.tag_index.find_tags(query, TagType.parse(tag_type) if tag_type else None)

    def tags_for_note(self, note_id: int) -> List[Tag]:
        return self.tags.tags_for_note(note_id)

    def tag_note(
        self,
        note_id: int,
        tag_id: int,
        value: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        if self.tags.get_tag(tag_id) is None:
            raise NotFound("tag", tag_id)
        if self.notes.get_note(note_id) is None:
            raise NotFound("note", note_id)
        self.tags.add_note_tag(note_id, tag_id, value, metadata)

    def untag_note(self, note_id: int, tag_id: int) -> None:
        self.tags.remove_note_tag(note_id, tag_id)


PROVIDER_LABELS = {"gemini": "Gemini", "openai": "OpenAI", "ollama": "Ollama"}


def _create_llm(settings: Settings) -> Optional[ILLMProvider]:
    try:
        if settings.llm_provider == "ollama":
            from fieldnotes.infrastructure.llm.ollama_provider import OllamaProvider
            return OllamaProvider(model_name=settings.ollama_model, base_url=settings.ollama_url)
        if settings.llm_provider == "openai":
            from fieldnotes.infrastructure.llm.openai_provider import OpenAIProvider
            return OpenAIProvider(api_key=settings.openai_api_key, model_name=settings.openai_model)
        from fieldnotes.infrastructure.llm.gemini_provider import GeminiProvider
        return GeminiProvider(api_key=settings.gemini_api_key, model_name=settings.gemini_model)
    except ValueError as e:
        logger.warning("LLM provider %s unavailable: %s", settings.llm_provider, e)
        return None


def _create_embedder(settings: Settings) -> Optional[IEmbeddingProvider]:
    if settings.embedding_provider == "none":
        return None
    if settings.embedding_provider == "local":
        from fieldnotes.infrastructure.embedding.local_embedder import LocalEmbeddingProvider
        return LocalEmbeddingProvider(model_name=settings.embedding_model)
    try:
        from fieldnotes.infrastructure.embedding.openai_embedder import OpenAIEmbeddingProvider
        return OpenAIEmbeddingProvider(
            api_key=settings.openai_api_key, model_name=settings.openai_embedding_model
        )
    except ValueError as e:
        logger.warning("Embedding provider unavailable: %s", e)
        return None


def create_service(settings: Optional[Settings] = None) -> NoteService:
    """Factory function to create NoteService with configured providers."""
    from fieldnotes.infrastructure.storage.sqlite_store import (
        SQLiteDatabase,
        SQLiteNoteRepository,
        SQLiteTagRepository,
    )

    settings = settings or Settings.from_env()

    db = SQLiteDatabase(settings.db_path)
    notes = SQLiteNoteRepository(db)
    tags = SQLiteTagRepository(db)

    llm = _create_llm(settings)
    embedder = _create_embedder(settings)
    extractor = StructureExtractor(llm) if llm is not None else None

    if settings.strategy == Strategy.TAG and extractor is None:
        raise ConfigError("Tag retrieval strategy needs a configured LLM provider")

    answerer = AnswerSynthesizer(llm, PROVIDER_LABELS[settings.llm_provider])
    interpreter = QueryInterpreter(settings.strategy, extractor=extractor, embedder=embedder)
    index = EmbeddingIndex(notes, cache=SimilarityCache(capacity=settings.similarity_cache_size))

    return NoteService(
        notes=notes,
        tags=tags,
        answerer=answerer,
        interpreter=interpreter,
        embedder=embedder,
        extractor=extractor,
        embedding_index=index,
        search_limit=settings.search_limit,
        tag_candidate_limit=settings.tag_candidate_limit,
    )
