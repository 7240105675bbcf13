from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from fieldnotes.core.domain.note import Note
from fieldnotes.core.domain.tag import Tag


class Strategy(Enum):
    TAG = "tag"
    VECTOR = "vector"


@dataclass
class QueryPlan:
    """
    Result of interpreting a natural-language query.

    A TAG plan carries normalized tag names; a VECTOR plan carries the query
    embedding, which may be None when the embedding could not be produced.
    """
    strategy: Strategy
    tag_names: List[str] = field(default_factory=list)
    vector: Optional[List[float]] = None

    @classmethod
    def for_tags(cls, tag_names: List[str]) -> "QueryPlan":
        return cls(strategy=Strategy.TAG, tag_names=list(tag_names))

    @classmethod
    def for_vector(cls, vector: Optional[List[float]]) -> "QueryPlan":
        return cls(strategy=Strategy.VECTOR, vector=vector)


@dataclass
class Answer:
    answer: str
    cited_note_ids: List[int] = field(default_factory=list)


@dataclass
class SearchResult:
    query: str
    entries: List[Note]
    summary: str
    cited_note_ids: List[int] = field(default_factory=list)


@dataclass
class IngestResult:
    note: Note
    tags: List[Tag] = field(default_factory=list)
