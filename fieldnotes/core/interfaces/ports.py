from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from fieldnotes.core.domain.note import Note
from fieldnotes.core.domain.query import Answer
from fieldnotes.core.domain.tag import Tag, TagType


class ILLMProvider(ABC):
    """Interface for Large Language Model interactions."""

    @abstractmethod
    def generate(self, prompt: str, system_prompt: Optional[str] = None, json_mode: bool = False) -> str:
        """
        Generates text based on the provided prompt.

        Raises DependencyUnavailable on authentication, rate-limit or network errors.
        """
        pass


class IEmbeddingProvider(ABC):
    """Interface for generating vector embeddings."""

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """Generates a vector embedding for the given text."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Returns the dimension of the embeddings."""
        pass


class IAnswerStrategy(ABC):
    """Turns a query plus candidate notes into an answer with citations."""

    @abstractmethod
    def answer(self, query: str, candidates: List[Note]) -> Answer:
        """Must never raise; failures become an explanatory answer."""
        pass


class INoteRepository(ABC):
    """Interface for note storage and retrieval."""

    @abstractmethod
    def create_note(self, text: str, embedding: Optional[List[float]] = None) -> Note:
        pass

    @abstractmethod
    def get_note(self, note_id: int) -> Optional[Note]:
        pass

    @abstractmethod
    def list_notes(self, limit: int = 50, offset: int = 0) -> List[Note]:
        """Notes ordered by recency, newest first."""
        pass

    @abstractmethod
    def list_embedded(self, limit: int, offset: int = 0) -> List[Note]:
        """Notes that carry an embedding, newest first."""
        pass

    @abstractmethod
    def list_missing_embeddings(self) -> List[Note]:
        pass

    @abstractmethod
    def update_text(self, note_id: int, text: str) -> Optional[Note]:
        pass

    @abstractmethod
    def update_embedding(self, note_id: int, embedding: Optional[List[float]]) -> None:
        pass

    @abstractmethod
    def delete_note(self, note_id: int) -> bool:
        pass


class ITagRepository(ABC):
    """Interface for tag storage and the note/tag association table."""

    @abstractmethod
    def get_tag(self, tag_id: int) -> Optional[Tag]:
        pass

    @abstractmethod
    def find_by_key_and_type(self, normalized_name: str, tag_type: TagType) -> Optional[Tag]:
        pass

    @abstractmethod
    def find_by_key(self, normalized_name: str) -> List[Tag]:
        """All tags sharing a normalized name, regardless of type."""
        pass

    @abstractmethod
    def create_tag(self, name: str, tag_type: TagType, normalized_name: str) -> Tag:
        """Raises ConstraintRace if (normalized_name, type) already exists."""
        pass

    @abstractmethod
    def update_type(self, tag_id: int, tag_type: TagType) -> Tag:
        pass

    @abstractmethod
    def delete_tag(self, tag_id: int) -> bool:
        pass

    @abstractmethod
    def list_tags(self, tag_type: Optional[TagType] = None) -> List[Tag]:
        pass

    @abstractmethod
    def search_tags(self, query: str) -> List[Tag]:
        """Case-insensitive substring match over name and normalized name."""
        pass

    @abstractmethod
    def add_note_tag(
        self,
        note_id: int,
        tag_id: int,
        value: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        pass

    @abstractmethod
    def remove_note_tag(self, note_id: int, tag_id: int) -> None:
        pass

    @abstractmethod
    def clear_note_tags(self, note_id: int) -> None:
        pass

    @abstractmethod
    def tags_for_note(self, note_id: int) -> List[Tag]:
        pass

    @abstractmethod
    def notes_for_tags(
        self, tag_ids: List[int], match_all: bool = False, limit: Optional[int] = None
    ) -> List[Note]:
        """Notes carrying any (or all) of the given tags, newest first."""
        pass

    @abstractmethod
    def tag_counts(self, tag_type: Optional[TagType] = None) -> List[Tuple[Tag, int]]:
        pass
