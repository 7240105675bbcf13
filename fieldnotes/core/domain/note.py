from dataclasses import dataclass, field
from typing import List, Optional

from fieldnotes.core.domain.tag import Tag


@dataclass
class Note:
    """
    Represents a single free-text note in the system.
    """
    id: int
    text: str
    created_at: str
    updated_at: str
    embedding: Optional[List[float]] = None
    tags: List[Tag] = field(default_factory=list)

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None and len(self.embedding) > 0
