"""
Tags: canonical, typed labels attached to notes.

Tag types are ordered by specificity. When two mentions of the same
normalized name disagree on type, the more specific type wins.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class TagType(Enum):
    PLACE = "place"
    PERSON = "person"
    ORGANIZATION = "organization"
    EVENT = "event"
    OBJECT = "object"
    ACTIVITY = "activity"
    TIME = "time"
    QUANTITY = "quantity"
    RELATION = "relation"
    ENTITY = "entity"

    @property
    def rank(self) -> int:
        """Specificity rank: higher is more specific, ENTITY is the generic fallback."""
        return _RANKS[self]

    def outranks(self, other: "TagType") -> bool:
        return self.rank > other.rank

    @classmethod
    def parse(cls, value: Optional[str]) -> "TagType":
        """Map a free-form type name (e.g. from model output) onto a TagType."""
        if isinstance(value, TagType):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.ENTITY


_RANKS = {
    TagType.PLACE: 10,
    TagType.PERSON: 9,
    TagType.ORGANIZATION: 8,
    TagType.EVENT: 7,
    TagType.OBJECT: 6,
    TagType.ACTIVITY: 5,
    TagType.TIME: 4,
    TagType.QUANTITY: 3,
    TagType.RELATION: 2,
    TagType.ENTITY: 1,
}


def normalize_key(name: str) -> str:
    """Lowercase, strip special characters and collapse whitespace."""
    cleaned = re.sub(r"[^\w\s]", "", (name or "").lower())
    return re.sub(r"\s+", " ", cleaned).strip()


@dataclass
class Tag:
    id: int
    name: str
    type: TagType
    normalized_name: str

    @property
    def rank(self) -> int:
        return self.type.rank


@dataclass
class NoteTag:
    """Association between a note and a tag, with optional relation payload."""
    note_id: int
    tag_id: int
    value: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
