import logging
from typing import Iterable, List, Optional, Tuple

from fieldnotes.core.domain.note import Note
from fieldnotes.core.domain.tag import Tag, TagType
from fieldnotes.core.interfaces.ports import ITagRepository

logger = logging.getLogger(__name__)


class TagGraphIndex:
    """Answers "which notes carry tag X / tag-set S" over the note/tag association table."""

    def __init__(self, tags: ITagRepository):
        self.tags = tags

    def entries_for_tag(self, tag_id: int) -> List[Note]:
        return self.tags.notes_for_tags([tag_id])

    def entries_for_any_tag(self, tag_ids: Iterable[int], limit: Optional[int] = None) -> List[Note]:
        """Union: every note carrying at least one tag, each once, newest first."""
        return self.tags.notes_for_tags(list(tag_ids), match_all=False, limit=limit)

    def entries_for_all_tags(self, tag_ids: Iterable[int], limit: Optional[int] = None) -> List[Note]:
        """Intersection: only notes carrying every requested tag."""
        return self.tags.notes_for_tags(list(tag_ids), match_all=True, limit=limit)

    def find_tags(self, name: str, tag_type: Optional[TagType] = None) -> List[Tag]:
        """Case-insensitive substring match over display name and normalized name."""
        if not name:
            return []
        matches = self.tags.search_tags(name)
        if tag_type is not None:
            matches = [t for t in matches if t.type == tag_type]
        return matches

    def tags_for_keys(self, normalized_names: Iterable[str]) -> List[Tag]:
        """Exact lookup by normalized name; names without a tag are dropped."""
        found = []
        seen = set()
        for key in normalized_names:
            for tag in self.tags.find_by_key(key):
                if tag.id not in seen:
                    seen.add(tag.id)
                    found.append(tag)
        return found

    def best_tag(self, name: str) -> Optional[Tag]:
        """
        Pick the single best tag for a free-text name.

        Exact display-name match beats normalized-name match beats substring
        match; within a tier the most specific type wins, then result order.
        """
        matches = self.find_tags(name)
        if not matches:
            return None

        wanted = name.lower()
        exact = [t for t in matches if t.name.lower() == wanted]
        normalized = [t for t in matches if t.normalized_name.lower() == wanted]
        for tier in (exact, normalized, matches):
            if tier:
                # max() keeps the first of equally ranked tags
                return max(tier, key=lambda t: t.rank)
        return None

    def entries_for_tag_name(self, name: str) -> List[Note]:
        tag = self.best_tag(name)
        if tag is None:
            logger.info("No tag found for: %s", name)
            return []
        logger.debug("Using tag: %s (ID: %s)", tag.name, tag.id)
        entries = self.entries_for_tag(tag.id)
        for entry in entries:
            entry.tags = self.tags.tags_for_note(entry.id)
        return entries

    def tags_with_counts(self, tag_type: Optional[TagType] = None) -> List[Tuple[Tag, int]]:
        return self.tags.tag_counts(tag_type)
