"""
EntityResolver - merges extracted entity mentions into the canonical tag vocabulary.

A normalized name maps to at most one active type. When a mention proposes a
more specific type for an existing name, the tag is upgraded in place so its
id and note associations survive; a less specific proposal never downgrades it.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from fieldnotes.core.domain.tag import Tag, TagType, normalize_key
from fieldnotes.core.errors import ConstraintRace
from fieldnotes.core.interfaces.ports import ITagRepository

logger = logging.getLogger(__name__)


@dataclass
class EntityMention:
    """An entity proposed by the extractor for a single note."""
    name: str
    type: TagType
    normalized_name: str


def dedupe_mentions(mentions: Iterable[EntityMention]) -> List[EntityMention]:
    """Keep only the first mention for each normalized name."""
    seen = set()
    unique = []
    for mention in mentions:
        if not mention.normalized_name or mention.normalized_name in seen:
            continue
        seen.add(mention.normalized_name)
        unique.append(mention)
    return unique


class EntityResolver:
    def __init__(self, tags: ITagRepository):
        self.tags = tags

    def resolve(self, name: str, proposed_type: TagType, normalized_name: Optional[str] = None) -> Tag:
        """
        Create-or-get the canonical tag for a mention.

        Idempotent: resolving the same (name, type, key) twice returns the same tag.
        """
        proposed_type = TagType.parse(proposed_type)
        key = normalized_name if normalized_name else normalize_key(name)

        exact = self.tags.find_by_key_and_type(key, proposed_type)
        if exact is not None:
            return exact

        existing = self._most_specific(self.tags.find_by_key(key))
        if existing is None:
            try:
                tag = self.tags.create_tag(name, proposed_type, key)
                logger.debug("Created tag %s '%s' (%s)", tag.id, key, proposed_type.value)
                return tag
            except ConstraintRace:
                # Another ingestion created it between our read and write
                logger.info("Tag '%s' (%s) created concurrently, re-fetching", key, proposed_type.value)
                existing = self._most_specific(self.tags.find_by_key(key))
                if existing is None:
                    raise

        return self._merge(existing, proposed_type)

    def resolve_mention(self, mention: EntityMention) -> Tag:
        return self.resolve(mention.name, mention.type, mention.normalized_name)

    def resolve_all(self, mentions: Iterable[EntityMention]) -> List[Tag]:
        """Deduplicate by normalized name, then resolve each mention in order."""
        return [self.resolve_mention(m) for m in dedupe_mentions(mentions)]

    def _merge(self, existing: Tag, proposed_type: TagType) -> Tag:
        if existing.type == proposed_type or not proposed_type.outranks(existing.type):
            return existing
        logger.info(
            "Upgrading tag %s '%s' from %s to %s",
            existing.id, existing.normalized_name, existing.type.value, proposed_type.value,
        )
        return self.tags.update_type(existing.id, proposed_type)

    @staticmethod
    def _most_specific(candidates: List[Tag]) -> Optional[Tag]:
        # Legacy rows may hold several types for one key; the most specific is active
        if not candidates:
            return None
        return max(candidates, key=lambda t: t.rank)
