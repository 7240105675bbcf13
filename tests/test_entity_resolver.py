import os
import tempfile
import unittest
from unittest.mock import MagicMock

from fieldnotes.core.domain.tag import Tag, TagType, normalize_key
from fieldnotes.core.errors import ConstraintRace
from fieldnotes.core.services.entity_resolver import EntityMention, EntityResolver, dedupe_mentions
from fieldnotes.infrastructure.storage.sqlite_store import (
    SQLiteDatabase,
    SQLiteNoteRepository,
    SQLiteTagRepository,
)


class TestEntityResolver(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        db = SQLiteDatabase(os.path.join(self.tmp.name, "test.db"))
        self.notes = SQLiteNoteRepository(db)
        self.tags = SQLiteTagRepository(db)
        self.resolver = EntityResolver(self.tags)

    def tearDown(self):
        self.tmp.cleanup()

    def test_resolve_is_idempotent(self):
        first = self.resolver.resolve("Sally", TagType.PERSON, "sally")
        second = self.resolver.resolve("Sally", TagType.PERSON, "sally")

        self.assertEqual(first.id, second.id)
        self.assertEqual(len(self.tags.list_tags()), 1)

    def test_more_specific_type_upgrades_in_place(self):
        generic = self.resolver.resolve("Park", TagType.ENTITY, "park")
        note = self.notes.create_note("Walked in the park")
        self.tags.add_note_tag(note.id, generic.id)

        upgraded = self.resolver.resolve("Park", TagType.PLACE, "park")

        self.assertEqual(upgraded.id, generic.id)
        self.assertEqual(upgraded.type, TagType.PLACE)
        self.assertEqual(self.tags.get_tag(generic.id).type, TagType.PLACE)
        self.assertEqual([n.id for n in self.tags.notes_for_tags([generic.id])], [note.id])
        self.assertEqual(len(self.tags.list_tags()), 1)

    def test_less_specific_type_does_not_downgrade(self):
        place = self.resolver.resolve("Park", TagType.PLACE, "park")
        again = self.resolver.resolve("Park", TagType.ENTITY, "park")

        self.assertEqual(again.id, place.id)
        self.assertEqual(again.type, TagType.PLACE)
        self.assertEqual(len(self.tags.list_tags()), 1)

    def test_equal_rank_keeps_existing(self):
        person = self.resolver.resolve("Laya", TagType.PERSON, "laya")
        self.assertEqual(self.resolver.resolve("Laya", TagType.PERSON, "laya").id, person.id)

    def test_key_defaults_to_normalized_name(self):
        tag = self.resolver.resolve("  Dr. Smith! ", TagType.PERSON)
        self.assertEqual(tag.normalized_name, "dr smith")

    def test_unknown_type_falls_back_to_entity(self):
        tag = self.resolver.resolve("Widget", "gizmo", "widget")
        self.assertEqual(tag.type, TagType.ENTITY)

    def test_resolve_all_dedupes_by_key(self):
        mentions = [
            EntityMention("Sally", TagType.PERSON, "sally"),
            EntityMention("SALLY", TagType.ENTITY, "sally"),
            EntityMention("Beach", TagType.PLACE, "beach"),
        ]
        resolved = self.resolver.resolve_all(mentions)

        self.assertEqual([t.normalized_name for t in resolved], ["sally", "beach"])
        self.assertEqual(resolved[0].type, TagType.PERSON)


class TestConstraintRace(unittest.TestCase):
    def test_race_on_create_rereads_and_merges(self):
        winner = Tag(id=7, name="Park", type=TagType.ENTITY, normalized_name="park")
        upgraded = Tag(id=7, name="Park", type=TagType.PLACE, normalized_name="park")
        repo = MagicMock()
        repo.find_by_key_and_type.return_value = None
        repo.find_by_key.side_effect = [[], [winner]]
        repo.create_tag.side_effect = ConstraintRace("park", "place")
        repo.update_type.return_value = upgraded

        tag = EntityResolver(repo).resolve("Park", TagType.PLACE, "park")

        self.assertEqual(tag.id, 7)
        repo.update_type.assert_called_once_with(7, TagType.PLACE)

    def test_race_without_visible_winner_propagates(self):
        repo = MagicMock()
        repo.find_by_key_and_type.return_value = None
        repo.find_by_key.return_value = []
        repo.create_tag.side_effect = ConstraintRace("park", "place")

        with self.assertRaises(ConstraintRace):
            EntityResolver(repo).resolve("Park", TagType.PLACE, "park")


class TestTagTypes(unittest.TestCase):
    def test_ranks(self):
        self.assertEqual(TagType.PLACE.rank, 10)
        self.assertEqual(TagType.ENTITY.rank, 1)
        self.assertTrue(TagType.PERSON.outranks(TagType.OBJECT))
        self.assertFalse(TagType.RELATION.outranks(TagType.TIME))

    def test_every_type_has_a_distinct_rank(self):
        self.assertEqual(sorted(t.rank for t in TagType), list(range(1, len(TagType) + 1)))

    def test_normalize_key(self):
        self.assertEqual(normalize_key("  Café   Nero's! "), "café neros")
        self.assertEqual(normalize_key(""), "")

    def test_dedupe_mentions_keeps_first(self):
        mentions = [
            EntityMention("a", TagType.OBJECT, "a"),
            EntityMention("A", TagType.PLACE, "a"),
            EntityMention("", TagType.PLACE, ""),
        ]
        self.assertEqual([m.type for m in dedupe_mentions(mentions)], [TagType.OBJECT])


if __name__ == '__main__':
    unittest.main()
