import os
import tempfile
import unittest

from fieldnotes.core.domain.tag import TagType
from fieldnotes.core.errors import ConstraintRace, DependencyUnavailable, NotFound
from fieldnotes.infrastructure.storage.sqlite_store import (
    SQLiteDatabase,
    SQLiteNoteRepository,
    SQLiteTagRepository,
)


class TestSQLiteStore(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.db = SQLiteDatabase(os.path.join(self.tmp.name, "test.db"))
        self.notes = SQLiteNoteRepository(self.db)
        self.tags = SQLiteTagRepository(self.db)

    def tearDown(self):
        self.tmp.cleanup()

    def test_embedding_round_trips_as_float32(self):
        note = self.notes.create_note("hello", [0.5, 0.25, -1.0])
        self.assertEqual(self.notes.get_note(note.id).embedding, [0.5, 0.25, -1.0])

    def test_note_without_embedding(self):
        note = self.notes.create_note("plain")
        self.assertIsNone(note.embedding)
        self.assertEqual([n.id for n in self.notes.list_missing_embeddings()], [note.id])
        self.assertEqual(self.notes.list_embedded(10), [])

    def test_undecodable_embedding_reads_as_missing(self):
        note = self.notes.create_note("corrupt")
        with self.db.connect() as conn:
            conn.execute("UPDATE notes SET embedding = ? WHERE id = ?", (b"\x00\x01\x02", note.id))

        self.assertIsNone(self.notes.get_note(note.id).embedding)
        self.assertEqual([n.id for n in self.notes.list_missing_embeddings()], [note.id])

        self.notes.update_embedding(note.id, [1.0, 0.0])
        self.assertEqual(self.notes.list_missing_embeddings(), [])

    def test_sql_errors_become_dependency_unavailable(self):
        with self.assertRaises(DependencyUnavailable):
            with self.db.connect() as conn:
                conn.execute("SELECT * FROM no_such_table")

    def test_unopenable_database(self):
        with self.assertRaises(DependencyUnavailable):
            SQLiteDatabase(os.path.join(self.tmp.name, "missing", "notes.db"))

    def test_list_notes_newest_first(self):
        ids = [self.notes.create_note(f"note {i}").id for i in range(4)]
        self.assertEqual([n.id for n in self.notes.list_notes(limit=3)], ids[::-1][:3])
        self.assertEqual([n.id for n in self.notes.list_notes(limit=3, offset=3)], [ids[0]])

    def test_update_text_changes_updated_at(self):
        note = self.notes.create_note("before")
        updated = self.notes.update_text(note.id, "after")
        self.assertEqual(updated.text, "after")
        self.assertEqual(updated.created_at, note.created_at)
        self.assertGreaterEqual(updated.updated_at, note.updated_at)

    def test_update_embedding_missing_note(self):
        with self.assertRaises(NotFound):
            self.notes.update_embedding(999, [1.0])

    def test_unique_key_and_type(self):
        self.tags.create_tag("Park", TagType.PLACE, "park")
        with self.assertRaises(ConstraintRace):
            self.tags.create_tag("park", TagType.PLACE, "park")

    def test_delete_note_cascades_note_tags(self):
        note = self.notes.create_note("x")
        tag = self.tags.create_tag("X", TagType.OBJECT, "x")
        self.tags.add_note_tag(note.id, tag.id, "3", {"unit": "kg"})
        self.assertEqual(self.tags.note_tag(note.id, tag.id), ("3", {"unit": "kg"}))

        self.assertTrue(self.notes.delete_note(note.id))

        self.assertIsNone(self.tags.note_tag(note.id, tag.id))
        self.assertEqual(self.tags.tag_counts()[0][1], 0)

    def test_delete_tag_cascades_note_tags(self):
        note = self.notes.create_note("x")
        tag = self.tags.create_tag("X", TagType.OBJECT, "x")
        self.tags.add_note_tag(note.id, tag.id)

        self.assertTrue(self.tags.delete_tag(tag.id))
        self.assertEqual(self.tags.tags_for_note(note.id), [])

    def test_add_note_tag_updates_payload(self):
        note = self.notes.create_note("x")
        tag = self.tags.create_tag("Coffee", TagType.QUANTITY, "coffee")
        self.tags.add_note_tag(note.id, tag.id, "2")
        self.tags.add_note_tag(note.id, tag.id, "3", {"unit": "cups"})
        self.assertEqual(self.tags.note_tag(note.id, tag.id), ("3", {"unit": "cups"}))

    def test_search_tags_is_case_insensitive_substring(self):
        self.tags.create_tag("Central Park", TagType.PLACE, "central park")
        self.tags.create_tag("Parker", TagType.PERSON, "parker")
        self.tags.create_tag("Beach", TagType.PLACE, "beach")
        self.tags.create_tag("100%", TagType.QUANTITY, "100")

        self.assertEqual([t.name for t in self.tags.search_tags("PARK")], ["Central Park", "Parker"])
        self.assertEqual([t.name for t in self.tags.search_tags("%")], ["100%"])

    def test_tag_counts_by_type(self):
        note = self.notes.create_note("x")
        place = self.tags.create_tag("Beach", TagType.PLACE, "beach")
        self.tags.create_tag("Sally", TagType.PERSON, "sally")
        self.tags.add_note_tag(note.id, place.id)

        counts = self.tags.tag_counts(TagType.PLACE)
        self.assertEqual([(t.name, c) for t, c in counts], [("Beach", 1)])


if __name__ == '__main__':
    unittest.main()
