import os
import tempfile
import unittest
from unittest.mock import MagicMock

import numpy as np

from fieldnotes.core.domain.note import Note
from fieldnotes.core.services.embedding_index import EmbeddingIndex, cosine_similarity
from fieldnotes.core.services.similarity_cache import SimilarityCache
from fieldnotes.infrastructure.storage.sqlite_store import SQLiteDatabase, SQLiteNoteRepository


def make_note(note_id, embedding):
    return Note(id=note_id, text=f"note {note_id}", created_at="", updated_at="", embedding=embedding)


class TestCosineSimilarity(unittest.TestCase):
    def test_identical_and_orthogonal(self):
        self.assertAlmostEqual(cosine_similarity([1.0, 2.0], [2.0, 4.0]), 1.0, places=5)
        self.assertAlmostEqual(cosine_similarity([1.0, 0.0], [0.0, 3.0]), 0.0, places=5)

    def test_zero_magnitude_is_invalid(self):
        with self.assertRaises(ValueError):
            cosine_similarity([0.0, 0.0], [1.0, 0.0])

    def test_shape_mismatch_is_invalid(self):
        with self.assertRaises(ValueError):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


class TestEmbeddingIndexBatching(unittest.TestCase):
    def setUp(self):
        self.repo = MagicMock()
        self.index = EmbeddingIndex(self.repo, cache=SimilarityCache(capacity=20))

    def test_null_vector_uses_recent_notes(self):
        recent = [make_note(3, None), make_note(2, None)]
        self.repo.list_notes.return_value = recent

        self.assertEqual(self.index.find_similar(None, 2), recent)
        self.repo.list_notes.assert_called_once_with(limit=2)
        self.repo.list_embedded.assert_not_called()

    def test_early_termination_on_confident_matches(self):
        self.repo.list_embedded.return_value = [make_note(i, [1.0, 0.01 * i]) for i in range(25)]

        results = self.index.find_similar([1.0, 0.0], 3)

        self.assertEqual([n.id for n in results], [0, 1, 2])
        self.assertEqual(self.repo.list_embedded.call_count, 1)

    def test_stops_after_max_batches(self):
        self.repo.list_embedded.return_value = [make_note(i, [0.1, 1.0]) for i in range(25)]

        results = self.index.find_similar([1.0, 0.0], 5)

        self.assertEqual(len(results), 5)
        self.assertEqual(self.repo.list_embedded.call_count, 10)
        offsets = [c.kwargs["offset"] for c in self.repo.list_embedded.call_args_list]
        self.assertEqual(offsets, [i * 25 for i in range(10)])

    def test_short_batch_ends_scan(self):
        self.repo.list_embedded.return_value = [make_note(1, [0.2, 1.0])]
        self.index.find_similar([1.0, 0.0], 5)
        self.assertEqual(self.repo.list_embedded.call_count, 1)

    def test_malformed_embeddings_are_skipped(self):
        self.repo.list_embedded.return_value = [
            make_note(1, [1.0, 0.0, 0.0]),
            make_note(2, [0.0, 0.0]),
            make_note(3, None),
            make_note(4, [0.6, 0.8]),
        ]
        results = self.index.find_similar([1.0, 0.0], 5)
        self.assertEqual([n.id for n in results], [4])

    def test_nothing_usable_falls_back_to_recent(self):
        self.repo.list_embedded.return_value = [make_note(1, [0.0, 0.0])]
        self.repo.list_notes.return_value = [make_note(9, None)]

        results = self.index.find_similar([1.0, 0.0], 5)

        self.assertEqual([n.id for n in results], [9])
        self.assertEqual(len(self.index.cache), 0)

    def test_batch_read_error_does_not_abort_scan(self):
        self.repo.list_embedded.side_effect = [RuntimeError("disk"), [make_note(5, [1.0, 0.0])]]
        results = self.index.find_similar([1.0, 0.0], 5)
        self.assertEqual([n.id for n in results], [5])

    def test_results_are_cached_until_embeddings_change(self):
        self.repo.list_embedded.return_value = [make_note(1, [1.0, 0.0])]

        first = self.index.find_similar([1.0, 0.0], 5)
        second = self.index.find_similar([1.0, 0.0], 5)
        self.assertEqual(first, second)
        self.assertEqual(self.repo.list_embedded.call_count, 1)

        self.index.store_embedding(1, [0.0, 1.0])
        self.repo.update_embedding.assert_called_once_with(1, [0.0, 1.0])
        self.assertEqual(len(self.index.cache), 0)

        self.index.find_similar([1.0, 0.0], 5)
        self.assertEqual(self.repo.list_embedded.call_count, 2)

    def test_limit_is_part_of_cache_key(self):
        self.repo.list_embedded.return_value = [make_note(1, [1.0, 0.0]), make_note(2, [0.9, 0.1])]
        self.index.find_similar([1.0, 0.0], 1)
        self.index.find_similar([1.0, 0.0], 2)
        self.assertEqual(self.repo.list_embedded.call_count, 2)


class TestEmbeddingIndexWithStore(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.notes = SQLiteNoteRepository(SQLiteDatabase(os.path.join(self.tmp.name, "test.db")))
        self.index = EmbeddingIndex(self.notes)

    def tearDown(self):
        self.tmp.cleanup()

    def test_results_sorted_by_similarity(self):
        rng = np.random.default_rng(42)
        for i in range(60):
            self.notes.create_note(f"note {i}", rng.normal(size=8).tolist())
        query = rng.normal(size=8).tolist()

        results = self.index.find_similar(query, 7)

        self.assertLessEqual(len(results), 7)
        scores = [cosine_similarity(query, n.embedding) for n in results]
        self.assertEqual(scores, sorted(scores, reverse=True))

    def test_null_vector_returns_most_recent(self):
        ids = [self.notes.create_note(f"note {i}", [1.0, float(i)]).id for i in range(6)]
        self.notes.create_note("no embedding")

        results = self.index.find_similar(None, 3)

        self.assertEqual(len(results), 3)
        self.assertEqual([n.id for n in results][1:], [ids[5], ids[4]])


if __name__ == '__main__':
    unittest.main()
