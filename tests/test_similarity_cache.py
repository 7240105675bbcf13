import unittest

from fieldnotes.core.domain.note import Note
from fieldnotes.core.services.similarity_cache import SimilarityCache


class TestSimilarityCache(unittest.TestCase):
    def setUp(self):
        self.cache = SimilarityCache(capacity=20)
        self.note = Note(id=1, text="x", created_at="", updated_at="")

    def test_21st_entry_evicts_first_inserted(self):
        keys = [self.cache.fingerprint([float(i), 1.0], 5) for i in range(21)]
        for key in keys[:20]:
            self.cache.put(key, [self.note])
        # Reading the oldest entry does not protect it
        self.assertIsNotNone(self.cache.get(keys[0]))

        self.cache.put(keys[20], [self.note])

        self.assertEqual(len(self.cache), 20)
        self.assertNotIn(keys[0], self.cache)
        for key in keys[1:]:
            self.assertIn(key, self.cache)

    def test_overwrite_does_not_evict(self):
        keys = [self.cache.fingerprint([float(i)], 5) for i in range(20)]
        for key in keys:
            self.cache.put(key, [])
        self.cache.put(keys[3], [self.note])

        self.assertEqual(len(self.cache), 20)
        self.assertEqual(self.cache.get(keys[3]), [self.note])

    def test_clear(self):
        key = self.cache.fingerprint([1.0], 5)
        self.cache.put(key, [self.note])
        self.cache.clear()
        self.assertIsNone(self.cache.get(key))

    def test_fingerprint_uses_prefix_and_limit(self):
        cache = SimilarityCache(prefix_length=2)
        self.assertEqual(cache.fingerprint([1.0, 2.0, 3.0], 5), cache.fingerprint([1.0, 2.0, 9.0], 5))
        self.assertNotEqual(cache.fingerprint([1.0, 2.0], 5), cache.fingerprint([1.0, 2.0], 6))
        self.assertNotEqual(cache.fingerprint([1.0, 2.0], 5), cache.fingerprint([1.0, 2.5], 5))

    def test_capacity_must_be_positive(self):
        with self.assertRaises(ValueError):
            SimilarityCache(capacity=0)


if __name__ == '__main__':
    unittest.main()
