import unittest
from unittest.mock import MagicMock, patch

import numpy as np

from fieldnotes.core.errors import DependencyUnavailable
from fieldnotes.infrastructure.embedding.local_embedder import LocalEmbeddingProvider
from fieldnotes.infrastructure.embedding.openai_embedder import OpenAIEmbeddingProvider


@patch("fieldnotes.infrastructure.embedding.local_embedder.SentenceTransformer")
class TestLocalEmbeddingProvider(unittest.TestCase):
    def test_embed_returns_plain_list(self, mock_model_cls):
        mock_model_cls.return_value.encode.return_value = np.array([0.6, 0.8], dtype=np.float32)
        provider = LocalEmbeddingProvider("test-model")

        embedding = provider.embed("Slugs by the bench")

        self.assertIsInstance(embedding, list)
        self.assertAlmostEqual(embedding[1], 0.8, places=5)
        mock_model_cls.assert_called_once_with("test-model")

    def test_encode_failure_is_dependency_error(self, mock_model_cls):
        mock_model_cls.return_value.encode.side_effect = RuntimeError("CUDA out of memory")
        provider = LocalEmbeddingProvider()

        with self.assertRaises(DependencyUnavailable):
            provider.embed("text")

    def test_empty_text_rejected(self, mock_model_cls):
        with self.assertRaises(ValueError):
            LocalEmbeddingProvider().embed("  ")


class TestOpenAIEmbeddingProvider(unittest.TestCase):
    def setUp(self):
        self.provider = OpenAIEmbeddingProvider(api_key="sk-test")
        self.provider.client = MagicMock()

    def test_embed(self):
        self.provider.client.embeddings.create.return_value.data = [MagicMock(embedding=[0.1, 0.2, 0.3])]

        self.assertEqual(self.provider.embed("hello"), [0.1, 0.2, 0.3])
        self.assertEqual(self.provider.get_dimension(), 3)

    def test_empty_response_is_invalid(self):
        self.provider.client.embeddings.create.return_value.data = []

        with self.assertRaises(DependencyUnavailable) as ctx:
            self.provider.embed("hello")
        self.assertEqual(ctx.exception.kind, DependencyUnavailable.INVALID_RESPONSE)

    def test_known_model_dimension(self):
        self.assertEqual(self.provider.get_dimension(), 1536)
        self.provider.client.embeddings.create.assert_not_called()


if __name__ == '__main__':
    unittest.main()
