import logging
from typing import List

from sentence_transformers import SentenceTransformer

from fieldnotes.core.errors import DependencyUnavailable
from fieldnotes.core.interfaces.ports import IEmbeddingProvider

logger = logging.getLogger(__name__)


class LocalEmbeddingProvider(IEmbeddingProvider):
    """Embeds notes in-process; the model is downloaded on first use."""

    def __init__(self, model_name: str = "BAAI/bge-m3"):
        self.model_name = model_name
        logger.info("Loading embedding model %s", model_name)
        self.model = SentenceTransformer(model_name)

    def embed(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")
        try:
            embedding = self.model.encode(text, normalize_embeddings=True)
        except RuntimeError as e:
            raise DependencyUnavailable(f"Local embedding failed: {e}") from e
        # float32 array -> list, stored back as float32 BLOB
        return embedding.tolist()

    def get_dimension(self) -> int:
        return self.model.get_sentence_embedding_dimension()
