import os
from typing import List

import openai
from openai import OpenAI

from fieldnotes.core.errors import DependencyUnavailable
from fieldnotes.core.interfaces.ports import IEmbeddingProvider
from fieldnotes.infrastructure.llm.openai_provider import translate_openai_error

DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    def __init__(self, api_key: str = None, model_name: str = "text-embedding-3-small"):
        self.model_name = model_name
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")

        if not self.api_key or not self.api_key.strip():
            raise ValueError("OpenAI API Key is required. Set OPENAI_API_KEY env var.")

        self.client = OpenAI(api_key=self.api_key)
        self._dimension = DIMENSIONS.get(model_name)

    def embed(self, text: str) -> List[float]:
        try:
            response = self.client.embeddings.create(model=self.model_name, input=text)
        except openai.OpenAIError as e:
            raise translate_openai_error(e, "embedding") from e

        if not response.data or not response.data[0].embedding:
            raise DependencyUnavailable(
                "OpenAI returned an invalid embedding response", DependencyUnavailable.INVALID_RESPONSE
            )
        embedding = list(response.data[0].embedding)
        self._dimension = len(embedding)
        return embedding

    def get_dimension(self) -> int:
        if self._dimension is None:
            self._dimension = len(self.embed("dimension probe"))
        return self._dimension
