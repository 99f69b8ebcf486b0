"""
Embedding service using OpenAI text-embedding-3-large.

Inputs are whitespace-normalized and truncated to the model token limit.
"""
import logging

from openai import OpenAI

from src.shared.tokens import prepare_embedding_input

log = logging.getLogger(__name__)


class EmbeddingService:
    """Generates embeddings for solutions, articles and search queries."""

    MODEL = "text-embedding-3-large"

    def __init__(self, api_key: str | None = None, model: str | None = None):
        self.model = model or self.MODEL
        self.client = OpenAI(api_key=api_key) if api_key else None

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    def embed(self, text: str) -> list[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Input text

        Returns:
            Embedding vector, or [] when the service is not configured or text is blank
        """
        if not self.is_configured or not text or not text.strip():
            return []

        response = self.client.embeddings.create(
            model=self.model,
            input=prepare_embedding_input(text),
        )
        return response.data[0].embedding

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embeddings for multiple texts.

        Args:
            texts: List of input texts

        Returns:
            List of embedding vectors in input order; blank texts map to []
        """
        if not self.is_configured or not texts:
            return [[] for _ in texts]

        indexed = [(i, prepare_embedding_input(t)) for i, t in enumerate(texts) if t and t.strip()]
        result: list[list[float]] = [[] for _ in texts]
        if not indexed:
            return result

        response = self.client.embeddings.create(
            model=self.model,
            input=[t for _, t in indexed],
        )
        for (i, _), item in zip(indexed, response.data):
            result[i] = item.embedding
        log.debug("Embedded batch of %d texts", len(indexed))
        return result
