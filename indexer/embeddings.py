# pagewise Embeddings Module
# Turns chunk and query text into unit-length vectors

import logging
from typing import List, Optional, Sequence

import numpy as np
import openai

logger = logging.getLogger(__name__)


class EmbeddingError(RuntimeError):
    """The embedding backend failed or returned an unusable response."""


class EmbeddingConfigError(EmbeddingError):
    """The embedding backend is not configured (e.g. missing API key)."""


def normalize(vector: Sequence[float]) -> np.ndarray:
    """Scale a vector to unit length; a zero vector stays (near) zero."""
    v = np.asarray(vector, dtype=np.float32)
    norm = float(np.sqrt(max(1e-12, float(np.dot(v, v)))))
    return v / norm


def cosine(a: Optional[np.ndarray], b: Optional[np.ndarray]) -> float:
    """Dot product of two unit vectors over their common prefix.

    Missing vectors score 0.
    """
    if a is None or b is None:
        return 0.0
    n = min(a.shape[0], b.shape[0])
    if n == 0:
        return 0.0
    return float(np.dot(a[:n], b[:n]))


class EmbeddingClient:
    """Base class for text embedding backends."""

    model_name: str = ""

    def embed(self, text: str) -> np.ndarray:
        raise NotImplementedError

    def embed_many(self, texts: List[str]) -> List[np.ndarray]:
        """Embed several texts; backends may override with a batch call."""
        return [self.embed(text) for text in texts]


class OpenAIEmbeddingClient(EmbeddingClient):
    """Embeddings from an OpenAI-compatible ``/embeddings`` endpoint."""

    BATCH_LIMIT = 100

    def __init__(self, api_key: str, api_base: str = "https://api.openai.com/v1",
                 model_name: str = "text-embedding-3-small", timeout: float = 45.0,
                 client: Optional[openai.OpenAI] = None):
        self.api_key = (api_key or "").strip()
        self.api_base = (api_base or "").rstrip("/")
        self.model_name = model_name
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> openai.OpenAI:
        if not self.api_key:
            raise EmbeddingConfigError("Embedding API key is missing")
        if self._client is None:
            self._client = openai.OpenAI(
                api_key=self.api_key,
                base_url=self.api_base or None,
                timeout=self.timeout,
            )
        return self._client

    def embed(self, text: str) -> np.ndarray:
        return self.embed_many([text])[0]

    def embed_many(self, texts: List[str]) -> List[np.ndarray]:
        client = self.client
        vectors: List[np.ndarray] = []
        for start in range(0, len(texts), self.BATCH_LIMIT):
            batch = texts[start:start + self.BATCH_LIMIT]
            try:
                response = client.embeddings.create(model=self.model_name, input=batch)
            except openai.OpenAIError as e:
                logger.error(f"Embedding request failed: {e}")
                raise EmbeddingError(str(e)) from e

            try:
                data = sorted(response.data, key=lambda item: item.index)
                embeddings = [item.embedding for item in data]
            except (AttributeError, TypeError) as e:
                raise EmbeddingError("Malformed embedding response") from e

            if len(embeddings) != len(batch) or any(not emb for emb in embeddings):
                raise EmbeddingError("Malformed embedding response: missing vectors")
            vectors.extend(normalize(emb) for emb in embeddings)
        return vectors


class LocalEmbeddingClient(EmbeddingClient):
    """Embeddings from a local sentence-transformers model."""

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        # Optional dependency: installed with the ``local`` extra.
        from sentence_transformers import SentenceTransformer

        self.model_name = model_name
        try:
            logger.info(f"Loading embedding model: {model_name}")
            self.model = SentenceTransformer(model_name)
            logger.info(f"Model loaded successfully. Embedding dimension: {self.model.get_sentence_embedding_dimension()}")
        except Exception as e:
            logger.error(f"Failed to load embedding model: {e}")
            raise EmbeddingConfigError(str(e)) from e

    def embed(self, text: str) -> np.ndarray:
        return self.embed_many([text])[0]

    def embed_many(self, texts: List[str]) -> List[np.ndarray]:
        cleaned = [text.strip() if text else "" for text in texts]
        try:
            embeddings = self.model.encode(cleaned, convert_to_numpy=True, show_progress_bar=False)
        except Exception as e:
            raise EmbeddingError(str(e)) from e
        return [normalize(emb) for emb in embeddings]


def create_embedding_client(settings) -> EmbeddingClient:
    """Build the embedding backend selected in settings."""
    provider = (settings.embedding_provider or "openai").lower()
    if provider == "local":
        return LocalEmbeddingClient(settings.embed_model)
    if provider == "openai":
        return OpenAIEmbeddingClient(
            api_key=settings.api_key,
            api_base=settings.api_base,
            model_name=settings.embed_model,
            timeout=settings.embed_timeout,
        )
    raise EmbeddingConfigError(f"Unknown embedding provider: {settings.embedding_provider}")
