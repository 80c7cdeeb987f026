"""
Embedder
Text vectorisation for relevance scoring and the retrieval index
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Union
import logging

import numpy as np

from utils.exceptions import EmbeddingError


logger = logging.getLogger(__name__)


def _ensure_text_list(texts: Union[str, Sequence[str]]) -> List[str]:
    return [texts] if isinstance(texts, str) else list(texts)


def _batched(items: List[str], batch_size: int):
    for i in range(0, len(items), batch_size):
        yield items[i : i + batch_size]


def cosine_similarity(vector_a: Sequence[float], vector_b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Returns a value in [-1.0, 1.0]; 0.0 when either vector has zero norm or
    the dimensions disagree.
    """
    a = np.asarray(vector_a, dtype=np.float64).ravel()
    b = np.asarray(vector_b, dtype=np.float64).ravel()
    if a.size == 0 or a.shape != b.shape:
        return 0.0
    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))


class BaseEmbedder(ABC):
    """
    Embedder base class
    """

    def __init__(self, model_name: str):
        self.model_name = model_name
        self._model = None

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Vector dimension"""

    @abstractmethod
    def embed(self, texts: Union[str, Sequence[str]]) -> np.ndarray:
        """
        Embed one text or a list of texts.

        Args:
            texts: a single text or a list of texts

        Returns:
            Array of shape (n_texts, dimension)
        """

    def embed_query(self, query: str) -> np.ndarray:
        """Embed a single query string."""
        return self.embed(query)[0]


class SentenceTransformerEmbedder(BaseEmbedder):
    """
    Local SentenceTransformers embedder
    """

    def __init__(
        self,
        model_name: str = "all-MiniLM-L6-v2",
        device: Optional[str] = None,
        normalize: bool = True,
    ):
        super().__init__(model_name)
        self.device = device
        self.normalize = normalize
        self._dimension = None

    def _load_model(self):
        """Load the model on first use"""
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer

                logger.info(f"Loading SentenceTransformer model: {self.model_name}")
                self._model = SentenceTransformer(self.model_name, device=self.device)
                self._dimension = self._model.get_sentence_embedding_dimension()
            except ImportError:
                raise EmbeddingError(
                    "Please install sentence-transformers: pip install 'news-radar[local]'",
                    model=self.model_name,
                )
            except Exception as exc:
                raise EmbeddingError(f"Failed to load model: {exc}", model=self.model_name)

        return self._model

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            self._load_model()
        return self._dimension

    def embed(self, texts: Union[str, Sequence[str]]) -> np.ndarray:
        model = self._load_model()
        text_list = _ensure_text_list(texts)

        try:
            embeddings = model.encode(
                text_list,
                normalize_embeddings=self.normalize,
                show_progress_bar=len(text_list) > 100,
            )
            return np.array(embeddings)
        except Exception as exc:
            raise EmbeddingError(f"Embedding failed: {exc}", model=self.model_name)


class OpenAIEmbedder(BaseEmbedder):
    """
    OpenAI Embeddings API
    """

    DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(
        self,
        model_name: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        batch_size: int = 100,
    ):
        super().__init__(model_name)
        self.api_key = api_key
        self.base_url = base_url
        self.batch_size = batch_size
        self._client = None

    def _get_client(self):
        if self._client is None:
            from openai import OpenAI

            kwargs = {}
            if self.api_key:
                kwargs["api_key"] = self.api_key
            if self.base_url:
                kwargs["base_url"] = self.base_url
            self._client = OpenAI(**kwargs)

        return self._client

    @property
    def dimension(self) -> int:
        return self.DIMENSIONS.get(self.model_name, 1536)

    def embed(self, texts: Union[str, Sequence[str]]) -> np.ndarray:
        client = self._get_client()
        text_list = _ensure_text_list(texts)
        all_embeddings: List[List[float]] = []

        for batch in _batched(text_list, self.batch_size):
            try:
                response = client.embeddings.create(input=batch, model=self.model_name)
                all_embeddings.extend([item.embedding for item in response.data])
            except Exception as exc:
                raise EmbeddingError(f"OpenAI API error: {exc}", model=self.model_name)

        return np.array(all_embeddings)


def get_embedder(
    provider: Optional[str] = None,
    model_name: Optional[str] = None,
    **kwargs,
) -> BaseEmbedder:
    """
    Build an embedder.

    Precedence: arguments > EMBEDDING_* settings > defaults.

    Args:
        provider: "openai" or "sentence_transformers"
        model_name: model override
        **kwargs: passed to the embedder constructor

    Example (.env):
        EMBEDDING_PROVIDER=openai
        EMBEDDING_MODEL_NAME=text-embedding-3-small
        EMBEDDING_OPENAI_API_KEY=sk-...
    """
    from config import get_embedding_settings

    settings = get_embedding_settings()
    provider_name = (provider or settings.provider or "openai").strip().lower()

    factory = {
        "sentence_transformers": (SentenceTransformerEmbedder, "all-MiniLM-L6-v2"),
        "openai": (OpenAIEmbedder, "text-embedding-3-small"),
    }

    if provider_name not in factory:
        supported = ", ".join(factory.keys())
        raise ValueError(f"Unknown provider: {provider_name}. Supported: {supported}")

    if provider_name == "openai" and "api_key" not in kwargs and settings.openai_api_key:
        kwargs["api_key"] = settings.openai_api_key

    cls, default_model_name = factory[provider_name]
    return cls(model_name or settings.model_name or default_model_name, **kwargs)
