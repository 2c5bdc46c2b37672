# pdf_chat/memory/embedder.py

"""
Embedding wrapper with batching.

Architecture contract:
chunker → embedder → vector_store

Guarantees:
• Always returns numpy float32 array
• Always normalized (cosine-ready)
• Batched requests to stay under provider input limits
"""

import logging
from typing import List, Optional

import numpy as np
from openai import AsyncOpenAI

from pdf_chat.config import (
    EMBED_BATCH_SIZE,
    EMBEDDING_DIMENSIONS,
    EMBEDDING_MODEL,
    OPENAI_API_KEY,
)

logger = logging.getLogger(__name__)


class Embedder:
    """
    Async OpenAI embedding generator.

    The client can be injected; otherwise one is created from
    OPENAI_API_KEY when the first batch is embedded.
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: str = EMBEDDING_MODEL,
        batch_size: int = EMBED_BATCH_SIZE,
    ):

        if model not in EMBEDDING_DIMENSIONS:
            raise ValueError(f"Unsupported embedding model: {model}")

        self._client = client
        self._model = model
        self._dimension = EMBEDDING_DIMENSIONS[model]
        self._batch_size = batch_size

        logger.info(
            "Embedding model initialized",
            extra={"model": model, "dimension": self._dimension},
        )

    # ============================================================
    # PUBLIC API
    # ============================================================

    async def embed(self, texts: List[str]) -> np.ndarray:
        """Embed `texts` in order; shape is (len(texts), dimension)."""

        if not texts:
            return np.empty((0, self._dimension), dtype="float32")

        batches = []

        for start in range(0, len(texts), self._batch_size):

            batch = texts[start:start + self._batch_size]

            response = await self._openai().embeddings.create(
                model=self._model,
                input=batch,
            )

            batches.append(
                np.array(
                    [item.embedding for item in response.data],
                    dtype="float32",
                )
            )

        embeddings = normalize(np.vstack(batches))

        logger.debug(
            "Embedding completed",
            extra={"texts": len(texts), "shape": embeddings.shape},
        )

        return embeddings

    async def embed_query(self, text: str) -> np.ndarray:

        return (await self.embed([text]))[0]

    # ============================================================
    # ACCESSORS
    # ============================================================

    @property
    def model(self) -> str:
        return self._model

    def _openai(self) -> AsyncOpenAI:

        # Built on first use so a missing key fails requests, not startup
        if self._client is None:
            self._client = AsyncOpenAI(api_key=OPENAI_API_KEY)

        return self._client

    def get_dimension(self) -> int:
        return self._dimension


def normalize(vectors: np.ndarray) -> np.ndarray:

    norms = np.linalg.norm(vectors, axis=1, keepdims=True)

    return vectors / np.clip(norms, 1e-10, None)
