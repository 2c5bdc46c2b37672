import logging
import uuid
from typing import List, Sequence

from qdrant_client.http.models import PointStruct

from pdf_chat.memory.embedder import Embedder
from pdf_chat.memory.qdrant_client import QdrantVectorDB
from pdf_chat.models import DocumentChunk, RetrievedChunk

logger = logging.getLogger(__name__)

UPSERT_BATCH_SIZE = 256


class VectorStore:
    """
    Embedding + similarity-search adapter over one Qdrant collection.

    Every stored chunk gets a fresh random point id, so storing the same
    document twice keeps two independent copies.
    """

    def __init__(self, embedder: Embedder, qdrant: QdrantVectorDB):

        if embedder.get_dimension() <= 0:
            raise ValueError("Embedding dimension must be positive")

        self._embedder = embedder
        self._qdrant = qdrant

    @property
    def collection(self) -> str:
        return self._qdrant.collection

    async def add_documents(self, chunks: Sequence[DocumentChunk]) -> int:
        """
        Embed and upsert `chunks`; returns the number stored.

        Batches are written in order. A failure part-way leaves earlier
        batches in place.
        """

        if not chunks:
            return 0

        embeddings = await self._embedder.embed([c.text for c in chunks])

        points = [
            PointStruct(
                id=str(uuid.uuid4()),
                vector=vector.tolist(),
                payload={
                    "text": chunk.text,
                    "metadata": dict(chunk.metadata),
                },
            )
            for chunk, vector in zip(chunks, embeddings)
        ]

        for start in range(0, len(points), UPSERT_BATCH_SIZE):

            await self._qdrant.client.upsert(
                collection_name=self._qdrant.collection,
                points=points[start:start + UPSERT_BATCH_SIZE],
            )

        logger.info(
            "Chunks stored",
            extra={
                "collection": self._qdrant.collection,
                "chunks": len(points),
            },
        )

        return len(points)

    async def similarity_search(
        self,
        query: str,
        k: int,
        score_threshold: float,
    ) -> List[RetrievedChunk]:
        """Top-k chunks whose cosine similarity is at least `score_threshold`."""

        vector = await self._embedder.embed_query(query)

        response = await self._qdrant.client.query_points(
            collection_name=self._qdrant.collection,
            query=vector.tolist(),
            limit=k,
            score_threshold=score_threshold,
            with_payload=True,
        )

        results = []

        for point in response.points:

            payload = point.payload or {}

            text = payload.get("text")

            if text is None:
                continue

            results.append(
                RetrievedChunk(
                    text=text,
                    score=float(point.score),
                    metadata=payload.get("metadata") or {},
                )
            )

        return results
