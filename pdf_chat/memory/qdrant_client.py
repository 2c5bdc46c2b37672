import logging
from typing import Optional

from qdrant_client import AsyncQdrantClient
from qdrant_client.http.models import Distance, VectorParams

from pdf_chat.config import (
    QDRANT_API_KEY,
    QDRANT_COLLECTION,
    QDRANT_URL,
)

logger = logging.getLogger(__name__)


class QdrantVectorDB:
    """
    Async Qdrant client wrapper bound to one named collection.

    Only provides the storage backend; chunk bookkeeping lives in
    VectorStore.
    """

    def __init__(
        self,
        dim: int,
        client: Optional[AsyncQdrantClient] = None,
        collection: str = QDRANT_COLLECTION,
    ):

        self._dim = dim
        self._collection = collection
        self.client = client or AsyncQdrantClient(
            url=QDRANT_URL,
            api_key=QDRANT_API_KEY,
            timeout=60,
        )

        logger.info(
            "Qdrant client initialized",
            extra={"collection": collection, "dimension": dim},
        )

    @property
    def collection(self) -> str:
        return self._collection

    async def collection_exists(self) -> bool:

        return await self.client.collection_exists(self._collection)

    async def ensure_collection(self):
        """
        Create the collection when it is missing.

        Deployments normally provision the collection out-of-band; this
        is only called when QDRANT_AUTO_CREATE_COLLECTION is set.
        """

        if await self.collection_exists():
            return

        await self.client.create_collection(
            collection_name=self._collection,
            vectors_config=VectorParams(
                size=self._dim,
                distance=Distance.COSINE,
            ),
        )

        logger.info(
            "Qdrant collection created",
            extra={"collection": self._collection},
        )

    async def close(self):

        await self.client.close()
