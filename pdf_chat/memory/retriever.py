# pdf_chat/memory/retriever.py
import logging
from typing import List

from pdf_chat.config import SIMILARITY_THRESHOLD, TOP_K
from pdf_chat.models import RetrievedChunk

logger = logging.getLogger(__name__)


async def retrieve(
    question: str,
    store,
    top_k: int = TOP_K,
    score_threshold: float = SIMILARITY_THRESHOLD,
) -> List[RetrievedChunk]:
    """
    Retrieve the most similar chunks for a question, failing open.

    Args:
        question: Sanitized user message
        store: VectorStore (anything with `similarity_search`)
        top_k: Maximum number of chunks
        score_threshold: Minimum similarity to keep a chunk

    Returns:
        Ranked chunks; an empty list if the store is unreachable or the
        query fails.
    """
    try:
        results = await store.similarity_search(question, top_k, score_threshold)
    except Exception as e:
        logger.error(
            "RAG retrieval error",
            extra={"error": str(e), "error_type": type(e).__name__},
            exc_info=True,
        )
        return []

    logger.info(
        "Retrieved relevant documents",
        extra={
            "documents": len(results),
            "top_score": results[0].score if results else None,
        },
    )

    return results
