# pdf_chat/memory/chunker.py

import logging
import os
from typing import Iterable, List

from pdf_chat.config import CHUNK_OVERLAP, CHUNK_SIZE
from pdf_chat.memory.loader import PdfPage
from pdf_chat.models import DocumentChunk

logger = logging.getLogger(__name__)


def split_text(
    text: str,
    size: int = CHUNK_SIZE,
    overlap: int = CHUNK_OVERLAP,
) -> List[str]:
    """
    Fixed-window character splitter.

    Consecutive windows share exactly `overlap` characters, so
    chunks[0] + "".join(c[overlap:] for c in chunks[1:]) == text.
    A text of length L yields ceil((L - overlap) / (size - overlap))
    windows (at least one for non-empty text).
    """

    if size <= 0:
        raise ValueError(f"Invalid chunk size: {size}")

    if overlap < 0:
        raise ValueError(f"Invalid chunk overlap: {overlap}")

    if overlap >= size:
        raise ValueError(
            f"Overlap must be smaller than chunk size "
            f"(overlap={overlap}, size={size})"
        )

    if not text:
        return []

    step = size - overlap

    chunks = []

    start = 0

    while True:

        end = start + size

        chunks.append(text[start:end])

        if end >= len(text):
            break

        start += step

    return chunks


def split_pages(
    pages: Iterable[PdfPage],
    size: int = CHUNK_SIZE,
    overlap: int = CHUNK_OVERLAP,
) -> List[DocumentChunk]:
    """
    Split loaded pages into chunks, preserving page order.

    Each chunk remembers its originating file and page. Whitespace-only
    pages produce no chunks.
    """

    chunks: List[DocumentChunk] = []

    pages_seen = 0

    for page in pages:

        pages_seen += 1

        if not page.text.strip():
            continue

        for index, text in enumerate(split_text(page.text, size, overlap)):

            chunks.append(
                DocumentChunk(
                    text=text,
                    metadata={
                        "source": page.source,
                        "filename": os.path.basename(page.source),
                        "page": page.page_number,
                        "total_pages": page.total_pages,
                        "chunk_index": index,
                    },
                )
            )

    logger.info(
        "Chunking completed",
        extra={
            "pages": pages_seen,
            "chunk_size": size,
            "overlap": overlap,
            "chunks_created": len(chunks),
        },
    )

    return chunks
