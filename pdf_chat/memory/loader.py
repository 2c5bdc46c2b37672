# pdf_chat/memory/loader.py

"""
PDF loader for the ingestion pipeline.

Architecture contract:
loader → chunker → embedder → vector_store

Produces one entry per page, in document order. Pages without any
extractable text are kept (as empty strings) so page numbers stay
aligned with the source file; the chunker skips them.
"""

import logging
import os
from dataclasses import dataclass
from typing import List

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from pdf_chat.errors import LoadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PdfPage:
    text: str
    page_number: int
    total_pages: int
    source: str


def load_pdf_pages(file_path: str) -> List[PdfPage]:
    """
    Read every page of the PDF at `file_path`.

    Raises LoadError if the file is missing, unreadable or not a PDF.
    """

    if not os.path.isfile(file_path):
        raise LoadError(f"PDF not found: {file_path}")

    try:

        reader = PdfReader(file_path)

        total = len(reader.pages)

        pages = [
            PdfPage(
                text=page.extract_text() or "",
                page_number=index + 1,
                total_pages=total,
                source=file_path,
            )
            for index, page in enumerate(reader.pages)
        ]

    except (OSError, PyPdfError) as e:

        raise LoadError(f"Could not read PDF {file_path}: {e}") from e

    logger.info(
        "PDF loaded",
        extra={
            "source": file_path,
            "pages": total,
            "characters": sum(len(p.text) for p in pages),
        },
    )

    return pages
