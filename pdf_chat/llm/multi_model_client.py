# pdf_chat/llm/multi_model_client.py

import logging
from typing import AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI

from pdf_chat.config import (
    APP_TITLE,
    OPENAI_API_KEY,
    OPENROUTER_API_KEY,
    OPENROUTER_BASE_URL,
    SITE_URL,
)
from pdf_chat.llm.client import LLMClient

logger = logging.getLogger(__name__)


class MultiModelLLMClient:
    """
    Routes a streaming completion to the right backend.

    Routing:

    1. Selectable models → OpenRouter (one API for every provider)
    2. direct=True (legacy fixed-model endpoint) → OpenAI

    Backends are built lazily so a missing key only fails the requests
    that need that backend.
    """

    def __init__(
        self,
        openai_client: Optional[LLMClient] = None,
        openrouter_client: Optional[LLMClient] = None,
    ):

        self._openai = openai_client
        self._openrouter = openrouter_client

    # ============================================================
    # PUBLIC API
    # ============================================================

    def stream(
        self,
        model: str,
        messages: List[Dict[str, str]],
        direct: bool = False,
    ) -> AsyncIterator[str]:

        backend = self._openai_backend() if direct else self._openrouter_backend()

        logger.info(
            "LLM request started",
            extra={
                "model": model,
                "provider": backend.provider,
                "messages": len(messages),
            },
        )

        return backend.stream(model, messages)

    # ============================================================
    # BACKENDS
    # ============================================================

    def _openai_backend(self) -> LLMClient:

        if self._openai is None:

            self._openai = LLMClient(
                AsyncOpenAI(api_key=OPENAI_API_KEY),
                provider="openai",
            )

        return self._openai

    def _openrouter_backend(self) -> LLMClient:

        if self._openrouter is None:

            self._openrouter = LLMClient(
                AsyncOpenAI(
                    base_url=OPENROUTER_BASE_URL,
                    api_key=OPENROUTER_API_KEY,
                    default_headers={
                        "HTTP-Referer": SITE_URL,
                        "X-Title": APP_TITLE,
                    },
                ),
                provider="openrouter",
            )

        return self._openrouter
