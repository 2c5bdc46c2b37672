# pdf_chat/llm/client.py
from typing import AsyncIterator, Dict, List

from openai import AsyncOpenAI, OpenAIError

from pdf_chat.config import LLM_MAX_TOKENS, LLM_TEMPERATURE
from pdf_chat.errors import GenerationError


class LLMClient:
    """
    Streaming chat-completion client for one OpenAI-compatible backend.

    Used for OpenAI itself and for OpenRouter, which speaks the same API.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        provider: str,
        max_tokens: int = LLM_MAX_TOKENS,
        temperature: float = LLM_TEMPERATURE,
    ):
        self.client = client
        self.provider = provider
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def stream(
        self,
        model: str,
        messages: List[Dict[str, str]],
    ) -> AsyncIterator[str]:
        """
        Yield content fragments as they arrive.

        Chunks without text (role headers, finish markers) are skipped.
        Provider errors are raised as GenerationError.
        """

        try:
            completion = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                stream=True,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except OpenAIError as e:
            raise GenerationError(f"{self.provider} request failed: {e}", model=model) from e

        try:
            async for chunk in completion:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        except OpenAIError as e:
            raise GenerationError(f"{self.provider} stream failed: {e}", model=model) from e
        finally:
            await completion.close()
