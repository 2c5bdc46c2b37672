# pdf_chat/prompts/prompt_builder.py

from typing import Dict, List, Sequence

from pdf_chat.config import HISTORY_CONTEXT_MESSAGES
from pdf_chat.models import ChatMessage, RetrievedChunk
from pdf_chat.prompts.system_prompts import (
    ANSWER_INSTRUCTIONS,
    ASSISTANT_PREAMBLE,
    CONTEXT_HEADER,
    NO_CONTEXT_NOTICE,
)


def build_system_prompt(context_chunks: Sequence[RetrievedChunk]) -> str:
    """
    Grounded system instruction.

    Embeds the retrieved chunk texts when there are any, otherwise says
    plainly that no document context was found.
    """

    if context_chunks:
        context = "\n\n".join(chunk.text for chunk in context_chunks)
        context_text = f"{CONTEXT_HEADER}\n{context}"
    else:
        context_text = NO_CONTEXT_NOTICE

    return f"{ASSISTANT_PREAMBLE} {context_text}\n{ANSWER_INSTRUCTIONS}"


def build_messages(
    system_prompt: str,
    history: Sequence[ChatMessage],
    message: str,
    history_limit: int = HISTORY_CONTEXT_MESSAGES,
) -> List[Dict[str, str]]:
    """
    Order is fixed: system instruction, the most recent `history_limit`
    turns, then the new user message last.
    """

    recent = list(history)[-history_limit:] if history_limit > 0 else []

    return [
        {"role": "system", "content": system_prompt},
        *({"role": turn.role, "content": turn.content} for turn in recent),
        {"role": "user", "content": message},
    ]
