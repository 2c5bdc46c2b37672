"""
Centralized prompt text.

Never hardcode prompts inside the workflow or the model client;
import them from here.
"""


ASSISTANT_PREAMBLE = "You are a helpful AI Assistant."


CONTEXT_HEADER = (
    "Answer the user query based on the following context from PDF documents:"
)


NO_CONTEXT_NOTICE = "No specific context available from PDF documents."


ANSWER_INSTRUCTIONS = """
Instructions:
- If the context doesn't contain relevant information, clearly state that
- Be concise and helpful
"""
