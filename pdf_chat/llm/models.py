# pdf_chat/llm/models.py
"""
Statically known chat models.

Only identifiers listed here can be requested through POST /chat;
anything else is rejected before a stream is opened.
"""

from typing import Dict

AVAILABLE_MODELS: Dict[str, Dict[str, str]] = {
    "gpt-4o": {
        "name": "GPT-4o",
        "provider": "openai",
        "cost": "paid",
        "description": "Most capable model",
    },
    "deepseek/deepseek-r1-0528:free": {
        "name": "DeepSeek R1",
        "provider": "deepseek",
        "cost": "free",
        "description": "DeepSeek R1 Reasoning Model",
    },
    "anthropic/claude-3.5-sonnet": {
        "name": "Claude 3.5 Sonnet",
        "provider": "anthropic",
        "cost": "paid",
        "description": "Fast and capable",
    },
    "meta-llama/llama-3.1-8b-instruct:free": {
        "name": "Llama 3.1 8B",
        "provider": "meta",
        "cost": "free",
        "description": "Llama model",
    },
}

DEFAULT_MODEL = "deepseek/deepseek-r1-0528:free"
