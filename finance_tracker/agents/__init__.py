"""
AI Agents Package

Gemini-backed agents for classification, document extraction and chat.
"""

from finance_tracker.agents.ai_agents import (
    ChatAnswer,
    ChatMessage,
    ClassificationAgent,
    ExtractionAgent,
    ExtractionResult,
    FinanceChatAgent,
    Suggestion,
    extract_json,
    load_image,
)

__all__ = [
    # Agents
    "ClassificationAgent",
    "ExtractionAgent",
    "FinanceChatAgent",
    # Results
    "ChatAnswer",
    "ChatMessage",
    "ExtractionResult",
    "Suggestion",
    # Helpers
    "extract_json",
    "load_image",
]
