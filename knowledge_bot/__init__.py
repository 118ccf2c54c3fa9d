"""
Knowledge Bot - Core Source Module

This module contains the core components:
- KnowledgeStore: Indexed text aggregated from the knowledge sources
- ConversationMemory: Short-lived last-turn memory per user/channel
- LLMService: Primary/fallback LLM providers (Ollama/OpenAI/Gemini/Mistral)
- extract_suggestions: Lenient parser for follow-up questions
- AnswerPipeline: Grounded answer + suggestions orchestration
- KnowledgeAgent: API interface for the chat transport
"""

from .knowledge_store import KnowledgeStore, IndexReport
from .memory import ConversationMemory, ConversationEntry, conversation_key
from .llm_service import LLMService, LLMResponse, ProviderOutcome, OutcomeKind
from .suggestions import extract_suggestions
from .answer_pipeline import AnswerPipeline, AnswerResult
from .agent import KnowledgeAgent, create_agent

__all__ = [
    # Knowledge
    "KnowledgeStore",
    "IndexReport",
    # Memory
    "ConversationMemory",
    "ConversationEntry",
    "conversation_key",
    # Providers
    "LLMService",
    "LLMResponse",
    "ProviderOutcome",
    "OutcomeKind",
    # Answering
    "extract_suggestions",
    "AnswerPipeline",
    "AnswerResult",
    "KnowledgeAgent",
    # Factory functions
    "create_agent",
]
