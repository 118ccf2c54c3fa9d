"""
Knowledge Agent Module

The interface the chat transport talks to. Wires together the knowledge
store, conversation memory, LLM service and answer pipeline.

API Contract:
    class KnowledgeAgent:
        def ask(self, question: str, user_id, channel_id) -> AnswerResult
        def reindex(self) -> str

Design Rationale:
- The transport never sees an exception from the core; it always gets
  something it can post back to the user
- All calls here are blocking; async callers should use run_in_executor
"""

import logging
from typing import Any, Dict, Optional

from config.settings import Settings, get_settings
from knowledge_bot.answer_pipeline import APOLOGY_MESSAGE, AnswerPipeline, AnswerResult
from knowledge_bot.knowledge_store import KnowledgeStore
from knowledge_bot.llm_service import LLMService
from knowledge_bot.memory import ConversationMemory, conversation_key
from knowledge_bot.sources import build_sources

logger = logging.getLogger(__name__)

EMPTY_QUESTION_MESSAGE = "Please ask me a question about the knowledge base."


class KnowledgeAgent:
    """
    Main agent - the public API for the Knowledge Bot.

    Example:
        agent = KnowledgeAgent()
        print(agent.reindex())

        result = agent.ask("What is the refund policy?", user_id=1, channel_id=2)
        print(result.text)
        print(result.suggestions)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        knowledge_store: Optional[KnowledgeStore] = None,
        memory: Optional[ConversationMemory] = None,
        llm_service: Optional[LLMService] = None,
    ):
        """
        Initialize the agent.

        Args:
            settings: Application settings (default: get_settings())
            knowledge_store: Pre-built store (default: from configured sources)
            memory: Pre-built conversation memory
            llm_service: Pre-built LLM service
        """
        self.settings = settings or get_settings()

        logger.info("Initializing Knowledge Agent...")

        if knowledge_store is None:
            knowledge_store = KnowledgeStore(build_sources(self.settings.sources))
        # ConversationMemory defines __len__, so test for None rather than truthiness
        if memory is None:
            memory = ConversationMemory(ttl_seconds=self.settings.bot.memory_ttl_seconds)
        if llm_service is None:
            llm_service = LLMService(config=self.settings.llm)

        self._knowledge_store = knowledge_store
        self._memory = memory
        self._llm_service = llm_service
        self._pipeline = AnswerPipeline(
            llm_service=self._llm_service,
            memory=self._memory,
        )

        logger.info(
            f"Knowledge Agent initialized: "
            f"llm={self._llm_service.provider_name}, "
            f"fallback={self._llm_service.fallback_provider_name}"
        )

    def ask(self, question: str, user_id, channel_id) -> AnswerResult:
        """
        Answer a question for a user in a channel.

        Args:
            question: Raw question text
            user_id: Platform user ID
            channel_id: Platform channel ID

        Returns:
            AnswerResult (never raises)
        """
        question = (question or "").strip()
        if not question:
            return AnswerResult(text=EMPTY_QUESTION_MESSAGE)

        key = conversation_key(user_id, channel_id)
        try:
            return self._pipeline.answer(
                question=question,
                conversation_key=key,
                knowledge=self._knowledge_store.current_knowledge(),
            )
        except Exception as e:
            logger.exception(f"Query error: {e}")
            return AnswerResult(text=APOLOGY_MESSAGE)

    def reindex(self) -> str:
        """
        Re-index every knowledge source.

        Returns:
            Status message for the user
        """
        report = self._knowledge_store.reindex()

        if not report.success:
            return (
                "Indexing failed: no knowledge could be retrieved from any "
                "configured source. Check the logs and source configuration."
            )

        indexed = ", ".join(report.indexed_sources)
        skipped = [
            f"{name} ({status})"
            for name, status in report.source_status.items()
            if status != "ok"
        ]
        message = (
            f"All knowledge sources have been indexed and are ready for questions. "
            f"Indexed: {indexed} ({report.characters} characters)."
        )
        if skipped:
            message += f" Skipped: {', '.join(skipped)}."
        return message

    def clear_conversation(self, user_id, channel_id) -> bool:
        """
        Forget the conversation for a user in a channel.

        Returns:
            True if cleared, False if nothing was remembered
        """
        return self._memory.delete(conversation_key(user_id, channel_id))

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the agent.

        Returns:
            Dictionary with system statistics
        """
        last_indexed = self._knowledge_store.last_indexed_at
        return {
            "knowledge_base": {
                "indexed": self._knowledge_store.is_indexed,
                "characters": len(self._knowledge_store.current_knowledge())
                if self._knowledge_store.is_indexed else 0,
                "last_indexed_at": last_indexed.isoformat() if last_indexed else None,
                "sources": [source.name for source in self._knowledge_store.sources],
            },
            "llm": {
                "provider": self._llm_service.provider_name,
                "fallback": self._llm_service.fallback_provider_name,
                "model": self._llm_service.model_name,
            },
            "conversations": {
                "active": len(self._memory),
            },
        }


def create_agent(**kwargs) -> KnowledgeAgent:
    """
    Create a Knowledge Agent with settings from the environment.

    Args:
        **kwargs: Additional arguments for KnowledgeAgent

    Returns:
        Configured KnowledgeAgent instance
    """
    return KnowledgeAgent(**kwargs)
