"""
Tests for Knowledge Agent Module

Tests for KnowledgeAgent - the interface the Discord bot talks to.
"""

import pytest
from unittest.mock import Mock, patch

from config.settings import LLMConfig, Settings
from knowledge_bot.agent import EMPTY_QUESTION_MESSAGE, KnowledgeAgent, create_agent
from knowledge_bot.answer_pipeline import APOLOGY_MESSAGE
from knowledge_bot.knowledge_store import KnowledgeStore
from knowledge_bot.llm_service import BaseLLMProvider, LLMResponse, LLMService
from knowledge_bot.memory import ConversationMemory, conversation_key
from knowledge_bot.sources import BaseSource, SourceFetchError


class StaticSource(BaseSource):
    """Source returning fixed text or raising."""

    def __init__(self, name, text="", error=None):
        self.name = name
        self.text = text
        self.error = error

    @property
    def is_configured(self):
        return True

    def fetch(self):
        if self.error is not None:
            raise self.error
        return self.text


class EchoProvider(BaseLLMProvider):
    """Provider answering every prompt with a fixed reply."""

    name = "echo"

    def __init__(self, reply="An answer.", suggestions='["Next?"]'):
        super().__init__(model="echo-1")
        self.reply = reply
        self.suggestions = suggestions
        self.prompts = []

    def _complete(self, prompt):
        self.prompts.append(prompt)
        if "suggest exactly 3" in prompt:
            return LLMResponse(content=self.suggestions, model=self._model)
        return LLMResponse(content=self.reply, model=self._model)


@pytest.fixture
def memory():
    return ConversationMemory()


@pytest.fixture
def provider():
    return EchoProvider()


def make_agent(provider, memory, sources=None):
    if sources is None:
        sources = [
            StaticSource("GOOGLE DOCS", "Shipping is free."),
            StaticSource("NOTION", "Refunds take 30 days."),
            StaticSource("WEB PAGE", error=SourceFetchError("timeout")),
        ]
    return KnowledgeAgent(
        settings=Settings(),
        knowledge_store=KnowledgeStore(sources),
        memory=memory,
        llm_service=LLMService(
            config=LLMConfig(fallback_provider=None),
            primary_provider=provider,
        ),
    )


class TestKnowledgeAgentAsk:
    """Tests for KnowledgeAgent.ask."""

    def test_ask_returns_answer_and_suggestions(self, provider, memory):
        """Test a normal question returns text and suggestions."""
        agent = make_agent(provider, memory)
        agent.reindex()

        result = agent.ask("How long do refunds take?", user_id=1, channel_id=2)

        assert result.text == "An answer."
        assert result.suggestions == ["Next?"]
        assert "Refunds take 30 days." in provider.prompts[0]

    @pytest.mark.parametrize("question", ["", "   ", None])
    def test_empty_question(self, provider, memory, question):
        """Test empty questions never reach the LLM."""
        agent = make_agent(provider, memory)

        result = agent.ask(question, user_id=1, channel_id=2)

        assert result.text == EMPTY_QUESTION_MESSAGE
        assert provider.prompts == []

    def test_question_is_stripped(self, provider, memory):
        """Test surrounding whitespace is removed before prompting."""
        agent = make_agent(provider, memory)

        agent.ask("  Why?  \n", user_id=1, channel_id=2)

        assert 'NEW QUESTION: "Why?"' in provider.prompts[0]

    def test_ask_before_index_uses_placeholder(self, provider, memory):
        """Test asking before indexing still produces an answer."""
        agent = make_agent(provider, memory)

        result = agent.ask("Anything?", user_id=1, channel_id=2)

        assert result.text == "An answer."
        assert "No knowledge has been indexed yet" in provider.prompts[0]

    def test_ask_writes_memory_for_user_and_channel(self, provider, memory):
        """Test the turn is remembered under the user/channel key."""
        agent = make_agent(provider, memory)

        agent.ask("Q?", user_id=1, channel_id=2)

        assert memory.get(conversation_key(1, 2)).question == "Q?"
        assert memory.get(conversation_key(1, 3)) is None

    def test_unexpected_error_returns_apology(self, provider, memory):
        """Test the agent never raises to the transport."""
        agent = make_agent(provider, memory)

        with patch.object(agent._pipeline, "answer", side_effect=RuntimeError("boom")):
            result = agent.ask("Q?", user_id=1, channel_id=2)

        assert result.text == APOLOGY_MESSAGE
        assert result.suggestions == []


class TestKnowledgeAgentReindex:
    """Tests for KnowledgeAgent.reindex."""

    def test_reindex_success_message(self, provider, memory):
        """Test the status names indexed and skipped sources."""
        agent = make_agent(provider, memory)

        status = agent.reindex()

        assert status.startswith("All knowledge sources have been indexed")
        assert "GOOGLE DOCS, NOTION" in status
        assert "Skipped: WEB PAGE (error)" in status

    def test_reindex_without_skips(self, provider, memory):
        """Test no skipped section when every source succeeds."""
        agent = make_agent(provider, memory, sources=[StaticSource("NOTION", "Text")])

        status = agent.reindex()

        assert "Skipped" not in status

    def test_reindex_failure_message(self, provider, memory):
        """Test total failure is reported to the user."""
        agent = make_agent(provider, memory, sources=[
            StaticSource("GOOGLE DOCS", error=SourceFetchError("denied")),
            StaticSource("NOTION", ""),
        ])

        status = agent.reindex()

        assert status.startswith("Indexing failed")


class TestKnowledgeAgentConversation:
    """Tests for clearing conversations and stats."""

    def test_clear_conversation(self, provider, memory):
        """Test clearing forgets only that user/channel."""
        agent = make_agent(provider, memory)
        agent.ask("Q1?", user_id=1, channel_id=2)
        agent.ask("Q2?", user_id=9, channel_id=2)

        assert agent.clear_conversation(1, 2) is True
        assert agent.clear_conversation(1, 2) is False
        assert memory.get(conversation_key(9, 2)) is not None

    def test_get_stats(self, provider, memory):
        """Test statistics shape and values."""
        agent = make_agent(provider, memory)
        agent.reindex()
        agent.ask("Q?", user_id=1, channel_id=2)

        stats = agent.get_stats()

        assert stats["knowledge_base"]["indexed"] is True
        assert stats["knowledge_base"]["characters"] > 0
        assert stats["knowledge_base"]["last_indexed_at"] is not None
        assert stats["knowledge_base"]["sources"] == ["GOOGLE DOCS", "NOTION", "WEB PAGE"]
        assert stats["llm"] == {"provider": "echo", "fallback": None, "model": "echo-1"}
        assert stats["conversations"]["active"] == 1

    def test_get_stats_before_index(self, provider, memory):
        """Test statistics before the first index."""
        stats = make_agent(provider, memory).get_stats()

        assert stats["knowledge_base"]["indexed"] is False
        assert stats["knowledge_base"]["characters"] == 0
        assert stats["knowledge_base"]["last_indexed_at"] is None


class TestCreateAgent:
    """Tests for create_agent factory."""

    @patch("knowledge_bot.agent.LLMService")
    @patch("knowledge_bot.agent.build_sources")
    def test_create_agent_builds_from_settings(self, mock_build_sources, mock_llm_cls):
        """Test the factory wires sources and LLM service from settings."""
        mock_build_sources.return_value = []
        mock_llm_cls.return_value = Mock(provider_name="gemini", fallback_provider_name="mistral")
        settings = Settings()

        agent = create_agent(settings=settings)

        assert isinstance(agent, KnowledgeAgent)
        mock_build_sources.assert_called_once_with(settings.sources)
        mock_llm_cls.assert_called_once_with(config=settings.llm)
        assert agent._memory.ttl_seconds == settings.bot.memory_ttl_seconds
