"""
Tests for Answer Pipeline Module

Tests AnswerPipeline end to end with stubbed providers, plus the prompt
builders and refusal detection.
"""

import pytest

from config.settings import LLMConfig
from knowledge_bot.answer_pipeline import (
    APOLOGY_MESSAGE,
    REFUSAL_PHRASE,
    AnswerPipeline,
    AnswerResult,
    build_answer_prompt,
    build_suggestion_prompt,
    is_refusal,
)
from knowledge_bot.knowledge_store import NOT_INDEXED_PLACEHOLDER
from knowledge_bot.llm_service import BaseLLMProvider, LLMResponse, LLMService
from knowledge_bot.memory import ConversationEntry, ConversationMemory

KNOWLEDGE = "--- NOTION ---\nRefunds are issued within 30 days of purchase."
KEY = "convo-test"


class RateLimited(Exception):
    status_code = 429


class ServerError(Exception):
    status_code = 500


class ScriptedProvider(BaseLLMProvider):
    """Provider returning scripted responses in order."""

    def __init__(self, name, *results):
        super().__init__(model=f"{name}-model")
        self.name = name
        self.results = list(results)
        self.prompts = []

    def _complete(self, prompt):
        self.prompts.append(prompt)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return LLMResponse(content=result, model=self._model)


def make_pipeline(primary, fallback=None, memory=None):
    service = LLMService(
        config=LLMConfig(fallback_provider=None),
        primary_provider=primary,
        fallback_provider=fallback,
    )
    if memory is None:
        memory = ConversationMemory()
    return AnswerPipeline(llm_service=service, memory=memory)


class TestAnswerResult:
    """Tests for AnswerResult dataclass."""

    def test_defaults(self):
        """Test suggestions default to empty."""
        result = AnswerResult(text="Hi")
        assert result.suggestions == []
        assert result.has_suggestions is False

    def test_to_dict(self):
        """Test serialization to dictionary."""
        result = AnswerResult(text="Hi", suggestions=["A?"])
        assert result.to_dict() == {"text": "Hi", "suggestions": ["A?"]}


class TestRefusalDetection:
    """Tests for is_refusal."""

    @pytest.mark.parametrize("text", [
        "I do not have information on that.",
        "I do not have information on that",
        "  i do not have information on that.  \n",
        '"I do not have information on that."',
    ])
    def test_refusal_variants(self, text):
        """Test the refusal phrase is recognised despite formatting noise."""
        assert is_refusal(text) is True

    def test_real_answer(self):
        """Test a normal answer is not a refusal."""
        assert is_refusal("Refunds are issued within 30 days.") is False


class TestPromptBuilders:
    """Tests for the prompt builders."""

    def test_answer_prompt_without_previous(self):
        """Test the prompt embeds knowledge, question and a None marker."""
        prompt = build_answer_prompt("How long for refunds?", KNOWLEDGE)

        assert "PREVIOUS CONTEXT: None" in prompt
        assert KNOWLEDGE in prompt
        assert 'NEW QUESTION: "How long for refunds?"' in prompt
        assert REFUSAL_PHRASE in prompt
        assert "only" in prompt.lower()

    def test_answer_prompt_with_previous(self):
        """Test the previous turn is embedded."""
        previous = ConversationEntry(question="What is the policy?", answer="30 days.")
        prompt = build_answer_prompt("Why?", KNOWLEDGE, previous)

        assert 'User asked: "What is the policy?"' in prompt
        assert 'you answered: "30 days."' in prompt
        assert "PREVIOUS CONTEXT: None" not in prompt

    def test_answer_prompt_forbids_mentioning_document(self):
        """Test the instruction not to reference the document."""
        prompt = build_answer_prompt("Q", KNOWLEDGE)
        assert 'Never mention "the document"' in prompt

    def test_suggestion_prompt(self):
        """Test the suggestion prompt asks for three quoted strings from the knowledge."""
        prompt = build_suggestion_prompt("Q?", "A.", KNOWLEDGE)

        assert "exactly 3" in prompt
        assert KNOWLEDGE in prompt
        assert '["question 1", "question 2", "question 3"]' in prompt
        assert 'Question: "Q?"' in prompt
        assert 'Answer: "A."' in prompt


class TestAnswerPipeline:
    """Tests for AnswerPipeline.answer."""

    def test_grounded_answer_with_suggestions(self):
        """Test the happy path returns the answer and parsed suggestions."""
        primary = ScriptedProvider(
            "primary",
            "Refunds are issued within 30 days.",
            'Sure! ["How do I request a refund?", "Are fees refunded?", "How do I request a refund?"]',
        )
        pipeline = make_pipeline(primary)

        result = pipeline.answer("How long do refunds take?", KEY, KNOWLEDGE)

        assert result.text == "Refunds are issued within 30 days."
        assert result.text != REFUSAL_PHRASE
        assert result.suggestions == ["How do I request a refund?", "Are fees refunded?"]
        assert len(primary.prompts) == 2
        assert "How long do refunds take?" in primary.prompts[0]

    def test_answer_call_precedes_suggestion_call(self):
        """Test the suggestion prompt contains the answer just produced."""
        primary = ScriptedProvider("primary", "Thirty days.", '["A?"]')
        make_pipeline(primary).answer("Q?", KEY, KNOWLEDGE)

        assert 'Answer: "Thirty days."' in primary.prompts[1]

    def test_suggestions_capped_at_three(self):
        """Test the model proposing many questions still yields at most three."""
        primary = ScriptedProvider(
            "primary",
            "Answer.",
            '["1?", "2?", "3?", "4?", "5?", "6?"]',
        )
        result = make_pipeline(primary).answer("Q?", KEY, KNOWLEDGE)

        assert result.suggestions == ["1?", "2?", "3?"]

    def test_rate_limited_primary_uses_fallback_once(self):
        """Test a rate-limited answer call is served by the fallback exactly once."""
        primary = ScriptedProvider("primary", RateLimited("429"), '["A?"]')
        fallback = ScriptedProvider("fallback", "Fallback answer.")
        pipeline = make_pipeline(primary, fallback)

        result = pipeline.answer("Q?", KEY, KNOWLEDGE)

        assert result.text == "Fallback answer."
        assert len(fallback.prompts) == 1
        assert fallback.prompts[0] == primary.prompts[0]

    def test_other_failure_returns_apology_without_fallback(self):
        """Test a non rate-limit failure never calls the fallback."""
        primary = ScriptedProvider("primary", ServerError("500"))
        fallback = ScriptedProvider("fallback", "should not be used")
        memory = ConversationMemory()
        pipeline = make_pipeline(primary, fallback, memory)

        result = pipeline.answer("Q?", KEY, KNOWLEDGE)

        assert result.text == APOLOGY_MESSAGE
        assert result.suggestions == []
        assert fallback.prompts == []
        assert len(primary.prompts) == 1

    def test_apology_not_written_to_memory(self):
        """Test failure-path answers are not remembered."""
        memory = ConversationMemory()
        memory.put(KEY, "Earlier question", "Earlier answer")
        primary = ScriptedProvider("primary", ServerError("500"))

        make_pipeline(primary, memory=memory).answer("Q?", KEY, KNOWLEDGE)

        entry = memory.get(KEY)
        assert entry.question == "Earlier question"
        assert entry.answer == "Earlier answer"

    def test_both_providers_rate_limited(self):
        """Test fallback also rate limited results in the apology."""
        primary = ScriptedProvider("primary", RateLimited("429"))
        fallback = ScriptedProvider("fallback", RateLimited("429"))

        result = make_pipeline(primary, fallback).answer("Q?", KEY, KNOWLEDGE)

        assert result.text == APOLOGY_MESSAGE
        assert len(fallback.prompts) == 1

    def test_refusal_skips_suggestions_but_is_remembered(self):
        """Test refusals get no suggestions but are written to memory."""
        memory = ConversationMemory()
        primary = ScriptedProvider("primary", REFUSAL_PHRASE)

        result = make_pipeline(primary, memory=memory).answer("Weather?", KEY, KNOWLEDGE)

        assert result.text == REFUSAL_PHRASE
        assert result.suggestions == []
        assert len(primary.prompts) == 1
        assert memory.get(KEY).answer == REFUSAL_PHRASE

    def test_suggestion_failure_degrades_to_empty(self):
        """Test a failing suggestion call still returns the answer."""
        primary = ScriptedProvider("primary", "Answer.", ServerError("500"))
        memory = ConversationMemory()

        result = make_pipeline(primary, memory=memory).answer("Q?", KEY, KNOWLEDGE)

        assert result.text == "Answer."
        assert result.suggestions == []
        assert memory.get(KEY).answer == "Answer."

    def test_suggestion_rate_limit_uses_fallback(self):
        """Test the suggestion call also falls back on rate limiting."""
        primary = ScriptedProvider("primary", "Answer.", RateLimited("429"))
        fallback = ScriptedProvider("fallback", '["From fallback?"]')

        result = make_pipeline(primary, fallback).answer("Q?", KEY, KNOWLEDGE)

        assert result.suggestions == ["From fallback?"]

    def test_unparseable_suggestions(self):
        """Test malformed suggestion output yields no suggestions."""
        primary = ScriptedProvider("primary", "Answer.", "I'd suggest asking about fees.")

        result = make_pipeline(primary).answer("Q?", KEY, KNOWLEDGE)

        assert result.suggestions == []

    def test_memory_written_and_used_next_turn(self):
        """Test the previous turn is stitched into the next prompt."""
        memory = ConversationMemory()
        primary = ScriptedProvider(
            "primary",
            "Refunds take 30 days.", '["A?"]',
            "Because of bank processing.", '["B?"]',
        )
        pipeline = make_pipeline(primary, memory=memory)

        pipeline.answer("How long do refunds take?", KEY, KNOWLEDGE)
        pipeline.answer("Why?", KEY, KNOWLEDGE)

        second_prompt = primary.prompts[2]
        assert 'User asked: "How long do refunds take?"' in second_prompt
        assert 'you answered: "Refunds take 30 days."' in second_prompt
        assert memory.get(KEY).question == "Why?"

    def test_memory_is_per_conversation(self):
        """Test other conversations do not see this turn."""
        memory = ConversationMemory()
        primary = ScriptedProvider("primary", "Answer.", '["A?"]', "Other.", '["B?"]')
        pipeline = make_pipeline(primary, memory=memory)

        pipeline.answer("Q1?", "convo-a", KNOWLEDGE)
        pipeline.answer("Q2?", "convo-b", KNOWLEDGE)

        assert "PREVIOUS CONTEXT: None" in primary.prompts[2]

    def test_placeholder_knowledge_is_passed_through(self):
        """Test answering before indexing is not an error."""
        primary = ScriptedProvider("primary", REFUSAL_PHRASE)

        result = make_pipeline(primary).answer("Q?", KEY, NOT_INDEXED_PLACEHOLDER)

        assert result.text == REFUSAL_PHRASE
        assert NOT_INDEXED_PLACEHOLDER in primary.prompts[0]
