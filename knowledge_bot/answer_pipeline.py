"""
Answer Pipeline Module

Orchestrates question answering over the indexed knowledge text:
1. Recall the previous turn for this conversation
2. Build a grounded prompt [persona + previous turn + knowledge + question]
3. Generate the answer (primary provider, fallback on rate limiting)
4. Generate follow-up suggestions with a second model call
5. Parse the suggestions leniently
6. Remember this turn
7. Return the answer and suggestions

Pipeline Flow:
    Question → Memory lookup → Grounded prompt → LLM (→ fallback on 429)
    → Suggestion prompt → LLM → Extract list → Memory update → AnswerResult

Failure policy:
- A non rate-limit provider failure on the answer call produces a fixed
  apology, skips suggestions and is NOT written to memory
- Any failure on the suggestion call degrades to zero suggestions
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from knowledge_bot.llm_service import LLMService
from knowledge_bot.memory import ConversationEntry, ConversationMemory
from knowledge_bot.suggestions import MAX_SUGGESTIONS, extract_suggestions

logger = logging.getLogger(__name__)

REFUSAL_PHRASE = "I do not have information on that."
APOLOGY_MESSAGE = "Sorry, I encountered an error while thinking. Please try again."


@dataclass
class AnswerResult:
    """
    Renderable answer for the transport layer.

    Attributes:
        text: Answer, refusal phrase, or apology
        suggestions: Up to three follow-up questions
    """
    text: str
    suggestions: List[str] = field(default_factory=list)

    @property
    def has_suggestions(self) -> bool:
        return bool(self.suggestions)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (for API response)."""
        return {
            "text": self.text,
            "suggestions": list(self.suggestions),
        }


def is_refusal(answer: str) -> bool:
    """Whether the model answered with the refusal phrase."""
    normalized = answer.strip().strip("\"'").rstrip(".").strip().lower()
    return normalized == REFUSAL_PHRASE.rstrip(".").lower()


def build_answer_prompt(
    question: str,
    knowledge: str,
    previous: Optional[ConversationEntry] = None,
) -> str:
    """
    Build the grounded prompt for the main answer.

    Args:
        question: The new user question
        knowledge: Full indexed knowledge text
        previous: Last turn of this conversation, if any

    Returns:
        Plain-text prompt usable by any provider
    """
    if previous is not None:
        previous_context = (
            f'User asked: "{previous.question}" and you answered: "{previous.answer}"'
        )
    else:
        previous_context = "None"

    return f"""You are a helpful assistant. First, consider the PREVIOUS CONTEXT if it exists. Then, answer the new QUESTION based *only* on the provided DOCUMENT.
If the answer is not found in the document, say "{REFUSAL_PHRASE}"
Never mention "the document" or refer to where your information comes from; just answer.

PREVIOUS CONTEXT: {previous_context}

DOCUMENT: ---
{knowledge}
---

NEW QUESTION: "{question}"
"""


def build_suggestion_prompt(question: str, answer: str, knowledge: str) -> str:
    """
    Build the prompt asking for follow-up questions.

    Args:
        question: The question just answered
        answer: The answer just given
        knowledge: Full indexed knowledge text

    Returns:
        Plain-text prompt usable by any provider
    """
    return f"""Based on the following question and answer, suggest exactly {MAX_SUGGESTIONS} distinct follow-up questions the user is likely to ask next.
Every follow-up question MUST be answerable strictly from the DOCUMENT below.
Return ONLY a compact array of double-quoted strings, like ["question 1", "question 2", "question 3"]. Do not include any other text or formatting.

DOCUMENT: ---
{knowledge}
---

Question: "{question}"
Answer: "{answer}"
"""


class AnswerPipeline:
    """
    Grounded question answering with conversational memory.

    Example:
        pipeline = AnswerPipeline(llm_service=LLMService(), memory=ConversationMemory())
        result = pipeline.answer(
            "How do refunds work?",
            conversation_key="convo-abc",
            knowledge=store.current_knowledge(),
        )
        print(result.text, result.suggestions)
    """

    def __init__(self, llm_service: LLMService, memory: ConversationMemory):
        """
        Initialize the pipeline.

        Args:
            llm_service: Two-tier provider service
            memory: Conversation memory shared across requests
        """
        self.llm_service = llm_service
        self.memory = memory

    def _suggest(self, question: str, answer: str, knowledge: str) -> List[str]:
        prompt = build_suggestion_prompt(question, answer, knowledge)
        outcome = self.llm_service.generate(prompt)
        if not outcome.is_success:
            logger.warning(
                f"Suggestion generation failed ({outcome.kind.value}): {outcome.message}"
            )
            return []
        return extract_suggestions(outcome.text)

    def answer(
        self,
        question: str,
        conversation_key: str,
        knowledge: str,
    ) -> AnswerResult:
        """
        Answer a question from the knowledge text.

        Args:
            question: User question
            conversation_key: Key from memory.conversation_key()
            knowledge: Current indexed knowledge text

        Returns:
            AnswerResult with answer text and suggestions
        """
        start_time = time.time()

        previous = self.memory.get(conversation_key)
        prompt = build_answer_prompt(question, knowledge, previous)

        outcome = self.llm_service.generate(prompt)
        if not outcome.is_success:
            logger.error(
                f"Answer generation failed ({outcome.kind.value}, "
                f"provider={outcome.provider}): {outcome.message}"
            )
            return AnswerResult(text=APOLOGY_MESSAGE, suggestions=[])

        answer_text = outcome.text

        suggestions: List[str] = []
        if not is_refusal(answer_text):
            suggestions = self._suggest(question, answer_text, knowledge)

        self.memory.put(conversation_key, question, answer_text)

        logger.info(
            f"Answered in {time.time() - start_time:.2f}s "
            f"(provider={outcome.provider}, suggestions={len(suggestions)})"
        )
        return AnswerResult(text=answer_text, suggestions=suggestions)
