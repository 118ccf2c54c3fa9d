"""
Conversation Memory Module

Keeps the most recent question/answer pair per conversation so the model can
resolve short follow-ups ("why?", "what about that?").

Design Rationale:
- One entry per conversation key (user x channel), last write wins
- Entries expire after a fixed idle period (10 minutes by default)
- Expiry is checked lazily on read; cleanup_expired() is available for sweeps
- Thread-safe for concurrent Discord bot usage

Usage:
    memory = ConversationMemory()
    key = conversation_key(user_id, channel_id)
    memory.put(key, "What is the refund policy?", "Refunds are issued within 30 days.")

    previous = memory.get(key)
"""

import hashlib
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 600.0


def conversation_key(user_id, channel_id) -> str:
    """
    Build a stable key for one user's conversation in one channel.

    Args:
        user_id: Platform user ID
        channel_id: Platform channel ID

    Returns:
        Opaque key string
    """
    raw = f"{user_id}:{channel_id}".encode()
    return f"convo-{hashlib.sha1(raw).hexdigest()[:16]}"


@dataclass(frozen=True)
class ConversationEntry:
    """
    The last answered turn of a conversation.

    Attributes:
        question: What the user asked
        answer: What the bot replied
        updated_at: Clock reading when the entry was written
    """
    question: str
    answer: str
    updated_at: float = 0.0


class ConversationMemory:
    """
    Time-bounded map of conversation key -> last ConversationEntry.

    Example:
        memory = ConversationMemory(ttl_seconds=600)
        memory.put("convo-1", "Q", "A")
        memory.get("convo-1")   # ConversationEntry(question="Q", answer="A", ...)
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize conversation memory.

        Args:
            ttl_seconds: Idle time after which an entry is forgotten
            clock: Monotonic time source (injectable for tests)
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, ConversationEntry] = {}
        self._lock = threading.Lock()

        logger.info(f"ConversationMemory initialized: ttl={ttl_seconds}s")

    def _is_expired(self, entry: ConversationEntry, now: float) -> bool:
        return now - entry.updated_at >= self.ttl_seconds

    def get(self, key: str) -> Optional[ConversationEntry]:
        """
        Get the latest entry for a conversation.

        Args:
            key: Conversation key

        Returns:
            ConversationEntry, or None if absent or expired
        """
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._is_expired(entry, now):
                del self._entries[key]
                logger.debug(f"Expired memory for {key}")
                return None
            return entry

    def put(self, key: str, question: str, answer: str) -> ConversationEntry:
        """
        Store the latest turn for a conversation, resetting its expiry.

        Args:
            key: Conversation key
            question: User question
            answer: Bot answer

        Returns:
            The stored entry
        """
        entry = ConversationEntry(
            question=question,
            answer=answer,
            updated_at=self._clock(),
        )
        with self._lock:
            self._entries[key] = entry

        logger.debug(f"Stored memory for {key}")
        return entry

    def delete(self, key: str) -> bool:
        """
        Forget a conversation.

        Returns:
            True if deleted, False if not found
        """
        with self._lock:
            if key in self._entries:
                del self._entries[key]
                logger.debug(f"Deleted memory for {key}")
                return True
            return False

    def clear(self) -> int:
        """
        Forget all conversations.

        Returns:
            Number of entries cleared
        """
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"Cleared {count} conversation memories")
        return count

    def cleanup_expired(self) -> int:
        """
        Remove every expired entry.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        with self._lock:
            to_remove = [
                key for key, entry in self._entries.items()
                if self._is_expired(entry, now)
            ]
            for key in to_remove:
                del self._entries[key]

        if to_remove:
            logger.info(f"Cleaned up {len(to_remove)} expired conversations")
        return len(to_remove)

    def __len__(self) -> int:
        """Return number of live (unexpired) conversations."""
        now = self._clock()
        with self._lock:
            return sum(
                1 for entry in self._entries.values()
                if not self._is_expired(entry, now)
            )
