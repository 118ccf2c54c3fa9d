"""
Knowledge Store Module

Holds the text the bot answers from. A re-index fans out to every source
concurrently, then replaces the stored text in one assignment so readers
always see a complete index (the previous one, or the new one).

Re-index rules:
- An unconfigured source contributes empty text (not an error)
- A failing source is logged and contributes empty text
- If every contribution is empty, the text becomes INDEX_FAILURE_SENTINEL
  and the report says the index failed

Usage:
    store = KnowledgeStore(build_sources(settings.sources))
    report = store.reindex()
    text = store.current_knowledge()
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from knowledge_bot.sources import BaseSource, SourceFetchError

logger = logging.getLogger(__name__)

NOT_INDEXED_PLACEHOLDER = "No knowledge has been indexed yet. Please run the /index command."
INDEX_FAILURE_SENTINEL = "Error: No knowledge could be retrieved from any configured source."

STATUS_OK = "ok"
STATUS_EMPTY = "empty"
STATUS_UNCONFIGURED = "unconfigured"
STATUS_ERROR = "error"


@dataclass
class IndexReport:
    """
    Outcome of a re-index.

    Attributes:
        success: False only when every source came back empty
        source_status: Source name -> ok / empty / unconfigured / error
        characters: Length of the stored knowledge text
    """
    success: bool
    source_status: Dict[str, str] = field(default_factory=dict)
    characters: int = 0

    @property
    def indexed_sources(self) -> List[str]:
        return [name for name, status in self.source_status.items() if status == STATUS_OK]


def format_section(name: str, text: str) -> str:
    return f"--- {name} ---\n{text}"


class KnowledgeStore:
    """
    Process-wide holder of the indexed knowledge text.

    Example:
        store = KnowledgeStore(sources)
        store.current_knowledge()   # placeholder until the first reindex
        store.reindex()
    """

    def __init__(
        self,
        sources: Sequence[BaseSource],
        max_workers: Optional[int] = None,
    ):
        """
        Initialize the store.

        Args:
            sources: Sources in display order
            max_workers: Thread pool size for concurrent fetching
        """
        self.sources = list(sources)
        self.max_workers = max_workers or max(len(self.sources), 1)

        self._knowledge = NOT_INDEXED_PLACEHOLDER
        self._indexed = False
        self._last_indexed_at: Optional[datetime] = None
        self._lock = threading.Lock()

        logger.info(f"KnowledgeStore initialized with {len(self.sources)} source(s)")

    def _fetch_one(self, source: BaseSource) -> Tuple[str, str]:
        """Fetch a single source, never raising."""
        if not source.is_configured:
            logger.info(f"Source {source.name} is not configured, skipping")
            return "", STATUS_UNCONFIGURED

        try:
            text = source.fetch() or ""
        except SourceFetchError as e:
            logger.error(f"Error fetching {source.name}: {e}")
            return "", STATUS_ERROR
        except Exception as e:
            logger.exception(f"Unexpected error fetching {source.name}: {e}")
            return "", STATUS_ERROR

        if not text.strip():
            logger.warning(f"Source {source.name} returned no text")
            return "", STATUS_EMPTY

        logger.info(f"Fetched {len(text)} characters from {source.name}")
        return text, STATUS_OK

    def reindex(self) -> IndexReport:
        """
        Re-fetch every source and replace the stored knowledge.

        Returns:
            IndexReport describing what happened per source
        """
        logger.info(f"INDEXING: fetching {len(self.sources)} source(s)...")

        if self.sources:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                results = list(executor.map(self._fetch_one, self.sources))
        else:
            results = []

        source_status = {
            source.name: status for source, (_, status) in zip(self.sources, results)
        }

        if not any(text for text, _ in results):
            knowledge = INDEX_FAILURE_SENTINEL
            success = False
        else:
            knowledge = "\n\n".join(
                format_section(source.name, text)
                for source, (text, _) in zip(self.sources, results)
            )
            success = True

        with self._lock:
            self._knowledge = knowledge
            self._indexed = success
            self._last_indexed_at = datetime.now()

        if success:
            logger.info(f"INDEXING COMPLETE: {len(knowledge)} characters")
        else:
            logger.error("INDEXING FAILED: every source returned empty text")

        return IndexReport(
            success=success,
            source_status=source_status,
            characters=len(knowledge) if success else 0,
        )

    def current_knowledge(self) -> str:
        """Return the latest complete knowledge text (never blocks on I/O)."""
        return self._knowledge

    @property
    def is_indexed(self) -> bool:
        return self._indexed

    @property
    def last_indexed_at(self) -> Optional[datetime]:
        return self._last_indexed_at
