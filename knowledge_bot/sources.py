"""
Knowledge Sources
=================
Fetchers that pull raw text from the places the bot learns from:

- Google Docs: a single document, read with a service account
- Notion: the top-level blocks of a single page
- Web page: any public URL, HTML stripped to text

Each source either returns text or raises SourceFetchError. A source that is
not configured is skipped by the KnowledgeStore and contributes empty text.

Setup (.env):
   GOOGLE_DOC_ID=1AbC...
   GOOGLE_CREDENTIALS_JSON={"type": "service_account", ...}   # or
   GOOGLE_APPLICATION_CREDENTIALS=/path/to/key.json
   NOTION_PAGE_ID=0123abcd...
   NOTION_API_KEY=secret_...
   KNOWLEDGE_WEB_URL=https://example.com/faq
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import google.auth
import google_auth_httplib2
import httplib2
import requests
from bs4 import BeautifulSoup
from google.oauth2 import service_account
from googleapiclient.discovery import build
from notion_client import Client as NotionClient

from config.settings import SourcesConfig

logger = logging.getLogger(__name__)

GOOGLE_DOCS_SCOPES = ["https://www.googleapis.com/auth/documents.readonly"]


class SourceFetchError(Exception):
    """Raised when a configured source cannot be read."""


class BaseSource(ABC):
    """Base class for knowledge sources."""

    name = "SOURCE"

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Whether enough settings are present to attempt a fetch."""
        pass

    @abstractmethod
    def fetch(self) -> str:
        """
        Fetch the source's text.

        Returns:
            Plain text content

        Raises:
            SourceFetchError: If the source could not be read
        """
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r} configured={self.is_configured}>"


class GoogleDocSource(BaseSource):
    """Reads the body text of a Google Doc."""

    name = "GOOGLE DOCS"

    def __init__(
        self,
        document_id: Optional[str],
        credentials_json: Optional[str] = None,
        credentials_file: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.document_id = document_id
        self.credentials_json = credentials_json
        self.credentials_file = credentials_file
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.document_id)

    def _credentials(self):
        """Inline JSON wins over a key file; fall back to application default."""
        if self.credentials_json:
            info = json.loads(self.credentials_json)
            return service_account.Credentials.from_service_account_info(
                info, scopes=GOOGLE_DOCS_SCOPES
            )
        if self.credentials_file:
            return service_account.Credentials.from_service_account_file(
                self.credentials_file, scopes=GOOGLE_DOCS_SCOPES
            )
        credentials, _ = google.auth.default(scopes=GOOGLE_DOCS_SCOPES)
        return credentials

    def _get_service(self):
        http = google_auth_httplib2.AuthorizedHttp(
            self._credentials(), http=httplib2.Http(timeout=self.timeout)
        )
        return build("docs", "v1", http=http, cache_discovery=False)

    @staticmethod
    def _extract_text(document: dict) -> str:
        parts = []
        for element in document.get("body", {}).get("content", []):
            paragraph = element.get("paragraph")
            if not paragraph:
                continue
            for item in paragraph.get("elements", []):
                text_run = item.get("textRun")
                if text_run:
                    parts.append(text_run.get("content", ""))
        return "".join(parts)

    def fetch(self) -> str:
        try:
            service = self._get_service()
            document = service.documents().get(documentId=self.document_id).execute()
        except Exception as e:
            raise SourceFetchError(f"Could not retrieve the Google Docs document: {e}") from e
        return self._extract_text(document)


class NotionPageSource(BaseSource):
    """Reads the rich text of every top-level block on a Notion page."""

    name = "NOTION"

    def __init__(
        self,
        page_id: Optional[str],
        api_key: Optional[str],
        timeout: float = 30.0,
    ):
        self.page_id = page_id
        self.api_key = api_key
        self.timeout = timeout
        self._client = None

    @property
    def is_configured(self) -> bool:
        return bool(self.page_id and self.api_key)

    def _get_client(self) -> NotionClient:
        if self._client is None:
            self._client = NotionClient(auth=self.api_key, timeout_ms=int(self.timeout * 1000))
        return self._client

    @staticmethod
    def _block_text(block: dict) -> Optional[str]:
        block_type = block.get("type")
        body = block.get(block_type) if block_type else None
        if not isinstance(body, dict) or "rich_text" not in body:
            return None
        return "".join(rt.get("plain_text", "") for rt in body["rich_text"])

    def fetch(self) -> str:
        client = self._get_client()
        lines: List[str] = []
        cursor = None

        try:
            while True:
                kwargs = {"block_id": self.page_id}
                if cursor:
                    kwargs["start_cursor"] = cursor
                response = client.blocks.children.list(**kwargs)

                for block in response.get("results", []):
                    text = self._block_text(block)
                    if text is not None:
                        lines.append(text)

                if not response.get("has_more"):
                    break
                cursor = response.get("next_cursor")
        except Exception as e:
            raise SourceFetchError(f"Could not retrieve the Notion page: {e}") from e

        return "\n".join(lines)


class WebPageSource(BaseSource):
    """Downloads a web page and reduces it to readable text."""

    name = "WEB PAGE"

    def __init__(self, url: Optional[str], timeout: float = 30.0):
        self.url = url
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.url)

    @staticmethod
    def _clean_html(html: str) -> str:
        """Convert HTML content to clean text."""
        if not html:
            return ""

        soup = BeautifulSoup(html, "html.parser")

        # Remove script and style elements
        for element in soup(["script", "style", "nav", "header", "footer"]):
            element.decompose()

        text = soup.get_text(separator="\n", strip=True)

        lines = [line.strip() for line in text.split("\n") if line.strip()]
        return "\n".join(lines)

    def fetch(self) -> str:
        try:
            response = requests.get(
                self.url,
                timeout=self.timeout,
                headers={"User-Agent": "knowledge-bot/1.0"},
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise SourceFetchError(f"Could not retrieve {self.url}: {e}") from e

        return self._clean_html(response.text)


def build_sources(config: SourcesConfig) -> List[BaseSource]:
    """
    Create the configured set of sources in their fixed display order.

    Args:
        config: SourcesConfig from settings

    Returns:
        [GoogleDocSource, NotionPageSource, WebPageSource]
    """
    return [
        GoogleDocSource(
            document_id=config.google_doc_id,
            credentials_json=config.google_credentials_json,
            credentials_file=config.google_application_credentials,
            timeout=config.fetch_timeout,
        ),
        NotionPageSource(
            page_id=config.notion_page_id,
            api_key=config.notion_api_key,
            timeout=config.fetch_timeout,
        ),
        WebPageSource(url=config.web_url, timeout=config.fetch_timeout),
    ]
