"""
Configuration settings for the Knowledge Bot.

This module handles all configuration management using environment variables.
No hardcoded values - everything is configurable via .env file.
"""

import os
from dataclasses import dataclass, field
from typing import Literal, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

ProviderName = Literal["ollama", "openai", "gemini", "mistral"]


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class LLMConfig:
    """Configuration for LLM providers."""

    # Primary answers every question; fallback is only used on rate limiting
    primary_provider: ProviderName = "gemini"
    fallback_provider: Optional[ProviderName] = "mistral"

    # Ollama settings
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3"

    # OpenAI settings
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"

    # Gemini settings
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash"

    # Mistral settings
    mistral_api_key: Optional[str] = None
    mistral_model: str = "mistral-small-latest"

    # Upper bound (seconds) on a single provider call
    request_timeout: float = 60.0


@dataclass
class SourcesConfig:
    """Configuration for the knowledge sources."""

    # Google Docs
    google_doc_id: Optional[str] = None
    google_credentials_json: Optional[str] = None
    google_application_credentials: Optional[str] = None

    # Notion
    notion_page_id: Optional[str] = None
    notion_api_key: Optional[str] = None

    # Plain web page
    web_url: Optional[str] = None

    fetch_timeout: float = 30.0


@dataclass
class BotConfig:
    """Configuration for the Discord transport."""

    discord_token: Optional[str] = None
    command_prefix: str = "!"
    rate_limit_seconds: float = 3.0
    memory_ttl_seconds: float = 600.0  # fixed 10 minute conversation window, not read from env
    index_on_startup: bool = True


@dataclass
class Settings:
    """
    Main settings class that aggregates all configurations.

    Usage:
        settings = get_settings()
        print(settings.llm.primary_provider)
        print(settings.sources.google_doc_id)
    """

    llm: LLMConfig = field(default_factory=LLMConfig)
    sources: SourcesConfig = field(default_factory=SourcesConfig)
    bot: BotConfig = field(default_factory=BotConfig)

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Create Settings instance from environment variables.

        This is the primary way to instantiate Settings.
        """
        llm = LLMConfig(
            primary_provider=os.getenv("LLM_PROVIDER", "gemini"),  # type: ignore
            fallback_provider=os.getenv("FALLBACK_LLM_PROVIDER", "mistral") or None,  # type: ignore
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
            ollama_model=os.getenv("OLLAMA_MODEL", "llama3"),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_LLM_MODEL", "gpt-4o-mini"),
            gemini_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY"),
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-1.5-flash"),
            mistral_api_key=os.getenv("MISTRAL_API_KEY"),
            mistral_model=os.getenv("MISTRAL_MODEL", "mistral-small-latest"),
            request_timeout=float(os.getenv("LLM_REQUEST_TIMEOUT", "60")),
        )

        sources = SourcesConfig(
            google_doc_id=os.getenv("GOOGLE_DOC_ID"),
            google_credentials_json=os.getenv("GOOGLE_CREDENTIALS_JSON"),
            google_application_credentials=os.getenv("GOOGLE_APPLICATION_CREDENTIALS"),
            notion_page_id=os.getenv("NOTION_PAGE_ID"),
            notion_api_key=os.getenv("NOTION_API_KEY"),
            web_url=os.getenv("KNOWLEDGE_WEB_URL"),
            fetch_timeout=float(os.getenv("SOURCE_FETCH_TIMEOUT", "30")),
        )

        bot = BotConfig(
            discord_token=os.getenv("DISCORD_BOT_TOKEN"),
            command_prefix=os.getenv("COMMAND_PREFIX", "!"),
            rate_limit_seconds=float(os.getenv("RATE_LIMIT_SECONDS", "3")),
            index_on_startup=_env_bool("INDEX_ON_STARTUP", True),
        )

        return cls(
            llm=llm,
            sources=sources,
            bot=bot,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


# Singleton pattern for settings
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the singleton Settings instance.

    Returns:
        Settings: The application settings loaded from environment.
    """
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reload_settings() -> Settings:
    """
    Reload settings from environment (useful for testing).

    Returns:
        Settings: Fresh settings instance.
    """
    global _settings
    load_dotenv(override=True)
    _settings = Settings.from_env()
    return _settings
