"""
LLM Service Module

Provides an abstraction layer for Large Language Model providers:
- Local: Ollama (Llama3, Mistral, etc.) - Free, runs locally
- Cloud: OpenAI (GPT-4o family) - Requires API key
- Cloud: Google Gemini - Requires API key
- Cloud: Mistral AI - Requires API key

Every provider exposes the same capability: turn a plain-text prompt into a
ProviderOutcome. Providers never raise from generate(); vendor exceptions are
classified into RATE_LIMITED (HTTP 429 / vendor quota code) or OTHER_FAILURE.

LLMService stacks two providers: the primary handles every prompt and the
fallback is consulted exactly once, only when the primary is rate limited.

Usage:
    llm = LLMService(primary="gemini", fallback="mistral")
    outcome = llm.generate("What is machine learning?")
    if outcome.is_success:
        print(outcome.text)
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

# Import the new google-genai package (not the deprecated google.generativeai)
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from config.settings import get_settings, LLMConfig

# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """
    Standardized response from LLM providers.

    Attributes:
        content: The generated text response
        model: Model name used for generation
        usage: Token usage statistics (if available)
        finish_reason: Why generation stopped
    """
    content: str
    model: str
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None

    def __str__(self) -> str:
        return self.content


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    OTHER_FAILURE = "other_failure"


@dataclass(frozen=True)
class ProviderOutcome:
    """
    Tagged result of a single provider call.

    Attributes:
        kind: SUCCESS, RATE_LIMITED or OTHER_FAILURE
        text: Generated text (SUCCESS only)
        message: Failure description (failures only)
        provider: Name of the provider that produced this outcome
    """
    kind: OutcomeKind
    text: str = ""
    message: str = ""
    provider: str = ""

    @classmethod
    def success(cls, text: str, provider: str = "") -> "ProviderOutcome":
        return cls(kind=OutcomeKind.SUCCESS, text=text, provider=provider)

    @classmethod
    def rate_limited(cls, message: str = "", provider: str = "") -> "ProviderOutcome":
        return cls(kind=OutcomeKind.RATE_LIMITED, message=message, provider=provider)

    @classmethod
    def other_failure(cls, message: str = "", provider: str = "") -> "ProviderOutcome":
        return cls(kind=OutcomeKind.OTHER_FAILURE, message=message, provider=provider)

    @property
    def is_success(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @property
    def is_rate_limited(self) -> bool:
        return self.kind is OutcomeKind.RATE_LIMITED


def _status_code(exc: Exception) -> Optional[int]:
    """Best-effort HTTP status extraction from a vendor exception."""
    for attr in ("status_code", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


class BaseLLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Subclasses implement:
    - _complete: Call the vendor API and return an LLMResponse (may raise)
    - _is_rate_limit: Decide whether a vendor exception means "rate limited"
    """

    name: str = "base"

    def __init__(self, model: str, timeout: float = 60.0):
        self._model = model
        self._timeout = timeout
        self._client = None

    @abstractmethod
    def _complete(self, prompt: str) -> LLMResponse:
        """
        Generate a response from the vendor API.

        Args:
            prompt: Complete plain-text prompt

        Returns:
            LLMResponse object
        """
        pass

    def _is_rate_limit(self, exc: Exception) -> bool:
        return _status_code(exc) == 429

    def generate(self, prompt: str) -> ProviderOutcome:
        """
        Generate text for a prompt, classifying any failure.

        Never raises: timeouts, missing credentials and empty responses are
        reported as OTHER_FAILURE.
        """
        try:
            response = self._complete(prompt)
        except Exception as e:
            if self._is_rate_limit(e):
                logger.warning(f"{self.name} rate limited: {e}")
                return ProviderOutcome.rate_limited(str(e), provider=self.name)
            logger.error(f"{self.name} generation error: {e}")
            return ProviderOutcome.other_failure(str(e), provider=self.name)

        text = (response.content or "").strip()
        if not text:
            logger.error(f"{self.name} returned an empty response")
            return ProviderOutcome.other_failure("empty response", provider=self.name)
        return ProviderOutcome.success(text, provider=self.name)

    @property
    def model_name(self) -> str:
        """Return the model name."""
        return self._model


class OllamaProvider(BaseLLMProvider):
    """
    Ollama provider for local LLM inference.

    Requirements:
    - Ollama installed: https://ollama.ai
    - Model pulled: ollama pull llama3
    """

    name = "ollama"

    def __init__(
        self,
        model: str = "llama3",
        base_url: str = "http://localhost:11434",
        timeout: float = 60.0,
    ):
        """
        Initialize Ollama provider.

        Args:
            model: Ollama model name
            base_url: Ollama server URL
            timeout: Request timeout in seconds
        """
        super().__init__(model=model, timeout=timeout)
        self._base_url = base_url.rstrip("/")

        logger.info(f"Initializing OllamaProvider: model={model}, url={base_url}")

    def _get_client(self):
        """Get or create Ollama client."""
        if self._client is None:
            try:
                import ollama
                self._client = ollama.Client(host=self._base_url, timeout=self._timeout)
                logger.info("Ollama client initialized")
            except ImportError:
                raise ImportError(
                    "ollama package required. Install with: pip install ollama"
                )
        return self._client

    def _complete(self, prompt: str) -> LLMResponse:
        client = self._get_client()
        response = client.chat(
            model=self._model,
            messages=[{"role": "user", "content": prompt}],
        )
        return LLMResponse(
            content=response["message"]["content"],
            model=self._model,
            usage={
                "prompt_tokens": response.get("prompt_eval_count", 0),
                "completion_tokens": response.get("eval_count", 0),
            },
            finish_reason="stop",
        )


class OpenAIProvider(BaseLLMProvider):
    """
    OpenAI provider for GPT models.

    Models:
    - gpt-4o-mini: Fast, cost-effective
    - gpt-4o: Most capable
    """

    name = "openai"

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        timeout: float = 60.0,
    ):
        """
        Initialize OpenAI provider.

        Args:
            model: OpenAI model name
            api_key: API key (or from environment)
            timeout: Request timeout in seconds
        """
        super().__init__(model=model, timeout=timeout)
        self._api_key = api_key

        logger.info(f"Initializing OpenAIProvider: model={model}")

    def _get_client(self):
        """Get or create OpenAI client."""
        if self._client is None:
            try:
                from openai import OpenAI
            except ImportError:
                raise ImportError(
                    "openai package required. Install with: pip install openai"
                )

            api_key = self._api_key or os.getenv("OPENAI_API_KEY")
            if not api_key:
                api_key = get_settings().llm.openai_api_key

            if not api_key:
                raise ValueError(
                    "OpenAI API key not found. Set OPENAI_API_KEY environment variable."
                )

            # max_retries=0: rate limits are handled by falling back, not by waiting
            self._client = OpenAI(api_key=api_key, timeout=self._timeout, max_retries=0)
            logger.info("OpenAI client initialized")
        return self._client

    def _is_rate_limit(self, exc: Exception) -> bool:
        try:
            import openai
        except ImportError:
            return super()._is_rate_limit(exc)
        if isinstance(exc, openai.RateLimitError):
            return True
        return isinstance(exc, openai.APIStatusError) and exc.status_code == 429

    def _complete(self, prompt: str) -> LLMResponse:
        client = self._get_client()
        response = client.chat.completions.create(
            model=self._model,
            messages=[{"role": "user", "content": prompt}],
        )
        choice = response.choices[0]
        return LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            usage={
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            } if response.usage else None,
            finish_reason=choice.finish_reason,
        )


class GeminiProvider(BaseLLMProvider):
    """
    Google Gemini provider using the google-genai package.

    Large context window makes it a good fit for stuffing the whole
    knowledge text into a single prompt.

    Models:
    - gemini-1.5-flash: Fast and efficient
    - gemini-2.0-flash: Newer, faster
    - gemini-1.5-pro: More capable, longer context
    """

    name = "gemini"

    def __init__(
        self,
        model: str = "gemini-1.5-flash",
        api_key: Optional[str] = None,
        timeout: float = 60.0,
    ):
        """
        Initialize Gemini provider.

        Args:
            model: Gemini model name (e.g., gemini-1.5-flash)
            api_key: API key (or from environment)
            timeout: Request timeout in seconds
        """
        super().__init__(model=model, timeout=timeout)
        self._api_key = api_key

        logger.info(f"Initializing GeminiProvider: model={model}")

    def _get_client(self):
        """Get or create Gemini client."""
        if self._client is None:
            api_key = self._api_key or os.getenv("GEMINI_API_KEY")
            if not api_key:
                api_key = get_settings().llm.gemini_api_key

            if not api_key:
                raise ValueError(
                    "Gemini API key not found. Set GEMINI_API_KEY environment variable."
                )

            # HttpOptions.timeout is expressed in milliseconds
            self._client = genai.Client(
                api_key=api_key,
                http_options=types.HttpOptions(timeout=int(self._timeout * 1000)),
            )
            logger.info(f"Gemini client initialized with model: {self._model}")
        return self._client

    def _is_rate_limit(self, exc: Exception) -> bool:
        if isinstance(exc, genai_errors.APIError):
            return exc.code == 429 or exc.status == "RESOURCE_EXHAUSTED"
        return super()._is_rate_limit(exc)

    def _complete(self, prompt: str) -> LLMResponse:
        client = self._get_client()
        response = client.models.generate_content(
            model=self._model,
            contents=prompt,
        )
        return LLMResponse(
            content=response.text or "",
            model=self._model,
            finish_reason="stop",
        )


class MistralProvider(BaseLLMProvider):
    """
    Mistral AI cloud provider.

    Models:
    - mistral-small-latest: Fast, efficient (recommended as fallback)
    - mistral-medium-latest: Balanced
    - mistral-large-latest: Most capable
    """

    name = "mistral"

    def __init__(
        self,
        model: str = "mistral-small-latest",
        api_key: Optional[str] = None,
        timeout: float = 60.0,
    ):
        """
        Initialize Mistral provider.

        Args:
            model: Mistral model name
            api_key: API key (or from environment)
            timeout: Request timeout in seconds
        """
        super().__init__(model=model, timeout=timeout)
        self._api_key = api_key

        logger.info(f"Initializing MistralProvider: model={model}")

    def _get_client(self):
        """Get or create Mistral client."""
        if self._client is None:
            try:
                from mistralai import Mistral
            except ImportError:
                raise ImportError(
                    "mistralai package required. "
                    "Install with: pip install mistralai"
                )

            api_key = self._api_key or os.getenv("MISTRAL_API_KEY")
            if not api_key:
                api_key = get_settings().llm.mistral_api_key

            if not api_key:
                raise ValueError(
                    "Mistral API key not found. Set MISTRAL_API_KEY environment variable."
                )

            self._client = Mistral(api_key=api_key, timeout_ms=int(self._timeout * 1000))
            logger.info(f"Mistral client initialized with model: {self._model}")
        return self._client

    def _complete(self, prompt: str) -> LLMResponse:
        client = self._get_client()
        response = client.chat.complete(
            model=self._model,
            messages=[{"role": "user", "content": prompt}],
        )
        choice = response.choices[0]
        return LLMResponse(
            content=choice.message.content or "",
            model=self._model,
            usage={
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            } if response.usage else None,
            finish_reason=choice.finish_reason,
        )


def create_provider(name: str, config: LLMConfig) -> BaseLLMProvider:
    """
    Build a provider by name from configuration.

    Args:
        name: "ollama", "openai", "gemini", or "mistral"
        config: LLMConfig with models, keys and timeout

    Returns:
        Configured provider instance
    """
    if name == "ollama":
        return OllamaProvider(
            model=config.ollama_model,
            base_url=config.ollama_base_url,
            timeout=config.request_timeout,
        )
    if name == "openai":
        return OpenAIProvider(
            model=config.openai_model,
            api_key=config.openai_api_key,
            timeout=config.request_timeout,
        )
    if name == "gemini":
        return GeminiProvider(
            model=config.gemini_model,
            api_key=config.gemini_api_key,
            timeout=config.request_timeout,
        )
    if name == "mistral":
        return MistralProvider(
            model=config.mistral_model,
            api_key=config.mistral_api_key,
            timeout=config.request_timeout,
        )
    raise ValueError(f"Unknown LLM provider: {name}")


class LLMService:
    """
    Main LLM Service with primary/fallback providers.

    This is the class that other components should use.

    Example:
        llm = LLMService()                       # providers from config
        llm = LLMService(primary="openai", fallback=None)

        outcome = llm.generate("What is AI?")
    """

    def __init__(
        self,
        primary: Optional[str] = None,
        fallback: Optional[str] = None,
        config: Optional[LLMConfig] = None,
        primary_provider: Optional[BaseLLMProvider] = None,
        fallback_provider: Optional[BaseLLMProvider] = None,
    ):
        """
        Initialize the LLM service.

        Args:
            primary: Primary provider name (default from config)
            fallback: Fallback provider name (default from config)
            config: Optional LLMConfig instance
            primary_provider: Pre-built primary provider (overrides name)
            fallback_provider: Pre-built fallback provider (overrides name)
        """
        self.config = config or get_settings().llm

        if primary_provider is None:
            primary_provider = create_provider(
                primary or self.config.primary_provider, self.config
            )
        if fallback_provider is None:
            fallback_name = fallback or self.config.fallback_provider
            if fallback_name:
                fallback_provider = create_provider(fallback_name, self.config)

        self._primary = primary_provider
        self._fallback = fallback_provider

        logger.info(
            f"LLMService initialized: primary={self.provider_name}, "
            f"fallback={self.fallback_provider_name}"
        )

    def generate(self, prompt: str) -> ProviderOutcome:
        """
        Generate text, falling back once if the primary is rate limited.

        Args:
            prompt: Complete plain-text prompt

        Returns:
            The primary outcome, or the fallback outcome after RATE_LIMITED
        """
        outcome = self._primary.generate(prompt)
        if not outcome.is_rate_limited:
            return outcome

        if self._fallback is None:
            logger.warning("Primary provider rate limited and no fallback configured")
            return outcome

        logger.info(
            f"Primary provider {self.provider_name} rate limited, "
            f"falling back to {self.fallback_provider_name}"
        )
        return self._fallback.generate(prompt)

    @property
    def model_name(self) -> str:
        """Return the primary model name."""
        return self._primary.model_name

    @property
    def provider_name(self) -> str:
        """Return the primary provider name."""
        return self._primary.name

    @property
    def fallback_provider_name(self) -> Optional[str]:
        """Return the fallback provider name, if any."""
        return self._fallback.name if self._fallback else None
