"""
Delta CLI Provider Base - Abstract base classes for LLM providers.

This module defines the interface that all completion providers must
implement, the typed failures they raise, and a factory for creating
provider instances.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type

import httpx

from deltacli.validation.config import Config


class ProviderFailure(Exception):
    """Base class for completion failures."""


class NetworkFailure(ProviderFailure):
    """The provider could not be reached."""


class ProviderError(ProviderFailure):
    """The provider answered with an error."""

    def __init__(self, message: str):
        super().__init__(f"API Error: {message}")
        self.message = message


class EmptyResult(ProviderFailure):
    """The provider answered without any completion text."""

    def __init__(self, message: str = "No response generated"):
        super().__init__(message)


@dataclass
class ProviderResponse:
    """Response from an LLM provider."""

    content: str
    model: str
    provider: str
    token_usage: int = 0
    finish_reason: str = "stop"
    metadata: Dict[str, Any] = None

    def __post_init__(self):
        if self.metadata is None:
            self.metadata = {}


def build_messages(
    prompt: str,
    conversation_history: Optional[List[Dict[str, str]]] = None,
    system_prompt: Optional[str] = None,
) -> List[Dict[str, str]]:
    """Chat-style message list: optional system turn, history, then the prompt."""
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    if conversation_history:
        messages.extend(conversation_history)
    messages.append({"role": "user", "content": prompt})
    return messages


def _require_text(content: Optional[str]) -> str:
    if not content or not content.strip():
        raise EmptyResult()
    return content


def _post_json(url: str, timeout: float, **kwargs) -> Dict[str, Any]:
    """POST and decode JSON, mapping httpx errors to provider failures."""
    try:
        response = httpx.post(url, timeout=timeout, **kwargs)
    except httpx.TransportError as e:
        raise NetworkFailure(f"Request failed: {e}")

    try:
        data = response.json()
    except ValueError as e:
        if response.is_error:
            raise ProviderError(f"HTTP {response.status_code}")
        raise ProviderError(f"Error parsing response: {e}")

    if response.is_error:
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict):
            raise ProviderError(error.get("message") or f"HTTP {response.status_code}")
        raise ProviderError(str(error) if error else f"HTTP {response.status_code}")

    return data


class Provider(ABC):
    """
    Abstract base class for LLM providers.

    All provider implementations must inherit from this class and
    implement the required methods. ``complete`` either returns a
    ProviderResponse with non-empty content or raises a ProviderFailure.
    """

    def __init__(self, model: str, config: Config):
        """
        Initialize the provider.

        Args:
            model: The model identifier.
            config: Delta CLI configuration.
        """
        self.model = model
        self.config = config

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    def complete(
        self,
        prompt: str,
        conversation_history: Optional[List[Dict[str, str]]] = None,
        system_prompt: Optional[str] = None,
        **kwargs,
    ) -> ProviderResponse:
        """
        Generate a completion for the given prompt.

        Args:
            prompt: The prompt to complete.
            conversation_history: Previous user/assistant turns, oldest first.
            system_prompt: Optional system instruction.
            **kwargs: Additional provider-specific parameters.

        Returns:
            ProviderResponse with the completion.

        Raises:
            NetworkFailure, ProviderError, EmptyResult
        """
        pass

    @abstractmethod
    def validate_connection(self) -> bool:
        """
        Validate that the provider connection is working.

        Returns:
            True if connection is valid, False otherwise.
        """
        pass

    def get_api_key(self) -> Optional[str]:
        """Get the API key for this provider."""
        return self.config.get_api_key(self.provider_name)

    def _max_tokens(self, kwargs: Dict[str, Any]) -> int:
        return kwargs.get("max_tokens", self.config.merged.agent.max_tokens)

    def _temperature(self, kwargs: Dict[str, Any]) -> float:
        return kwargs.get("temperature", self.config.merged.agent.temperature)


class GeminiProvider(Provider):
    """Google Gemini over the generateContent REST endpoint."""

    base_url = "https://generativelanguage.googleapis.com/v1beta/models"

    @property
    def provider_name(self) -> str:
        return "google"

    def _base_url(self) -> str:
        provider_config = self.config.get_provider_config("google")
        if provider_config and provider_config.api_base:
            return provider_config.api_base.rstrip("/")
        return self.base_url

    def complete(
        self,
        prompt: str,
        conversation_history: Optional[List[Dict[str, str]]] = None,
        system_prompt: Optional[str] = None,
        **kwargs,
    ) -> ProviderResponse:
        """Generate completion using the Gemini REST API."""
        api_key = self.get_api_key()
        if not api_key:
            raise ProviderError("Gemini API key not configured. Set GEMINI_API_KEY or add it to config.")

        # Gemini has no system role here; the instruction goes first as a user turn
        contents = []
        for msg in build_messages(prompt, conversation_history, system_prompt):
            role = "model" if msg["role"] == "assistant" else "user"
            contents.append({"role": role, "parts": [{"text": msg["content"]}]})

        data = _post_json(
            f"{self._base_url()}/{self.model}:generateContent",
            timeout=self.config.merged.agent.timeout,
            params={"key": api_key},
            json={
                "contents": contents,
                "generationConfig": {
                    "temperature": self._temperature(kwargs),
                    "maxOutputTokens": self._max_tokens(kwargs),
                },
            },
        )

        if data.get("error"):
            raise ProviderError(data["error"].get("message") or "Unknown error")

        candidates = data.get("candidates") or []
        try:
            text = candidates[0]["content"]["parts"][0]["text"]
        except (IndexError, KeyError, TypeError):
            raise EmptyResult()

        usage = data.get("usageMetadata", {})
        return ProviderResponse(
            content=_require_text(text),
            model=self.model,
            provider=self.provider_name,
            token_usage=usage.get("totalTokenCount", 0),
            finish_reason=candidates[0].get("finishReason", "stop"),
        )

    def validate_connection(self) -> bool:
        """Validate Gemini configuration."""
        return self.get_api_key() is not None


class OpenAIProvider(Provider):
    """OpenAI API provider implementation."""

    @property
    def provider_name(self) -> str:
        return "openai"

    def complete(
        self,
        prompt: str,
        conversation_history: Optional[List[Dict[str, str]]] = None,
        system_prompt: Optional[str] = None,
        **kwargs,
    ) -> ProviderResponse:
        """Generate completion using OpenAI API."""
        try:
            import openai
        except ImportError:
            raise ImportError("openai package required. Install with: pip install delta-cli[openai]")

        api_key = self.get_api_key()
        if not api_key:
            raise ProviderError("OpenAI API key not configured")

        client = openai.OpenAI(api_key=api_key)

        try:
            response = client.chat.completions.create(
                model=self.model.split("/")[-1],  # Remove provider prefix if present
                messages=build_messages(prompt, conversation_history, system_prompt),
                max_tokens=self._max_tokens(kwargs),
                temperature=self._temperature(kwargs),
            )
        except openai.APIConnectionError as e:
            raise NetworkFailure(f"Request failed: {e}")
        except openai.APIError as e:
            raise ProviderError(str(e))

        if not response.choices:
            raise EmptyResult()
        choice = response.choices[0]
        return ProviderResponse(
            content=_require_text(choice.message.content),
            model=response.model,
            provider=self.provider_name,
            token_usage=response.usage.total_tokens if response.usage else 0,
            finish_reason=choice.finish_reason,
        )

    def validate_connection(self) -> bool:
        """Validate OpenAI connection."""
        try:
            import openai

            api_key = self.get_api_key()
            if not api_key:
                return False

            client = openai.OpenAI(api_key=api_key)
            client.models.list()
            return True
        except Exception:
            return False


class AnthropicProvider(Provider):
    """Anthropic API provider implementation."""

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def complete(
        self,
        prompt: str,
        conversation_history: Optional[List[Dict[str, str]]] = None,
        system_prompt: Optional[str] = None,
        **kwargs,
    ) -> ProviderResponse:
        """Generate completion using Anthropic API."""
        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic package required. Install with: pip install delta-cli[anthropic]"
            )

        api_key = self.get_api_key()
        if not api_key:
            raise ProviderError("Anthropic API key not configured")

        client = anthropic.Anthropic(api_key=api_key)

        request = {
            "model": self.model.split("/")[-1],
            "messages": build_messages(prompt, conversation_history),
            "max_tokens": self._max_tokens(kwargs),
        }
        if system_prompt:
            request["system"] = system_prompt

        try:
            response = client.messages.create(**request)
        except anthropic.APIConnectionError as e:
            raise NetworkFailure(f"Request failed: {e}")
        except anthropic.APIError as e:
            raise ProviderError(str(e))

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        return ProviderResponse(
            content=_require_text(text),
            model=response.model,
            provider=self.provider_name,
            token_usage=response.usage.input_tokens + response.usage.output_tokens,
            finish_reason=response.stop_reason,
        )

    def validate_connection(self) -> bool:
        """Validate Anthropic configuration."""
        try:
            import anthropic  # noqa: F401
        except ImportError:
            return False
        return self.get_api_key() is not None


class OllamaProvider(Provider):
    """Ollama local provider implementation."""

    @property
    def provider_name(self) -> str:
        return "ollama"

    def _base_url(self) -> str:
        provider_config = self.config.get_provider_config("ollama")
        if provider_config and provider_config.api_base:
            return provider_config.api_base
        return "http://localhost:11434"

    def complete(
        self,
        prompt: str,
        conversation_history: Optional[List[Dict[str, str]]] = None,
        system_prompt: Optional[str] = None,
        **kwargs,
    ) -> ProviderResponse:
        """Generate completion using Ollama."""
        data = _post_json(
            f"{self._base_url()}/api/chat",
            timeout=self.config.merged.agent.timeout,
            json={
                "model": self.model.split("/")[-1],
                "messages": build_messages(prompt, conversation_history, system_prompt),
                "stream": False,
                "options": {"temperature": self._temperature(kwargs)},
            },
        )

        return ProviderResponse(
            content=_require_text(data.get("message", {}).get("content")),
            model=data.get("model", self.model),
            provider=self.provider_name,
            token_usage=data.get("eval_count", 0),
            finish_reason="stop",
        )

    def validate_connection(self) -> bool:
        """Validate Ollama connection."""
        try:
            response = httpx.get(f"{self._base_url()}/api/tags", timeout=5)
            return response.status_code == 200
        except httpx.HTTPError:
            return False


class OpenAICompatibleProvider(Provider):
    """
    Base for providers that expose an OpenAI-compatible chat completions API.

    Subclasses only need to set _base_url, _env_key, and provider_name.
    """

    _base_url: str = ""
    _env_key: str = ""

    @property
    def provider_name(self) -> str:
        raise NotImplementedError

    def complete(
        self,
        prompt: str,
        conversation_history: Optional[List[Dict[str, str]]] = None,
        system_prompt: Optional[str] = None,
        **kwargs,
    ) -> ProviderResponse:
        api_key = self.get_api_key()
        if not api_key:
            raise ProviderError(
                f"{self.provider_name} API key not configured. "
                f"Set {self._env_key} or add it to config."
            )

        data = _post_json(
            f"{self._base_url}/chat/completions",
            timeout=self.config.merged.agent.timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            json={
                "model": self.model,
                "messages": build_messages(prompt, conversation_history, system_prompt),
                "max_tokens": self._max_tokens(kwargs),
                "temperature": self._temperature(kwargs),
            },
        )

        choices = data.get("choices") or []
        if not choices:
            raise EmptyResult()
        choice = choices[0]
        usage = data.get("usage") or {}

        return ProviderResponse(
            content=_require_text(choice.get("message", {}).get("content")),
            model=data.get("model", self.model),
            provider=self.provider_name,
            token_usage=usage.get("total_tokens", 0),
            finish_reason=choice.get("finish_reason", "stop"),
        )

    def validate_connection(self) -> bool:
        return self.get_api_key() is not None


class OpenRouterProvider(OpenAICompatibleProvider):
    """OpenRouter - unified API for 100+ open and commercial models."""

    _base_url = "https://openrouter.ai/api/v1"
    _env_key = "OPENROUTER_API_KEY"

    @property
    def provider_name(self) -> str:
        return "openrouter"


class TogetherProvider(OpenAICompatibleProvider):
    """Together AI - fast inference for open-source models."""

    _base_url = "https://api.together.xyz/v1"
    _env_key = "TOGETHER_API_KEY"

    @property
    def provider_name(self) -> str:
        return "together"


class GroqProvider(OpenAICompatibleProvider):
    """Groq - ultra-fast inference for open models."""

    _base_url = "https://api.groq.com/openai/v1"
    _env_key = "GROQ_API_KEY"

    @property
    def provider_name(self) -> str:
        return "groq"


class ProviderFactory:
    """Factory for creating provider instances."""

    _providers: Dict[str, Type[Provider]] = {
        "google": GeminiProvider,
        "openai": OpenAIProvider,
        "anthropic": AnthropicProvider,
        "ollama": OllamaProvider,
        "openrouter": OpenRouterProvider,
        "together": TogetherProvider,
        "groq": GroqProvider,
    }

    @classmethod
    def register(cls, name: str, provider_class: Type[Provider]) -> None:
        """Register a new provider."""
        cls._providers[name] = provider_class

    @classmethod
    def create(cls, model: str, config: Config) -> Provider:
        """
        Create a provider instance for the given model.

        Args:
            model: Model identifier (e.g., "google/gemini-1.5-pro" or "gemini-1.5-pro").
            config: Delta CLI configuration.

        Returns:
            Provider instance.

        Raises:
            ValueError: If the provider is not recognized.
        """
        if "/" in model:
            provider_name, model_name = model.split("/", 1)
        else:
            provider_name = cls._infer_provider(model)
            model_name = model

        if provider_name not in cls._providers:
            raise ValueError(f"Unknown provider: {provider_name}")

        provider_class = cls._providers[provider_name]
        return provider_class(model=model_name, config=config)

    @classmethod
    def _infer_provider(cls, model: str) -> str:
        """Infer the provider from the model name."""
        model_lower = model.lower()

        if model_lower.startswith("gemini"):
            return "google"
        elif model_lower.startswith("gpt") or model_lower.startswith("o1"):
            return "openai"
        elif model_lower.startswith("claude"):
            return "anthropic"
        elif model_lower.startswith("llama") or model_lower.startswith("deepseek"):
            return "groq"
        elif model_lower.startswith("mixtral") or model_lower.startswith("qwen"):
            return "together"
        elif model_lower in ("codellama", "phi", "phi-2"):
            return "ollama"

        # Default to openrouter (broadest model catalog)
        return "openrouter"

    @classmethod
    def available_providers(cls) -> List[str]:
        """Get list of available provider names."""
        return list(cls._providers.keys())
