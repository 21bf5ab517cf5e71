"""
Completion client abstraction for code review and chat.

Supports Anthropic (Claude) and OpenAI models with retry logic,
call timeouts and a single failure type the agent can recover from.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from review_assistant.config import Settings

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Base exception for LLM-related errors."""
    pass


class ServiceUnavailable(LLMError):
    """The completion service could not produce text (transport, quota, timeout)."""
    pass


class CompletionClient(ABC):
    """Abstract base class for completion clients."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.model_name = settings.LLM_MODEL
        self.timeout = settings.LLM_TIMEOUT_SECONDS
        self.max_attempts = settings.LLM_MAX_RETRIES

    async def complete(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int,
        temperature: float,
    ) -> str:
        """
        Generate a completion for a chat-style message list.

        Args:
            messages: ``{"role", "content"}`` dicts; a leading system
                message carries the instructions
            max_tokens: Token budget for the answer
            temperature: Sampling temperature

        Returns:
            The model's raw text, possibly empty

        Raises:
            ServiceUnavailable: If every attempt fails or times out
        """
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=1, min=2, max=10),
                retry=retry_if_exception_type(ServiceUnavailable),
                reraise=True,
            ):
                with attempt:
                    return await self._complete_once(messages, max_tokens, temperature)
        except ServiceUnavailable:
            raise
        except Exception as e:
            raise ServiceUnavailable(f"Completion failed: {e}") from e

    async def _complete_once(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int,
        temperature: float,
    ) -> str:
        try:
            text = await asyncio.wait_for(
                self._create(messages, max_tokens, temperature),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"{self.provider_name} completion timed out after {self.timeout}s")
            raise ServiceUnavailable(f"{self.provider_name} completion timed out")
        except ServiceUnavailable:
            raise
        except Exception as e:
            logger.error(f"{self.provider_name} API error: {e}")
            raise ServiceUnavailable(f"{self.provider_name} generation failed: {e}") from e

        # Empty text is a valid answer; the parser's fallback tier handles it
        text = text or ""
        if not text.strip():
            logger.warning(f"{self.provider_name} returned an empty completion")

        logger.debug(f"{self.provider_name} response: {text[:200]}...")
        return text

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def _create(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Issue one SDK call and return the text of the first choice."""
        pass

    @staticmethod
    def _split_system(messages: List[Dict[str, str]]):
        """Separate system instructions from the conversational turns."""
        system_parts = [m["content"] for m in messages if m["role"] == "system"]
        turns = [m for m in messages if m["role"] != "system"]
        return "\n\n".join(system_parts), turns


class AnthropicClient(CompletionClient):
    """Anthropic (Claude) client implementation."""

    provider_name = "Claude"

    def __init__(self, settings: Settings):
        super().__init__(settings)
        if not settings.ANTHROPIC_API_KEY:
            raise ServiceUnavailable("ANTHROPIC_API_KEY not configured")
        from anthropic import AsyncAnthropic
        self.client = AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)

    async def _create(self, messages, max_tokens, temperature) -> str:
        system_prompt, turns = self._split_system(messages)
        response = await self.client.messages.create(
            model=self.model_name,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_prompt,
            messages=turns,
        )
        return "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )


class OpenAIClient(CompletionClient):
    """OpenAI client implementation."""

    provider_name = "OpenAI"

    def __init__(self, settings: Settings):
        super().__init__(settings)
        if not settings.OPENAI_API_KEY:
            raise ServiceUnavailable("OPENAI_API_KEY not configured")
        from openai import AsyncOpenAI
        self.client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)

    async def _create(self, messages, max_tokens, temperature) -> str:
        response = await self.client.chat.completions.create(
            model=self.model_name,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=messages,
        )
        return response.choices[0].message.content or ""


class UnconfiguredClient(CompletionClient):
    """
    Stand-in used when the provider cannot be initialized.

    Every call fails with ServiceUnavailable so requests degrade instead of
    the service refusing to start.
    """

    provider_name = "unconfigured"

    def __init__(self, settings: Settings, reason: str):
        super().__init__(settings)
        self.reason = reason
        self.max_attempts = 1

    async def _create(self, messages, max_tokens, temperature) -> str:
        raise ServiceUnavailable(self.reason)


def get_completion_client(settings: Settings) -> CompletionClient:
    """
    Factory function to get the appropriate completion client.

    Args:
        settings: Application settings

    Returns:
        Configured client (Anthropic or OpenAI), or an UnconfiguredClient
        when the provider is unknown or its API key is missing
    """
    provider = settings.LLM_PROVIDER

    try:
        if provider == "anthropic":
            logger.info(f"Initializing Anthropic client with model {settings.LLM_MODEL}")
            return AnthropicClient(settings)
        elif provider == "openai":
            logger.info(f"Initializing OpenAI client with model {settings.LLM_MODEL}")
            return OpenAIClient(settings)
        reason = f"Unsupported LLM provider: {provider}. Use 'anthropic' or 'openai'"
    except ServiceUnavailable as e:
        reason = str(e)

    logger.warning(f"Completion client unavailable: {reason}")
    return UnconfiguredClient(settings, reason)
