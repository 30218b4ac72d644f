"""Async client for the Anthropic Messages API used by AI edit steps."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import httpx

from .config import AppConfig, get_config

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096


class GenerationError(Exception):
    """Raised when the text-generation call fails for any reason."""

    def __init__(self, code: str, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


class TextGenerator(Protocol):
    """Anything that turns a prompt into text."""

    async def generate(self, prompt: str, *, max_tokens: int, temperature: float) -> str:
        ...


def _error_for_status(status_code: int) -> tuple[str, str]:
    if status_code == 401:
        return "INVALID_API_KEY", "Invalid API key"
    if status_code == 429:
        return "API_RATE_LIMIT_EXCEEDED", "Model provider rate limit exceeded"
    if status_code in (502, 503, 529):
        return "SERVICE_UNAVAILABLE", "Model provider unavailable"
    return "API_FAILURE", f"API error: {status_code}"


class AnthropicGenerationClient:
    """Thin httpx wrapper around ``POST /v1/messages``."""

    def __init__(
        self,
        api_key: str,
        *,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            api_key: Anthropic API key (the user's own or the server fallback)
            model: Model identifier; defaults to the configured edit model
            base_url: API base URL; defaults to the configured one
            timeout: HTTP timeout for a single call
            transport: Optional transport override (used by tests)
        """
        config = get_config() if model is None or base_url is None else None
        self.api_key = api_key
        self.model = model or config.edit_model
        self.base_url = (base_url or config.anthropic_base_url).rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def generate(
        self,
        prompt: str,
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = 0.3,
    ) -> str:
        """
        Send a single-turn prompt and return the first text block.

        Raises:
            GenerationError: On HTTP, transport or response-shape failures
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    f"{self.base_url}/v1/messages",
                    headers={
                        "x-api-key": self.api_key,
                        "anthropic-version": ANTHROPIC_VERSION,
                        "content-type": "application/json",
                    },
                    json={
                        "model": self.model,
                        "max_tokens": max_tokens,
                        "temperature": temperature,
                        "messages": [{"role": "user", "content": prompt}],
                    },
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            code, message = _error_for_status(e.response.status_code)
            logger.error(f"Generation API error: {e.response.status_code}")
            raise GenerationError(code, message, status_code=e.response.status_code) from e
        except httpx.TimeoutException as e:
            raise GenerationError("NETWORK_ERROR", "Request timeout") from e
        except httpx.TransportError as e:
            raise GenerationError("NETWORK_ERROR", f"Network error: {e}") from e
        except ValueError as e:
            raise GenerationError("API_FAILURE", "Malformed response from model") from e

        if data.get("stop_reason") == "max_tokens":
            logger.warning("Generation stopped at the token limit", extra={"model": self.model})
            raise GenerationError("API_FAILURE", "Model response was truncated")

        blocks = data.get("content") or []
        if not blocks or blocks[0].get("type") != "text":
            raise GenerationError("API_FAILURE", "No text in model response")
        return blocks[0].get("text", "").strip()


def build_generation_client(
    api_key: str, config: Optional[AppConfig] = None
) -> AnthropicGenerationClient:
    """Create a client for ``api_key`` using configured model settings."""
    cfg = config or get_config()
    return AnthropicGenerationClient(
        api_key,
        model=cfg.edit_model,
        base_url=cfg.anthropic_base_url,
    )


__all__ = [
    "GenerationError",
    "TextGenerator",
    "AnthropicGenerationClient",
    "build_generation_client",
    "DEFAULT_MAX_TOKENS",
]
