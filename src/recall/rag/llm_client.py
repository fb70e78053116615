"""LiteLLM-backed embedding and chat clients.

The rest of the package only depends on the two protocols below; the LiteLLM
implementations are the production collaborators. Embedding calls run with
``num_retries=0`` because the embedding queue owns the retry/backoff policy.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from typing import Protocol

import litellm

from recall.db.vectors import check_vector
from recall.errors import EmbeddingBackendError

litellm.suppress_debug_info = True

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are recalling a specific meeting. Answer questions ONLY about this meeting. "
    "Be concise (2-4 sentences). Sound natural, like a human recalling. "
    "If information is not present, say so briefly. Never guess."
)


class EmbeddingClient(Protocol):
    def embed(self, text: str) -> list[float]:
        """Return a fixed-length vector for *text* or raise EmbeddingBackendError."""
        ...


class LanguageModelClient(Protocol):
    def stream(self, prompt: str, context: str) -> Iterator[str]:
        """Yield answer text fragments for *prompt* grounded in *context*."""
        ...


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 512,
    temperature: float = 0.0,
    timeout: float | None = None,
    num_retries: int = 2,
) -> str:
    """Call litellm.completion() and return the content string.

    Raises:
        Exception: Whatever LiteLLM raises after its own retries.
    """
    response = litellm.completion(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        timeout=timeout,
        num_retries=num_retries,
    )
    return response.choices[0].message.content or ""


class LiteLLMEmbedder:
    """:class:`EmbeddingClient` backed by ``litellm.embedding``.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        dimensions: Expected vector length; any other length is a hard failure.
        timeout_s: Per-call timeout so a hung backend cannot block the caller.
    """

    def __init__(self, model: str, dimensions: int, timeout_s: float = 10.0) -> None:
        self.model = model
        self.dimensions = dimensions
        self.timeout_s = timeout_s

    def embed(self, text: str) -> list[float]:
        try:
            response = litellm.embedding(
                model=self.model,
                input=[text],
                timeout=self.timeout_s,
                num_retries=0,
            )
        except Exception as exc:
            logger.debug("Embedding call to %s failed: %s", self.model, exc)
            raise EmbeddingBackendError(f"{type(exc).__name__}: {exc}") from exc

        try:
            vector = response.data[0]["embedding"]
        except (AttributeError, IndexError, KeyError, TypeError) as exc:
            logger.debug("Embedding response from %s has no vector", self.model)
            raise EmbeddingBackendError(f"Malformed embedding response: {exc}") from exc
        if not isinstance(vector, (list, tuple)):
            raise EmbeddingBackendError(
                f"Malformed embedding response: expected a list, got {type(vector).__name__}"
            )
        return check_vector(vector, self.dimensions)


class LiteLLMChatClient:
    """:class:`LanguageModelClient` that streams from ``litellm.completion``."""

    def __init__(
        self,
        model: str,
        max_tokens: int = 512,
        timeout_s: float = 30.0,
        system_prompt: str = SYSTEM_PROMPT,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.timeout_s = timeout_s
        self.system_prompt = system_prompt

    def stream(self, prompt: str, context: str) -> Iterator[str]:
        response = litellm.completion(
            model=self.model,
            messages=[
                {"role": "system", "content": f"{self.system_prompt}\n\n{context}"},
                {"role": "user", "content": prompt},
            ],
            max_tokens=self.max_tokens,
            temperature=0.2,
            timeout=self.timeout_s,
            stream=True,
        )
        for part in response:
            delta = part.choices[0].delta.content
            if delta:
                yield delta
