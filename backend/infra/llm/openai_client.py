"""
Client LLM basé sur l'API OpenAI (chat.completions, sortie JSON).

Implémente l'interface LLM:
- demande une réponse `json_object` avec température et plafond de tokens;
- convertit toute erreur du SDK en `LLMUnavailableError` avec un message explicite;
- considère une réponse vide comme un échec d'invocation.
"""

from __future__ import annotations

from typing import Any

import structlog
from openai import OpenAI

from backend.infra.llm.base import LLM, LLMUnavailableError


class OpenAILLM(LLM):
    """
    LLM basé sur OpenAI.

    Sans clé API, le client n'est pas créé et chaque appel lève `LLMUnavailableError`.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        *,
        temperature: float = 0.8,
        max_output_tokens: int = 8192,
        timeout: float = 600.0,
    ) -> None:
        """Initialize the OpenAILLM client."""
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.client = OpenAI(api_key=api_key, timeout=timeout) if api_key else None
        self._log = structlog.get_logger(__name__).bind(component="openai_llm", model=model)

    def generate(
        self,
        prompt: str,
        *,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
    ) -> str:
        """Génère du texte via chat.completions; lève `LLMUnavailableError` en cas d'échec."""
        if self.client is None:
            raise LLMUnavailableError("OPENAI_API_KEY is not configured")
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature if temperature is None else temperature,
                max_tokens=max_output_tokens or self.max_output_tokens,
                response_format={"type": "json_object"},
            )
        except Exception as exc:
            raise LLMUnavailableError(_describe_error(exc)) from exc

        choice = resp.choices[0] if resp.choices else None
        content = getattr(getattr(choice, "message", None), "content", None)
        if not content or not str(content).strip():
            finish_reason = getattr(choice, "finish_reason", None) or "N/A"
            raise LLMUnavailableError(
                f"OpenAI returned an empty response (model={self.model}, finish_reason={finish_reason})"
            )
        self._log.debug(
            "llm_response_received",
            response_length=len(content),
            finish_reason=getattr(choice, "finish_reason", None),
            **self._extract_usage_dict(resp),
        )
        return str(content)

    def _extract_usage_dict(self, resp: Any) -> dict[str, int]:
        """
        Extrait les infos d'usage depuis la réponse OpenAI.

        Toujours un dict.
        """
        usage = getattr(resp, "usage", None)
        if not usage:
            return {}
        return {
            "prompt_tokens": int(getattr(usage, "prompt_tokens", 0) or 0),
            "completion_tokens": int(getattr(usage, "completion_tokens", 0) or 0),
            "total_tokens": int(getattr(usage, "total_tokens", 0) or 0),
        }


def _describe_error(exc: Exception) -> str:
    error_msg = str(exc)
    lowered = error_msg.lower()
    if "rate_limit" in lowered:
        return f"OpenAI rate limit exceeded: {error_msg}"
    if "invalid_api_key" in lowered or "authentication" in lowered:
        return f"Invalid OpenAI API key: {error_msg}"
    if "timeout" in lowered or "timed out" in lowered:
        return f"OpenAI request timed out: {error_msg}"
    if "insufficient_quota" in lowered:
        return f"OpenAI quota exceeded: {error_msg}"
    return f"OpenAI API error ({type(exc).__name__}): {error_msg}"
