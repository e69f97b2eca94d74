"""
Client LLM basé sur Google Gemini (SDK `google-genai`).

Demande une sortie `application/json` avec température, top-p/top-k et plafond de tokens. Les
erreurs du SDK et les réponses vides sont converties en `LLMUnavailableError`.
"""

from __future__ import annotations

import structlog
from google import genai
from google.genai import types

from backend.infra.llm.base import LLM, LLMUnavailableError


class GeminiLLM(LLM):
    """LLM Gemini; sans clé API chaque appel lève `LLMUnavailableError`."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gemini-2.5-pro",
        *,
        temperature: float = 0.8,
        top_p: float = 0.95,
        top_k: int = 40,
        max_output_tokens: int = 8192,
        timeout: float = 600.0,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.top_p = top_p
        self.top_k = top_k
        self.max_output_tokens = max_output_tokens
        self.client = (
            genai.Client(
                api_key=api_key,
                http_options=types.HttpOptions(timeout=int(timeout * 1000)),
            )
            if api_key
            else None
        )
        self._log = structlog.get_logger(__name__).bind(component="gemini_llm", model=model)

    def generate(
        self,
        prompt: str,
        *,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
    ) -> str:
        if self.client is None:
            raise LLMUnavailableError("GEMINI_API_KEY is not configured")
        config = types.GenerateContentConfig(
            temperature=self.temperature if temperature is None else temperature,
            top_p=self.top_p,
            top_k=self.top_k,
            max_output_tokens=max_output_tokens or self.max_output_tokens,
            response_mime_type="application/json",
        )
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=prompt,
                config=config,
            )
        except Exception as exc:
            raise LLMUnavailableError(
                f"Gemini API error ({type(exc).__name__}): {exc}"
            ) from exc

        text = getattr(response, "text", None)
        if not text or not text.strip():
            raise LLMUnavailableError(f"Gemini returned an empty response (model={self.model})")
        self._log.debug("llm_response_received", response_length=len(text))
        return text
