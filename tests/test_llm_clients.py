"""Tests pour les adaptateurs LLM (OpenAI, Gemini, factice).

Les SDK ne sont jamais appelés: le client interne est remplacé par un `Mock`.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from backend.infra.llm.base import LLMUnavailableError
from backend.infra.llm.fake import FakeLLM
from backend.infra.llm.gemini_client import GeminiLLM
from backend.infra.llm.openai_client import OpenAILLM

# Constantes pour éviter les erreurs PLR2004 (Magic values)
TEST_MAX_TOKENS = 1024
TEST_TEMPERATURE = 0.2


def _openai_response(content: str | None, finish_reason: str = "stop") -> SimpleNamespace:
    message = SimpleNamespace(content=content)
    choice = SimpleNamespace(message=message, finish_reason=finish_reason)
    usage = SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15)
    return SimpleNamespace(choices=[choice], usage=usage)


def test_openai_without_api_key_raises() -> None:
    """Teste qu'un client OpenAI non configuré lève LLMUnavailableError."""
    llm = OpenAILLM(api_key=None)
    assert llm.client is None
    with pytest.raises(LLMUnavailableError, match="OPENAI_API_KEY"):
        llm.generate("prompt")


def test_openai_generate_requests_json_output() -> None:
    """Teste les paramètres envoyés et le texte renvoyé."""
    llm = OpenAILLM(api_key=None, model="gpt-test")
    llm.client = Mock()
    llm.client.chat.completions.create.return_value = _openai_response('{"a": 1}')

    out = llm.generate("prompt", temperature=TEST_TEMPERATURE, max_output_tokens=TEST_MAX_TOKENS)

    assert out == '{"a": 1}'
    kwargs = llm.client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-test"
    assert kwargs["temperature"] == TEST_TEMPERATURE
    assert kwargs["max_tokens"] == TEST_MAX_TOKENS
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]


def test_openai_empty_response_raises() -> None:
    """Teste qu'une réponse vide est traitée comme un échec d'appel."""
    llm = OpenAILLM(api_key=None)
    llm.client = Mock()
    llm.client.chat.completions.create.return_value = _openai_response("  ", "length")
    with pytest.raises(LLMUnavailableError, match="finish_reason=length"):
        llm.generate("prompt")


def test_openai_sdk_error_is_classified() -> None:
    """Teste la conversion des erreurs du SDK."""
    llm = OpenAILLM(api_key=None)
    llm.client = Mock()
    llm.client.chat.completions.create.side_effect = RuntimeError("rate_limit reached")
    with pytest.raises(LLMUnavailableError, match="rate limit exceeded") as excinfo:
        llm.generate("prompt")
    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_gemini_without_api_key_raises() -> None:
    """Teste qu'un client Gemini non configuré lève LLMUnavailableError."""
    llm = GeminiLLM(api_key=None)
    assert llm.client is None
    with pytest.raises(LLMUnavailableError, match="GEMINI_API_KEY"):
        llm.generate("prompt")


def test_gemini_generate_uses_json_mime_type() -> None:
    """Teste la configuration de génération Gemini."""
    llm = GeminiLLM(api_key=None, model="gemini-test", top_k=40)
    llm.client = Mock()
    llm.client.models.generate_content.return_value = SimpleNamespace(text='{"ok": true}')

    out = llm.generate("prompt", max_output_tokens=TEST_MAX_TOKENS)

    assert out == '{"ok": true}'
    kwargs = llm.client.models.generate_content.call_args.kwargs
    assert kwargs["model"] == "gemini-test"
    assert kwargs["contents"] == "prompt"
    config = kwargs["config"]
    assert config.response_mime_type == "application/json"
    assert config.max_output_tokens == TEST_MAX_TOKENS
    assert config.top_k == 40


def test_gemini_empty_or_failing_response_raises() -> None:
    """Teste les réponses vides et les erreurs du SDK Gemini."""
    llm = GeminiLLM(api_key=None)
    llm.client = Mock()
    llm.client.models.generate_content.return_value = SimpleNamespace(text=None)
    with pytest.raises(LLMUnavailableError, match="empty response"):
        llm.generate("prompt")

    llm.client.models.generate_content.side_effect = ValueError("blocked")
    with pytest.raises(LLMUnavailableError, match="ValueError"):
        llm.generate("prompt")


def test_fake_llm_routes_by_prompt_marker() -> None:
    """Teste le routage du LLM factice et l'enregistrement des prompts."""
    llm = FakeLLM({"alpha": '{"a": 1}', "beta": lambda p: p.upper()}, default="{}")
    assert llm.generate("x alpha y") == '{"a": 1}'
    assert llm.generate("beta") == "BETA"
    assert llm.generate("autre") == "{}"
    assert llm.prompts == ["x alpha y", "beta", "autre"]
