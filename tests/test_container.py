"""Tests pour le conteneur d'injection de dépendances."""

from __future__ import annotations

import pytest

from backend.core.container import Container, build_llm
from backend.core.settings import Settings
from backend.infra.llm.fake import FakeLLM
from backend.infra.llm.gemini_client import GeminiLLM
from backend.infra.llm.openai_client import OpenAILLM

# Constantes pour éviter les erreurs PLR2004 (Magic values)
TEST_CONCURRENCY = 3
TEST_RETRIES = 2


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


@pytest.mark.parametrize(
    ("provider", "expected"),
    [("fake", FakeLLM), ("openai", OpenAILLM), ("gemini", GeminiLLM)],
)
def test_build_llm_selects_provider(provider: str, expected: type) -> None:
    """Teste la sélection de l'adaptateur selon LLM_PROVIDER."""
    llm = build_llm(_settings(LLM_PROVIDER=provider, OPENAI_API_KEY=None, GEMINI_API_KEY=None))
    assert isinstance(llm, expected)


def test_container_wires_settings_into_components() -> None:
    """Teste la propagation de la configuration vers l'orchestrateur et la politique d'appel."""
    settings = _settings(
        LLM_PROVIDER="fake",
        ANALYSIS_MAX_CONCURRENCY=TEST_CONCURRENCY,
        LLM_MAX_RETRIES=TEST_RETRIES,
        YEARLY_CHUNK_SIZE=10,
    )
    c = Container(settings)

    assert isinstance(c.llm, FakeLLM)
    assert c.call_policy.max_retries == TEST_RETRIES
    assert c.orchestrator.llm is c.llm
    assert c.orchestrator.max_concurrency == TEST_CONCURRENCY
    assert c.orchestrator.yearly_chunk_size == 10
    assert c.orchestrator.call_policy is c.call_policy
    assert c.service.orchestrator is c.orchestrator
    assert c.service.parser is c.parser


def test_container_accepts_injected_llm() -> None:
    """Teste l'injection explicite d'un LLM."""
    llm = FakeLLM()
    c = Container(_settings(LLM_PROVIDER="gemini"), llm=llm)
    assert c.llm is llm
