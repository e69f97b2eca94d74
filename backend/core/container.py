"""
Conteneur d'injection de dépendances.

Construit les composants centraux (settings, LLM, parseur, orchestrateur, service) à partir de la
configuration. Le point d'entrée crée le conteneur et le transmet; aucun singleton de module.
"""

import structlog

from backend.core.settings import Settings, get_settings
from backend.domain.analysis_orchestrator import StageOrchestrator
from backend.domain.chart_parser import ChartTextParser
from backend.domain.services import ChartAnalysisService
from backend.infra.llm.base import LLM
from backend.infra.llm.call_policy import CallPolicy
from backend.infra.llm.fake import FakeLLM
from backend.infra.llm.gemini_client import GeminiLLM
from backend.infra.llm.openai_client import OpenAILLM


def build_llm(settings: Settings) -> LLM:
    """Instancie l'adaptateur LLM selon `LLM_PROVIDER`."""
    if settings.LLM_PROVIDER == "fake":
        return FakeLLM()
    if settings.LLM_PROVIDER == "openai":
        return OpenAILLM(
            api_key=settings.OPENAI_API_KEY,
            model=settings.OPENAI_MODEL,
            temperature=settings.LLM_TEMPERATURE,
            max_output_tokens=settings.LLM_MAX_OUTPUT_TOKENS,
            timeout=settings.LLM_TIMEOUT_S,
        )
    return GeminiLLM(
        api_key=settings.GEMINI_API_KEY,
        model=settings.GEMINI_MODEL,
        temperature=settings.LLM_TEMPERATURE,
        top_p=settings.LLM_TOP_P,
        top_k=settings.LLM_TOP_K,
        max_output_tokens=settings.LLM_MAX_OUTPUT_TOKENS,
        timeout=settings.LLM_TIMEOUT_S,
    )


class Container:
    def __init__(self, settings: Settings | None = None, llm: LLM | None = None):
        self.settings = settings or get_settings()
        self.llm = llm or build_llm(self.settings)
        self.call_policy = CallPolicy(
            max_retries=self.settings.LLM_MAX_RETRIES,
            base_delay=self.settings.LLM_RETRY_BASE_DELAY,
        )
        self.parser = ChartTextParser()
        self.orchestrator = StageOrchestrator(
            self.llm,
            temperature=self.settings.LLM_TEMPERATURE,
            max_output_tokens=self.settings.LLM_MAX_OUTPUT_TOKENS,
            call_policy=self.call_policy,
            max_concurrency=self.settings.ANALYSIS_MAX_CONCURRENCY,
            yearly_chunk_size=self.settings.YEARLY_CHUNK_SIZE,
            default_birth_year=self.settings.DEFAULT_BIRTH_YEAR,
        )
        self.service = ChartAnalysisService(self.parser, self.orchestrator)
        structlog.get_logger(__name__).bind(component="container").info(
            "container_ready",
            llm_provider=self.settings.LLM_PROVIDER,
            max_concurrency=self.settings.ANALYSIS_MAX_CONCURRENCY,
        )
