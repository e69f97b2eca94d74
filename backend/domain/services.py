import time
from datetime import UTC, datetime

import structlog

from backend.domain.analysis_orchestrator import StageOrchestrator
from backend.domain.chart_parser import ChartTextParser
from backend.domain.entities import AnalysisRecord, Chart
from backend.domain.errors import InvalidChartTextError

DEFAULT_RECORD_NAME = "未命名"


class ChartAnalysisService:
    """Service métier d'analyse de thèmes Ziwei.

    Responsabilités:
    - Parser le texte brut du thème via `parser`.
    - Déléguer l'analyse multi-étapes à `orchestrator`.
    - Assembler l'enregistrement renvoyé à l'appelant (sans persistance).
    """

    def __init__(self, parser: ChartTextParser, orchestrator: StageOrchestrator):
        """Initialise le service avec ses dépendances.

        Paramètres:
        - parser: parseur du texte de thème.
        - orchestrator: orchestrateur des appels LLM.
        """
        self.parser = parser
        self.orchestrator = orchestrator
        self._log = structlog.get_logger(__name__).bind(component="chart_analysis_service")

    def parse(self, text: str) -> Chart:
        """Parse le texte du thème; lève `InvalidChartTextError` si le texte est vide."""
        if not text or not text.strip():
            raise InvalidChartTextError("命盘文本不能为空")
        return self.parser.parse(text)

    def analyze(
        self, text: str, name: str | None = None, current_year: int | None = None
    ) -> AnalysisRecord:
        """Parse puis analyse un thème.

        Paramètres:
        - text: texte brut du thème.
        - name: libellé de l'enregistrement (défaut `未命名`).
        - current_year: année de référence des âges (défaut: année courante).

        Retour: `AnalysisRecord` avec `id = "{timestamp}_{name}"` (`unknown` sans nom).

        Lève `AnalysisFailedError` si un appel LLM échoue.
        """
        chart = self.parse(text)
        self._log.info("chart_parsed", palaces=len(chart.palaces))
        analysis = self.orchestrator.run(chart, current_year=current_year)
        timestamp = int(time.time() * 1000)
        record = AnalysisRecord(
            id=f"{timestamp}_{name or 'unknown'}",
            timestamp=timestamp,
            name=name or DEFAULT_RECORD_NAME,
            parsed_data=chart,
            analysis=analysis,
            created_at=datetime.now(UTC).isoformat(),
        )
        self._log.info("analysis_record_built", record_id=record.id)
        return record
