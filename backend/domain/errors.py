"""Erreurs métier de l'analyse de thème.

- `InvalidChartTextError`: texte d'entrée vide ou inutilisable.
- `AnalysisFailedError`: échec fatal d'un appel LLM; la cause est chaînée (`__cause__`).
"""

from __future__ import annotations


class ChartAnalysisError(Exception):
    """Base des erreurs du domaine."""


class InvalidChartTextError(ChartAnalysisError, ValueError):
    """Le texte du thème est vide."""


class AnalysisFailedError(ChartAnalysisError, RuntimeError):
    """L'analyse a échoué; distingue l'échec global de sa cause sous-jacente."""

    def __init__(self, cause: BaseException, unit: str | None = None) -> None:
        self.unit = unit
        self.cause = cause
        detail = f"{type(cause).__name__}: {cause}"
        if unit:
            detail = f"[{unit}] {detail}"
        super().__init__(f"命盘分析失败: {detail}")
