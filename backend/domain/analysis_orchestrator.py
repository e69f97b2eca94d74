"""
Orchestration de l'analyse d'un thème en plusieurs unités de génération.

Plan d'exécution:
1. synthèse (overall), seule et en premier; son échec arrête tout;
2. palais par lots de trois, avec un unique rattrapage par palais manquant;
3. fortune annuelle par tranches d'âge, filtrée sur la plage d'années de chaque tranche;
4. thèmes spécialisés par lots, avec le même rattrapage borné;
5. conseils et événements clés.

Les unités 2 à 5 forment une liste de tâches exécutée sur un pool de threads borné; les résultats
sont fusionnés dans l'ordre du plan, quel que soit l'ordre de complétion.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from datetime import date
from typing import Any

import structlog

from backend.domain.entities import AnalysisResult, AnalysisSection, Chart, PalaceName, Topic
from backend.domain.errors import AnalysisFailedError
from backend.domain.generation_units import (
    GenerationUnit,
    overview_unit,
    palace_unit,
    special_unit,
    suggestions_unit,
    yearly_unit,
)
from backend.domain.json_recovery import RawTextFallback, parse_lenient
from backend.domain.result_merger import (
    DEFAULT_BIRTH_YEAR,
    birth_year_of,
    build_age_ranges,
    current_age_of,
    dedupe_yearly,
    enrich,
    filter_year_range,
    merge_section,
    start_luck_age_of,
    start_luck_year_of,
)
from backend.infra.llm.base import LLM
from backend.infra.llm.call_policy import CallPolicy, call_with_policy

PALACE_BATCHES: tuple[tuple[PalaceName, ...], ...] = (
    (PalaceName.LIFE, PalaceName.SIBLINGS, PalaceName.SPOUSE),
    (PalaceName.CHILDREN, PalaceName.WEALTH, PalaceName.HEALTH),
    (PalaceName.TRAVEL, PalaceName.FRIENDS, PalaceName.CAREER),
    (PalaceName.PROPERTY, PalaceName.FORTUNE, PalaceName.PARENTS),
)
TOPIC_BATCHES: tuple[tuple[Topic, ...], ...] = (
    (Topic.CAREER, Topic.STUDY),
    (Topic.MARRIAGE, Topic.HEALTH, Topic.RELATIONSHIP),
)

LIST_SECTIONS = frozenset({AnalysisSection.YEARLY_FORTUNE, AnalysisSection.KEY_EVENTS})

Partial = dict[str, Any]


class StageOrchestrator:
    """Découpe l'analyse en unités, les exécute et consolide un `AnalysisResult`."""

    def __init__(
        self,
        llm: LLM,
        *,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
        call_policy: CallPolicy | None = None,
        max_concurrency: int = 4,
        yearly_chunk_size: int = 5,
        default_birth_year: int = DEFAULT_BIRTH_YEAR,
    ) -> None:
        self.llm = llm
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.call_policy = call_policy or CallPolicy()
        self.max_concurrency = max(1, max_concurrency)
        self.yearly_chunk_size = yearly_chunk_size
        self.default_birth_year = default_birth_year
        self._log = structlog.get_logger(__name__).bind(component="stage_orchestrator")

    def run(self, chart: Chart, current_year: int | None = None) -> AnalysisResult:
        """Exécute le plan complet et retourne le résultat enrichi.

        Raises:
            AnalysisFailedError: un appel LLM a échoué après application de la politique d'appel.
        """
        year_now = current_year if current_year is not None else date.today().year
        birth = birth_year_of(chart.basic_info, self.default_birth_year)
        aggregate: Partial = {}

        merge_partial(aggregate, self._call_unit(overview_unit(chart)))

        tasks = self.plan(chart, year_now, birth_year=birth[0])
        self._log.info(
            "analysis_plan_ready", tasks=len(tasks), max_concurrency=self.max_concurrency
        )
        for partial in self._execute(tasks):
            merge_partial(aggregate, partial)

        section = AnalysisSection.YEARLY_FORTUNE.value
        if section in aggregate:
            aggregate[section] = dedupe_yearly(aggregate[section])

        result = enrich(
            aggregate,
            chart,
            current_year=year_now,
            birth=birth,
        )
        self._log.info(
            "analysis_completed",
            palaces=len(result.palaces),
            yearly_entries=len(result.yearly_fortune),
            special_keys=len(result.special_analysis),
        )
        return result

    def plan(
        self, chart: Chart, current_year: int, birth_year: int | None = None
    ) -> list[tuple[str, Callable[[], Partial]]]:
        """Liste ordonnée des tâches suivant la synthèse: `(nom, callable -> partiel)`."""
        if birth_year is None:
            birth_year, _ = birth_year_of(chart.basic_info, self.default_birth_year)
        current_age = current_age_of(birth_year, current_year)
        luck_age = start_luck_age_of(chart)
        luck_year = start_luck_year_of(birth_year, luck_age)

        tasks: list[tuple[str, Callable[[], Partial]]] = []
        for names in PALACE_BATCHES:
            tasks.append((f"palaces:{names[0].value}", _bind(self._palace_task, chart, names)))

        for start_age, end_age in build_age_ranges(1, current_age, self.yearly_chunk_size):
            unit = yearly_unit(
                chart,
                start_year=birth_year + start_age - 1,
                end_year=birth_year + end_age - 1,
                start_age=start_age,
                end_age=end_age,
                start_luck_age=luck_age,
                start_luck_year=luck_year,
            )
            tasks.append((unit.name, _bind(self._call_unit, unit)))

        for topics in TOPIC_BATCHES:
            tasks.append(
                (
                    f"special:{topics[0].value}",
                    _bind(self._topic_task, chart, topics, current_year, luck_age, luck_year),
                )
            )

        unit = suggestions_unit(chart, current_year, luck_age, luck_year)
        tasks.append((unit.name, _bind(self._call_unit, unit)))
        return tasks

    # --- Exécution ---

    def _execute(self, tasks: Sequence[tuple[str, Callable[[], Partial]]]) -> list[Partial]:
        if self.max_concurrency == 1:
            return [fn() for _, fn in tasks]

        with ThreadPoolExecutor(
            max_workers=self.max_concurrency, thread_name_prefix="chart-analysis"
        ) as pool:
            futures = [pool.submit(fn) for _, fn in tasks]
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            failed = [f for f in futures if f in done and f.exception() is not None]
            if failed:
                for future in pending:
                    future.cancel()
                self._log.error("analysis_task_failed", pending_cancelled=len(pending))
                failed[0].result()
            return [f.result() for f in futures]

    def _call_unit(self, unit: GenerationUnit) -> Partial:
        """Appelle le LLM pour une unité et extrait les sections déclarées.

        Un échec de décodage est confiné à l'unité (partiel vide); un échec d'appel est fatal.
        """
        self._log.debug("unit_started", unit=unit.name, prompt_length=len(unit.prompt))
        try:
            raw = call_with_policy(
                lambda: self.llm.generate(
                    unit.prompt,
                    temperature=self.temperature,
                    max_output_tokens=self.max_output_tokens,
                ),
                self.call_policy,
                label=unit.name,
            )
        except Exception as exc:
            self._log.error("unit_failed", unit=unit.name, error=str(exc))
            raise AnalysisFailedError(exc, unit=unit.name) from exc

        parsed = parse_lenient(raw)
        if isinstance(parsed, RawTextFallback):
            self._log.warning("unit_decode_failed", unit=unit.name, error=parsed.error)
            return {}
        partial = self._extract(unit, parsed)
        self._log.debug("unit_completed", unit=unit.name, sections=sorted(partial))
        return partial

    def _extract(self, unit: GenerationUnit, parsed: Mapping[str, Any]) -> Partial:
        partial: Partial = {}
        for section in unit.response_keys:
            value = parsed.get(section.value)
            if section in LIST_SECTIONS:
                if not isinstance(value, list):
                    continue
                if section is AnalysisSection.YEARLY_FORTUNE and unit.year_range:
                    value = filter_year_range(value, *unit.year_range)
            elif not isinstance(value, Mapping):
                continue
            elif section is AnalysisSection.PALACES:
                value = _normalize_palace_keys(value)
            else:
                value = dict(value)
            partial[section.value] = value
        return partial

    # --- Tâches avec rattrapage ---

    def _palace_task(self, chart: Chart, names: Sequence[PalaceName]) -> Partial:
        unit = palace_unit(chart, names)
        key = unit.section.value
        palaces = dict(self._call_unit(unit).get(key, {}))
        for name in unit.requested:
            if name in palaces:
                continue
            self._log.info("palace_gap_fill", palace=name)
            retry = self._call_unit(palace_unit(chart, [PalaceName(name)])).get(key, {})
            if name in retry:
                palaces[name] = retry[name]
            else:
                self._log.warning("palace_missing_after_retry", palace=name)
        return {key: palaces} if palaces else {}

    def _topic_task(
        self,
        chart: Chart,
        topics: Sequence[Topic],
        current_year: int,
        luck_age: int | None,
        luck_year: int | None,
    ) -> Partial:
        unit = special_unit(chart, topics, current_year, luck_age, luck_year)
        key = unit.section.value
        special = dict(self._call_unit(unit).get(key, {}))
        for topic in unit.requested:
            if topic in special:
                continue
            self._log.info("topic_gap_fill", topic=topic)
            retry_unit = special_unit(chart, [Topic(topic)], current_year, luck_age, luck_year)
            retry = self._call_unit(retry_unit).get(key, {})
            if topic not in retry:
                self._log.warning("topic_missing_after_retry", topic=topic)
                continue
            special.update({k: v for k, v in retry.items() if k.startswith(topic)})
        return {key: special} if special else {}


def merge_partial(aggregate: Partial, partial: Mapping[str, Any]) -> Partial:
    """Fusionne un partiel dans l'agrégat: union de clés pour les objets, concaténation pour les listes."""
    for key, value in partial.items():
        if isinstance(value, list):
            aggregate.setdefault(key, []).extend(value)
        else:
            merge_section(aggregate.setdefault(key, {}), value)
    return aggregate


def _normalize_palace_keys(value: Mapping[str, Any]) -> dict[str, Any]:
    palaces: dict[str, Any] = {}
    for label, analysis in value.items():
        name = PalaceName.parse(label)
        if name is not None and name.value not in palaces:
            palaces[name.value] = analysis
    return palaces


def _bind(fn: Callable[..., Partial], *args: Any) -> Callable[[], Partial]:
    return lambda: fn(*args)
