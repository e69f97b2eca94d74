"""Fusion des résultats partiels et enrichissement du résultat final.

Responsabilités:
- union superficielle des sections renvoyées par chaque unité de génération;
- filtrage, dédoublonnage et tri des entrées annuelles (流年) par année;
- dérivation de l'année de naissance, de l'âge courant (虚岁) et de l'âge/année de début de
  fortune (起运) à partir du thème.

`enrich` est pur et idempotent: il ne modifie pas son entrée, et l'appliquer à son propre
résultat redonne le même résultat.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any

import structlog

from backend.domain.entities import AnalysisResult, AnalysisSection, BasicInfo, Chart

DEFAULT_BIRTH_YEAR = 1980

_YEAR_TOKEN_RE = re.compile(r"(?<!\d)(\d{4})(?!\d)")
_FIRST_INT_RE = re.compile(r"(\d+)")
_LEADING_INT_RE = re.compile(r"^\s*(-?\d+)")

log = structlog.get_logger(__name__)


def birth_year_of(
    basic_info: BasicInfo, default_year: int = DEFAULT_BIRTH_YEAR
) -> tuple[int, bool]:
    """Retourne `(année, estimée)`.

    L'année est le premier nombre à 4 chiffres de l'heure d'horloge, à défaut de l'heure solaire
    vraie. Sans année exploitable, `default_year` est utilisée et `estimée` vaut True.
    """
    for candidate in (basic_info.clock_time, basic_info.solar_time):
        if not candidate:
            continue
        m = _YEAR_TOKEN_RE.search(candidate)
        if m:
            return int(m.group(1)), False
    log.warning("birth_year_fallback", default_year=default_year)
    return default_year, True


def start_luck_age_of(chart: Chart) -> int | None:
    """Plus petit âge trouvé en tête des libellés de grande limite (大限) des palais."""
    ages: list[int] = []
    for palace in chart.palaces.values():
        major = palace.ages.major
        if not major:
            continue
        m = _FIRST_INT_RE.search(major)
        if m:
            ages.append(int(m.group(1)))
    return min(ages) if ages else None


def current_age_of(birth_year: int, current_year: int) -> int:
    """Âge à la chinoise (虚岁): un an à la naissance."""
    return current_year - birth_year + 1


def start_luck_year_of(birth_year: int, start_luck_age: int | None) -> int | None:
    if start_luck_age is None:
        return None
    return birth_year + start_luck_age - 1


def build_age_ranges(start_age: int, end_age: int, chunk_size: int) -> list[tuple[int, int]]:
    """Découpe `[start_age, end_age]` en tranches inclusives de `chunk_size` ans."""
    if chunk_size < 1 or end_age < start_age:
        return []
    return [
        (age, min(age + chunk_size - 1, end_age))
        for age in range(start_age, end_age + 1, chunk_size)
    ]


def _to_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        m = _LEADING_INT_RE.match(value)
        return int(m.group(1)) if m else None
    return None


def normalize_yearly_entry(entry: Mapping[str, Any], birth_year: int) -> dict[str, Any]:
    """Copie l'entrée avec `year`/`age` numériques; l'âge manquant est déduit de l'année."""
    item = dict(entry)
    year = _to_int(item.get("year"))
    if year is not None:
        item["year"] = year
    age = _to_int(item.get("age"))
    if age is not None and age > 0:
        item["age"] = age
    elif year is not None:
        item["age"] = year - birth_year + 1
    return item


def filter_year_range(
    entries: Iterable[Any], start_year: int, end_year: int
) -> list[dict[str, Any]]:
    """Garde les entrées dont l'année tombe dans `[start_year, end_year]`."""
    kept: list[dict[str, Any]] = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        year = _to_int(entry.get("year"))
        if year is None or not start_year <= year <= end_year:
            continue
        item = dict(entry)
        item["year"] = year
        kept.append(item)
    return kept


def dedupe_yearly(entries: Iterable[Any]) -> list[dict[str, Any]]:
    """Trie par année (tri stable) et garde la première entrée de chaque année."""
    numbered = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        year = _to_int(entry.get("year"))
        if year is None:
            continue
        item = dict(entry)
        item["year"] = year
        numbered.append(item)
    numbered.sort(key=lambda item: item["year"])
    seen: set[int] = set()
    result: list[dict[str, Any]] = []
    for item in numbered:
        if item["year"] in seen:
            continue
        seen.add(item["year"])
        result.append(item)
    return result


def merge_section(target: dict[str, Any], payload: Any) -> dict[str, Any]:
    """Union superficielle: les clés de `payload` écrasent celles de `target`."""
    if isinstance(payload, Mapping):
        target.update(payload)
    return target


def _as_dict(value: Any) -> dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, list | tuple) else []


def enrich(
    aggregate: Mapping[str, Any] | AnalysisResult,
    chart: Chart,
    *,
    current_year: int | None = None,
    default_birth_year: int = DEFAULT_BIRTH_YEAR,
    birth: tuple[int, bool] | None = None,
) -> AnalysisResult:
    """Construit l'`AnalysisResult` final à partir de l'agrégat et du thème.

    `birth` reprend un `(année, estimée)` déjà calculé par `birth_year_of`.
    """
    if isinstance(aggregate, AnalysisResult):
        data = aggregate.to_payload()
    else:
        data = copy.deepcopy(dict(aggregate))

    year_now = current_year if current_year is not None else date.today().year
    if birth is None:
        birth = birth_year_of(chart.basic_info, default_birth_year)
    birth_year, estimated = birth
    start_luck_age = start_luck_age_of(chart)

    yearly = [
        normalize_yearly_entry(entry, birth_year)
        for entry in _as_list(data.get(AnalysisSection.YEARLY_FORTUNE.value))
        if isinstance(entry, Mapping)
    ]

    return AnalysisResult(
        overall=_as_dict(data.get(AnalysisSection.OVERALL.value)),
        palaces=_as_dict(data.get(AnalysisSection.PALACES.value)),
        yearly_fortune=dedupe_yearly(yearly),
        special_analysis=_as_dict(data.get(AnalysisSection.SPECIAL_ANALYSIS.value)),
        suggestions=_as_dict(data.get(AnalysisSection.SUGGESTIONS.value)),
        key_events=_as_list(data.get(AnalysisSection.KEY_EVENTS.value)),
        birth_year=birth_year,
        birth_year_estimated=estimated,
        current_age=current_age_of(birth_year, year_now),
        start_luck_age=start_luck_age,
        start_luck_year=start_luck_year_of(birth_year, start_luck_age),
    )
