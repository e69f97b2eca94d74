"""Tests pour la fusion et l'enrichissement du résultat d'analyse."""

from __future__ import annotations

import copy

from backend.domain.entities import BasicInfo, Chart
from backend.domain.result_merger import (
    birth_year_of,
    build_age_ranges,
    current_age_of,
    dedupe_yearly,
    enrich,
    filter_year_range,
    merge_section,
    normalize_yearly_entry,
    start_luck_age_of,
)

# Constantes pour éviter les erreurs PLR2004 (Magic values)
BIRTH_YEAR = 1990
CURRENT_YEAR = 2024
EXPECTED_CURRENT_AGE = 35
EXPECTED_START_LUCK_AGE = 6
EXPECTED_START_LUCK_YEAR = 1995
DEFAULT_YEAR = 1980


def test_birth_year_from_clock_then_solar_time() -> None:
    """Teste la priorité heure d'horloge puis heure solaire vraie."""
    assert birth_year_of(BasicInfo(clock_time="1990-05-15 14:30")) == (BIRTH_YEAR, False)
    assert birth_year_of(BasicInfo(solar_time="1990-05-15 14:21")) == (BIRTH_YEAR, False)


def test_birth_year_fallback_is_flagged(captured_logs) -> None:
    """Teste le repli sur l'année par défaut, marquée comme estimée."""
    assert birth_year_of(BasicInfo()) == (DEFAULT_YEAR, True)
    assert birth_year_of(BasicInfo(clock_time="inconnu"), default_year=2000) == (2000, True)
    assert [e["event"] for e in captured_logs] == ["birth_year_fallback"] * 2


def test_start_luck_age_is_minimum_major_age(sample_chart) -> None:
    """Teste que l'âge de début de fortune est le plus petit âge de grande limite."""
    assert start_luck_age_of(sample_chart) == EXPECTED_START_LUCK_AGE
    assert start_luck_age_of(Chart()) is None


def test_current_age_counts_birth_year_as_one() -> None:
    """Teste l'âge 虚岁."""
    assert current_age_of(BIRTH_YEAR, CURRENT_YEAR) == EXPECTED_CURRENT_AGE


def test_build_age_ranges() -> None:
    """Teste le découpage en tranches inclusives."""
    assert build_age_ranges(1, 12, 5) == [(1, 5), (6, 10), (11, 12)]
    assert build_age_ranges(1, 5, 5) == [(1, 5)]
    assert build_age_ranges(5, 1, 5) == []
    assert build_age_ranges(1, 10, 0) == []


def test_filter_year_range_drops_out_of_range_entries() -> None:
    """Teste le filtrage par plage d'années et la conversion des années textuelles."""
    entries = [{"year": "1990"}, {"year": 1995}, {"fortune": "sans année"}, "texte"]
    assert filter_year_range(entries, 1990, 1994) == [{"year": 1990}]


def test_dedupe_yearly_sorts_and_keeps_first() -> None:
    """Teste le tri par année et la conservation de la première occurrence."""
    entries = [
        {"year": 1992, "fortune": "a"},
        {"year": 1990, "fortune": "b"},
        {"year": 1992, "fortune": "c"},
    ]
    assert dedupe_yearly(entries) == [
        {"year": 1990, "fortune": "b"},
        {"year": 1992, "fortune": "a"},
    ]


def test_normalize_yearly_entry_parses_and_backfills_age() -> None:
    """Teste la conversion de l'âge textuel et le calcul de l'âge manquant."""
    assert normalize_yearly_entry({"year": 2000, "age": "11岁"}, BIRTH_YEAR)["age"] == 11
    assert normalize_yearly_entry({"year": 2000}, BIRTH_YEAR)["age"] == 11
    assert normalize_yearly_entry({"year": 2000, "age": "?"}, BIRTH_YEAR)["age"] == 11
    assert normalize_yearly_entry({"year": 2000, "age": 0}, BIRTH_YEAR)["age"] == 11


def test_merge_section_is_shallow_key_union() -> None:
    """Teste l'union superficielle des clés."""
    target = {"命宫": {"analysis": "x"}}
    merge_section(target, {"兄弟宫": {"analysis": "y"}, "命宫": {"analysis": "z"}})
    assert target == {"命宫": {"analysis": "z"}, "兄弟宫": {"analysis": "y"}}
    assert merge_section(target, None) is target


def test_enrich_derives_ages_and_years(sample_chart) -> None:
    """Teste les champs dérivés pour un thème né en 1990 analysé en 2024."""
    aggregate = {
        "overall": {"pattern": "x"},
        "yearlyFortune": [{"year": "2024", "age": "35"}, {"year": 1990}],
    }
    result = enrich(aggregate, sample_chart, current_year=CURRENT_YEAR)
    assert result.birth_year == BIRTH_YEAR
    assert result.birth_year_estimated is False
    assert result.current_age == EXPECTED_CURRENT_AGE
    assert result.start_luck_age == EXPECTED_START_LUCK_AGE
    assert result.start_luck_year == EXPECTED_START_LUCK_YEAR
    assert [e["year"] for e in result.yearly_fortune] == [1990, 2024]
    assert [e["age"] for e in result.yearly_fortune] == [1, EXPECTED_CURRENT_AGE]
    assert result.palaces == {}
    assert result.key_events == []


def test_enrich_is_pure_and_idempotent(sample_chart) -> None:
    """Teste que l'entrée n'est pas modifiée et que enrich(enrich(x)) == enrich(x)."""
    aggregate = {
        "palaces": {"命宫": {"analysis": "x"}},
        "yearlyFortune": [{"year": "1991"}, {"year": 1990, "age": "1"}],
        "keyEvents": [{"event": "e"}],
    }
    snapshot = copy.deepcopy(aggregate)
    once = enrich(aggregate, sample_chart, current_year=CURRENT_YEAR)
    twice = enrich(once, sample_chart, current_year=CURRENT_YEAR)
    assert aggregate == snapshot
    assert twice == once


def test_enrich_without_birth_time_uses_default_year() -> None:
    """Teste l'enrichissement d'un thème sans heure de naissance."""
    result = enrich({}, Chart(), current_year=CURRENT_YEAR)
    assert result.birth_year == DEFAULT_YEAR
    assert result.birth_year_estimated is True
    assert result.start_luck_age is None
    assert result.start_luck_year is None
    payload = result.to_payload()
    assert payload["yearlyFortune"] == []
    assert payload["birthYearEstimated"] is True


def test_enrich_reuses_precomputed_birth_year(captured_logs) -> None:
    """Teste qu'une année de naissance déjà calculée n'est pas recalculée."""
    result = enrich({}, Chart(), current_year=CURRENT_YEAR, birth=(DEFAULT_YEAR, True))
    assert result.birth_year == DEFAULT_YEAR
    assert result.birth_year_estimated is True
    assert captured_logs == []
