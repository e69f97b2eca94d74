"""
Entités du domaine métier.

Ce module définit les modèles de données du thème Ziwei Doushu (命盘) issus du parseur, ainsi que
le résultat d'analyse consolidé et l'enregistrement renvoyé à l'appelant.

Les noms d'attributs Python sont en snake_case; la forme JSON utilise des alias camelCase
(`basicInfo`, `mainStars`, `yearlyFortune`...).
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_WS_RE = re.compile(r"\s+")


class PalaceName(str, Enum):
    """Les 12 palais, dans l'ordre canonique du thème."""

    LIFE = "命宫"
    SIBLINGS = "兄弟宫"
    SPOUSE = "夫妻宫"
    CHILDREN = "子女宫"
    WEALTH = "财帛宫"
    HEALTH = "疾厄宫"
    TRAVEL = "迁移宫"
    FRIENDS = "交友宫"
    CAREER = "官禄宫"
    PROPERTY = "田宅宫"
    FORTUNE = "福德宫"
    PARENTS = "父母宫"

    @classmethod
    def parse(cls, text: str | None) -> PalaceName | None:
        """Résout un libellé de palais (espaces internes et alias tolérés), sinon None."""
        if not text:
            return None
        compact = _WS_RE.sub("", str(text))
        compact = _PALACE_ALIASES.get(compact, compact)
        try:
            return cls(compact)
        except ValueError:
            return None


_PALACE_ALIASES = {
    "仆役宫": "交友宫",
    "奴仆宫": "交友宫",
    "事业宫": "官禄宫",
}


class Topic(str, Enum):
    """Thèmes de l'analyse spécialisée."""

    CAREER = "career"
    STUDY = "study"
    MARRIAGE = "marriage"
    HEALTH = "health"
    RELATIONSHIP = "relationship"

    @property
    def label(self) -> str:
        return _TOPIC_LABELS[self]


_TOPIC_LABELS = {
    Topic.CAREER: "事业财运",
    Topic.STUDY: "学业进修",
    Topic.MARRIAGE: "婚姻感情",
    Topic.HEALTH: "健康疾厄",
    Topic.RELATIONSHIP: "人际交往",
}


class TransformationType(str, Enum):
    """Les quatre transformations (四化)."""

    LU = "禄"
    QUAN = "权"
    KE = "科"
    JI = "忌"


class TransformationOrigin(str, Enum):
    """Origine d'une transformation: année natale, auto-transformation sortante/entrante."""

    NATAL = "natal"
    OUTBOUND = "outbound"
    INBOUND = "inbound"
    UNMARKED = "unmarked"


class AnalysisSection(str, Enum):
    """Clés de premier niveau du résultat d'analyse."""

    OVERALL = "overall"
    PALACES = "palaces"
    YEARLY_FORTUNE = "yearlyFortune"
    SPECIAL_ANALYSIS = "specialAnalysis"
    SUGGESTIONS = "suggestions"
    KEY_EVENTS = "keyEvents"


class _Frozen(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class FourTransformation(_Frozen):
    type: TransformationType
    origin: TransformationOrigin = TransformationOrigin.UNMARKED


class Star(_Frozen):
    """Étoile d'un palais avec ses attributs (éclat, etc.) et au plus une transformation."""

    name: str
    attributes: tuple[str, ...] = ()
    four_transformation: FourTransformation | None = None


class PalaceAges(_Frozen):
    """Libellés de périodes: grande limite (大限), petites limites (小限), années (流年)."""

    major: str | None = None
    minor: tuple[str, ...] = ()
    yearly: tuple[str, ...] = ()


class Palace(_Frozen):
    name: PalaceName
    position: str
    main_stars: tuple[Star, ...] = ()
    assist_stars: tuple[Star, ...] = ()
    minor_stars: tuple[Star, ...] = ()
    spirits: dict[str, str] = Field(default_factory=dict)
    ages: PalaceAges = Field(default_factory=PalaceAges)
    is_body_palace: bool = False
    is_karma_palace: bool = False


class ChartVersion(_Frozen):
    api: str | None = None
    app: str | None = None
    code: str | None = None


class BasicInfo(_Frozen):
    """Informations d'en-tête du thème. Tous les champs sont optionnels."""

    gender: str | None = None
    longitude: float | None = None
    clock_time: str | None = None
    solar_time: str | None = None
    lunar_time: str | None = None
    solar_pillars: str | None = None
    non_solar_pillars: str | None = None
    element: str | None = None
    body_master: str | None = None
    life_master: str | None = None
    dou_jun: str | None = None
    body_palace: str | None = None

    @property
    def birth_timestamp(self) -> str | None:
        """Heure d'horloge, à défaut heure solaire vraie."""
        return self.clock_time or self.solar_time


class Chart(_Frozen):
    """Thème complet produit par le parseur; immuable."""

    version: ChartVersion = Field(default_factory=ChartVersion)
    basic_info: BasicInfo = Field(default_factory=BasicInfo)
    palaces: dict[PalaceName, Palace] = Field(default_factory=dict)
    raw_text: str = ""

    def palace(self, name: PalaceName) -> Palace | None:
        return self.palaces.get(name)


class AnalysisResult(_Frozen):
    """Résultat d'analyse consolidé, avec les champs dérivés d'âge et d'année."""

    overall: dict[str, Any] = Field(default_factory=dict)
    palaces: dict[str, Any] = Field(default_factory=dict)
    yearly_fortune: list[dict[str, Any]] = Field(default_factory=list)
    special_analysis: dict[str, Any] = Field(default_factory=dict)
    suggestions: dict[str, Any] = Field(default_factory=dict)
    key_events: list[Any] = Field(default_factory=list)
    birth_year: int
    birth_year_estimated: bool = False
    current_age: int
    start_luck_age: int | None = None
    start_luck_year: int | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class AnalysisRecord(_Frozen):
    """Enregistrement renvoyé à l'appelant (contrat de sortie)."""

    id: str
    timestamp: int
    name: str
    parsed_data: Chart
    analysis: AnalysisResult
    created_at: str

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
