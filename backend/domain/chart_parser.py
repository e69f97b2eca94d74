"""Parseur du texte de thème Ziwei (命盘) vers les entités du domaine.

Le format source est un plan arborescent: chaque palais est ouvert par une ligne de branche
(`├` ou `└`) portant le nom du palais et sa position entre crochets, puis des sous-lignes plus
indentées (`├主星 : ...`, `├大限 : ...`). Le parseur est un scanner de lignes:

- chaque ligne est classée selon son glyphe de tête et sa profondeur d'indentation;
- le palais courant est un état explicite;
- un bloc se termine à la prochaine ligne de branche de profondeur inférieure ou égale
  (frontière de frère), sauf s'il s'agit d'un champ de palais connu.

Le parseur est total: un champ absent donne None ou une séquence vide, jamais une exception.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

import structlog

from backend.domain.entities import (
    BasicInfo,
    Chart,
    ChartVersion,
    FourTransformation,
    Palace,
    PalaceAges,
    PalaceName,
    Star,
    TransformationOrigin,
    TransformationType,
)

_BRANCH_RE = re.compile(r"^(?P<indent>[\s│|]*)(?P<glyph>[├└])\s*(?P<body>.*?)\s*$")
_PALACE_HEADER_RE = re.compile(r"^(?P<name>[^\[\]:：]+?)\s*\[(?P<position>[^\[\]]+)\](?P<rest>.*)$")
_FIELD_RE = re.compile(r"^(?P<label>[^:：\[\]]+?)\s*[:：]\s*(?P<value>.*)$")
_STAR_TOKEN_RE = re.compile(r"(?P<name>[^\s,，、;；\[\]]+)(?P<tags>(?:\[[^\[\]]*\])*)")
_TAG_RE = re.compile(r"\[([^\[\]]*)\]")
_LIST_SPLIT_RE = re.compile(r"[,，、]")

NONE_PLACEHOLDER = "无"
BODY_PALACE_MARKER = "[身宫]"
KARMA_PALACE_MARKER = "[来因]"

STAR_FIELDS = {"主星": "main_stars", "辅星": "assist_stars", "小星": "minor_stars"}
SPIRIT_FIELDS = {
    "岁前星": "year_spirit",
    "将前星": "general_spirit",
    "十二长生": "life_stage",
    "太岁煞禄": "taisui_spirit",
}
AGE_FIELDS = {"大限": "major", "小限": "minor", "流年": "yearly"}
# Ligne parente des indicateurs auxiliaires, sans valeur propre.
_SPIRIT_GROUP_LABEL = "神煞"
_PALACE_FIELD_LABELS = frozenset(
    [*STAR_FIELDS, *SPIRIT_FIELDS, *AGE_FIELDS, _SPIRIT_GROUP_LABEL]
)

_TRANSFORMATION_GLYPHS = frozenset(t.value for t in TransformationType)
_ORIGIN_PREFIXES = (
    ("↓", TransformationOrigin.OUTBOUND),
    ("↑", TransformationOrigin.INBOUND),
    ("生年", TransformationOrigin.NATAL),
)

_SCALAR_PATTERNS = {
    "gender": re.compile(r"性别\s*[:：][ \t]*(\S+)"),
    "clock_time": re.compile(r"钟表时间\s*[:：][ \t]*([\d\-/: \t]+)"),
    "solar_time": re.compile(r"真太阳时\s*[:：][ \t]*([\d\-/: \t]+)"),
    "lunar_time": re.compile(r"农历时间\s*[:：][ \t]*(.+)"),
    "solar_pillars": re.compile(r"(?<!非)节气四柱\s*[:：][ \t]*(.+)"),
    "non_solar_pillars": re.compile(r"非节气四柱\s*[:：][ \t]*(.+)"),
    "element": re.compile(r"五行局数\s*[:：][ \t]*(.+)"),
    "body_master": re.compile(r"身主\s*[:：][ \t]*([^;；\n]+)"),
    "life_master": re.compile(r"命主\s*[:：][ \t]*([^;；\n]+)"),
    "dou_jun": re.compile(r"子年斗君\s*[:：][ \t]*([^;；\n]+)"),
    "body_palace": re.compile(r"身宫\s*[:：][ \t]*([^;；\n]+)"),
}
_LONGITUDE_RE = re.compile(r"地理经度\s*[:：][ \t]*(-?\d+(?:\.\d+)?)")
_VERSION_PATTERNS = {
    "api": re.compile(r"API\s*版本\s*[:：][ \t]*([\d.]+)"),
    "app": re.compile(r"App\s*版本\s*[:：][ \t]*([\d.]+)"),
    "code": re.compile(r"安星码\s*[:：][ \t]*(\w+)"),
}


@dataclass
class _BranchLine:
    depth: int
    body: str


@dataclass
class _PalaceBlock:
    """État du palais en cours de lecture."""

    name: PalaceName
    position: str
    depth: int
    header_rest: str
    lines: list[str] = field(default_factory=list)


def _classify(line: str) -> _BranchLine | None:
    m = _BRANCH_RE.match(line)
    if not m:
        return None
    return _BranchLine(depth=len(m.group("indent")), body=m.group("body"))


def _field_label(body: str) -> str | None:
    m = _FIELD_RE.match(body)
    if m:
        return m.group("label").strip()
    return body.strip() or None


def parse_stars(value: str | None) -> tuple[Star, ...]:
    """Parse une liste d'étoiles `天机[旺][生年禄],太阴[平]`.

    Les étiquettes contenant 禄/权/科/忌 deviennent la transformation de l'étoile (la dernière
    rencontrée l'emporte); les autres sont ajoutées aux attributs, dans l'ordre, sans doublon.
    """
    text = (value or "").strip()
    if not text or text == NONE_PLACEHOLDER:
        return ()
    stars: list[Star] = []
    for m in _STAR_TOKEN_RE.finditer(text):
        name = m.group("name")
        if name == NONE_PLACEHOLDER:
            continue
        attributes: list[str] = []
        transformation: FourTransformation | None = None
        for raw_tag in _TAG_RE.findall(m.group("tags")):
            tag = raw_tag.strip()
            if not tag:
                continue
            parsed = parse_transformation(tag)
            if parsed is not None:
                transformation = parsed
            elif tag not in attributes:
                attributes.append(tag)
        stars.append(
            Star(name=name, attributes=tuple(attributes), four_transformation=transformation)
        )
    return tuple(stars)


def parse_transformation(tag: str) -> FourTransformation | None:
    """Retourne la transformation codée par une étiquette, ou None pour un attribut simple."""
    glyph = next((ch for ch in tag if ch in _TRANSFORMATION_GLYPHS), None)
    if glyph is None:
        return None
    origin = TransformationOrigin.UNMARKED
    for prefix, candidate in _ORIGIN_PREFIXES:
        if tag.startswith(prefix):
            origin = candidate
            break
    return FourTransformation(type=TransformationType(glyph), origin=origin)


def _split_labels(value: str) -> tuple[str, ...]:
    text = value.strip()
    if not text or text == NONE_PLACEHOLDER:
        return ()
    return tuple(part.strip() for part in _LIST_SPLIT_RE.split(text) if part.strip())


class ChartTextParser:
    """Convertit le texte brut d'un thème en `Chart`."""

    def __init__(self) -> None:
        self._log = structlog.get_logger(__name__).bind(component="chart_parser")

    def parse(self, text: str) -> Chart:
        """Parse le texte complet. Ne lève jamais pour un champ absent."""
        raw = text or ""
        chart = Chart(
            version=self.extract_version(raw),
            basic_info=self.extract_basic_info(raw),
            palaces=self.extract_palaces(raw),
            raw_text=raw,
        )
        self._log.debug(
            "chart_parsed",
            palaces=len(chart.palaces),
            has_birth_time=chart.basic_info.birth_timestamp is not None,
        )
        return chart

    def extract_version(self, text: str) -> ChartVersion:
        values = {}
        for key, pattern in _VERSION_PATTERNS.items():
            m = pattern.search(text)
            values[key] = m.group(1) if m else None
        return ChartVersion(**values)

    def extract_basic_info(self, text: str) -> BasicInfo:
        values: dict[str, object] = {}
        for key, pattern in _SCALAR_PATTERNS.items():
            m = pattern.search(text)
            value = m.group(1).strip() if m else ""
            values[key] = value or None
        m = _LONGITUDE_RE.search(text)
        values["longitude"] = float(m.group(1)) if m else None
        return BasicInfo(**values)

    def extract_palaces(self, text: str) -> dict[PalaceName, Palace]:
        """Scanne les lignes et construit les palais trouvés, dans l'ordre canonique."""
        blocks: dict[PalaceName, _PalaceBlock] = {}
        current: _PalaceBlock | None = None

        for line in text.splitlines():
            branch = _classify(line)
            if branch is None:
                if current is not None:
                    current.lines.append(line.strip())
                continue

            label = _field_label(branch.body)
            is_palace_field = label in _PALACE_FIELD_LABELS
            if current is not None and branch.depth <= current.depth and not is_palace_field:
                current = None

            if current is None:
                header = _PALACE_HEADER_RE.match(branch.body)
                name = PalaceName.parse(header.group("name")) if header else None
                if name is not None and name not in blocks:
                    current = _PalaceBlock(
                        name=name,
                        position=header.group("position").strip(),
                        depth=branch.depth,
                        header_rest=header.group("rest"),
                    )
                    blocks[name] = current
                continue

            current.lines.append(branch.body)

        return {name: self._build_palace(blocks[name]) for name in PalaceName if name in blocks}

    def _build_palace(self, block: _PalaceBlock) -> Palace:
        fields: dict[str, str] = {}
        for body in block.lines:
            m = _FIELD_RE.match(body)
            if not m:
                continue
            label = m.group("label").strip()
            if label in _PALACE_FIELD_LABELS and label not in fields:
                fields[label] = m.group("value").strip()

        stars = {attr: parse_stars(fields.get(label)) for label, attr in STAR_FIELDS.items()}
        spirits = {
            key: fields[label]
            for label, key in SPIRIT_FIELDS.items()
            if fields.get(label) and fields[label] != NONE_PLACEHOLDER
        }
        major = fields.get("大限")
        ages = PalaceAges(
            major=major if major and major != NONE_PLACEHOLDER else None,
            minor=_split_labels(fields.get("小限", "")),
            yearly=_split_labels(fields.get("流年", "")),
        )
        content = block.header_rest + "\n" + "\n".join(block.lines)
        return Palace(
            name=block.name,
            position=block.position,
            spirits=spirits,
            ages=ages,
            is_body_palace=BODY_PALACE_MARKER in content,
            is_karma_palace=KARMA_PALACE_MARKER in content,
            **stars,
        )
