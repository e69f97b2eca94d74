"""Unités de génération: un prompt, la section attendue et les clés demandées.

Chaque unité est construite uniquement à partir du thème (et de paramètres d'âge/année), ce qui
les rend indépendantes les unes des autres. Les prompts exigent une sortie JSON seule et
embarquent une esquisse du schéma attendu.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from backend.domain.entities import (
    AnalysisSection,
    BasicInfo,
    Chart,
    Palace,
    PalaceName,
    Star,
    Topic,
    TransformationOrigin,
)

EXPERT_PREAMBLE = (
    "你是一位紫微斗数命理师，熟练运用三合紫微、飞星紫微、河洛紫微与钦天四化等各派技法。"
)
REASONING_RULES = (
    "每个结论都要写出推导链，点名具体的宫位、主星、四化或星曜组合，不要空泛套话；"
    "白话解读要讲清因果；推算依据写成3-5条要点；每段结论配2-4条对应的化解或强化建议。"
)
JSON_RULES = (
    "只输出一个JSON对象，不要使用Markdown代码块，不要附加任何说明文字；"
    "正文需要引用时请用「」或《》，不要使用英文双引号。"
)
UNKNOWN = "未知"

# 命宫及其三方四正
OVERVIEW_PALACES = (
    PalaceName.LIFE,
    PalaceName.WEALTH,
    PalaceName.CAREER,
    PalaceName.TRAVEL,
)

_TOPIC_FOCUS = {
    Topic.CAREER: "事业财运深度分析（约300字：职业方向、财富层次、投资取舍）",
    Topic.STUDY: "学业进修深度分析（约200字：学习能力、考试运、适合方向）",
    Topic.MARRIAGE: "婚姻感情深度分析（约300字：配偶特征、相处模式、婚姻风险）",
    Topic.HEALTH: "健康疾厄深度分析（约200字：体质强弱、易患疾病、养生要点）",
    Topic.RELATIONSHIP: "人际交往深度分析（约200字：贵人运、小人防范）",
}

_ORIGIN_PREFIX = {
    TransformationOrigin.NATAL: "生年",
    TransformationOrigin.OUTBOUND: "↓",
    TransformationOrigin.INBOUND: "↑",
    TransformationOrigin.UNMARKED: "",
}


@dataclass(frozen=True)
class GenerationUnit:
    """Une requête d'analyse élémentaire envoyée au LLM."""

    name: str
    section: AnalysisSection
    prompt: str
    response_keys: tuple[AnalysisSection, ...]
    requested: tuple[str, ...] = ()
    year_range: tuple[int, int] | None = None


# --- Mise en forme du thème ---


def format_star(star: Star) -> str:
    text = star.name
    if star.attributes:
        text += f"({','.join(star.attributes)})"
    ft = star.four_transformation
    if ft is not None:
        text += f"[{_ORIGIN_PREFIX[ft.origin]}{ft.type.value}]"
    return text


def format_stars(stars: Iterable[Star]) -> str:
    return ", ".join(format_star(s) for s in stars) or "无"


def format_basic_info(info: BasicInfo) -> str:
    parts = [
        ("性别", info.gender),
        ("出生时间", info.birth_timestamp),
        ("农历", info.lunar_time),
        ("四柱", info.solar_pillars),
        ("五行局", info.element),
        ("命主", info.life_master),
        ("身主", info.body_master),
        ("子年斗君", info.dou_jun),
        ("身宫", info.body_palace),
    ]
    return ", ".join(f"{label}: {value or UNKNOWN}" for label, value in parts)


def format_palace(palace: Palace) -> str:
    markers = "".join(
        marker
        for flag, marker in ((palace.is_body_palace, "[身宫]"), (palace.is_karma_palace, "[来因]"))
        if flag
    )
    lines = [
        f"【{palace.name.value}】位于{palace.position}{markers}",
        f"  主星: {format_stars(palace.main_stars)}",
        f"  辅星: {format_stars(palace.assist_stars)}",
        f"  小星: {format_stars(palace.minor_stars)}",
    ]
    transformed = [
        s
        for s in (*palace.main_stars, *palace.assist_stars)
        if s.four_transformation is not None
    ]
    if transformed:
        lines.append(f"  四化: {format_stars(transformed)}")
    if palace.ages.major:
        lines.append(f"  大限: {palace.ages.major}")
    return "\n".join(lines)


def format_palaces(chart: Chart, names: Sequence[PalaceName] | None = None) -> str:
    order = names or tuple(PalaceName)
    return "\n".join(format_palace(chart.palaces[n]) for n in order if n in chart.palaces)


def _luck_text(start_luck_age: int | None, start_luck_year: int | None) -> str:
    if start_luck_age is None:
        return UNKNOWN
    return f"{start_luck_age}岁（{start_luck_year}年）"


def _schema(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2)


# --- Construction des unités ---


def overview_unit(chart: Chart) -> GenerationUnit:
    names = list(OVERVIEW_PALACES)
    body = next((p.name for p in chart.palaces.values() if p.is_body_palace), None)
    if body is not None and body not in names:
        names.append(body)
    block: dict[str, Any] = {}
    for key, label, length in (
        ("pattern", "格局总论", "300字以上，分析格局高低、成格与破格"),
        ("personality", "性格特质", "200字以上，分析显性与隐性性格及优缺点"),
        ("lifeTrend", "人生大势", "200字以上，概括一生起伏与成就高低"),
    ):
        block[key] = f"{label}（{length}）"
        block[f"{key}Plain"] = f"{label}的白话解读"
        block[f"{key}Basis"] = ["依据1", "依据2", "依据3"]
        block[f"{key}Solutions"] = ["建议1", "建议2"]
    prompt = f"""{EXPERT_PREAMBLE}请根据以下命盘，只分析【格局总论】、【命主性格】与【人生大势】。
以三合紫微定格局，以飞星紫微看隐性性格，并结合四化飞星判断格局高低。{REASONING_RULES}

【命主基本信息】
{format_basic_info(chart.basic_info)}

【命宫、身宫及三方四正】
{format_palaces(chart, names)}

{JSON_RULES}只返回overall对象，格式如下：
{_schema({AnalysisSection.OVERALL.value: block})}"""
    return GenerationUnit(
        name="overview",
        section=AnalysisSection.OVERALL,
        prompt=prompt,
        response_keys=(AnalysisSection.OVERALL,),
    )


def palace_unit(chart: Chart, names: Sequence[PalaceName]) -> GenerationUnit:
    order = tuple(names) or tuple(PalaceName)
    schema = {
        AnalysisSection.PALACES.value: {
            name.value: {
                "analysis": "...",
                "analysisPlain": "...",
                "basis": ["..."],
                "solutions": ["..."],
                "keywords": ["..."],
            }
            for name in order
        }
    }
    listing = "、".join(n.value for n in order)
    prompt = f"""{EXPERT_PREAMBLE}请对该命盘做【十二宫位】逐宫分析。
除本宫星曜（三合）外，还要结合河洛紫微的对宫原理与各宫自化（钦天四化）判断吉凶，并说明宫位之间的飞宫四化与三方四正联动。{REASONING_RULES}
仅分析以下宫位：{listing}。

【宫位详细信息】
{format_palaces(chart, order)}

{JSON_RULES}只返回palaces对象，键名必须使用上面的宫位名称；每宫分析不少于150字，白话解读80-120字。格式如下：
{_schema(schema)}"""
    return GenerationUnit(
        name=f"palaces:{listing}",
        section=AnalysisSection.PALACES,
        prompt=prompt,
        response_keys=(AnalysisSection.PALACES,),
        requested=tuple(n.value for n in order),
    )


def yearly_unit(
    chart: Chart,
    start_year: int,
    end_year: int,
    start_age: int,
    end_age: int,
    start_luck_age: int | None,
    start_luck_year: int | None,
) -> GenerationUnit:
    schema = {
        AnalysisSection.YEARLY_FORTUNE.value: [
            {
                "year": start_year,
                "age": start_age,
                "fortune": "详细运势描述",
                "fortunePlain": "白话解读",
                "basis": ["依据1", "依据2"],
                "solutions": ["建议1", "建议2"],
                "focus": ["关键词1", "关键词2"],
                "level": "大吉/吉/平/凶/大凶",
                "warning": "关键提醒",
            }
        ]
    }
    prompt = f"""{EXPERT_PREAMBLE}请分析该命盘的【流年运势】。
重点运用钦天四化的流年四化叠宫与飞星的大限流年应期判断每年吉凶与具体事件；凶年必须给出化解方案，吉年给出强化建议。{REASONING_RULES}
只输出{start_year}-{end_year}年范围内的年份，每年一条，年龄与年份必须对应（虚岁）。

【时间范围】{start_year}-{end_year}年
【年龄范围】{start_age}-{end_age}虚岁
【起运年龄】{_luck_text(start_luck_age, start_luck_year)}
【基本信息】{format_basic_info(chart.basic_info)}
【命盘信息】
{format_palaces(chart)}

{JSON_RULES}只返回yearlyFortune数组，每年不少于80字，白话解读40-80字。格式如下：
{_schema(schema)}"""
    return GenerationUnit(
        name=f"yearly:{start_year}-{end_year}",
        section=AnalysisSection.YEARLY_FORTUNE,
        prompt=prompt,
        response_keys=(AnalysisSection.YEARLY_FORTUNE,),
        year_range=(start_year, end_year),
    )


def special_unit(
    chart: Chart,
    topics: Sequence[Topic],
    current_year: int,
    start_luck_age: int | None,
    start_luck_year: int | None,
) -> GenerationUnit:
    selected = tuple(topics) or tuple(Topic)
    block: dict[str, Any] = {}
    for topic in selected:
        block[topic.value] = _TOPIC_FOCUS[topic]
        block[f"{topic.value}Plain"] = f"{topic.label}白话解读"
        block[f"{topic.value}Basis"] = ["依据1", "依据2", "依据3"]
        block[f"{topic.value}Solutions"] = ["建议1", "建议2"]
    listing = "、".join(t.label for t in selected)
    prompt = f"""{EXPERT_PREAMBLE}请对该命盘做【专项深度分析】。
给出具体可执行的化解建议与人生规划方向，写在对应的Solutions字段中，不要新增字段。{REASONING_RULES}
仅分析以下主题：{listing}。

【当前时间】{current_year}年
【起运年龄】{_luck_text(start_luck_age, start_luck_year)}
【命主基本信息】{format_basic_info(chart.basic_info)}
【命盘信息】
{format_palaces(chart)}

{JSON_RULES}只返回specialAnalysis对象，白话解读80-120字。格式如下：
{_schema({AnalysisSection.SPECIAL_ANALYSIS.value: block})}"""
    return GenerationUnit(
        name=f"special:{','.join(t.value for t in selected)}",
        section=AnalysisSection.SPECIAL_ANALYSIS,
        prompt=prompt,
        response_keys=(AnalysisSection.SPECIAL_ANALYSIS,),
        requested=tuple(t.value for t in selected),
    )


def suggestions_unit(
    chart: Chart,
    current_year: int,
    start_luck_age: int | None,
    start_luck_year: int | None,
) -> GenerationUnit:
    schema = {
        AnalysisSection.SUGGESTIONS.value: {
            "solutions": ["化解建议1", "化解建议2", "化解建议3"],
            "solutionsPlain": "化解建议白话解读",
            "solutionsBasis": ["依据1", "依据2"],
            "luckyElements": {
                "directions": ["利方1", "利方2"],
                "colors": ["幸运色1", "幸运色2"],
                "numbers": [1, 6, 8],
            },
            "lifePlanning": "人生整体规划建议（约300字）",
            "lifePlanningPlain": "人生规划白话解读",
            "lifePlanningBasis": ["依据1", "依据2", "依据3"],
        },
        AnalysisSection.KEY_EVENTS.value: [
            {
                "timeRange": "时间范围（公历年或年龄段）",
                "ageRange": "年龄范围（虚岁）",
                "area": "事业/财运/感情/健康/学业/人际",
                "event": "关键事件描述",
                "level": "大吉/吉/平/凶/大凶",
                "impact": "轻/中/重",
                "basis": ["依据1", "依据2"],
                "solutions": ["建议1", "建议2"],
            }
        ],
    }
    prompt = f"""{EXPERT_PREAMBLE}请为该命盘给出【化解建议】与【关键事件提示】。
凡提及问题必须给出化解方案；关键事件列出6-10条，覆盖早年、中年与未来10年，标注时间范围、吉凶与影响程度。{REASONING_RULES}

【当前时间】{current_year}年
【起运年龄】{_luck_text(start_luck_age, start_luck_year)}
【命主基本信息】{format_basic_info(chart.basic_info)}
【命盘信息】
{format_palaces(chart)}

{JSON_RULES}只返回suggestions与keyEvents两个字段。格式如下：
{_schema(schema)}"""
    return GenerationUnit(
        name="suggestions",
        section=AnalysisSection.SUGGESTIONS,
        prompt=prompt,
        response_keys=(AnalysisSection.SUGGESTIONS, AnalysisSection.KEY_EVENTS),
    )
