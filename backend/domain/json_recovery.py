"""Récupération best-effort d'un objet JSON dans une réponse LLM.

Les réponses du LLM sont censées être un objet JSON unique mais arrivent parfois entourées d'un
bloc Markdown, tronquées, ou en prose. Ce module:

- extrait le premier objet `{...}` équilibré (les accolades dans les chaînes sont ignorées);
- répare syntaxiquement une sortie tronquée (guillemet, crochets, accolades manquants);
- enchaîne ces stratégies dans `parse_lenient`, qui ne lève jamais.

La réparation est purement syntaxique: elle ne valide aucun schéma.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

import structlog

_FENCED_RE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)\s*```")

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RawTextFallback:
    """Résultat d'un décodage impossible: texte brut conservé et marqueur d'erreur."""

    raw_analysis: str
    error: str


def extract_first_object(text: str | None) -> str:
    """Retourne le premier objet `{...}` équilibré de `text`.

    - `""` si aucune accolade ouvrante;
    - la fin du texte depuis la première `{` si l'objet n'est jamais refermé.
    """
    if not text:
        return ""
    start = text.find("{")
    if start == -1:
        return ""
    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return text[start:]


def repair(text: str) -> str:
    """Referme syntaxiquement un JSON tronqué.

    Retire une virgule finale, ajoute un guillemet si le nombre de guillemets non échappés est
    impair, puis un `]` par `[` non fermé et un `}` par `{` non fermé, dans cet ordre.
    """
    fixed = (text or "").strip()
    if fixed.endswith(","):
        fixed = fixed[:-1]

    open_braces = 0
    open_brackets = 0
    in_string = False
    escape = False
    for ch in fixed:
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            open_braces += 1
        elif ch == "}":
            open_braces -= 1
        elif ch == "[":
            open_brackets += 1
        elif ch == "]":
            open_brackets -= 1

    if in_string:
        fixed += '"'
    fixed += "]" * max(open_brackets, 0)
    fixed += "}" * max(open_braces, 0)
    return fixed


def _decode_object(candidate: str) -> dict[str, Any] | None:
    if not candidate:
        return None
    try:
        value = json.loads(candidate)
    except (json.JSONDecodeError, RecursionError):
        return None
    return value if isinstance(value, dict) else None


def parse_lenient(raw_text: str | None) -> dict[str, Any] | RawTextFallback:
    """Décode un objet JSON en essayant successivement les stratégies de récupération.

    Ordre: décodage direct, bloc Markdown, premier objet équilibré, puis réparation. La première
    réussite l'emporte; en cas d'échec total un `RawTextFallback` est renvoyé.
    """
    raw = raw_text or ""
    stripped = raw.strip()

    if stripped.startswith("{"):
        decoded = _decode_object(stripped)
        if decoded is not None:
            return decoded

    source = raw
    fenced = _FENCED_RE.search(raw)
    if fenced:
        source = fenced.group(1)
        decoded = _decode_object(source.strip())
        if decoded is not None:
            log.debug("json_recovered", strategy="fenced_block")
            return decoded

    extracted = extract_first_object(source)
    if not extracted:
        log.warning("json_recovery_failed", reason="no_object", length=len(raw))
        return RawTextFallback(raw_analysis=raw, error="no JSON object found in response")

    decoded = _decode_object(extracted)
    if decoded is not None:
        log.debug("json_recovered", strategy="first_object")
        return decoded

    decoded = _decode_object(repair(extracted))
    if decoded is not None:
        log.info("json_recovered", strategy="repair", length=len(extracted))
        return decoded

    log.warning("json_recovery_failed", reason="undecodable", length=len(raw))
    return RawTextFallback(raw_analysis=raw, error="response could not be decoded as JSON")
