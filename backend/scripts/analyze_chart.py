"""Analyse d'un thème Ziwei depuis la ligne de commande.

Usage:
  python -m backend.scripts.analyze_chart report.txt --name 张三
  cat report.txt | python -m backend.scripts.analyze_chart - --parse-only

Notes:
- Le JSON est écrit sur stdout (ou dans `--output`); les logs vont sur stderr.
- `--provider fake` permet un essai sans clé API.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from backend.core.container import Container
from backend.core.logging import setup_logging
from backend.core.settings import get_settings
from backend.domain.errors import ChartAnalysisError


def _read_text(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def main(argv: list[str] | None = None) -> int:
    """Point d'entrée principal; retourne le code de sortie."""
    parser = argparse.ArgumentParser(description="Analyse d'un thème Ziwei Doushu (紫微斗数)")
    parser.add_argument("source", help="Chemin du rapport texte, ou '-' pour stdin")
    parser.add_argument("--name", default=None, help="Libellé de l'enregistrement")
    parser.add_argument(
        "--parse-only", action="store_true", help="Affiche le thème parsé sans appeler le LLM"
    )
    parser.add_argument(
        "--provider",
        choices=["gemini", "openai", "fake"],
        default=None,
        help="Surcharge LLM_PROVIDER",
    )
    parser.add_argument("--current-year", type=int, default=None, help="Année de référence")
    parser.add_argument("--output", default=None, help="Fichier de sortie JSON")
    args = parser.parse_args(argv)

    settings = get_settings()
    if args.provider:
        settings = settings.model_copy(update={"LLM_PROVIDER": args.provider})
    setup_logging(settings.LOG_LEVEL)
    container = Container(settings)

    text = _read_text(args.source)
    try:
        if args.parse_only:
            payload = container.service.parse(text).model_dump(mode="json", by_alias=True)
        else:
            record = container.service.analyze(
                text, name=args.name, current_year=args.current_year
            )
            payload = record.to_payload()
    except ChartAnalysisError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    rendered = json.dumps(payload, ensure_ascii=False, indent=2)
    if args.output:
        Path(args.output).write_text(rendered + "\n", encoding="utf-8")
    else:
        print(rendered)
    return 0


if __name__ == "__main__":  # pragma: no cover - script entry
    sys.exit(main())
