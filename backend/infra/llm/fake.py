"""LLM factice déterministe pour le développement local et les tests.

Les réponses sont choisies selon le contenu du prompt (première sous-chaîne trouvée), ce qui
rend le comportement indépendant de l'ordre des appels, y compris en exécution concurrente.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping

from backend.infra.llm.base import LLM


class FakeLLM(LLM):
    """LLM scripté: `responses` associe une sous-chaîne du prompt à la réponse renvoyée.

    Une réponse peut être une chaîne ou un callable `prompt -> str` (qui peut lever).
    """

    def __init__(
        self,
        responses: Mapping[str, str | Callable[[str], str]] | None = None,
        default: str = "{}",
    ) -> None:
        self.responses = dict(responses or {})
        self.default = default
        self.prompts: list[str] = []
        self._lock = threading.Lock()

    def generate(
        self,
        prompt: str,
        *,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
    ) -> str:
        with self._lock:
            self.prompts.append(prompt)
        for marker, response in self.responses.items():
            if marker in prompt:
                return response(prompt) if callable(response) else response
        return self.default
