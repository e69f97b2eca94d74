"""Interface de base pour les modèles de langage.

Le LLM est une capacité opaque: un prompt en entrée, du texte libre en sortie. Les
implémentations lèvent `LLMUnavailableError` pour toute erreur d'invocation (clé absente,
transport, quota, réponse vide).
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class LLMUnavailableError(RuntimeError):
    """L'appel au LLM n'a pas pu aboutir."""


class LLM(ABC):
    """Interface abstraite pour les modèles de langage."""

    @abstractmethod
    def generate(
        self,
        prompt: str,
        *,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
    ) -> str:
        """Génère une réponse texte (attendue en JSON) à partir d'un prompt."""
        ...
