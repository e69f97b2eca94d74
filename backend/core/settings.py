"""Définition et chargement des paramètres de configuration applicative.

Objectif du module
------------------
- Centraliser les paramètres (env/.env) via Pydantic Settings
- Résoudre le fichier `.env` à utiliser selon la stratégie: ENV_FILE > .env.{APP_ENV} > .env
"""

import os
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

# Détermination du fichier .env à utiliser avec priorité:
# 1) ENV_FILE (chemin explicite)
# 2) .env.{APP_ENV} si présent
# 3) .env (défaut)
_cwd = Path.cwd()
_env_file_from_env = os.getenv("ENV_FILE")
if _env_file_from_env:
    _ENV_FILE_PATH = _env_file_from_env
else:
    _app_env = os.getenv("APP_ENV", "dev")
    _candidate_specific = _cwd / f".env.{_app_env}"
    _candidate_default = _cwd / ".env"
    if _candidate_specific.exists():
        _ENV_FILE_PATH = _candidate_specific
    else:
        _ENV_FILE_PATH = _candidate_default


class Settings(BaseSettings):
    """Modèle de configuration chargé depuis l'environnement et .env."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE_PATH,
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )
    APP_NAME: str = "ziwei-analysis"
    APP_ENV: str = "dev"
    APP_DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Fournisseur LLM: "gemini" | "openai" | "fake"
    LLM_PROVIDER: Literal["gemini", "openai", "fake"] = "gemini"
    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-2.5-pro"
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"

    # Paramètres de génération
    LLM_TEMPERATURE: float = 0.8
    LLM_TOP_P: float = 0.95
    LLM_TOP_K: int = 40
    LLM_MAX_OUTPUT_TOKENS: int = 8192
    LLM_TIMEOUT_S: float = 600.0

    # Politique d'appel par unité (erreurs de transport uniquement)
    LLM_MAX_RETRIES: int = 1
    LLM_RETRY_BASE_DELAY: float = 1.0

    # Orchestration
    ANALYSIS_MAX_CONCURRENCY: int = 4
    YEARLY_CHUNK_SIZE: int = 5
    DEFAULT_BIRTH_YEAR: int = 1980


def get_settings() -> Settings:
    """Construit et retourne la configuration de l'application."""
    return Settings()
