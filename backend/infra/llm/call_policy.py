"""Politique d'appel d'une unité de génération: retries et backoff.

Seules les erreurs d'invocation (`LLMUnavailableError`) sont rejouées; une fois le budget de
retries épuisé, la dernière erreur est propagée telle quelle. Le timeout par appel est celui du
client LLM.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

import structlog

from backend.infra.llm.base import LLMUnavailableError

T = TypeVar("T")

log = structlog.get_logger(__name__)


class RetryStrategy(Enum):
    """Stratégies de retry disponibles."""

    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    FIXED = "fixed"


@dataclass(frozen=True)
class CallPolicy:
    """Configuration des retries par unité."""

    max_retries: int = 1
    retry_strategy: RetryStrategy = RetryStrategy.EXPONENTIAL
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: bool = True


def calculate_retry_delay(attempt: int, policy: CallPolicy) -> float:
    """Calculate retry delay according to configured strategy."""
    if policy.retry_strategy == RetryStrategy.EXPONENTIAL:
        delay = policy.base_delay * (2**attempt)
    elif policy.retry_strategy == RetryStrategy.LINEAR:
        delay = policy.base_delay * (attempt + 1)
    else:  # FIXED
        delay = policy.base_delay

    if policy.jitter:
        delay *= random.uniform(0.5, 1.5)

    return min(delay, policy.max_delay)


def call_with_policy(
    fn: Callable[[], T],
    policy: CallPolicy,
    *,
    label: str = "llm_call",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Exécute `fn` en rejouant les `LLMUnavailableError` selon `policy`."""
    attempt = 0
    while True:
        try:
            return fn()
        except LLMUnavailableError as exc:
            if attempt >= policy.max_retries:
                raise
            delay = calculate_retry_delay(attempt, policy)
            log.warning(
                "llm_call_retry",
                unit=label,
                attempt=attempt + 1,
                delay_s=round(delay, 2),
                error=str(exc),
            )
            sleep(delay)
            attempt += 1
