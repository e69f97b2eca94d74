"""Tests pour la politique d'appel (retries et backoff)."""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from backend.infra.llm.base import LLMUnavailableError
from backend.infra.llm.call_policy import (
    CallPolicy,
    RetryStrategy,
    calculate_retry_delay,
    call_with_policy,
)

# Constantes pour éviter les erreurs PLR2004 (Magic values)
EXPECTED_ATTEMPTS_3 = 3
MAX_DELAY = 5.0


def test_calculate_retry_delay_strategies() -> None:
    """Teste les trois stratégies sans jitter."""
    expo = CallPolicy(base_delay=1.0, jitter=False)
    assert [calculate_retry_delay(a, expo) for a in range(3)] == [1.0, 2.0, 4.0]

    linear = CallPolicy(retry_strategy=RetryStrategy.LINEAR, base_delay=1.0, jitter=False)
    assert [calculate_retry_delay(a, linear) for a in range(3)] == [1.0, 2.0, 3.0]

    fixed = CallPolicy(retry_strategy=RetryStrategy.FIXED, base_delay=1.5, jitter=False)
    assert calculate_retry_delay(4, fixed) == 1.5


def test_calculate_retry_delay_is_capped() -> None:
    """Teste le plafond de délai, jitter compris."""
    policy = CallPolicy(base_delay=10.0, max_delay=MAX_DELAY)
    assert all(calculate_retry_delay(a, policy) <= MAX_DELAY for a in range(5))


def test_call_with_policy_retries_then_succeeds() -> None:
    """Teste qu'une erreur transitoire est rejouée jusqu'au succès."""
    fn = Mock(side_effect=[LLMUnavailableError("a"), LLMUnavailableError("b"), "ok"])
    sleep = Mock()
    policy = CallPolicy(max_retries=2, jitter=False)

    assert call_with_policy(fn, policy, sleep=sleep) == "ok"
    assert fn.call_count == EXPECTED_ATTEMPTS_3
    assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]


def test_call_with_policy_reraises_after_exhaustion() -> None:
    """Teste que la dernière erreur est propagée une fois les retries épuisés."""
    fn = Mock(side_effect=LLMUnavailableError("down"))
    with pytest.raises(LLMUnavailableError, match="down"):
        call_with_policy(fn, CallPolicy(max_retries=2, jitter=False), sleep=Mock())
    assert fn.call_count == EXPECTED_ATTEMPTS_3


def test_call_with_policy_does_not_retry_other_errors() -> None:
    """Teste que seules les erreurs d'invocation sont rejouées."""
    fn = Mock(side_effect=ValueError("bug"))
    sleep = Mock()
    with pytest.raises(ValueError):
        call_with_policy(fn, CallPolicy(max_retries=3), sleep=sleep)
    assert fn.call_count == 1
    sleep.assert_not_called()
