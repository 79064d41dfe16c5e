"""Unit tests for loop-cap resolution."""

from __future__ import annotations

import pytest

from goalrunner.limits import (
    DEFAULT_MAX_LOOPS_CUSTOM_API_KEY,
    DEFAULT_MAX_LOOPS_FREE,
    DEFAULT_MAX_LOOPS_PAID,
    resolve_max_loops,
)
from goalrunner.schemas import ModelSettings, SessionContext

_PAID = SessionContext(user_id="u1", subscription_id="sub_123")


def test_free_tier_without_key_or_subscription() -> None:
    assert resolve_max_loops(ModelSettings()) == DEFAULT_MAX_LOOPS_FREE
    assert resolve_max_loops(ModelSettings(), SessionContext(user_id="u1")) == DEFAULT_MAX_LOOPS_FREE


def test_paid_tier_without_key() -> None:
    assert resolve_max_loops(ModelSettings(), _PAID) == DEFAULT_MAX_LOOPS_PAID


def test_custom_key_without_override_uses_custom_default() -> None:
    settings = ModelSettings(custom_api_key="sk-real")
    assert resolve_max_loops(settings) == DEFAULT_MAX_LOOPS_CUSTOM_API_KEY


@pytest.mark.parametrize("session", [None, _PAID])
def test_custom_key_override_ignores_subscription(session) -> None:
    settings = ModelSettings(custom_api_key="sk-real", custom_max_loops=25)
    assert resolve_max_loops(settings, session) == 25


def test_zero_override_falls_back_to_custom_default() -> None:
    settings = ModelSettings(custom_api_key="sk-real", custom_max_loops=0)
    assert resolve_max_loops(settings) == DEFAULT_MAX_LOOPS_CUSTOM_API_KEY


def test_override_without_key_is_ignored() -> None:
    assert resolve_max_loops(ModelSettings(custom_max_loops=50)) == DEFAULT_MAX_LOOPS_FREE


def test_custom_default_exceeds_free_tier() -> None:
    assert DEFAULT_MAX_LOOPS_CUSTOM_API_KEY > DEFAULT_MAX_LOOPS_FREE
