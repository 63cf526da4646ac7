"""Tests for Settings defaults and environment overrides."""

from __future__ import annotations

import pytest

from resolution_engine.config import Settings


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("MAX_FOLLOW_UP_DEPTH", raising=False)
        monkeypatch.delenv("DEFAULT_AGENT_ID", raising=False)
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert s.max_follow_up_depth == 2
        assert s.default_agent_id == "alexander"
        assert s.generation_timeout_seconds == 90.0
        assert s.quote_number_prefix == "Q-"

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MAX_FOLLOW_UP_DEPTH", "4")
        monkeypatch.setenv("DEFAULT_CURRENCY", "USD")
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert s.max_follow_up_depth == 4
        assert s.default_currency == "USD"
