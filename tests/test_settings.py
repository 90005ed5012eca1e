"""Tests for Settings validation."""

import pytest
from pydantic import ValidationError

from mneme.config.settings import Settings


class TestSettings:
    def test_retrieval_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("MATCH_THRESHOLD", "MATCH_COUNT", "FALLBACK_DISPLAY_COUNT"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)

        assert settings.MATCH_THRESHOLD == 0.4
        assert settings.MATCH_COUNT == 15
        assert settings.FALLBACK_DISPLAY_COUNT == 5

    def test_missing_key_is_not_an_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        settings = Settings(_env_file=None)

        assert settings.GOOGLE_API_KEY is None
        assert settings.has_google_key is False

    def test_blank_key_counts_as_missing(self) -> None:
        assert Settings(_env_file=None, GOOGLE_API_KEY="   ").has_google_key is False

    def test_key_is_hidden_in_repr(self) -> None:
        settings = Settings(_env_file=None, GOOGLE_API_KEY="secret-value")

        assert settings.has_google_key is True
        assert "secret-value" not in repr(settings)

    def test_threshold_out_of_range_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, MATCH_THRESHOLD=1.5)

    def test_match_count_out_of_range_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, MATCH_COUNT=0)

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MATCH_COUNT", "20")

        assert Settings(_env_file=None).MATCH_COUNT == 20
