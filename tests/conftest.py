import pytest


@pytest.fixture(autouse=True)
def _no_api_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's .env keys from reaching OpenRouter or Brave in tests."""
    monkeypatch.setattr("aicrawler.config.settings.formatter_api_key", "")
    monkeypatch.setattr("aicrawler.config.settings.brave_api_key", "")
