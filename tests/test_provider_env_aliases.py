from llm_gateway.llm.providers.anthropic_provider import AnthropicProvider
from llm_gateway.llm.providers.gemini_provider import GeminiProvider


def test_gemini_uses_google_api_key_alias(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.setenv("GOOGLE_API_KEY", "test-key")

    provider = GeminiProvider()
    assert provider._api_key == "test-key"


def test_explicit_api_key_wins_over_env(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "from-env")

    provider = AnthropicProvider(api_key="explicit")
    assert provider._api_key == "explicit"
