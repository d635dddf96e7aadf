"""
Unit tests for AI configuration.

Tests cover:
- Loading 1-3 API keys and overrides from environment variables
- Missing-key and invalid-value errors
- .env file loading
- Request policies derived from the configuration
- API key masking
"""

import pytest

from src.ai.config import API_KEY_ENV_VARS, AIConfig
from src.ai.providers import GroqProvider


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in API_KEY_ENV_VARS + ("GROQ_BASE_URL", "GROQ_MODEL", "GROQ_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)


class TestFromEnv:
    """Tests for AIConfig.from_env."""

    def test_single_key(self, monkeypatch):
        """Test one key is enough."""
        monkeypatch.setenv("GROQ_API_KEY2", "gsk_second_key_value")
        config = AIConfig.from_env()
        assert config.api_keys == ["gsk_second_key_value"]
        assert config.timeout == 120.0

    def test_three_keys_in_order(self, monkeypatch):
        """Test keys keep their numbered order."""
        for index, name in enumerate(API_KEY_ENV_VARS, start=1):
            monkeypatch.setenv(name, f"key-{index}")
        assert AIConfig.from_env().api_keys == ["key-1", "key-2", "key-3"]

    def test_missing_keys(self):
        """Test no key raises ValueError naming the variables."""
        with pytest.raises(ValueError, match="GROQ_API_KEY1"):
            AIConfig.from_env()

    def test_overrides(self, monkeypatch):
        """Test base URL, model and timeout overrides."""
        monkeypatch.setenv("GROQ_API_KEY1", "k")
        monkeypatch.setenv("GROQ_MODEL", "llama-3.1-8b-instant")
        monkeypatch.setenv("GROQ_TIMEOUT", "60")
        config = AIConfig.from_env()
        assert config.model == "llama-3.1-8b-instant"
        assert config.timeout == 60.0

    def test_env_file(self, tmp_path, monkeypatch):
        """Test keys are read from a .env file."""
        # register the variable with monkeypatch so the loaded value is undone
        monkeypatch.setenv("GROQ_API_KEY1", "placeholder")
        monkeypatch.delenv("GROQ_API_KEY1")
        env_file = tmp_path / ".env"
        env_file.write_text("GROQ_API_KEY1=from-file\n")
        config = AIConfig.from_env(str(env_file))
        assert config.api_keys == ["from-file"]

    def test_missing_env_file(self, tmp_path):
        """Test a missing .env file raises."""
        with pytest.raises(FileNotFoundError):
            AIConfig.from_env(str(tmp_path / "missing.env"))


class TestValidation:
    """Tests for __post_init__ validation."""

    def test_empty_keys_filtered(self):
        """Test blank keys are dropped."""
        assert AIConfig(api_keys=["", "k"]).api_keys == ["k"]

    def test_too_many_keys(self):
        """Test more than three keys raises."""
        with pytest.raises(ValueError):
            AIConfig(api_keys=["a", "b", "c", "d"])

    def test_non_positive_timeout(self):
        """Test zero timeout raises."""
        with pytest.raises(ValueError):
            AIConfig(api_keys=["k"], timeout=0)

    def test_negative_retries(self):
        """Test negative retries raise."""
        with pytest.raises(ValueError):
            AIConfig(api_keys=["k"], correction_max_retries=-1)


class TestDerived:
    """Tests for policies, provider creation and masking."""

    def test_policies(self):
        """Test generation and correction policies."""
        config = AIConfig(api_keys=["k"])
        assert config.generation_policy.max_retries == 3
        assert config.generation_policy.temperature is None
        assert config.correction_policy.timeout == 45.0
        assert config.correction_policy.max_tokens == 4000

    def test_create_provider(self):
        """Test Groq provider gets every key."""
        provider = AIConfig(api_keys=["a", "b"]).create_provider()
        assert isinstance(provider, GroqProvider)
        assert provider.key_count == 2

    def test_mask_api_key(self):
        """Test long keys keep only prefix and suffix."""
        config = AIConfig(api_keys=["k"])
        assert config.mask_api_key("gsk_1234567890abcdef") == "gsk_1234...cdef"
        assert config.mask_api_key("short") == "***"

    def test_repr_hides_keys(self):
        """Test repr never contains a full key."""
        config = AIConfig(api_keys=["gsk_1234567890abcdef"])
        assert "gsk_1234567890abcdef" not in repr(config)
