"""
AI Configuration Module for the structural model generator.

This module handles configuration management for the LLM collaborator,
including environment variable loading, API key handling and the
generation/correction request policies.

Usage:
    config = AIConfig.from_env()
    provider = config.create_provider()
"""

from dataclasses import dataclass, field
from typing import List, Optional
import os
import logging

from .providers import (
    GroqProvider,
    LLMProvider,
    LLMProviderError,
    RequestPolicy,
)

logger = logging.getLogger(__name__)

API_KEY_ENV_VARS = ("GROQ_API_KEY1", "GROQ_API_KEY2", "GROQ_API_KEY3")


@dataclass
class AIConfig:
    """LLM configuration.

    Attributes:
        api_keys: Interchangeable Groq API keys (1-3), tried in order
        base_url: Chat-completions base URL
        model: Model name
        timeout: Generation request timeout in seconds (default: 120)
        max_retries: Generation retry attempts (default: 3)
        correction_timeout: Correction request timeout in seconds (default: 45)
        correction_max_retries: Correction retry attempts (default: 2)
        correction_temperature: Correction sampling temperature (default: 0.3)
        correction_max_tokens: Correction completion token cap (default: 4000)
    """

    api_keys: List[str] = field(default_factory=list)
    base_url: str = "https://api.groq.com/openai/v1"
    model: str = "llama-3.3-70b-versatile"
    timeout: float = 120.0
    max_retries: int = 3
    correction_timeout: float = 45.0
    correction_max_retries: int = 2
    correction_temperature: float = 0.3
    correction_max_tokens: int = 4000

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.api_keys = [k for k in self.api_keys if k]
        if not self.api_keys:
            raise ValueError("At least one API key is required")

        if len(self.api_keys) > len(API_KEY_ENV_VARS):
            raise ValueError(f"At most {len(API_KEY_ENV_VARS)} API keys are supported")

        if self.timeout <= 0 or self.correction_timeout <= 0:
            raise ValueError("Timeout must be positive")

        if self.max_retries < 0 or self.correction_max_retries < 0:
            raise ValueError("Max retries cannot be negative")

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "AIConfig":
        """Load configuration from environment variables.

        Args:
            env_file: Optional path to .env file

        Returns:
            AIConfig instance with loaded configuration

        Raises:
            ValueError: If no API key is set
            FileNotFoundError: If env_file is specified but doesn't exist

        Environment Variables:
            GROQ_API_KEY1, GROQ_API_KEY2, GROQ_API_KEY3: API keys (at least one)
            GROQ_BASE_URL: Optional base URL override
            GROQ_MODEL: Optional model override
            GROQ_TIMEOUT: Generation timeout in seconds
        """
        if env_file:
            cls._load_env_file(env_file)

        api_keys = [os.getenv(name, "") for name in API_KEY_ENV_VARS]
        if not any(api_keys):
            raise ValueError(
                f"Missing API key: set at least one of {', '.join(API_KEY_ENV_VARS)}"
            )

        return cls(
            api_keys=api_keys,
            base_url=os.getenv("GROQ_BASE_URL") or "https://api.groq.com/openai/v1",
            model=os.getenv("GROQ_MODEL") or "llama-3.3-70b-versatile",
            timeout=float(os.getenv("GROQ_TIMEOUT", "120")),
        )

    @staticmethod
    def _load_env_file(env_file: str) -> None:
        """Load environment variables from .env file.

        Raises:
            FileNotFoundError: If env_file doesn't exist
        """
        from dotenv import load_dotenv

        if not load_dotenv(env_file):
            raise FileNotFoundError(f".env file not found: {env_file}")

    @property
    def generation_policy(self) -> RequestPolicy:
        return RequestPolicy(max_retries=self.max_retries, timeout=self.timeout)

    @property
    def correction_policy(self) -> RequestPolicy:
        return RequestPolicy(
            max_retries=self.correction_max_retries,
            timeout=self.correction_timeout,
            temperature=self.correction_temperature,
            max_tokens=self.correction_max_tokens,
        )

    def create_provider(self) -> LLMProvider:
        """Create the LLM provider described by this configuration."""
        provider = GroqProvider(
            api_keys=self.api_keys,
            base_url=self.base_url,
            default_model=self.model,
        )
        logger.info(
            f"Created groq provider (model: {provider.default_model}, "
            f"{provider.key_count} key(s))"
        )
        return provider

    def health_check(self) -> bool:
        """Check if the configured provider is available."""
        try:
            return self.create_provider().health_check()
        except (LLMProviderError, ValueError) as e:
            logger.error(f"Health check failed: {e}")
            return False

    def mask_api_key(self, key: str) -> str:
        """Return masked API key for logging (shows only first 8 chars)."""
        if len(key) <= 12:
            return "***"
        return f"{key[:8]}...{key[-4:]}"

    def __repr__(self) -> str:
        """String representation with masked API keys."""
        masked = ", ".join(self.mask_api_key(k) for k in self.api_keys)
        return f"AIConfig(provider=groq, model={self.model}, api_keys=[{masked}])"
