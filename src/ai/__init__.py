"""
AI Module for the structural model generator

This module wraps the LLM collaborator: provider and retry policy,
configuration, intent detection, prompt synthesis and response parsing.

Components:
- LLM Provider: GroqProvider with API-key rotation
- Configuration: AIConfig
- Intent Detection: structure type, truss type, dimensions, load/boundary intents
- Prompt Templates: generation, edit and correction prompts
- Response Parsing: JSON object extraction from LLM output

Note: ModelGenerationService must be imported from its module to avoid
circular imports with src.fem:
    from src.ai.model_service import ModelGenerationService
"""

# Provider Infrastructure
from .providers import (
    LLMProvider,
    LLMProviderType,
    LLMMessage,
    LLMResponse,
    LLMUsage,
    MessageRole,
    GroqProvider,
    RetryState,
    RequestPolicy,
    GENERATION_POLICY,
    CORRECTION_POLICY,
    LLMProviderError,
    RateLimitError,
    AuthenticationError,
    ProviderUnavailableError,
)

# Configuration
from .config import AIConfig

# Intent Detection
from .intent_detector import (
    detect_structure_type,
    detect_truss_type,
    detect_structure_dimensions,
    detect_load_intent,
    detect_boundary_change_intent,
)

# Response Parsing
from .response_parser import (
    ResponseParseError,
    extract_json_object,
    parse_model_response,
)

__all__ = [
    "LLMProvider",
    "LLMProviderType",
    "LLMMessage",
    "LLMResponse",
    "LLMUsage",
    "MessageRole",
    "GroqProvider",
    "RetryState",
    "RequestPolicy",
    "GENERATION_POLICY",
    "CORRECTION_POLICY",
    "LLMProviderError",
    "RateLimitError",
    "AuthenticationError",
    "ProviderUnavailableError",
    "AIConfig",
    "detect_structure_type",
    "detect_truss_type",
    "detect_structure_dimensions",
    "detect_load_intent",
    "detect_boundary_change_intent",
    "ResponseParseError",
    "extract_json_object",
    "parse_model_response",
]
