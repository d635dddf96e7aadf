"""
LLM Provider Interface for the AI structural model generator.

This module talks to an OpenAI-compatible chat-completions API (Groq by
default) and owns the retry policy: API-key rotation on capacity/auth
failures, time-based backoff otherwise.

Retry state is an explicit value, ``RetryState(attempt, key_index)``, that is
passed into every call and returned updated on the response. Nothing about a
request's retries lives on the provider instance, so one provider can serve
concurrent requests.

Usage:
    provider = GroqProvider(api_keys=["key-1", "key-2"])
    response = provider.chat(
        [LLMMessage(role="user", content="Hello")],
        policy=GENERATION_POLICY,
    )
    next_state = response.retry_state
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence
import logging
import time

import httpx

# Configure logging - avoid logging sensitive data (API keys)
logger = logging.getLogger(__name__)


class LLMProviderType(Enum):
    """Supported LLM provider types."""
    GROQ = "groq"


class MessageRole(Enum):
    """Message role types for chat completion.

    Follows OpenAI-compatible API format.
    """
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class LLMMessage:
    """A message in a chat conversation.

    Attributes:
        role: The role of the message sender (system, user, or assistant)
        content: The text content of the message
    """
    role: str
    content: str

    def __post_init__(self):
        """Validate role is one of the allowed values."""
        valid_roles = {r.value for r in MessageRole}
        if self.role not in valid_roles:
            raise ValueError(
                f"Invalid role '{self.role}'. Must be one of: {valid_roles}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class RetryState:
    """Per-request retry position.

    Attributes:
        attempt: Number of attempts already made (0-indexed for the next one)
        key_index: Index of the API key to use next
    """
    attempt: int = 0
    key_index: int = 0

    def next_attempt(self) -> "RetryState":
        return replace(self, attempt=self.attempt + 1)

    def rotate_key(self) -> "RetryState":
        return replace(self, attempt=self.attempt + 1, key_index=self.key_index + 1)


@dataclass(frozen=True)
class RequestPolicy:
    """Limits for one kind of LLM call.

    Attributes:
        max_retries: Extra attempts after the first one
        timeout: Per-attempt timeout in seconds
        temperature: Sampling temperature (None = API default)
        max_tokens: Completion token cap (None = API default)
    """
    max_retries: int = 3
    timeout: float = 120.0
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


GENERATION_POLICY = RequestPolicy(max_retries=3, timeout=120.0)
CORRECTION_POLICY = RequestPolicy(max_retries=2, timeout=45.0, temperature=0.3, max_tokens=4000)


@dataclass
class LLMUsage:
    """Token usage statistics from LLM response."""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class LLMResponse:
    """Response from an LLM chat completion.

    Attributes:
        content: The text content of the response
        model: The model used for generation
        provider: The provider type that generated this response
        usage: Token usage statistics (if available)
        finish_reason: Why the completion stopped (stop, length, etc.)
        retry_state: Retry position after this call, for follow-up calls
        raw_response: The raw response from the API (for debugging)
    """
    content: str
    model: str
    provider: LLMProviderType
    usage: Optional[LLMUsage] = None
    finish_reason: Optional[str] = None
    retry_state: RetryState = field(default_factory=RetryState)
    raw_response: Optional[Dict[str, Any]] = field(default=None, repr=False)

    @property
    def total_tokens(self) -> int:
        return self.usage.total_tokens if self.usage else 0


class LLMProviderError(Exception):
    """Base exception for LLM provider errors.

    Attributes:
        message: Error description
        provider: The provider that raised the error
        status_code: HTTP status code (if applicable)
        response: Raw response data (if available)
    """

    def __init__(
        self,
        message: str,
        provider: Optional[LLMProviderType] = None,
        status_code: Optional[int] = None,
        response: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.response = response

    def __str__(self) -> str:
        parts = [self.message]
        if self.provider:
            parts.insert(0, f"[{self.provider.value}]")
        if self.status_code:
            parts.append(f"(HTTP {self.status_code})")
        return " ".join(parts)


class RateLimitError(LLMProviderError):
    """Raised when API capacity is exhausted (HTTP 429 or a capacity message)."""
    pass


class AuthenticationError(LLMProviderError):
    """Raised when API authentication fails (HTTP 401/403)."""
    pass


class ProviderUnavailableError(LLMProviderError):
    """Raised when provider is temporarily unavailable (HTTP 5xx)."""
    pass


CAPACITY_MESSAGES = ("rate limit", "容量制限", "capacity")


def rate_limit_delay(attempt: int) -> float:
    """Backoff after a 429 with no spare key: 3 + 2^attempt seconds, max 30."""
    return min(3.0 + 2 ** attempt, 30.0)


def capacity_delay(attempt: int) -> float:
    """Backoff after a server-side capacity error: max 20 seconds."""
    return min(5.0 + 2.0 * attempt, 20.0)


def network_delay(attempt: int) -> float:
    """Backoff after a timeout or connection failure: max 10 seconds."""
    return min(3.0 + attempt, 10.0)


class LLMProvider(ABC):
    """Abstract base class for LLM providers.

    Attributes:
        api_keys: Interchangeable API keys, tried in order
        base_url: The base URL for API requests
        default_model: The default model to use
    """

    def __init__(
        self,
        api_keys: Sequence[str],
        base_url: str,
        default_model: str,
    ):
        keys = [k for k in api_keys if k]
        if not keys:
            raise ValueError("At least one API key is required")

        self._api_keys = tuple(keys)
        self._base_url = base_url.rstrip("/")
        self._default_model = default_model

    @property
    @abstractmethod
    def provider_type(self) -> LLMProviderType:
        """Return the provider type identifier."""
        pass

    @property
    def default_model(self) -> str:
        return self._default_model

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def key_count(self) -> int:
        return len(self._api_keys)

    @abstractmethod
    def chat(
        self,
        messages: List[LLMMessage],
        policy: RequestPolicy = GENERATION_POLICY,
        state: Optional[RetryState] = None,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """Send a chat completion request.

        Raises:
            LLMProviderError: If every attempt fails
        """
        pass

    @abstractmethod
    def health_check(self) -> bool:
        pass

    def _build_headers(self, key_index: int) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_keys[key_index]}",
            "Content-Type": "application/json",
        }


class GroqProvider(LLMProvider):
    """Groq chat-completions provider with API-key rotation.

    On 429 or 401 the next key is tried immediately; only when no key is
    left does the call fall back to time-based backoff (429) or fail (401).

    API Reference: https://console.groq.com/docs/api-reference
    """

    def __init__(
        self,
        api_keys: Sequence[str],
        base_url: str = "https://api.groq.com/openai/v1",
        default_model: str = "llama-3.3-70b-versatile",
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize Groq provider.

        Args:
            api_keys: One to three Groq API keys
            base_url: API base URL
            default_model: Default model
            transport: Optional httpx transport (tests use httpx.MockTransport)
            sleep: Delay function used between retries
        """
        super().__init__(api_keys, base_url, default_model)
        self._transport = transport
        self._sleep = sleep

    @property
    def provider_type(self) -> LLMProviderType:
        return LLMProviderType.GROQ

    def chat(
        self,
        messages: List[LLMMessage],
        policy: RequestPolicy = GENERATION_POLICY,
        state: Optional[RetryState] = None,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """Send a chat completion request to Groq.

        Args:
            messages: List of messages in the conversation
            policy: Retry count, timeout, temperature and token cap
            state: Retry position to start from (default: first key, attempt 0)
            model: Model to use (default: llama-3.3-70b-versatile)

        Returns:
            LLMResponse whose ``retry_state`` reflects the attempts made

        Raises:
            AuthenticationError: Every key rejected (401/403)
            RateLimitError: Capacity exhausted after all keys and retries
            ProviderUnavailableError: Server errors after all retries
            LLMProviderError: Other API errors
        """
        actual_model = model or self._default_model
        payload: Dict[str, Any] = {
            "model": actual_model,
            "messages": [m.to_dict() for m in messages],
        }
        if policy.temperature is not None:
            payload["temperature"] = policy.temperature
        if policy.max_tokens is not None:
            payload["max_tokens"] = policy.max_tokens

        response_data, final_state = self._make_request_with_retry(
            endpoint="/chat/completions",
            payload=payload,
            policy=policy,
            state=state or RetryState(),
        )
        return self._parse_response(response_data, actual_model, final_state)

    def _make_request_with_retry(
        self,
        endpoint: str,
        payload: Dict[str, Any],
        policy: RequestPolicy,
        state: RetryState,
    ):
        """POST with key rotation and backoff.

        Returns:
            (parsed JSON response, retry state after the successful attempt)
        """
        url = f"{self._base_url}{endpoint}"
        last_error: Optional[Exception] = None
        max_attempts = state.attempt + policy.max_retries + 1

        while state.attempt < max_attempts:
            label = f"attempt {state.attempt + 1}, key {state.key_index + 1}/{self.key_count}"
            has_next_key = state.key_index + 1 < self.key_count
            has_next_attempt = state.attempt + 1 < max_attempts
            try:
                with httpx.Client(timeout=policy.timeout, transport=self._transport) as client:
                    response = client.post(url, json=payload, headers=self._build_headers(state.key_index))

                if response.status_code == 200:
                    try:
                        return response.json(), state
                    except ValueError as e:
                        raise LLMProviderError(
                            f"Invalid JSON in Groq response: {e}",
                            provider=LLMProviderType.GROQ,
                            status_code=response.status_code,
                        ) from e

                self._handle_error_response(response)

            except (RateLimitError, AuthenticationError) as e:
                last_error = e
                if has_next_key and has_next_attempt:
                    logger.warning(f"Groq {type(e).__name__} ({label}); rotating API key")
                    state = state.rotate_key()
                    continue
                if isinstance(e, AuthenticationError) or not has_next_attempt:
                    raise
                delay = rate_limit_delay(state.attempt)
                logger.warning(f"Groq rate limited ({label}); retrying in {delay:.1f}s")
                self._sleep(delay)
                state = state.next_attempt()

            except ProviderUnavailableError as e:
                last_error = e
                if not has_next_attempt:
                    raise
                delay = capacity_delay(state.attempt)
                logger.warning(f"Groq unavailable ({label}); retrying in {delay:.1f}s")
                self._sleep(delay)
                state = state.next_attempt()

            except (httpx.TimeoutException, httpx.RequestError) as e:
                last_error = e
                if not has_next_attempt:
                    break
                delay = network_delay(state.attempt)
                logger.warning(f"Groq request error ({label}): {e}; retrying in {delay:.1f}s")
                self._sleep(delay)
                state = state.next_attempt()

        raise LLMProviderError(
            f"Request failed after {policy.max_retries + 1} attempts: {last_error}",
            provider=LLMProviderType.GROQ,
        )

    def _handle_error_response(self, response: httpx.Response) -> None:
        """Raise the exception matching an error response.

        Raises:
            AuthenticationError: For 401/403
            RateLimitError: For 429 or a capacity message
            ProviderUnavailableError: For 5xx
            LLMProviderError: For other errors
        """
        status_code = response.status_code

        try:
            error_data = response.json()
            error_message = error_data.get("error", {}).get("message", response.text)
        except (ValueError, AttributeError):
            error_data = None
            error_message = response.text

        kwargs = {
            "provider": LLMProviderType.GROQ,
            "status_code": status_code,
            "response": error_data,
        }
        lowered = str(error_message).lower()

        if status_code in (401, 403):
            raise AuthenticationError(f"Authentication failed: {error_message}", **kwargs)
        if status_code == 429 or any(m in lowered for m in CAPACITY_MESSAGES):
            raise RateLimitError(f"Rate limit exceeded: {error_message}", **kwargs)
        if status_code >= 500:
            raise ProviderUnavailableError(f"Server error: {error_message}", **kwargs)
        raise LLMProviderError(f"API error: {error_message}", **kwargs)

    def _parse_response(
        self,
        response_data: Dict[str, Any],
        model: str,
        state: RetryState,
    ) -> LLMResponse:
        choices = response_data.get("choices", [])
        if not choices:
            raise LLMProviderError(
                "No choices in API response",
                provider=LLMProviderType.GROQ,
            )

        choice = choices[0]
        content = choice.get("message", {}).get("content", "") or ""
        finish_reason = choice.get("finish_reason")

        usage_data = response_data.get("usage", {})
        usage = LLMUsage(
            prompt_tokens=usage_data.get("prompt_tokens", 0),
            completion_tokens=usage_data.get("completion_tokens", 0),
            total_tokens=usage_data.get("total_tokens", 0),
        )

        return LLMResponse(
            content=content,
            model=response_data.get("model", model),
            provider=LLMProviderType.GROQ,
            usage=usage,
            finish_reason=finish_reason,
            retry_state=state,
            raw_response=response_data,
        )

    def health_check(self) -> bool:
        """Check if the Groq API is responding.

        Returns:
            True if API is responding, False otherwise
        """
        try:
            response = self.chat(
                messages=[LLMMessage(role="user", content="ping")],
                policy=RequestPolicy(max_retries=0, timeout=10.0, temperature=0, max_tokens=1),
            )
            return response.content is not None
        except LLMProviderError as e:
            logger.warning(f"Groq health check failed: {e}")
            return False
