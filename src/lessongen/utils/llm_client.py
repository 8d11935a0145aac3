"""Generation client with an explicit per-call token cap.

This module wraps the OpenAI, Anthropic and Gemini APIs behind a single call
contract: prompt in, one of three outcome values out. Provider exceptions are
classified at this boundary and returned as ``TransportError`` values, and a
response cut off by the token cap is returned as ``TokenLimitExceeded`` with
whatever text the provider produced.
"""

import hashlib
import logging
import math
import os
import threading
import time
from abc import ABC, abstractmethod
from typing import Literal, Optional, Union

from langfuse import observe
from pydantic import BaseModel, Field

from lessongen import constants
from lessongen.utils.usage_monitor import CallRecord, UsageMonitor
from lessongen.validators.schema import TransportErrorKind

logger = logging.getLogger(__name__)


class TokenUsage(BaseModel):
    """Token usage statistics."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cached_tokens: int = 0  # Prompt cache hits


# ============================================================================
# Outcomes
# ============================================================================


class Ok(BaseModel):
    kind: Literal["ok"] = "ok"
    text: str
    usage: TokenUsage = Field(default_factory=TokenUsage)


class TokenLimitExceeded(BaseModel):
    """Output was truncated at the token cap; ``partial_text`` may still be usable."""

    kind: Literal["token_limit_exceeded"] = "token_limit_exceeded"
    partial_text: Optional[str] = None
    usage: TokenUsage = Field(default_factory=TokenUsage)


class TransportError(BaseModel):
    """Network, auth, quota or timeout failure. Never retried for content."""

    kind: Literal["transport_error"] = "transport_error"
    error_kind: TransportErrorKind = TransportErrorKind.UNKNOWN
    message: str = ""
    usage: TokenUsage = Field(default_factory=TokenUsage)


Outcome = Union[Ok, TokenLimitExceeded, TransportError]


# Exception class names (anywhere in the MRO) mapped to transport kinds.
# Checked in order: timeouts subclass connection errors in the SDKs.
_ERROR_NAME_KINDS = [
    (
        TransportErrorKind.TIMEOUT,
        {"APITimeoutError", "DeadlineExceeded", "TimeoutError", "ReadTimeout", "TimeoutException"},
    ),
    (
        TransportErrorKind.AUTH,
        {"AuthenticationError", "PermissionDeniedError", "Unauthenticated", "PermissionDenied"},
    ),
    (
        TransportErrorKind.QUOTA,
        {"RateLimitError", "ResourceExhausted", "TooManyRequests"},
    ),
    (
        TransportErrorKind.NETWORK,
        {"APIConnectionError", "ConnectionError", "ServiceUnavailable", "ConnectError"},
    ),
]


def classify_error(error: BaseException) -> TransportErrorKind:
    """Map a provider exception to a transport error kind."""
    names = {cls.__name__ for cls in type(error).__mro__}
    for kind, kind_names in _ERROR_NAME_KINDS:
        if names & kind_names:
            return kind
    return TransportErrorKind.UNKNOWN


def estimate_tokens(text: str) -> int:
    """Rough token estimate (about four characters per token)."""
    return max(1, math.ceil(len(text) / 4)) if text else 0


# ============================================================================
# Client base
# ============================================================================


class GenerationClient(ABC):
    """Single call contract shared by real and scripted clients.

    Subclasses implement ``_complete``. ``call`` adds logging, latency
    measurement and exactly one UsageMonitor record per call.
    """

    model: str = "unknown"

    def __init__(self):
        self.total_usage = TokenUsage()
        self._usage_lock = threading.Lock()

    @observe(as_type="generation")
    def call(
        self,
        prompt: str,
        token_cap: int,
        timeout: Optional[float] = None,
        label: str = "generation",
        item: Optional[str] = None,
        monitor: Optional[UsageMonitor] = None,
    ) -> Outcome:
        """Run one generation call.

        Args:
            prompt: Prompt text
            token_cap: Maximum number of tokens the model may generate
            timeout: Per-call timeout in seconds
            label: Pipeline step name used for logs and usage records
            item: Sub-step key (vocabulary word), if any
            monitor: UsageMonitor receiving the call record

        Returns:
            Ok, TokenLimitExceeded or TransportError
        """
        prompt_hash = self._hash_prompt(prompt)
        start_time = time.time()
        outcome = self._complete(prompt, token_cap, timeout)
        latency_ms = (time.time() - start_time) * 1000

        self._update_total_usage(outcome.usage)
        self._log_response(prompt_hash, label, item, token_cap, latency_ms, outcome)

        if monitor is not None:
            monitor.record_call(
                CallRecord(
                    step=label,
                    item=item,
                    model=self.model,
                    token_cap=token_cap,
                    prompt_tokens=outcome.usage.prompt_tokens,
                    completion_tokens=outcome.usage.completion_tokens,
                    total_tokens=outcome.usage.total_tokens,
                    outcome=outcome.kind,
                    error_kind=outcome.error_kind.value if isinstance(outcome, TransportError) else None,
                    latency_ms=round(latency_ms, 2),
                )
            )
        return outcome

    @abstractmethod
    def _complete(self, prompt: str, token_cap: int, timeout: Optional[float]) -> Outcome:
        """Perform the provider call and return an outcome value. Must not raise."""
        pass

    def _update_total_usage(self, usage: TokenUsage) -> None:
        with self._usage_lock:
            self.total_usage.prompt_tokens += usage.prompt_tokens
            self.total_usage.completion_tokens += usage.completion_tokens
            self.total_usage.total_tokens += usage.total_tokens
            self.total_usage.cached_tokens += usage.cached_tokens

    def _hash_prompt(self, prompt: str) -> str:
        """Generate SHA256 hash of prompt for logging.

        Args:
            prompt: Text prompt to hash

        Returns:
            First 16 characters of SHA256 hash
        """
        return hashlib.sha256(prompt.encode()).hexdigest()[:16]

    def _log_response(
        self,
        prompt_hash: str,
        label: str,
        item: Optional[str],
        token_cap: int,
        latency_ms: float,
        outcome: Outcome,
    ) -> None:
        """Log structured response metadata."""
        log_data = {
            "prompt_hash": prompt_hash,
            "step": label,
            "model": self.model,
            "token_cap": token_cap,
            "latency_ms": round(latency_ms, 2),
            "outcome": outcome.kind,
            "tokens": {
                "prompt": outcome.usage.prompt_tokens,
                "completion": outcome.usage.completion_tokens,
                "total": outcome.usage.total_tokens,
            },
        }
        if item:
            log_data["item"] = item

        if isinstance(outcome, TransportError):
            log_data["error_kind"] = outcome.error_kind.value
            log_data["error"] = outcome.message[:200]
            logger.warning(f"LLM call failed: {log_data}")
        elif isinstance(outcome, TokenLimitExceeded):
            logger.info(f"LLM response truncated: {log_data}")
        else:
            logger.info(f"LLM response: {log_data}")


# ============================================================================
# Provider client
# ============================================================================


class LLMGenerationClient(GenerationClient):
    """Generation client for OpenAI, Anthropic and Gemini models.

    Features:
    - Explicit generation token cap per call with truncation detection
    - Per-call timeout
    - Client-side backoff on rate limits (quota errors only)
    - Token usage tracking and cost estimation
    - Request/response logging (prompt hash, tokens, latency)
    - Langfuse tracing for observability
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        call_timeout: Optional[float] = None,
        max_rate_limit_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        enable_langfuse: Optional[bool] = None,
    ):
        """Initialize the provider client.

        Args:
            api_key: API key for the provider (if None, uses provider-specific env var)
            model: Model to use (default: LLM_MODEL). Supports gpt-*, o*, claude-*, gemini-*
            temperature: Sampling temperature (default: LLM_TEMPERATURE)
            call_timeout: Default per-call timeout in seconds (default: LLM_CALL_TIMEOUT_SECONDS)
            max_rate_limit_retries: Backoff retries on quota errors (default: RATE_LIMIT_MAX_RETRIES)
            base_delay: Base delay for exponential backoff in seconds
            max_delay: Maximum delay between backoff retries in seconds
            enable_langfuse: Enable Langfuse-wrapped OpenAI client (default: ENABLE_LANGFUSE)

        Raises:
            ValueError: If the provider's API key is missing
        """
        super().__init__()
        self.model = model or constants.LLM_MODEL
        self.temperature = constants.LLM_TEMPERATURE if temperature is None else temperature
        self.call_timeout = call_timeout or constants.LLM_CALL_TIMEOUT_SECONDS
        self.max_rate_limit_retries = (
            constants.RATE_LIMIT_MAX_RETRIES if max_rate_limit_retries is None else max_rate_limit_retries
        )
        self.base_delay = constants.RATE_LIMIT_BASE_DELAY if base_delay is None else base_delay
        self.max_delay = constants.RATE_LIMIT_MAX_DELAY if max_delay is None else max_delay
        self.enable_langfuse = constants.ENABLE_LANGFUSE if enable_langfuse is None else enable_langfuse

        self.provider = self._detect_provider(self.model)

        if self.provider == "openai":
            if self.enable_langfuse:
                # Langfuse-wrapped OpenAI client for automatic tracing
                from langfuse.openai import OpenAI
                logger.info("Langfuse tracing enabled for OpenAI")
            else:
                from openai import OpenAI
            key = api_key or os.getenv("OPENAI_API_KEY")
            if not key:
                raise ValueError("OPENAI_API_KEY environment variable is not set")
            self.client = OpenAI(api_key=key, max_retries=0)

        elif self.provider == "anthropic":
            from anthropic import Anthropic
            key = api_key or os.getenv("ANTHROPIC_API_KEY")
            if not key:
                raise ValueError("ANTHROPIC_API_KEY environment variable is not set")
            self.client = Anthropic(api_key=key, max_retries=0)

        elif self.provider == "gemini":
            import google.generativeai as genai
            key = api_key or os.getenv("GOOGLE_GENERATIVE_AI_API_KEY")
            if not key:
                raise ValueError("GOOGLE_GENERATIVE_AI_API_KEY environment variable is not set")
            genai.configure(api_key=key)
            self.client = genai.GenerativeModel(model_name=self.model)

        logger.info(
            f"LLMGenerationClient initialized with provider={self.provider}, model={self.model}, "
            f"call_timeout={self.call_timeout}s"
        )

    def _detect_provider(self, model: str) -> str:
        """Detect LLM provider from model name.

        Args:
            model: Model name

        Returns:
            Provider name: 'openai', 'anthropic', or 'gemini'
        """
        model_lower = model.lower()
        if model_lower.startswith("claude"):
            return "anthropic"
        elif model_lower.startswith("gemini"):
            return "gemini"
        elif model_lower.startswith(("gpt", "o1", "o3", "o4")):
            return "openai"
        else:
            logger.warning(f"Unknown model prefix '{model}', defaulting to OpenAI provider")
            return "openai"

    def _complete(self, prompt: str, token_cap: int, timeout: Optional[float]) -> Outcome:
        timeout = timeout or self.call_timeout
        for retry in range(self.max_rate_limit_retries + 1):
            try:
                if self.provider == "anthropic":
                    return self._complete_anthropic(prompt, token_cap, timeout)
                if self.provider == "gemini":
                    return self._complete_gemini(prompt, token_cap, timeout)
                return self._complete_openai(prompt, token_cap, timeout)
            except Exception as e:
                kind = classify_error(e)
                if kind == TransportErrorKind.QUOTA and retry < self.max_rate_limit_retries:
                    delay = self._calculate_backoff_delay(retry + 1)
                    logger.warning(f"Rate limited, retrying in {delay:.2f} seconds...")
                    time.sleep(delay)
                    continue
                logger.error(f"Provider call failed ({kind.value}): {str(e)[:200]}")
                return TransportError(error_kind=kind, message=str(e)[:500])
        # Unreachable: the last loop iteration always returns
        return TransportError(error_kind=TransportErrorKind.QUOTA, message="rate limit retries exhausted")

    def _complete_openai(self, prompt: str, token_cap: int, timeout: float) -> Outcome:
        api_params = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
            "timeout": timeout,
        }
        # GPT-5 and o* models use max_completion_tokens and only the default temperature
        if self.model.startswith("gpt-5") or self.model.startswith("o"):
            api_params["max_completion_tokens"] = token_cap
            api_params["temperature"] = 1.0
        else:
            api_params["max_tokens"] = token_cap

        response = self.client.chat.completions.create(**api_params)
        usage = TokenUsage()
        if response.usage is not None:
            usage.prompt_tokens = response.usage.prompt_tokens or 0
            usage.completion_tokens = response.usage.completion_tokens or 0
            usage.total_tokens = response.usage.total_tokens or 0
            details = getattr(response.usage, "prompt_tokens_details", None)
            usage.cached_tokens = getattr(details, "cached_tokens", 0) or 0

        choice = response.choices[0]
        text = choice.message.content or ""
        if choice.finish_reason == "length":
            return TokenLimitExceeded(partial_text=text or None, usage=usage)
        return Ok(text=text, usage=usage)

    def _complete_anthropic(self, prompt: str, token_cap: int, timeout: float) -> Outcome:
        response = self.client.messages.create(
            model=self.model,
            max_tokens=token_cap,
            temperature=self.temperature,
            messages=[{"role": "user", "content": prompt}],
            timeout=timeout,
        )
        usage = TokenUsage(
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
            total_tokens=response.usage.input_tokens + response.usage.output_tokens,
            cached_tokens=getattr(response.usage, "cache_read_input_tokens", 0) or 0,
        )
        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        if response.stop_reason == "max_tokens":
            return TokenLimitExceeded(partial_text=text or None, usage=usage)
        return Ok(text=text, usage=usage)

    def _complete_gemini(self, prompt: str, token_cap: int, timeout: float) -> Outcome:
        response = self.client.generate_content(
            prompt,
            generation_config={"max_output_tokens": token_cap, "temperature": self.temperature},
            request_options={"timeout": timeout},
        )
        usage = TokenUsage()
        metadata = getattr(response, "usage_metadata", None)
        if metadata is not None:
            usage.prompt_tokens = getattr(metadata, "prompt_token_count", 0) or 0
            usage.completion_tokens = getattr(metadata, "candidates_token_count", 0) or 0
            usage.total_tokens = getattr(metadata, "total_token_count", 0) or (
                usage.prompt_tokens + usage.completion_tokens
            )

        if not response.candidates:
            return Ok(text="", usage=usage)
        candidate = response.candidates[0]
        parts = candidate.content.parts if candidate.content else []
        text = "".join(getattr(part, "text", "") for part in parts)
        finish_reason = getattr(candidate.finish_reason, "name", str(candidate.finish_reason))
        if finish_reason == "MAX_TOKENS":
            return TokenLimitExceeded(partial_text=text or None, usage=usage)
        return Ok(text=text, usage=usage)

    def get_usage_summary(self) -> dict:
        """Get summary of total token usage.

        Returns:
            Dictionary with usage stats and cost estimates
        """
        # Cost estimates (per 1M tokens)
        costs = {
            "gpt-4o-mini": {"input": 0.15, "output": 0.6, "cached": 0.075},
            "gpt-4.1-mini": {"input": 0.4, "output": 1.6, "cached": 0.1},
            "gpt-4.1": {"input": 2, "output": 8, "cached": 0.5},
            "gpt-5-mini": {"input": 0.25, "output": 2, "cached": 0.025},
            "claude-sonnet-4.5": {"input": 3, "output": 15, "cached": 1.5},
            "gemini-2.5-flash": {"input": 0.3, "output": 2.5, "cached": 0.075},
        }
        model_cost = costs.get(self.model, costs["gpt-4.1-mini"])

        usage = self.total_usage
        uncached_prompt = usage.prompt_tokens - usage.cached_tokens
        input_cost = (
            uncached_prompt * model_cost["input"] + usage.cached_tokens * model_cost["cached"]
        ) / 1_000_000
        output_cost = usage.completion_tokens * model_cost["output"] / 1_000_000

        return {
            "model": self.model,
            "prompt_tokens": usage.prompt_tokens,
            "completion_tokens": usage.completion_tokens,
            "total_tokens": usage.total_tokens,
            "cached_tokens": usage.cached_tokens,
            "estimated_cost_usd": round(input_cost + output_cost, 4),
        }

    def _calculate_backoff_delay(self, attempt: int) -> float:
        """Calculate exponential backoff delay.

        Args:
            attempt: Current attempt number (1-indexed)

        Returns:
            Delay in seconds (capped at max_delay)
        """
        delay = self.base_delay * (2 ** (attempt - 1))
        return min(delay, self.max_delay)
