"""Bounded generate-validate-retry state machine.

One RetryController run drives a single step (or one vocabulary word) from
NotStarted to either Succeeded or FailedExhausted:

    NotStarted -> Attempting -> Validating -> Succeeded
                                           -> Retrying -> Attempting ...
                                           -> FailedExhausted

Content failures (Invalid output, truncation without a usable partial) are
retried with the next, narrower AttemptScope of the step's RetryPolicy.
Transport failures and timeouts end the run immediately. The controller
inspects outcome values and never relies on exceptions for control flow.
"""

import logging
import time
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Callable, List, Optional

from pydantic import BaseModel, Field

from lessongen.generators.retry_policy import AttemptScope, RetryPolicy
from lessongen.utils.llm_client import (
    GenerationClient,
    Outcome,
    TokenLimitExceeded,
    TransportError,
    estimate_tokens,
)
from lessongen.utils.usage_monitor import UsageMonitor
from lessongen.validators.base import Valid, ValidationResult
from lessongen.validators.schema import (
    Attempt,
    AttemptOutcome,
    ErrorKind,
    SharedContext,
    TransportErrorKind,
)

logger = logging.getLogger(__name__)

PromptFunction = Callable[[SharedContext, AttemptScope], str]
ValidateFunction = Callable[
    [str, SharedContext, AttemptScope, bool, Optional[int]], ValidationResult
]

REQUEST_TIMEOUT_REASON = "request timeout exceeded"


class RetryState(str, Enum):
    NOT_STARTED = "not_started"
    ATTEMPTING = "attempting"
    VALIDATING = "validating"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED_EXHAUSTED = "failed_exhausted"


class RetryResult(BaseModel):
    """Result of one controller run."""

    step: str
    item: Optional[str] = None
    succeeded: bool
    content: Any = None
    attempts: List[Attempt] = Field(default_factory=list)
    error_kind: Optional[ErrorKind] = None
    reasons: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    score: Optional[int] = None
    states: List[RetryState] = Field(default_factory=list)


class Deadline:
    """Absolute request deadline; ``None`` seconds means no deadline."""

    def __init__(self, seconds: Optional[float], clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._expires_at = clock() + seconds if seconds is not None else None

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0


class RetryController:
    """Runs steps under their RetryPolicy for one request."""

    def __init__(
        self,
        client: GenerationClient,
        monitor: Optional[UsageMonitor] = None,
        call_timeout: Optional[float] = None,
        deadline: Optional[Deadline] = None,
    ):
        self.client = client
        self.monitor = monitor
        self.call_timeout = call_timeout
        self.deadline = deadline or Deadline(None)

    def run(
        self,
        step: str,
        context: SharedContext,
        policy: RetryPolicy,
        build_prompt: PromptFunction,
        validate: ValidateFunction,
        item: Optional[str] = None,
        default_item_count: Optional[int] = None,
    ) -> RetryResult:
        """Generate and validate until success or the attempt ceiling.

        Args:
            step: Step name for logs and usage records
            context: Context snapshot the step reads
            policy: Retry policy for the step
            build_prompt: Prompt function for the step
            validate: Validation function for the step
            item: Sub-step key (vocabulary word)
            default_item_count: Item count when the policy has no item schedule

        Returns:
            RetryResult; ``succeeded`` tells which terminal state was reached
        """
        states = [RetryState.NOT_STARTED]
        attempts: List[Attempt] = []
        reasons: List[str] = []
        last_kind: Optional[ErrorKind] = None
        label = f"{step}[{item}]" if item else step

        for number in range(1, policy.max_attempts + 1):
            if self.deadline.expired():
                logger.error(f"{label}: request deadline passed before attempt {number}")
                states.append(RetryState.FAILED_EXHAUSTED)
                return self._failure(step, item, attempts, ErrorKind.TIMEOUT, [REQUEST_TIMEOUT_REASON], states)

            scope = policy.scope_for(
                number, default_item_count=default_item_count, item=item, previous_reasons=reasons
            )
            prompt = build_prompt(context, scope)

            states.append(RetryState.ATTEMPTING)
            started_at = datetime.now(UTC)
            start_time = time.time()
            outcome = self.client.call(
                prompt,
                scope.token_cap,
                timeout=self._call_timeout(),
                label=step,
                item=item,
                monitor=self.monitor,
            )

            if isinstance(outcome, TransportError):
                kind = (
                    ErrorKind.TIMEOUT
                    if outcome.error_kind == TransportErrorKind.TIMEOUT
                    else ErrorKind.TRANSPORT
                )
                reason = outcome.error_kind.value
                if outcome.message:
                    reason = f"{reason}: {outcome.message}"
                failure_reasons = [reason]
                attempts.append(
                    self._finalize(
                        step, number, item, scope, prompt, outcome, AttemptOutcome.TRANSPORT_ERROR,
                        failure_reasons, started_at, start_time, error_kind=kind,
                    )
                )
                logger.error(f"{label}: transport failure on attempt {number}: {failure_reasons[0]}")
                states.append(RetryState.FAILED_EXHAUSTED)
                return self._failure(step, item, attempts, kind, failure_reasons, states)

            partial = isinstance(outcome, TokenLimitExceeded)
            text = outcome.partial_text if partial else outcome.text

            if partial and not text:
                reasons = [f"output truncated at {scope.token_cap} tokens with no usable text"]
                last_kind = ErrorKind.TOKEN_LIMIT
                attempts.append(
                    self._finalize(
                        step, number, item, scope, prompt, outcome,
                        AttemptOutcome.TOKEN_LIMIT_EXCEEDED, reasons, started_at, start_time,
                        error_kind=last_kind,
                    )
                )
            else:
                states.append(RetryState.VALIDATING)
                threshold = policy.accept_partial_threshold if partial else None
                result = validate(text, context, scope, partial, threshold)

                if isinstance(result, Valid):
                    attempts.append(
                        self._finalize(
                            step, number, item, scope, prompt, outcome, AttemptOutcome.VALID,
                            [], started_at, start_time, partial_accepted=partial,
                            score=result.score, warning_count=len(result.warnings),
                        )
                    )
                    if partial:
                        logger.info(f"{label}: accepted sufficient partial output on attempt {number}")
                    states.append(RetryState.SUCCEEDED)
                    return RetryResult(
                        step=step,
                        item=item,
                        succeeded=True,
                        content=result.content,
                        attempts=attempts,
                        warnings=result.warnings,
                        score=result.score,
                        states=states,
                    )

                reasons = list(result.reasons)
                last_kind = ErrorKind.TOKEN_LIMIT if partial else ErrorKind.VALIDATION
                attempts.append(
                    self._finalize(
                        step, number, item, scope, prompt, outcome,
                        AttemptOutcome.TOKEN_LIMIT_EXCEEDED if partial else AttemptOutcome.INVALID_REASONS,
                        reasons, started_at, start_time, error_kind=last_kind,
                        score=result.score, warning_count=len(result.warnings),
                    )
                )

            logger.warning(
                f"{label}: attempt {number}/{policy.max_attempts} rejected "
                f"({last_kind.value}): {'; '.join(reasons[:3])}"
            )
            if number < policy.max_attempts:
                states.append(RetryState.RETRYING)

        states.append(RetryState.FAILED_EXHAUSTED)
        logger.error(f"{label}: failed after {len(attempts)} attempt(s)")
        return self._failure(step, item, attempts, last_kind or ErrorKind.VALIDATION, reasons, states)

    def _call_timeout(self) -> Optional[float]:
        remaining = self.deadline.remaining()
        if remaining is None:
            return self.call_timeout
        if self.call_timeout is None:
            return remaining
        return min(self.call_timeout, remaining)

    def _finalize(
        self,
        step: str,
        number: int,
        item: Optional[str],
        scope: AttemptScope,
        prompt: str,
        outcome: Outcome,
        attempt_outcome: AttemptOutcome,
        reasons: List[str],
        started_at: datetime,
        start_time: float,
        partial_accepted: bool = False,
        error_kind: Optional[ErrorKind] = None,
        score: Optional[int] = None,
        warning_count: int = 0,
    ) -> Attempt:
        """Freeze the attempt and hand it to the usage monitor."""
        attempt = Attempt(
            number=number,
            item=item,
            token_cap=scope.token_cap,
            prompt_tokens_estimate=estimate_tokens(prompt),
            outcome=attempt_outcome,
            tokens_consumed=outcome.usage.total_tokens,
            reasons=reasons,
            partial_accepted=partial_accepted,
            started_at=started_at,
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )
        if self.monitor is not None:
            self.monitor.record_attempt(
                step, attempt, error_kind=error_kind, score=score, warning_count=warning_count
            )
        return attempt

    def _failure(
        self,
        step: str,
        item: Optional[str],
        attempts: List[Attempt],
        kind: ErrorKind,
        reasons: List[str],
        states: List[RetryState],
    ) -> RetryResult:
        return RetryResult(
            step=step,
            item=item,
            succeeded=False,
            attempts=attempts,
            error_kind=kind,
            reasons=reasons,
            states=states,
        )
