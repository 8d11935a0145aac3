"""Retry policies and attempt scopes.

A RetryPolicy describes, for one pipeline step, how each successive attempt
narrows its demands: the token cap, the number of requested items and the
length of the source excerpt shown to the model. Policies are plain values so
differences between steps are explicit and testable.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from lessongen.validators.schema import SectionName, TITLE_STEP

logger = logging.getLogger(__name__)


class AttemptScope(BaseModel):
    """What a single attempt asks the model for."""

    attempt_number: int = Field(..., ge=1)
    token_cap: int = Field(..., gt=0)
    item_count: Optional[int] = Field(None, description="Requested number of items, if countable")
    excerpt_chars: int = Field(1000, gt=0)
    item: Optional[str] = Field(None, description="Sub-step key, e.g. a vocabulary word")
    previous_reasons: List[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def is_retry(self) -> bool:
        return self.attempt_number > 1


def _pick(schedule: List[int], attempt_number: int) -> int:
    return schedule[min(attempt_number, len(schedule)) - 1]


class RetryPolicy(BaseModel):
    """Per-step retry configuration.

    Schedules are indexed by attempt number; attempts beyond the end of a
    schedule reuse its last entry.
    """

    token_cap_schedule: List[int] = Field(..., min_length=1)
    max_attempts: int = Field(2, ge=1, le=5)
    accept_partial_threshold: Optional[int] = Field(
        None, ge=1, description="Minimum item count accepted from a truncated response"
    )
    item_count_schedule: List[int] = Field(default_factory=list)
    excerpt_schedule: List[int] = Field(default_factory=lambda: [1000, 600])

    model_config = {
        "json_schema_extra": {
            "example": {
                "token_cap_schedule": [2000, 1400],
                "max_attempts": 2,
                "accept_partial_threshold": None,
                "item_count_schedule": [5, 5],
                "excerpt_schedule": [1000, 600],
            }
        }
    }

    @model_validator(mode="after")
    def validate_schedules(self) -> "RetryPolicy":
        """Schedules must be positive and never widen on retry."""
        for name in ("token_cap_schedule", "item_count_schedule", "excerpt_schedule"):
            schedule = getattr(self, name)
            if any(value <= 0 for value in schedule):
                raise ValueError(f"{name} values must be positive")
            if any(later > earlier for earlier, later in zip(schedule, schedule[1:])):
                raise ValueError(f"{name} must be non-increasing")
        return self

    def scope_for(
        self,
        attempt_number: int,
        default_item_count: Optional[int] = None,
        item: Optional[str] = None,
        previous_reasons: Optional[List[str]] = None,
    ) -> AttemptScope:
        """Build the scope for the given attempt.

        Args:
            attempt_number: 1-indexed attempt number
            default_item_count: Item count used when the policy has no item schedule
            item: Sub-step key passed through to the scope
            previous_reasons: Rejection reasons of the previous attempt

        Returns:
            AttemptScope for this attempt
        """
        if self.item_count_schedule:
            item_count: Optional[int] = _pick(self.item_count_schedule, attempt_number)
        else:
            item_count = default_item_count
        excerpt = _pick(self.excerpt_schedule, attempt_number) if self.excerpt_schedule else 1000
        return AttemptScope(
            attempt_number=attempt_number,
            token_cap=_pick(self.token_cap_schedule, attempt_number),
            item_count=item_count,
            excerpt_chars=excerpt,
            item=item,
            previous_reasons=list(previous_reasons or []),
        )


DEFAULT_POLICIES: Dict[str, RetryPolicy] = {
    SectionName.WARMUP.value: RetryPolicy(
        token_cap_schedule=[400, 250], item_count_schedule=[3, 3]
    ),
    SectionName.VOCABULARY.value: RetryPolicy(
        token_cap_schedule=[500, 300], accept_partial_threshold=2, excerpt_schedule=[600, 400]
    ),
    SectionName.READING.value: RetryPolicy(
        token_cap_schedule=[1200, 900], excerpt_schedule=[1000, 700]
    ),
    SectionName.COMPREHENSION.value: RetryPolicy(
        token_cap_schedule=[500, 350], item_count_schedule=[5, 5]
    ),
    SectionName.DISCUSSION.value: RetryPolicy(
        token_cap_schedule=[600, 400], item_count_schedule=[5, 5]
    ),
    SectionName.GRAMMAR.value: RetryPolicy(
        token_cap_schedule=[2000, 1400], item_count_schedule=[5, 5], excerpt_schedule=[800, 500]
    ),
    SectionName.PRONUNCIATION.value: RetryPolicy(
        token_cap_schedule=[1500, 1000], item_count_schedule=[5, 4], excerpt_schedule=[600, 400]
    ),
    SectionName.DIALOGUE.value: RetryPolicy(
        token_cap_schedule=[1500, 1000], item_count_schedule=[12, 10], excerpt_schedule=[800, 500]
    ),
    SectionName.WRAPUP.value: RetryPolicy(
        token_cap_schedule=[400, 250], item_count_schedule=[3, 3]
    ),
    TITLE_STEP: RetryPolicy(token_cap_schedule=[50, 40], excerpt_schedule=[500, 300]),
}


def load_policies(
    overrides: Optional[Dict[str, Dict[str, Any]]] = None,
    max_attempts: Optional[int] = None,
) -> Dict[str, RetryPolicy]:
    """Merge default policies with overrides.

    Args:
        overrides: Mapping of step name to partial policy fields
        max_attempts: If set, replaces max_attempts for every step without an
            explicit override

    Returns:
        Dictionary of step name to RetryPolicy

    Raises:
        ValueError: If an override names an unknown step or is invalid
    """
    overrides = overrides or {}
    unknown = set(overrides) - set(DEFAULT_POLICIES)
    if unknown:
        raise ValueError(f"Unknown steps in retry policy overrides: {sorted(unknown)}")

    policies = {}
    for step, policy in DEFAULT_POLICIES.items():
        fields = policy.model_dump()
        if max_attempts is not None:
            fields["max_attempts"] = max_attempts
        fields.update(overrides.get(step, {}))
        policies[step] = RetryPolicy(**fields)

    if overrides:
        logger.info(f"Applied retry policy overrides for: {sorted(overrides)}")
    return policies
