"""Base validator abstract class and validation result types.

Provides common functionality:
- ``Valid`` / ``Invalid`` result values instead of exceptions
- Totality: parsing errors inside a rule set become ``Invalid``
- Quality scoring from issue and warning counts
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field

from lessongen.generators.retry_policy import AttemptScope
from lessongen.validators.schema import SharedContext

logger = logging.getLogger(__name__)

ISSUE_PENALTY = 20
WARNING_PENALTY = 5


class Valid(BaseModel):
    """Output met its contract; ``content`` is the typed payload."""

    status: Literal["valid"] = "valid"
    content: Any
    warnings: List[str] = Field(default_factory=list)
    score: int = 100


class Invalid(BaseModel):
    """Output rejected, with the reasons why."""

    status: Literal["invalid"] = "invalid"
    reasons: List[str] = Field(..., min_length=1)
    warnings: List[str] = Field(default_factory=list)
    score: int = 0


ValidationResult = Union[Valid, Invalid]


def quality_score(issue_count: int, warning_count: int) -> int:
    """Score 0-100: 100 minus 20 per issue and 5 per warning."""
    score = 100 - issue_count * ISSUE_PENALTY - warning_count * WARNING_PENALTY
    return max(0, min(100, score))


class BaseSectionValidator(ABC):
    """Abstract base class for section validators.

    Subclasses implement ``check``, returning the parsed content together with
    blocking issues and non-blocking warnings. ``validate`` turns that into a
    result value and guarantees no parsing error escapes.
    """

    name: str = "section"

    def validate(
        self,
        raw_output: str,
        context: SharedContext,
        scope: AttemptScope,
        partial: bool = False,
        partial_threshold: Optional[int] = None,
    ) -> ValidationResult:
        """Validate raw model output against this section's contract.

        Args:
            raw_output: Text returned by the model
            context: Snapshot of the shared context the section ran with
            scope: Scope of the attempt that produced the output
            partial: True when the output was truncated by the token cap
            partial_threshold: Minimum item count accepted for truncated output

        Returns:
            Valid with typed content, or Invalid with reasons
        """
        try:
            content, issues, warnings = self.check(
                raw_output or "", context, scope, partial, partial_threshold
            )
        except (ValueError, TypeError, KeyError, AttributeError, IndexError) as e:
            logger.debug(f"{self.name}: malformed output: {e}")
            return Invalid(reasons=[f"malformed output: {e}"])

        score = quality_score(len(issues), len(warnings))
        if issues or content is None:
            return Invalid(
                reasons=issues or ["no usable content"], warnings=warnings, score=score
            )
        return Valid(content=content, warnings=warnings, score=score)

    @abstractmethod
    def check(
        self,
        raw_output: str,
        context: SharedContext,
        scope: AttemptScope,
        partial: bool,
        partial_threshold: Optional[int],
    ) -> Tuple[Any, List[str], List[str]]:
        """Parse and check output.

        Returns:
            Tuple of (content or None, issues, warnings)
        """
        pass


def required_count(
    expected: int, partial: bool, partial_threshold: Optional[int]
) -> int:
    """Minimum item count: the expected count, or the partial threshold for truncated output."""
    if partial and partial_threshold is not None:
        return min(expected, partial_threshold)
    return expected
