"""Usage monitor for one lesson-generation request.

Collects one record per GenerationClient call and one per finalized attempt,
then aggregates them into a report: total tokens, tokens by section,
attempt and retry counts, error counts by kind and per-section quality.

Recording is append-only under a lock, so vocabulary sub-steps running on
worker threads can record concurrently without lost updates. The monitor
never feeds anything back into the pipeline.
"""

import logging
import threading
import time
from collections import defaultdict
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from lessongen.validators.schema import Attempt, AttemptOutcome, ErrorKind

logger = logging.getLogger(__name__)


class CallRecord(BaseModel):
    """One provider call as seen by the GenerationClient."""

    step: str
    item: Optional[str] = None
    model: str
    token_cap: int
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    outcome: str
    error_kind: Optional[str] = None
    latency_ms: float = 0.0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class AttemptRecord(BaseModel):
    """A finalized attempt with its validation summary."""

    step: str
    attempt: Attempt
    error_kind: Optional[ErrorKind] = None
    score: Optional[int] = None
    warning_count: int = 0


class QualityMetrics(BaseModel):
    """Per-section quality summary."""

    section: str
    score: int = Field(0, ge=0, le=100)
    attempts: int = 0
    generation_time_ms: float = 0.0
    issues: int = 0
    warnings: int = 0
    regenerated: bool = False


class UsageMonitor:
    """Thread-safe, append-only usage recorder for one request."""

    def __init__(self, request_id: Optional[str] = None):
        self.request_id = request_id
        self._lock = threading.Lock()
        self._calls: List[CallRecord] = []
        self._attempts: List[AttemptRecord] = []
        self._started = time.time()

        logger.debug(f"UsageMonitor initialized: request_id={request_id}")

    def record_call(self, record: CallRecord) -> None:
        with self._lock:
            self._calls.append(record)

    def record_attempt(
        self,
        step: str,
        attempt: Attempt,
        error_kind: Optional[ErrorKind] = None,
        score: Optional[int] = None,
        warning_count: int = 0,
    ) -> None:
        record = AttemptRecord(
            step=step,
            attempt=attempt,
            error_kind=error_kind,
            score=score,
            warning_count=warning_count,
        )
        with self._lock:
            self._attempts.append(record)

    @property
    def calls(self) -> Tuple[CallRecord, ...]:
        with self._lock:
            return tuple(self._calls)

    @property
    def attempts(self) -> Tuple[AttemptRecord, ...]:
        with self._lock:
            return tuple(self._attempts)

    def total_tokens(self) -> int:
        return sum(call.total_tokens for call in self.calls)

    def quality_metrics(self) -> Dict[str, QualityMetrics]:
        """Quality summary per step.

        The score of a step is the lowest final score among its items, so one
        weak vocabulary word is not hidden by strong ones.
        """
        by_step: Dict[str, List[AttemptRecord]] = defaultdict(list)
        for record in self.attempts:
            by_step[record.step].append(record)

        metrics = {}
        for step, records in by_step.items():
            final_scores: Dict[Optional[str], int] = {}
            for record in records:
                final_scores[record.attempt.item] = record.score or 0
            issues = sum(
                len(r.attempt.reasons) for r in records if r.attempt.outcome != AttemptOutcome.VALID
            )
            metrics[step] = QualityMetrics(
                section=step,
                score=min(final_scores.values(), default=0),
                attempts=len(records),
                generation_time_ms=round(sum(r.attempt.duration_ms for r in records), 2),
                issues=issues,
                warnings=sum(r.warning_count for r in records),
                regenerated=len(records) > len(final_scores),
            )
        return metrics

    def get_usage_report(self) -> Dict[str, Any]:
        """Generate the aggregate usage report.

        Returns:
            Dictionary with token totals, per-section breakdowns, error counts
            and quality metrics
        """
        calls = self.calls
        attempts = self.attempts

        tokens_by_section: Dict[str, int] = defaultdict(int)
        calls_by_section: Dict[str, int] = defaultdict(int)
        for call in calls:
            tokens_by_section[call.step] += call.total_tokens
            calls_by_section[call.step] += 1

        attempts_by_section: Dict[str, int] = defaultdict(int)
        items_by_section: Dict[str, set] = defaultdict(set)
        errors_by_kind: Dict[str, int] = {kind.value: 0 for kind in ErrorKind}
        partial_accepts = 0
        for record in attempts:
            attempts_by_section[record.step] += 1
            items_by_section[record.step].add(record.attempt.item)
            if record.error_kind is not None:
                errors_by_kind[record.error_kind.value] += 1
            if record.attempt.partial_accepted:
                partial_accepts += 1

        retries_by_section = {
            step: count - len(items_by_section[step]) for step, count in attempts_by_section.items()
        }

        return {
            "request_id": self.request_id,
            "total_tokens": sum(c.total_tokens for c in calls),
            "prompt_tokens": sum(c.prompt_tokens for c in calls),
            "completion_tokens": sum(c.completion_tokens for c in calls),
            "total_calls": len(calls),
            "total_attempts": len(attempts),
            "tokens_by_section": dict(tokens_by_section),
            "calls_by_section": dict(calls_by_section),
            "attempts_by_section": dict(attempts_by_section),
            "retries_by_section": retries_by_section,
            "errors_by_kind": errors_by_kind,
            "partial_accepts": partial_accepts,
            "quality": {
                step: metric.model_dump() for step, metric in self.quality_metrics().items()
            },
            "elapsed_seconds": round(time.time() - self._started, 2),
        }

    def print_report(self) -> None:
        """Print formatted usage report to console."""
        report = self.get_usage_report()

        print("\n" + "=" * 80)
        print("LESSON GENERATION USAGE REPORT")
        print("=" * 80)
        print(f"\nTotal tokens: {report['total_tokens']}")
        print(f"  Prompt: {report['prompt_tokens']}  Completion: {report['completion_tokens']}")
        print(f"Calls: {report['total_calls']}  Attempts: {report['total_attempts']}")
        print(f"Partial responses accepted: {report['partial_accepts']}")
        print(f"Elapsed: {report['elapsed_seconds']}s")

        print("\nBy section:")
        for step, tokens in sorted(report["tokens_by_section"].items()):
            attempts = report["attempts_by_section"].get(step, 0)
            retries = report["retries_by_section"].get(step, 0)
            quality = report["quality"].get(step, {})
            print(
                f"  {step:15s} tokens={tokens:6d} attempts={attempts:3d} "
                f"retries={retries:3d} score={quality.get('score', '-')}"
            )

        errors = {k: v for k, v in report["errors_by_kind"].items() if v}
        if errors:
            print("\nErrors by kind:")
            for kind, count in errors.items():
                print(f"  {kind:15s} {count}")

        print("\n" + "=" * 80)
