"""Validator for the grammar section's JSON payload."""

import logging
import re
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError

from lessongen.generators.retry_policy import AttemptScope
from lessongen.parsers.response_parsers import extract_json_object
from lessongen.validators.base import BaseSectionValidator, required_count
from lessongen.validators.schema import GrammarContent, GrammarExercise, SharedContext
from lessongen.validators.vocabulary_validator import relevance_keywords

logger = logging.getLogger(__name__)

MIN_FORM_CHARS = 20
MIN_USAGE_CHARS = 30
MIN_EXAMPLES = 5
MIN_EXAMPLE_CHARS = 10
MIN_EXERCISE_PROMPT_CHARS = 10


def _as_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


class GrammarValidator(BaseSectionValidator):
    """Validation Rules:
    - form explanation >= 20 characters, usage explanation >= 30 characters
    - >= 5 well-formed examples, at least one on a lesson theme or word
    - exactly ``scope.item_count`` exercises, each with prompt and answer
    """

    name = "grammar"

    def check(
        self,
        raw_output: str,
        context: SharedContext,
        scope: AttemptScope,
        partial: bool,
        partial_threshold: Optional[int],
    ) -> Tuple[Any, List[str], List[str]]:
        data = extract_json_object(raw_output, allow_repair=partial)
        expected = scope.item_count or 5
        minimum = required_count(expected, partial, partial_threshold)
        issues: List[str] = []
        warnings: List[str] = []

        focus = _as_text(data.get("focus"))
        form = _as_text(data.get("form"))
        usage = _as_text(data.get("usage"))
        if not focus:
            issues.append("missing grammar focus")
        if len(form) < MIN_FORM_CHARS:
            issues.append(f"form explanation shorter than {MIN_FORM_CHARS} characters")
        if len(usage) < MIN_USAGE_CHARS:
            issues.append(f"usage explanation shorter than {MIN_USAGE_CHARS} characters")

        raw_examples = data.get("examples") or []
        if not isinstance(raw_examples, list):
            raise TypeError("examples must be a list")
        examples = []
        for example in raw_examples:
            text = _as_text(example)
            if (
                len(text) >= MIN_EXAMPLE_CHARS
                and text[0].isupper()
                and text.endswith((".", "!", "?"))
            ):
                examples.append(text)
            else:
                warnings.append(f"malformed example dropped: '{example}'")
        if len(examples) < MIN_EXAMPLES:
            issues.append(f"expected at least {MIN_EXAMPLES} examples, got {len(examples)}")

        keywords = relevance_keywords(context)
        if examples and not any(
            re.search(rf"\b{re.escape(k)}", e.lower()) for e in examples for k in keywords
        ):
            issues.append("no example references the lesson themes or vocabulary")

        raw_exercises = data.get("exercises") or []
        if not isinstance(raw_exercises, list):
            raise TypeError("exercises must be a list")
        exercises = []
        for index, raw_exercise in enumerate(raw_exercises, 1):
            try:
                exercise = GrammarExercise.model_validate(raw_exercise)
            except ValidationError as e:
                issues.append(f"exercise {index} malformed: {e.errors()[0]['msg']}")
                continue
            if len(exercise.prompt.strip()) < MIN_EXERCISE_PROMPT_CHARS or not exercise.answer.strip():
                issues.append(f"exercise {index} needs a prompt and an answer")
                continue
            exercises.append(exercise)

        if partial and minimum <= len(exercises) < expected:
            warnings.append(f"accepted {len(exercises)} of {expected} exercises from truncated output")
        elif len(exercises) != expected:
            issues.append(f"expected exactly {expected} exercises, got {len(exercises)}")

        if issues:
            return None, issues, warnings

        content = GrammarContent(
            focus=focus, form=form, usage=usage, examples=examples, exercises=exercises
        )
        return content, [], warnings
