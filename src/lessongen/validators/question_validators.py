"""Validators for question-list sections: warm-up, comprehension, discussion, wrap-up."""

import logging
import re
from typing import Any, List, Optional, Set, Tuple, Type

from pydantic import BaseModel

from lessongen.generators.retry_policy import AttemptScope
from lessongen.levels import (
    BEGINNER_COMPLEX_WORDS,
    DISCUSSION_AVOID_PATTERNS,
    DISCUSSION_WORD_RANGE,
)
from lessongen.parsers.response_parsers import count_words, parse_lines
from lessongen.validators.base import BaseSectionValidator, required_count
from lessongen.validators.schema import (
    CEFRLevel,
    ComprehensionContent,
    DiscussionContent,
    SharedContext,
    WarmupContent,
    WrapupContent,
)

logger = logging.getLogger(__name__)

# Questions that assume the student already read the source
CONTENT_ASSUMPTION_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in [
        r"\bwhat happened\b",
        r"\bin the (text|story|article|passage|reading)\b",
        r"\baccording to\b",
        r"\bdo you remember\b",
        r"\bwhen did\b",
        r"\bwho (was|were|did)\b",
        r"\bthe author\b",
        r"\bmentioned\b",
    ]
]
YEAR_PATTERN = re.compile(r"\b(1[89]\d{2}|20\d{2})\b")
CAPITALIZED_PATTERN = re.compile(r"\b[A-Z][a-z]+\b")


def find_proper_nouns(question: str, allowed: Set[str]) -> List[str]:
    """Capitalised words that are not the first word, 'I', or an allowed term."""
    words = question.split()
    found = []
    for word in words[1:]:
        token = word.strip(".,!?;:\"'()")
        if not CAPITALIZED_PATTERN.fullmatch(token) or token == "I":
            continue
        if token.lower() in allowed:
            continue
        found.append(token)
    return found


def _allowed_terms(context: SharedContext) -> Set[str]:
    terms = set()
    for theme in context.themes:
        terms.update(theme.lower().split())
    terms.update(context.vocabulary_words())
    if context.target_language:
        terms.add(context.target_language.lower())
    return terms


class QuestionSetValidator(BaseSectionValidator):
    """Common rules for sections made of a fixed number of questions."""

    content_model: Type[BaseModel]
    default_count: int = 5
    min_chars: int = 10
    max_chars: int = 200

    def check(
        self,
        raw_output: str,
        context: SharedContext,
        scope: AttemptScope,
        partial: bool,
        partial_threshold: Optional[int],
    ) -> Tuple[Any, List[str], List[str]]:
        expected = scope.item_count or self.default_count
        minimum = required_count(expected, partial, partial_threshold)
        issues: List[str] = []
        warnings: List[str] = []

        lines = parse_lines(raw_output)
        candidates = [line for line in lines if line.endswith("?")]
        skipped = len(lines) - len(candidates)
        if skipped:
            warnings.append(f"{skipped} line(s) ignored because they are not questions")

        questions = []
        for question in candidates:
            problem = self.question_issue(question, context)
            if problem:
                issues.append(problem)
            else:
                questions.append(question)
            warnings.extend(self.question_warnings(question, context))

        if len(questions) < minimum:
            issues.insert(0, f"expected {expected} questions, got {len(questions)} usable")
            return None, issues, warnings

        # Surplus questions are trimmed; rejected ones only matter if we fell short
        questions = questions[:expected]
        return self.content_model(questions=questions), [], warnings

    def question_issue(self, question: str, context: SharedContext) -> Optional[str]:
        """Blocking problem with one question, or None."""
        if not self.min_chars <= len(question) <= self.max_chars:
            return f"question length {len(question)} outside {self.min_chars}-{self.max_chars}: '{question}'"
        return None

    def question_warnings(self, question: str, context: SharedContext) -> List[str]:
        return []


class WarmupValidator(QuestionSetValidator):
    """Warm-up questions must not presuppose the student has read the text."""

    name = "warmup"
    content_model = WarmupContent
    default_count = 3

    def question_issue(self, question: str, context: SharedContext) -> Optional[str]:
        problem = super().question_issue(question, context)
        if problem:
            return problem
        for pattern in CONTENT_ASSUMPTION_PATTERNS:
            if pattern.search(question):
                return f"question assumes the text was read: '{question}'"
        return None

    def question_warnings(self, question: str, context: SharedContext) -> List[str]:
        warnings = []
        nouns = find_proper_nouns(question, _allowed_terms(context))
        if nouns:
            warnings.append(f"possible proper nouns {nouns} in '{question}'")
        if YEAR_PATTERN.search(question):
            warnings.append(f"specific year in '{question}'")
        low, high = DISCUSSION_WORD_RANGE[context.cefr_level]
        words = count_words(question)
        if not low <= words <= high:
            warnings.append(f"{words} words outside {low}-{high} for {context.cefr_level.value}")
        return warnings


class ComprehensionValidator(QuestionSetValidator):
    name = "comprehension"
    content_model = ComprehensionContent
    default_count = 5
    min_chars = 11
    max_chars = 250


class DiscussionValidator(QuestionSetValidator):
    """Discussion questions are checked against the level's complexity band."""

    name = "discussion"
    content_model = DiscussionContent
    default_count = 5
    min_chars = 15
    max_chars = 250

    def question_issue(self, question: str, context: SharedContext) -> Optional[str]:
        problem = super().question_issue(question, context)
        if problem:
            return problem
        if not question[0].isupper():
            return f"question must start with a capital letter: '{question}'"

        level = context.cefr_level
        low, high = DISCUSSION_WORD_RANGE[level]
        words = count_words(question)
        if not low <= words <= high:
            return f"{words} words outside {low}-{high} for {level.value}: '{question}'"

        lowered = question.lower()
        for phrase in DISCUSSION_AVOID_PATTERNS[level]:
            if phrase in lowered:
                return f"phrase '{phrase}' too complex for {level.value}: '{question}'"
        if level in (CEFRLevel.A1, CEFRLevel.A2):
            for word in BEGINNER_COMPLEX_WORDS:
                if re.search(rf"\b{word}\b", lowered):
                    return f"word '{word}' too complex for {level.value}: '{question}'"
        return None

    def question_warnings(self, question: str, context: SharedContext) -> List[str]:
        nouns = find_proper_nouns(question, _allowed_terms(context))
        return [f"possible proper nouns {nouns} in '{question}'"] if nouns else []


class WrapupValidator(QuestionSetValidator):
    name = "wrapup"
    content_model = WrapupContent
    default_count = 3

    def question_warnings(self, question: str, context: SharedContext) -> List[str]:
        low, high = DISCUSSION_WORD_RANGE[context.cefr_level]
        words = count_words(question)
        if not low <= words <= high:
            return [f"{words} words outside {low}-{high} for {context.cefr_level.value}"]
        return []
