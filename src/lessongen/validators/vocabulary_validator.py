"""Validator for one vocabulary word's meaning and example sentences.

Validation Rules:
- A meaning line is present (trimmed to 150 characters)
- Each example contains the word, starts with a capital letter and ends
  with sentence punctuation
- Each example's word count fits the level band
- At least the level's example count survives (or the partial threshold
  for truncated output)
- At least 60% of kept examples mention a theme, another vocabulary word or
  a summary keyword
"""

import logging
import re
from typing import Any, List, Optional, Set, Tuple

from lessongen.generators.retry_policy import AttemptScope
from lessongen.levels import VOCAB_EXAMPLE_WORD_RANGE, examples_per_word
from lessongen.parsers.context_extractor import STOPWORDS
from lessongen.parsers.response_parsers import count_words, parse_labelled_block
from lessongen.validators.base import BaseSectionValidator, required_count
from lessongen.validators.schema import SharedContext, VocabularyWord

logger = logging.getLogger(__name__)

MEANING_MAX_CHARS = 150
RELEVANCE_RATIO = 0.6


def relevance_keywords(context: SharedContext, exclude: str = "") -> Set[str]:
    """Keywords an example can mention to count as on-topic."""
    keywords: Set[str] = set()
    for theme in context.themes:
        for word in re.findall(r"[a-z]+", theme.lower()):
            if len(word) > 3 and word not in STOPWORDS:
                keywords.add(word)
    for word in context.vocabulary_words() + [w.lower() for w in context.candidate_words]:
        if len(word) > 3:
            keywords.add(word)
    for word in re.findall(r"[a-z]+", context.summary.lower()):
        if len(word) > 4 and word not in STOPWORDS:
            keywords.add(word)
    keywords.discard(exclude.lower())
    return keywords


def is_relevant(example: str, keywords: Set[str]) -> bool:
    lowered = example.lower()
    return any(re.search(rf"\b{re.escape(k)}", lowered) for k in keywords)


class VocabularyWordValidator(BaseSectionValidator):
    """Validates the output for one word (``scope.item``)."""

    name = "vocabulary"

    def check(
        self,
        raw_output: str,
        context: SharedContext,
        scope: AttemptScope,
        partial: bool,
        partial_threshold: Optional[int],
    ) -> Tuple[Any, List[str], List[str]]:
        word = (scope.item or "").strip()
        if not word:
            raise ValueError("vocabulary validation needs the word in scope.item")

        expected = scope.item_count or examples_per_word(context.cefr_level)
        minimum = required_count(expected, partial, partial_threshold)
        low, high = VOCAB_EXAMPLE_WORD_RANGE[context.cefr_level]

        meaning, lines = parse_labelled_block(raw_output, "MEANING")
        issues: List[str] = []
        warnings: List[str] = []
        if not meaning:
            issues.append(f"missing MEANING line for '{word}'")

        examples = []
        for line in lines:
            problem = self._example_issue(line, word, low, high)
            if problem:
                warnings.append(problem)
            else:
                examples.append(line)

        if len(examples) < minimum:
            issues.append(
                f"'{word}': expected {expected} examples, got {len(examples)} usable"
            )
        examples = examples[:expected]

        if examples:
            keywords = relevance_keywords(context, exclude=word)
            relevant = sum(1 for e in examples if is_relevant(e, keywords))
            if relevant / len(examples) < RELEVANCE_RATIO:
                issues.append(
                    f"'{word}': only {relevant}/{len(examples)} examples relate to the lesson context"
                )

        if issues:
            return None, issues, warnings

        if len(meaning) > MEANING_MAX_CHARS:
            meaning = meaning[: MEANING_MAX_CHARS - 3].rstrip() + "..."
        content = VocabularyWord(word=word.capitalize(), meaning=meaning, examples=examples)
        return content, [], warnings

    def _example_issue(self, example: str, word: str, low: int, high: int) -> Optional[str]:
        if word.lower() not in example.lower():
            return f"example does not contain '{word}': '{example}'"
        if not example[0].isupper():
            return f"example must start with a capital letter: '{example}'"
        if not example.endswith((".", "!", "?")):
            return f"example must end with punctuation: '{example}'"
        words = count_words(example)
        if not low <= words <= high:
            return f"example has {words} words, expected {low}-{high}: '{example}'"
        return None
