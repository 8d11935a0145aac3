"""Validator for the reading passage."""

import logging
import re
from typing import Any, List, Optional, Tuple

from lessongen.generators.retry_policy import AttemptScope
from lessongen.levels import READING_ACCEPTED_WORDS
from lessongen.parsers.response_parsers import count_words, find_bolded
from lessongen.validators.base import BaseSectionValidator
from lessongen.validators.schema import ReadingContent, SharedContext

logger = logging.getLogger(__name__)

SENTENCE_END = (".", "!", "?", '"', "”", "'", ")")


class ReadingValidator(BaseSectionValidator):
    """Checks length, bold markup and vocabulary use of the passage.

    Every bolded word must already be lesson vocabulary, so the passage can
    never reference a word that the vocabulary section did not introduce.
    """

    name = "reading"

    def check(
        self,
        raw_output: str,
        context: SharedContext,
        scope: AttemptScope,
        partial: bool,
        partial_threshold: Optional[int],
    ) -> Tuple[Any, List[str], List[str]]:
        passage = raw_output.strip()
        issues: List[str] = []
        warnings: List[str] = []

        if not passage:
            return None, ["empty passage"], warnings

        word_count = count_words(passage.replace("**", ""))
        low, high = READING_ACCEPTED_WORDS
        if not low <= word_count <= high:
            issues.append(f"passage has {word_count} words, expected {low}-{high}")

        if not passage.endswith(SENTENCE_END):
            issues.append("passage ends mid-sentence")

        vocabulary = context.vocabulary_words()
        bolded = []
        for term in find_bolded(passage):
            if term.lower() not in vocabulary:
                issues.append(f"bolded '{term}' is not lesson vocabulary")
            elif term.lower() not in bolded:
                bolded.append(term.lower())

        lowered = passage.lower()
        used = [w for w in vocabulary if re.search(rf"\b{re.escape(w)}", lowered)]
        needed = min(3, len(vocabulary))
        if len(used) < needed:
            issues.append(f"passage uses {len(used)} vocabulary words, expected at least {needed}")
        unbolded = [w for w in used if w not in bolded]
        if unbolded:
            warnings.append(f"vocabulary used without bold: {unbolded}")

        if issues:
            return None, issues, warnings
        content = ReadingContent(passage=passage, word_count=word_count, bolded_words=bolded)
        return content, [], warnings
