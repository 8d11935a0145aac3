"""Validator for the pronunciation section's JSON payload."""

import logging
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError

from lessongen.generators.retry_policy import AttemptScope
from lessongen.parsers.response_parsers import extract_json_object
from lessongen.validators.base import BaseSectionValidator, required_count
from lessongen.validators.schema import (
    PronunciationContent,
    PronunciationWord,
    SharedContext,
    TongueTwister,
)

logger = logging.getLogger(__name__)

MIN_TONGUE_TWISTERS = 2


def _word_issue(entry: PronunciationWord, vocabulary: List[str]) -> Optional[str]:
    if entry.word.lower() not in vocabulary:
        return f"'{entry.word}' is not lesson vocabulary"
    if not entry.ipa.strip():
        return f"'{entry.word}' has no IPA transcription"
    if not entry.tips:
        return f"'{entry.word}' has no pronunciation tips"
    if entry.word.lower() not in entry.practice_sentence.lower():
        return f"practice sentence for '{entry.word}' does not contain the word"
    return None


class PronunciationValidator(BaseSectionValidator):
    """Words must come from lesson vocabulary and carry IPA, tips and a practice sentence.

    Rejected entries only block the section when too few usable ones remain.
    """

    name = "pronunciation"

    def check(
        self,
        raw_output: str,
        context: SharedContext,
        scope: AttemptScope,
        partial: bool,
        partial_threshold: Optional[int],
    ) -> Tuple[Any, List[str], List[str]]:
        vocabulary = context.vocabulary_words()
        if not vocabulary:
            return None, ["no lesson vocabulary to practise"], []

        data = extract_json_object(raw_output, allow_repair=partial)
        expected = min(scope.item_count or 5, len(vocabulary))
        minimum = required_count(expected, partial, partial_threshold)

        words: List[PronunciationWord] = []
        word_problems: List[str] = []
        for index, raw_word in enumerate(data.get("words") or [], 1):
            try:
                entry = PronunciationWord.model_validate(raw_word)
            except ValidationError as e:
                word_problems.append(f"word {index} malformed: {e.errors()[0]['msg']}")
                continue
            problem = _word_issue(entry, vocabulary)
            if problem:
                word_problems.append(problem)
            else:
                words.append(entry)

        twisters: List[TongueTwister] = []
        twister_problems: List[str] = []
        for index, raw_twister in enumerate(data.get("tongue_twisters") or [], 1):
            try:
                twister = TongueTwister.model_validate(raw_twister)
            except ValidationError as e:
                twister_problems.append(f"tongue twister {index} malformed: {e.errors()[0]['msg']}")
                continue
            if not twister.text.strip() or not twister.target_sounds:
                twister_problems.append(f"tongue twister {index} needs text and target sounds")
                continue
            twisters.append(twister)

        issues: List[str] = []
        warnings: List[str] = []
        if len(words) < minimum:
            issues.append(f"expected {expected} pronunciation words, got {len(words)} usable")
            issues.extend(word_problems)
        else:
            warnings.extend(word_problems)
        if len(twisters) < MIN_TONGUE_TWISTERS:
            issues.append(
                f"expected at least {MIN_TONGUE_TWISTERS} tongue twisters, got {len(twisters)}"
            )
            issues.extend(twister_problems)
        else:
            warnings.extend(twister_problems)

        for entry in words:
            if not entry.difficult_sounds:
                warnings.append(f"'{entry.word}' lists no difficult sounds")

        if issues:
            return None, issues, warnings
        content = PronunciationContent(words=words[:expected], tongue_twisters=twisters)
        return content, [], warnings
