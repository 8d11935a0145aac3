"""Validator for practice and gap-fill dialogues."""

import logging
import re
from typing import Any, List, Optional, Tuple

from lessongen.generators.retry_policy import AttemptScope
from lessongen.levels import DIALOGUE_LINE_WORD_RANGE
from lessongen.parsers.response_parsers import clean_line, count_blanks, count_words
from lessongen.validators.base import BaseSectionValidator, required_count
from lessongen.validators.schema import (
    DIALOGUE_FILL_GAP_INSTRUCTION,
    DIALOGUE_PRACTICE_INSTRUCTION,
    DialogueContent,
    DialogueLine,
    DialogueVariant,
    SharedContext,
    Speaker,
    dialogue_variant_for,
)

logger = logging.getLogger(__name__)

LINE_PATTERN = re.compile(r"^\**(student|tutor)\**\s*:\s*(.+)$", re.IGNORECASE)
ANSWERS_PATTERN = re.compile(r"^\**answers?\**\s*:\s*(.*)$", re.IGNORECASE)
MIN_BLANKS = 3


def parse_answers(value: str) -> List[str]:
    separator = "|" if "|" in value else ","
    return [a.strip() for a in value.split(separator) if a.strip()]


class DialogueValidator(BaseSectionValidator):
    """Validation Rules:
    - at least ``scope.item_count`` lines in ``Student:`` / ``Tutor:`` form
    - speakers alternate, Student first
    - at least one lesson vocabulary word appears
    - fill-gap variant: >= 3 blanks and one answer per blank
    """

    name = "dialogue"

    def check(
        self,
        raw_output: str,
        context: SharedContext,
        scope: AttemptScope,
        partial: bool,
        partial_threshold: Optional[int],
    ) -> Tuple[Any, List[str], List[str]]:
        variant = dialogue_variant_for(context.lesson_type)
        expected = scope.item_count or 12
        minimum = required_count(expected, partial, partial_threshold)
        issues: List[str] = []
        warnings: List[str] = []

        lines: List[DialogueLine] = []
        answers: List[str] = []
        for raw_line in raw_output.splitlines():
            line = clean_line(raw_line)
            if not line:
                continue
            answer_match = ANSWERS_PATTERN.match(line)
            if answer_match:
                answers = parse_answers(answer_match.group(1))
                continue
            match = LINE_PATTERN.match(line)
            if match:
                speaker = Speaker.STUDENT if match.group(1).lower() == "student" else Speaker.TUTOR
                lines.append(DialogueLine(speaker=speaker, text=match.group(2).strip().lstrip("*").strip()))
            else:
                warnings.append(f"ignored line without speaker: '{line[:60]}'")

        if len(lines) < minimum:
            issues.append(f"expected at least {expected} dialogue lines, got {len(lines)}")
        if lines and lines[0].speaker != Speaker.STUDENT:
            issues.append("dialogue must start with the Student")
        for previous, current in zip(lines, lines[1:]):
            if previous.speaker == current.speaker:
                issues.append(f"speakers do not alternate at '{current.text[:40]}'")
                break

        low, high = DIALOGUE_LINE_WORD_RANGE[context.cefr_level]
        for line in lines:
            words = count_words(line.text)
            if not low <= words <= high:
                warnings.append(f"line has {words} words, expected {low}-{high}: '{line.text[:40]}'")

        text = " ".join(line.text.lower() for line in lines) + " " + " ".join(answers).lower()
        vocabulary = context.vocabulary_words()
        if vocabulary and not any(re.search(rf"\b{re.escape(w)}", text) for w in vocabulary):
            issues.append("dialogue does not use any lesson vocabulary")

        blanks = sum(count_blanks(line.text) for line in lines)
        if variant == DialogueVariant.FILL_GAP:
            if blanks < MIN_BLANKS:
                issues.append(f"expected at least {MIN_BLANKS} blanks, got {blanks}")
            if len(answers) != blanks:
                issues.append(f"answer key has {len(answers)} answers for {blanks} blanks")
        elif blanks:
            issues.append("practice dialogue must not contain blanks")

        if issues:
            return None, issues, warnings

        instruction = (
            DIALOGUE_FILL_GAP_INSTRUCTION
            if variant == DialogueVariant.FILL_GAP
            else DIALOGUE_PRACTICE_INSTRUCTION
        )
        content = DialogueContent(
            instruction=instruction,
            variant=variant,
            lines=lines,
            answers=answers if variant == DialogueVariant.FILL_GAP else [],
        )
        return content, [], warnings
