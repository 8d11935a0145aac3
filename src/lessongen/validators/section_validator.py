"""Dispatch from section name to its validator."""

from typing import Dict, Optional

from lessongen.generators.retry_policy import AttemptScope
from lessongen.validators.base import BaseSectionValidator, ValidationResult
from lessongen.validators.dialogue_validator import DialogueValidator
from lessongen.validators.grammar_validator import GrammarValidator
from lessongen.validators.pronunciation_validator import PronunciationValidator
from lessongen.validators.question_validators import (
    ComprehensionValidator,
    DiscussionValidator,
    WarmupValidator,
    WrapupValidator,
)
from lessongen.validators.reading_validator import ReadingValidator
from lessongen.validators.schema import SectionName, SharedContext
from lessongen.validators.title_validator import TitleValidator
from lessongen.validators.vocabulary_validator import VocabularyWordValidator


def default_validators() -> Dict[SectionName, BaseSectionValidator]:
    return {
        SectionName.WARMUP: WarmupValidator(),
        SectionName.VOCABULARY: VocabularyWordValidator(),
        SectionName.READING: ReadingValidator(),
        SectionName.COMPREHENSION: ComprehensionValidator(),
        SectionName.DISCUSSION: DiscussionValidator(),
        SectionName.GRAMMAR: GrammarValidator(),
        SectionName.PRONUNCIATION: PronunciationValidator(),
        SectionName.DIALOGUE: DialogueValidator(),
        SectionName.WRAPUP: WrapupValidator(),
    }


class SectionValidator:
    """One validator per section plus the title validator.

    Validation is pure: the same (section, output, context, scope) always
    yields the same result.
    """

    def __init__(self, validators: Optional[Dict[SectionName, BaseSectionValidator]] = None):
        self.validators = default_validators()
        if validators:
            self.validators.update(validators)
        self.title_validator = TitleValidator()

    def validate(
        self,
        section: SectionName,
        raw_output: str,
        context: SharedContext,
        scope: AttemptScope,
        partial: bool = False,
        partial_threshold: Optional[int] = None,
    ) -> ValidationResult:
        return self.validators[section].validate(
            raw_output, context, scope, partial=partial, partial_threshold=partial_threshold
        )

    def validate_title(
        self, raw_output: str, context: SharedContext, scope: AttemptScope
    ) -> ValidationResult:
        return self.title_validator.validate(raw_output, context, scope)
