"""Ordered section plan with declared context reads and writes.

Every step declares which SharedContext fields it reads and which it writes.
``build_plan`` checks that no step reads a field before the extractor or an
earlier step has produced it, and ``SectionStep.view`` hands a step a context
snapshot in which undeclared fields are blanked, so an undeclared read shows
up as missing data instead of silently working.
"""

import copy
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional

from pydantic import BaseModel

from lessongen.validators.schema import LessonType, SectionName, SharedContext, TITLE_STEP


class ContextField(str, Enum):
    SOURCE_TEXT = "source_text"
    SUMMARY = "summary"
    THEMES = "themes"
    CANDIDATE_WORDS = "candidate_words"
    VOCABULARY = "vocabulary"
    TITLE = "title"
    ORIGINAL_TITLE = "original_title"


# Fields produced by the ContextExtractor before any step runs
EXTRACTOR_FIELDS: FrozenSet[ContextField] = frozenset(
    {
        ContextField.SOURCE_TEXT,
        ContextField.SUMMARY,
        ContextField.THEMES,
        ContextField.CANDIDATE_WORDS,
        ContextField.ORIGINAL_TITLE,
    }
)

_BLANK_VALUES = {
    ContextField.SOURCE_TEXT: "",
    ContextField.SUMMARY: "",
    ContextField.THEMES: [],
    ContextField.CANDIDATE_WORDS: [],
    ContextField.VOCABULARY: [],
    ContextField.TITLE: None,
    ContextField.ORIGINAL_TITLE: None,
}


class SectionStep(BaseModel):
    """One step of the plan. Lesson settings (type, level, language) are always readable."""

    name: str
    reads: FrozenSet[ContextField] = frozenset()
    writes: FrozenSet[ContextField] = frozenset()

    model_config = {"frozen": True}

    @property
    def section(self) -> Optional[SectionName]:
        """Section enum for lesson sections, None for the title step."""
        return None if self.name == TITLE_STEP else SectionName(self.name)

    def view(self, context: SharedContext) -> SharedContext:
        """Snapshot of the context restricted to this step's read-set."""
        update = {
            field.value: copy.copy(_BLANK_VALUES[field])
            for field in ContextField
            if field not in self.reads
        }
        return context.snapshot().model_copy(update=update)


def _step(name: str, reads: Iterable[ContextField], writes: Iterable[ContextField] = ()) -> SectionStep:
    return SectionStep(name=name, reads=frozenset(reads), writes=frozenset(writes))


F = ContextField

STEPS: Dict[str, SectionStep] = {
    SectionName.WARMUP.value: _step("warmup", [F.THEMES]),
    SectionName.VOCABULARY.value: _step(
        "vocabulary",
        [F.SOURCE_TEXT, F.SUMMARY, F.THEMES, F.CANDIDATE_WORDS],
        [F.VOCABULARY],
    ),
    SectionName.READING.value: _step("reading", [F.SOURCE_TEXT, F.VOCABULARY]),
    SectionName.COMPREHENSION.value: _step("comprehension", [F.SOURCE_TEXT, F.SUMMARY]),
    SectionName.DISCUSSION.value: _step("discussion", [F.SUMMARY, F.THEMES, F.VOCABULARY]),
    SectionName.GRAMMAR.value: _step(
        "grammar", [F.SOURCE_TEXT, F.THEMES, F.VOCABULARY], [F.THEMES]
    ),
    SectionName.PRONUNCIATION.value: _step("pronunciation", [F.VOCABULARY]),
    SectionName.DIALOGUE.value: _step("dialogue", [F.SUMMARY, F.THEMES, F.VOCABULARY]),
    SectionName.WRAPUP.value: _step("wrapup", [F.THEMES, F.VOCABULARY]),
    TITLE_STEP: _step(
        TITLE_STEP, [F.SUMMARY, F.THEMES, F.VOCABULARY, F.ORIGINAL_TITLE], [F.TITLE]
    ),
}

CORE_SECTIONS: Dict[LessonType, SectionName] = {
    LessonType.DISCUSSION: SectionName.DISCUSSION,
    LessonType.GRAMMAR: SectionName.GRAMMAR,
    LessonType.PRONUNCIATION: SectionName.PRONUNCIATION,
    LessonType.TRAVEL: SectionName.DIALOGUE,
    LessonType.BUSINESS: SectionName.DIALOGUE,
}


def required_sections(lesson_type: LessonType) -> List[SectionName]:
    """Sections a lesson of this type must contain, in lesson order."""
    return [
        SectionName.WARMUP,
        SectionName.VOCABULARY,
        SectionName.READING,
        SectionName.COMPREHENSION,
        CORE_SECTIONS[lesson_type],
        SectionName.WRAPUP,
    ]


def validate_plan(
    steps: List[SectionStep], available: FrozenSet[ContextField] = EXTRACTOR_FIELDS
) -> None:
    """Reject plans in which a step reads a field nobody wrote yet.

    Raises:
        ValueError: On the first forward read
    """
    produced = set(available)
    for step in steps:
        missing = step.reads - produced
        if missing:
            names = sorted(field.value for field in missing)
            raise ValueError(f"Step '{step.name}' reads {names} before any earlier step writes them")
        produced |= step.writes


def build_plan(lesson_type: LessonType) -> List[SectionStep]:
    """Ordered steps for a lesson type: its sections, then the title.

    Raises:
        ValueError: If the declared reads and writes contain a forward read
    """
    steps = [STEPS[section.value] for section in required_sections(lesson_type)]
    steps.append(STEPS[TITLE_STEP])
    validate_plan(steps)
    return steps
