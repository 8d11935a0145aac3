"""Pydantic models for all pipeline entities.

This module defines the data models used by the lesson-generation pipeline:
the request and output contracts, the per-request SharedContext, section and
attempt bookkeeping, and one typed content payload per lesson section.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator


# ============================================================================
# Enums
# ============================================================================


class CEFRLevel(str, Enum):
    """CEFR proficiency band."""

    A1 = "A1"
    A2 = "A2"
    B1 = "B1"
    B2 = "B2"
    C1 = "C1"


class LessonType(str, Enum):
    """Kind of lesson; selects the core section of the lesson."""

    DISCUSSION = "discussion"
    GRAMMAR = "grammar"
    PRONUNCIATION = "pronunciation"
    TRAVEL = "travel"
    BUSINESS = "business"


class SectionName(str, Enum):
    """Lesson section names, in lesson order."""

    WARMUP = "warmup"
    VOCABULARY = "vocabulary"
    READING = "reading"
    COMPREHENSION = "comprehension"
    DISCUSSION = "discussion"
    GRAMMAR = "grammar"
    PRONUNCIATION = "pronunciation"
    DIALOGUE = "dialogue"
    WRAPUP = "wrapup"


# The title is generated like a section but is not part of Lesson.sections
TITLE_STEP = "title"


class SectionStatus(str, Enum):
    """Lifecycle status of a section."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    VALID = "valid"
    FAILED_EXHAUSTED = "failed_exhausted"


class AttemptOutcome(str, Enum):
    """Final outcome of one generation attempt."""

    VALID = "valid"
    INVALID_REASONS = "invalid_reasons"
    TOKEN_LIMIT_EXCEEDED = "token_limit_exceeded"
    TRANSPORT_ERROR = "transport_error"


class ErrorKind(str, Enum):
    """Kind of failure reported to the caller."""

    VALIDATION = "validation"
    TOKEN_LIMIT = "token_limit"
    TRANSPORT = "transport"
    TIMEOUT = "timeout"


class TransportErrorKind(str, Enum):
    """Classification of provider failures."""

    NETWORK = "network"
    AUTH = "auth"
    QUOTA = "quota"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class DialogueVariant(str, Enum):
    """Dialogue flavour: a full practice dialogue or a gap-fill exercise."""

    PRACTICE = "practice"
    FILL_GAP = "fill_gap"


def dialogue_variant_for(lesson_type: "LessonType") -> DialogueVariant:
    """Business lessons drill phrases with gaps; other dialogue lessons practise freely."""
    if lesson_type == LessonType.BUSINESS:
        return DialogueVariant.FILL_GAP
    return DialogueVariant.PRACTICE


class Speaker(str, Enum):
    """Dialogue speaker."""

    STUDENT = "Student"
    TUTOR = "Tutor"


# ============================================================================
# Learner-facing instructions
# ============================================================================

WARMUP_INSTRUCTION = (
    "Have the following conversations or discussions with your tutor before reading the text:"
)
VOCABULARY_INSTRUCTION = "Study the following words with your tutor before reading the text:"
READING_INSTRUCTION = (
    "Read the following text carefully. Your tutor will help you with any difficult words or concepts:"
)
COMPREHENSION_INSTRUCTION = "After reading the text, answer these comprehension questions:"
DISCUSSION_INSTRUCTION = "Discuss these questions with your tutor to explore the topic in depth:"
GRAMMAR_INSTRUCTION = "Study this grammar point with your tutor, then complete the exercises:"
PRONUNCIATION_INSTRUCTION = (
    "Practice pronunciation with your tutor. Focus on the difficult sounds and try the tongue twisters:"
)
DIALOGUE_PRACTICE_INSTRUCTION = "Practice this conversation with your tutor:"
DIALOGUE_FILL_GAP_INSTRUCTION = "Fill in the gaps in this conversation:"
WRAPUP_INSTRUCTION = "Reflect on your learning by discussing these wrap-up questions:"


# ============================================================================
# External contracts
# ============================================================================


class SourceMetadata(BaseModel):
    """Metadata about the source page, passed through untouched."""

    title: Optional[str] = Field(None, description="Original title of the source")
    domain: Optional[str] = Field(None, description="Domain the text came from")
    source_url: Optional[str] = Field(None, alias="sourceUrl", description="Source URL")
    banner_image: Optional[str] = Field(None, alias="bannerImage", description="Banner image URL")

    model_config = {"populate_by_name": True}


class GenerateLessonRequest(BaseModel):
    """Input to the pipeline. Source text is pre-validated upstream."""

    source_text: str = Field(..., alias="sourceText", min_length=1)
    lesson_type: LessonType = Field(..., alias="lessonType")
    cefr_level: CEFRLevel = Field(..., alias="cefrLevel")
    target_language: str = Field("English", alias="targetLanguage")
    source_metadata: Optional[SourceMetadata] = Field(None, alias="sourceMetadata")

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {
                "sourceText": "Scientists say the summer of 2023 was the hottest on record...",
                "lessonType": "discussion",
                "cefrLevel": "B1",
                "targetLanguage": "English",
                "sourceMetadata": {"title": "Record heat", "domain": "example.com"},
            }
        },
    }

    @field_validator("source_text")
    @classmethod
    def validate_source_text(cls, v: str) -> str:
        """Reject whitespace-only source text."""
        if not v.strip():
            raise ValueError("source_text must not be blank")
        return v


class ProgressEvent(BaseModel):
    """Progress notification emitted by the orchestrator."""

    step: str = Field(..., description="Human-readable step description")
    progress_percent: int = Field(..., ge=0, le=100)
    phase: str = Field(..., description="Pipeline phase, e.g. analysis, warmup, failed")
    section: Optional[str] = Field(None, description="Section active at emission time")


class GenerationError(BaseModel):
    """Error payload surfaced when a section fails exhausted."""

    section_name: str
    kind: ErrorKind
    reasons: List[str] = Field(default_factory=list)
    attempts_exhausted: int = Field(..., ge=0)


# ============================================================================
# Shared context
# ============================================================================

MAX_THEMES = 5


class VocabularyEntry(BaseModel):
    """A vocabulary word that later sections may reference."""

    word: str
    meaning: Optional[str] = None
    example_count: int = 0


class SharedContext(BaseModel):
    """Per-request accumulator read by every section.

    Owned by one pipeline run. Only the orchestrator mutates it, between
    section steps, through the append-only helpers below. Sections receive a
    snapshot, so they never observe state written after they started.
    """

    source_text: str = Field(..., frozen=True)
    lesson_type: LessonType = Field(..., frozen=True)
    cefr_level: CEFRLevel = Field(..., frozen=True)
    target_language: str = Field("English", frozen=True)
    summary: str = ""
    themes: List[str] = Field(default_factory=list)
    candidate_words: List[str] = Field(default_factory=list)
    vocabulary: List[VocabularyEntry] = Field(default_factory=list)
    title: Optional[str] = None
    original_title: Optional[str] = None

    def vocabulary_words(self) -> List[str]:
        """Lowercased vocabulary words in insertion order."""
        return [entry.word.lower() for entry in self.vocabulary]

    def add_themes(self, themes: Iterable[str]) -> List[str]:
        """Append new themes up to MAX_THEMES.

        Returns:
            The themes that were actually added
        """
        added = []
        existing = {t.lower() for t in self.themes}
        for theme in themes:
            theme = theme.strip()
            if not theme or theme.lower() in existing:
                continue
            if len(self.themes) >= MAX_THEMES:
                break
            self.themes.append(theme)
            existing.add(theme.lower())
            added.append(theme)
        return added

    def add_vocabulary(self, entries: Iterable[VocabularyEntry]) -> int:
        """Append vocabulary entries, skipping words already present.

        Returns:
            Number of entries added
        """
        existing = set(self.vocabulary_words())
        added = 0
        for entry in entries:
            if entry.word.lower() in existing:
                continue
            self.vocabulary.append(entry)
            existing.add(entry.word.lower())
            added += 1
        return added

    def set_title(self, title: str) -> None:
        self.title = title

    def excerpt(self, max_chars: int) -> str:
        """Source text truncated to max_chars, cut at a word boundary."""
        text = self.source_text.strip()
        if len(text) <= max_chars:
            return text
        cut = text[:max_chars]
        if " " in cut:
            cut = cut.rsplit(" ", 1)[0]
        return cut + "..."

    def snapshot(self) -> "SharedContext":
        """Deep copy handed to prompt builders and validators."""
        return self.model_copy(deep=True)


# ============================================================================
# Section content (tagged by section name)
# ============================================================================


class WarmupContent(BaseModel):
    section: Literal[SectionName.WARMUP] = SectionName.WARMUP
    instruction: str = WARMUP_INSTRUCTION
    questions: List[str]


class VocabularyWord(BaseModel):
    """One vocabulary word with its meaning and level-calibrated examples."""

    word: str
    meaning: str
    examples: List[str] = Field(default_factory=list)


class VocabularyContent(BaseModel):
    section: Literal[SectionName.VOCABULARY] = SectionName.VOCABULARY
    instruction: str = VOCABULARY_INSTRUCTION
    words: List[VocabularyWord]


class ReadingContent(BaseModel):
    section: Literal[SectionName.READING] = SectionName.READING
    instruction: str = READING_INSTRUCTION
    passage: str
    word_count: int
    bolded_words: List[str] = Field(default_factory=list)


class ComprehensionContent(BaseModel):
    section: Literal[SectionName.COMPREHENSION] = SectionName.COMPREHENSION
    instruction: str = COMPREHENSION_INSTRUCTION
    questions: List[str]


class DiscussionContent(BaseModel):
    section: Literal[SectionName.DISCUSSION] = SectionName.DISCUSSION
    instruction: str = DISCUSSION_INSTRUCTION
    questions: List[str]


class GrammarExercise(BaseModel):
    prompt: str
    answer: str
    explanation: Optional[str] = None


class GrammarContent(BaseModel):
    """Grammar focus with explanation, examples and exactly-counted exercises."""

    section: Literal[SectionName.GRAMMAR] = SectionName.GRAMMAR
    instruction: str = GRAMMAR_INSTRUCTION
    focus: str
    form: str
    usage: str
    examples: List[str]
    exercises: List[GrammarExercise]


class PronunciationWord(BaseModel):
    word: str
    ipa: str
    difficult_sounds: List[str] = Field(default_factory=list)
    tips: List[str] = Field(default_factory=list)
    practice_sentence: str


class TongueTwister(BaseModel):
    text: str
    target_sounds: List[str] = Field(default_factory=list)
    difficulty: Optional[str] = None


class PronunciationContent(BaseModel):
    section: Literal[SectionName.PRONUNCIATION] = SectionName.PRONUNCIATION
    instruction: str = PRONUNCIATION_INSTRUCTION
    words: List[PronunciationWord]
    tongue_twisters: List[TongueTwister]


class DialogueLine(BaseModel):
    speaker: Speaker
    text: str


class DialogueContent(BaseModel):
    """Two-party dialogue; the fill-gap variant carries an answer key."""

    section: Literal[SectionName.DIALOGUE] = SectionName.DIALOGUE
    instruction: str = DIALOGUE_PRACTICE_INSTRUCTION
    variant: DialogueVariant = DialogueVariant.PRACTICE
    lines: List[DialogueLine]
    answers: List[str] = Field(default_factory=list)


class WrapupContent(BaseModel):
    section: Literal[SectionName.WRAPUP] = SectionName.WRAPUP
    instruction: str = WRAPUP_INSTRUCTION
    questions: List[str]


SectionContent = Annotated[
    Union[
        WarmupContent,
        VocabularyContent,
        ReadingContent,
        ComprehensionContent,
        DiscussionContent,
        GrammarContent,
        PronunciationContent,
        DialogueContent,
        WrapupContent,
    ],
    Field(discriminator="section"),
]


# ============================================================================
# Section and attempt bookkeeping
# ============================================================================


class Attempt(BaseModel):
    """One GenerationClient call plus its validation. Immutable."""

    number: int = Field(..., ge=1)
    item: Optional[str] = Field(None, description="Sub-step key, e.g. the vocabulary word")
    token_cap: int = Field(..., gt=0)
    prompt_tokens_estimate: int = Field(..., ge=0)
    outcome: AttemptOutcome
    tokens_consumed: int = Field(0, ge=0)
    reasons: List[str] = Field(default_factory=list)
    partial_accepted: bool = False
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    duration_ms: float = 0.0

    model_config = {"frozen": True}


class Section(BaseModel):
    """A lesson section and its generation history."""

    name: SectionName
    status: SectionStatus = SectionStatus.PENDING
    attempts: List[Attempt] = Field(default_factory=list)
    content: Optional[SectionContent] = None

    @model_validator(mode="after")
    def validate_content_status(self) -> "Section":
        """Content may only exist on a valid section."""
        if self.content is not None and self.status != SectionStatus.VALID:
            raise ValueError("content can only be attached to a valid section")
        return self

    def start(self) -> None:
        self.status = SectionStatus.IN_PROGRESS

    def record_attempts(self, attempts: Iterable[Attempt]) -> None:
        self.attempts.extend(attempts)

    def mark_valid(self, content: SectionContent) -> None:
        """Attach validated content and mark the section valid."""
        if content.section != self.name:
            raise ValueError(f"content for {content.section} attached to {self.name}")
        self.status = SectionStatus.VALID
        self.content = content

    def mark_failed(self) -> None:
        self.status = SectionStatus.FAILED_EXHAUSTED
        self.content = None

    def max_attempts_per_item(self) -> int:
        """Largest number of attempts spent on any single item of this section."""
        counts: Dict[Optional[str], int] = {}
        for attempt in self.attempts:
            counts[attempt.item] = counts.get(attempt.item, 0) + 1
        return max(counts.values(), default=0)


# ============================================================================
# Output
# ============================================================================


class LessonMetadata(BaseModel):
    cefr_level: CEFRLevel
    lesson_type: LessonType
    target_language: str = "English"
    token_report: Dict[str, Any] = Field(default_factory=dict)
    source_metadata: Optional[SourceMetadata] = None
    generated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class Lesson(BaseModel):
    """Final lesson document."""

    title: str = Field(..., min_length=1)
    sections: Dict[SectionName, SectionContent]
    metadata: LessonMetadata

    @model_validator(mode="after")
    def validate_section_keys(self) -> "Lesson":
        """Each content payload must sit under its own section name."""
        for name, content in self.sections.items():
            if content.section != name:
                raise ValueError(f"section {name.value} holds {content.section.value} content")
        return self
