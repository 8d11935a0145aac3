"""Unit tests for pydantic schemas."""

import pytest
from pydantic import ValidationError

from lessongen.validators.schema import (
    MAX_THEMES,
    Attempt,
    AttemptOutcome,
    CEFRLevel,
    DialogueVariant,
    DiscussionContent,
    GenerateLessonRequest,
    Lesson,
    LessonMetadata,
    LessonType,
    Section,
    SectionName,
    SectionStatus,
    SharedContext,
    VocabularyEntry,
    WarmupContent,
    WrapupContent,
    dialogue_variant_for,
)


def _context(**overrides) -> SharedContext:
    fields = {
        "source_text": "Scientists agree that the planet is warming.",
        "lesson_type": LessonType.DISCUSSION,
        "cefr_level": CEFRLevel.B1,
    }
    fields.update(overrides)
    return SharedContext(**fields)


class TestGenerateLessonRequest:
    """Test request parsing."""

    def test_camel_case_aliases(self):
        request = GenerateLessonRequest.model_validate(
            {
                "sourceText": "Some article text.",
                "lessonType": "travel",
                "cefrLevel": "A2",
                "sourceMetadata": {"title": "Trains", "sourceUrl": "https://example.com/a"},
            }
        )

        assert request.lesson_type == LessonType.TRAVEL
        assert request.cefr_level == CEFRLevel.A2
        assert request.target_language == "English"
        assert request.source_metadata.source_url == "https://example.com/a"

    def test_field_names_accepted(self):
        request = GenerateLessonRequest(
            source_text="Text.", lesson_type="grammar", cefr_level="C1", target_language="English"
        )

        assert request.lesson_type == LessonType.GRAMMAR

    @pytest.mark.parametrize(
        "changes",
        [{"sourceText": "   "}, {"sourceText": ""}, {"cefrLevel": "C2"}, {"lessonType": "poetry"}],
    )
    def test_invalid_requests(self, changes):
        data = {"sourceText": "Text.", "lessonType": "discussion", "cefrLevel": "B1"}
        data.update(changes)

        with pytest.raises(ValidationError):
            GenerateLessonRequest.model_validate(data)


class TestSharedContext:
    """Test the append-only context helpers."""

    def test_lesson_settings_frozen(self):
        context = _context()

        with pytest.raises(ValidationError):
            context.cefr_level = CEFRLevel.C1
        with pytest.raises(ValidationError):
            context.source_text = "other"

    def test_add_themes_dedupes_and_caps(self):
        context = _context(themes=["climate change"])

        added = context.add_themes(["Climate Change", " energy ", "", "food", "travel", "health", "sport"])

        assert added == ["energy", "food", "travel", "health"]
        assert len(context.themes) == MAX_THEMES
        assert "sport" not in context.themes

    def test_add_vocabulary_skips_duplicates(self):
        context = _context()
        context.add_vocabulary([VocabularyEntry(word="Energy")])

        added = context.add_vocabulary([VocabularyEntry(word="energy"), VocabularyEntry(word="planet")])

        assert added == 1
        assert context.vocabulary_words() == ["energy", "planet"]

    def test_excerpt_cuts_at_word_boundary(self):
        context = _context()

        assert context.excerpt(1000) == context.source_text
        assert context.excerpt(20) == "Scientists agree..."

    def test_snapshot_is_independent(self):
        context = _context(themes=["energy"])
        snapshot = context.snapshot()

        snapshot.themes.append("food")
        context.add_vocabulary([VocabularyEntry(word="planet")])

        assert context.themes == ["energy"]
        assert snapshot.vocabulary == []


class TestSection:
    """Test section status transitions."""

    def test_mark_valid_attaches_content(self):
        section = Section(name=SectionName.WARMUP)
        section.start()
        assert section.status == SectionStatus.IN_PROGRESS

        section.mark_valid(WarmupContent(questions=["Do you like summer?"]))

        assert section.status == SectionStatus.VALID
        assert section.content.questions == ["Do you like summer?"]

    def test_content_for_other_section_rejected(self):
        section = Section(name=SectionName.WARMUP)

        with pytest.raises(ValueError):
            section.mark_valid(WrapupContent(questions=["What did you learn?"]))

    def test_content_requires_valid_status(self):
        with pytest.raises(ValidationError):
            Section(name=SectionName.WARMUP, content=WarmupContent(questions=["Why?"]))

    def test_mark_failed_clears_content(self):
        section = Section(name=SectionName.WARMUP)
        section.mark_valid(WarmupContent(questions=["Why?"]))

        section.mark_failed()

        assert section.status == SectionStatus.FAILED_EXHAUSTED
        assert section.content is None

    def test_max_attempts_per_item(self):
        section = Section(name=SectionName.VOCABULARY)
        section.record_attempts(
            Attempt(number=n, item=item, token_cap=500, prompt_tokens_estimate=10, outcome=AttemptOutcome.VALID)
            for item, n in [("energy", 1), ("energy", 2), ("planet", 1)]
        )

        assert section.max_attempts_per_item() == 2

    def test_attempt_is_frozen(self):
        attempt = Attempt(
            number=1, token_cap=500, prompt_tokens_estimate=10, outcome=AttemptOutcome.VALID
        )

        with pytest.raises(ValidationError):
            attempt.tokens_consumed = 5


class TestLesson:
    """Test lesson output shape."""

    def test_discriminated_section_content(self):
        lesson = Lesson.model_validate(
            {
                "title": "Our Warming Planet",
                "sections": {
                    "warmup": {"section": "warmup", "questions": ["Do you like summer?"]},
                    "discussion": {"section": "discussion", "questions": ["Why is it hot?"]},
                },
                "metadata": {"cefr_level": "B1", "lesson_type": "discussion"},
            }
        )

        assert isinstance(lesson.sections[SectionName.WARMUP], WarmupContent)
        assert isinstance(lesson.sections[SectionName.DISCUSSION], DiscussionContent)

    def test_section_key_must_match_content(self):
        with pytest.raises(ValidationError):
            Lesson(
                title="Our Warming Planet",
                sections={SectionName.WRAPUP: WarmupContent(questions=["Why?"])},
                metadata=LessonMetadata(cefr_level=CEFRLevel.B1, lesson_type=LessonType.DISCUSSION),
            )

    def test_json_dump_uses_section_names(self):
        lesson = Lesson(
            title="Our Warming Planet",
            sections={SectionName.WARMUP: WarmupContent(questions=["Why?"])},
            metadata=LessonMetadata(cefr_level=CEFRLevel.B1, lesson_type=LessonType.DISCUSSION),
        )

        data = lesson.model_dump(mode="json")

        assert list(data["sections"]) == ["warmup"]
        assert data["metadata"]["cefr_level"] == "B1"


class TestDialogueVariant:
    @pytest.mark.parametrize(
        "lesson_type,variant",
        [(LessonType.BUSINESS, DialogueVariant.FILL_GAP), (LessonType.TRAVEL, DialogueVariant.PRACTICE)],
    )
    def test_variant_per_lesson_type(self, lesson_type, variant):
        assert dialogue_variant_for(lesson_type) == variant
