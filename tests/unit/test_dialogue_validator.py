"""Unit tests for the practice and fill-gap dialogue validator."""

import pytest

from lessongen.validators.base import Invalid, Valid
from lessongen.validators.dialogue_validator import DialogueValidator, parse_answers
from lessongen.validators.schema import (
    CEFRLevel,
    DialogueContent,
    DialogueVariant,
    LessonType,
    SharedContext,
    Speaker,
    VocabularyEntry,
)
from tests.conftest import CLIMATE_ARTICLE, dialogue_output


@pytest.fixture
def business_context(extractor) -> SharedContext:
    context = extractor.extract_text(CLIMATE_ARTICLE, CEFRLevel.B1, LessonType.BUSINESS)
    context.add_vocabulary(VocabularyEntry(word=word) for word in context.candidate_words)
    return context


class TestParseAnswers:
    def test_pipe_separated(self):
        assert parse_answers("rising | save | waste") == ["rising", "save", "waste"]

    def test_comma_separated(self):
        assert parse_answers("rising, save,waste") == ["rising", "save", "waste"]


class TestPracticeDialogue:
    """Test the free practice variant used by non-business lessons."""

    def test_valid_dialogue(self, vocab_context, make_scope):
        output = dialogue_output(vocab_context.vocabulary_words())

        result = DialogueValidator().validate(output, vocab_context, make_scope(item_count=12))

        assert isinstance(result, Valid)
        assert isinstance(result.content, DialogueContent)
        assert result.content.variant == DialogueVariant.PRACTICE
        assert len(result.content.lines) == 12
        assert result.content.lines[0].speaker == Speaker.STUDENT
        assert result.content.lines[1].speaker == Speaker.TUTOR
        assert result.content.answers == []

    def test_blanks_not_allowed(self, vocab_context, make_scope):
        output = dialogue_output(vocab_context.vocabulary_words(), fill_gap=True)

        result = DialogueValidator().validate(output, vocab_context, make_scope(item_count=12))

        assert isinstance(result, Invalid)
        assert "practice dialogue must not contain blanks" in result.reasons

    def test_must_start_with_student(self, vocab_context, make_scope):
        lines = dialogue_output(vocab_context.vocabulary_words()).splitlines()[1:]

        result = DialogueValidator().validate("\n".join(lines), vocab_context, make_scope(item_count=11))

        assert isinstance(result, Invalid)
        assert "dialogue must start with the Student" in result.reasons

    def test_speakers_alternate(self, vocab_context, make_scope):
        lines = dialogue_output(vocab_context.vocabulary_words()).splitlines()
        lines[3] = "Student: I think I have noticed some changes in my town."

        result = DialogueValidator().validate("\n".join(lines), vocab_context, make_scope(item_count=12))

        assert isinstance(result, Invalid)
        assert any(r.startswith("speakers do not alternate") for r in result.reasons)

    def test_vocabulary_required(self, base_context, make_scope):
        base_context.add_vocabulary([VocabularyEntry(word="drought")])

        result = DialogueValidator().validate(
            dialogue_output(["weather"]), base_context, make_scope(item_count=12)
        )

        assert isinstance(result, Invalid)
        assert result.reasons == ["dialogue does not use any lesson vocabulary"]

    def test_too_few_lines(self, vocab_context, make_scope):
        lines = dialogue_output(vocab_context.vocabulary_words()).splitlines()[:10]

        strict = DialogueValidator().validate("\n".join(lines), vocab_context, make_scope(item_count=12))
        partial = DialogueValidator().validate(
            "\n".join(lines), vocab_context, make_scope(item_count=12), partial=True, partial_threshold=10
        )

        assert isinstance(strict, Invalid)
        assert "expected at least 12 dialogue lines, got 10" in strict.reasons
        assert isinstance(partial, Valid)

    def test_lines_without_speaker_ignored(self, vocab_context, make_scope):
        output = "Here is the dialogue:\n" + dialogue_output(vocab_context.vocabulary_words())

        result = DialogueValidator().validate(output, vocab_context, make_scope(item_count=12))

        assert isinstance(result, Valid)
        assert any("ignored line without speaker" in w for w in result.warnings)

    def test_bold_speaker_labels(self, vocab_context, make_scope):
        lines = dialogue_output(vocab_context.vocabulary_words()).splitlines()
        output = "\n".join(line.replace("Student:", "**Student:**") for line in lines)

        result = DialogueValidator().validate(output, vocab_context, make_scope(item_count=12))

        assert isinstance(result, Valid)
        assert result.content.lines[0].text.startswith("I read an article")


class TestFillGapDialogue:
    """Test the gap-fill variant used by business lessons."""

    def test_valid_fill_gap(self, business_context, make_scope):
        output = dialogue_output(business_context.vocabulary_words(), fill_gap=True)

        result = DialogueValidator().validate(output, business_context, make_scope(item_count=12))

        assert isinstance(result, Valid)
        assert result.content.variant == DialogueVariant.FILL_GAP
        assert result.content.answers == ["rising", "save", "waste"]
        assert result.content.instruction != ""

    def test_blanks_required(self, business_context, make_scope):
        output = dialogue_output(business_context.vocabulary_words())

        result = DialogueValidator().validate(output, business_context, make_scope(item_count=12))

        assert isinstance(result, Invalid)
        assert "expected at least 3 blanks, got 0" in result.reasons

    def test_answer_key_must_match_blanks(self, business_context, make_scope):
        output = dialogue_output(business_context.vocabulary_words(), fill_gap=True).replace(
            " | waste", ""
        )

        result = DialogueValidator().validate(output, business_context, make_scope(item_count=12))

        assert isinstance(result, Invalid)
        assert "answer key has 2 answers for 3 blanks" in result.reasons
