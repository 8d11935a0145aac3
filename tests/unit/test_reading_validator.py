"""Unit tests for the reading passage validator."""

from lessongen.validators.base import Invalid, Valid
from lessongen.validators.reading_validator import ReadingValidator
from lessongen.validators.schema import ReadingContent
from tests.conftest import reading_output


class TestReadingValidator:
    """Test length, bolding and vocabulary rules."""

    def test_valid_passage(self, vocab_context, make_scope):
        vocabulary = vocab_context.vocabulary_words()

        result = ReadingValidator().validate(reading_output(vocabulary), vocab_context, make_scope())

        assert isinstance(result, Valid)
        assert isinstance(result.content, ReadingContent)
        assert result.content.bolded_words == vocabulary[:3]
        assert 150 <= result.content.word_count <= 450

    def test_bold_outside_vocabulary_rejected(self, vocab_context, make_scope):
        """Test that the passage cannot introduce words the vocabulary section did not."""
        passage = reading_output(vocab_context.vocabulary_words()).replace(
            "the problem.", "the **drought** problem."
        )

        result = ReadingValidator().validate(passage, vocab_context, make_scope())

        assert isinstance(result, Invalid)
        assert "bolded 'drought' is not lesson vocabulary" in result.reasons

    def test_bold_before_vocabulary_exists(self, base_context, make_scope):
        """Test that any bolded word fails while the context has no vocabulary."""
        passage = reading_output(base_context.candidate_words)

        result = ReadingValidator().validate(passage, base_context, make_scope())

        assert isinstance(result, Invalid)
        assert any("is not lesson vocabulary" in r for r in result.reasons)

    def test_too_short(self, vocab_context, make_scope):
        words = vocab_context.vocabulary_words()
        passage = f"We talked about **{words[0]}**, **{words[1]}** and **{words[2]}** today."

        result = ReadingValidator().validate(passage, vocab_context, make_scope())

        assert isinstance(result, Invalid)
        assert any(r.startswith("passage has") and "expected 150-450" in r for r in result.reasons)

    def test_too_long(self, vocab_context, make_scope):
        passage = reading_output(vocab_context.vocabulary_words()) + " More words here." * 100

        result = ReadingValidator().validate(passage, vocab_context, make_scope())

        assert isinstance(result, Invalid)

    def test_ends_mid_sentence(self, vocab_context, make_scope):
        passage = reading_output(vocab_context.vocabulary_words())[:-1] + " and then"

        result = ReadingValidator().validate(passage, vocab_context, make_scope())

        assert isinstance(result, Invalid)
        assert "passage ends mid-sentence" in result.reasons

    def test_too_few_vocabulary_words(self, vocab_context, make_scope):
        filler = "The weather was hot and dry for many weeks in the south. " * 15
        words = vocab_context.vocabulary_words()
        passage = filler + f"We discussed **{words[0]}** at school."

        result = ReadingValidator().validate(passage, vocab_context, make_scope())

        assert isinstance(result, Invalid)
        assert "passage uses 1 vocabulary words, expected at least 3" in result.reasons

    def test_unbolded_vocabulary_is_warning(self, vocab_context, make_scope):
        words = vocab_context.vocabulary_words()
        passage = reading_output(words) + f" People also talk about {words[5]}."

        result = ReadingValidator().validate(passage, vocab_context, make_scope())

        assert isinstance(result, Valid)
        assert any("vocabulary used without bold" in w for w in result.warnings)

    def test_empty_passage(self, vocab_context, make_scope):
        result = ReadingValidator().validate("   ", vocab_context, make_scope())

        assert isinstance(result, Invalid)
        assert result.reasons == ["empty passage"]
