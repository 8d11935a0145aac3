"""Unit tests for the grammar section validator."""

import json

import pytest

from lessongen.validators.base import Invalid, Valid
from lessongen.validators.grammar_validator import GrammarValidator
from lessongen.validators.schema import GrammarContent
from tests.conftest import GRAMMAR_OUTPUT


def _grammar(**changes) -> str:
    data = json.loads(GRAMMAR_OUTPUT)
    data.update(changes)
    return json.dumps(data)


class TestGrammarValidator:
    """Test grammar JSON rules."""

    def test_valid_grammar(self, vocab_context, make_scope):
        result = GrammarValidator().validate(GRAMMAR_OUTPUT, vocab_context, make_scope(item_count=5))

        assert isinstance(result, Valid)
        assert isinstance(result.content, GrammarContent)
        assert result.content.focus == "present perfect"
        assert len(result.content.examples) == 5
        assert len(result.content.exercises) == 5
        assert result.content.exercises[0].answer == "have risen"

    def test_fenced_json_accepted(self, vocab_context, make_scope):
        result = GrammarValidator().validate(
            f"```json\n{GRAMMAR_OUTPUT}\n```", vocab_context, make_scope(item_count=5)
        )

        assert isinstance(result, Valid)

    @pytest.mark.parametrize(
        "changes,reason",
        [
            ({"focus": ""}, "missing grammar focus"),
            ({"form": "have + pp"}, "form explanation shorter than 20 characters"),
            ({"usage": "for changes"}, "usage explanation shorter than 30 characters"),
        ],
    )
    def test_explanations_required(self, vocab_context, make_scope, changes, reason):
        result = GrammarValidator().validate(_grammar(**changes), vocab_context, make_scope(item_count=5))

        assert isinstance(result, Invalid)
        assert reason in result.reasons

    def test_too_few_examples(self, vocab_context, make_scope):
        examples = json.loads(GRAMMAR_OUTPUT)["examples"][:3] + ["bad", "no capital here."]

        result = GrammarValidator().validate(
            _grammar(examples=examples), vocab_context, make_scope(item_count=5)
        )

        assert isinstance(result, Invalid)
        assert "expected at least 5 examples, got 3" in result.reasons
        assert any("malformed example dropped" in w for w in result.warnings)

    def test_examples_must_reference_themes(self, vocab_context, make_scope):
        examples = [
            "I have eaten breakfast already.",
            "She has visited her aunt twice.",
            "They have bought a new sofa.",
            "We have painted the kitchen blue.",
            "He has lost his blue umbrella.",
        ]

        result = GrammarValidator().validate(
            _grammar(examples=examples), vocab_context, make_scope(item_count=5)
        )

        assert isinstance(result, Invalid)
        assert "no example references the lesson themes or vocabulary" in result.reasons

    def test_exact_exercise_count(self, vocab_context, make_scope):
        exercises = json.loads(GRAMMAR_OUTPUT)["exercises"][:4]

        result = GrammarValidator().validate(
            _grammar(exercises=exercises), vocab_context, make_scope(item_count=5)
        )

        assert isinstance(result, Invalid)
        assert "expected exactly 5 exercises, got 4" in result.reasons

    def test_exercise_without_answer(self, vocab_context, make_scope):
        exercises = json.loads(GRAMMAR_OUTPUT)["exercises"]
        exercises[2] = {"prompt": "The climate _____ (change) a lot."}

        result = GrammarValidator().validate(
            _grammar(exercises=exercises), vocab_context, make_scope(item_count=5)
        )

        assert isinstance(result, Invalid)
        assert any(r.startswith("exercise 3 malformed") for r in result.reasons)

    def test_smaller_item_count_on_retry(self, vocab_context, make_scope):
        """Test that a narrowed scope asks for exactly the narrowed count."""
        exercises = json.loads(GRAMMAR_OUTPUT)["exercises"][:3]

        result = GrammarValidator().validate(
            _grammar(exercises=exercises), vocab_context, make_scope(item_count=3, attempt_number=2)
        )

        assert isinstance(result, Valid)
        assert len(result.content.exercises) == 3

    def test_truncated_json_repaired_under_partial(self, vocab_context, make_scope):
        """Test that truncated JSON is repaired and accepted at the partial threshold."""
        truncated = GRAMMAR_OUTPUT[: GRAMMAR_OUTPUT.index('{"prompt": "We _____')]

        strict = GrammarValidator().validate(truncated, vocab_context, make_scope(item_count=5))
        partial = GrammarValidator().validate(
            truncated, vocab_context, make_scope(item_count=5), partial=True, partial_threshold=3
        )

        assert isinstance(strict, Invalid)
        assert isinstance(partial, Valid)
        assert len(partial.content.exercises) == 3
        assert any("accepted 3 of 5 exercises" in w for w in partial.warnings)

    def test_not_json(self, vocab_context, make_scope):
        result = GrammarValidator().validate("The present perfect is...", vocab_context, make_scope(item_count=5))

        assert isinstance(result, Invalid)
        assert result.reasons[0].startswith("malformed output")
