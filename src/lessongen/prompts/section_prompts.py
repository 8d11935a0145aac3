"""Prompt builders for every lesson section.

Each builder is a pure function of (SharedContext, AttemptScope). Builders
never read the clock or a random source, so identical inputs always give the
identical prompt and retries stay reproducible.
"""

from typing import Callable, Dict, Optional

from lessongen.generators.retry_policy import AttemptScope
from lessongen.levels import (
    DIALOGUE_LINE_WORD_RANGE,
    DISCUSSION_AVOID_PATTERNS,
    DISCUSSION_WORD_RANGE,
    GRAMMAR_POINTS,
    LEVEL_DESCRIPTIONS,
    QUESTION_STYLE,
    READING_TARGET_WORDS,
    VOCAB_EXAMPLE_STYLE,
    VOCAB_EXAMPLE_WORD_RANGE,
    examples_per_word,
)
from lessongen.validators.schema import (
    DialogueVariant,
    SectionName,
    SharedContext,
    dialogue_variant_for,
)

PromptFunction = Callable[[SharedContext, AttemptScope], str]


# ============================================================================
# Shared fragments
# ============================================================================


def word_budget(token_cap: int) -> int:
    """Approximate number of English words that fit in a token cap."""
    return max(10, int(token_cap * 0.75))


def _budget_rule(scope: AttemptScope) -> str:
    return (
        f"Be concise: your whole answer must stay under {word_budget(scope.token_cap)} words. "
        f"Do not add introductions, explanations or closing remarks."
    )


def _retry_hint(scope: AttemptScope) -> str:
    if not scope.is_retry or not scope.previous_reasons:
        return ""
    reasons = "\n".join(f"- {r}" for r in scope.previous_reasons[:5])
    return f"\nYour previous answer was rejected for these reasons:\n{reasons}\nFix them.\n"


def _level_line(context: SharedContext) -> str:
    level = context.cefr_level
    return f"Student level: {level.value} ({LEVEL_DESCRIPTIONS[level]})"


def _themes_line(context: SharedContext) -> str:
    return f"Lesson themes: {', '.join(context.themes)}"


def _vocabulary_line(context: SharedContext) -> str:
    words = context.vocabulary_words()
    return f"Lesson vocabulary: {', '.join(words)}" if words else "Lesson vocabulary: (none)"


def _question_rules(context: SharedContext) -> str:
    low, high = DISCUSSION_WORD_RANGE[context.cefr_level]
    return (
        f"Each question must be {low}-{high} words long, start with a capital letter "
        f"and end with a question mark.\n{QUESTION_STYLE[context.cefr_level]}"
    )


# ============================================================================
# Question sections
# ============================================================================


def build_warmup_prompt(context: SharedContext, scope: AttemptScope) -> str:
    count = scope.item_count or 3
    return f"""Create exactly {count} warm-up questions for a {context.target_language} lesson.
{_level_line(context)}
{_themes_line(context)}

The student has NOT read the text yet. Ask about the student's own experiences, opinions
and feelings related to the themes. Do not mention the text, article or story, do not ask
what happened, and do not use names of people, places or specific dates.
{_question_rules(context)}
{_retry_hint(scope)}
Return only the {count} questions, one per line.
{_budget_rule(scope)}"""


def build_comprehension_prompt(context: SharedContext, scope: AttemptScope) -> str:
    count = scope.item_count or 5
    return f"""Create exactly {count} comprehension questions about this text.
{_level_line(context)}

Summary: {context.summary}
Text:
{context.excerpt(scope.excerpt_chars)}

Each question must be answerable from the text and end with a question mark.
{_retry_hint(scope)}
Return only the {count} questions, one per line.
{_budget_rule(scope)}"""


def build_discussion_prompt(context: SharedContext, scope: AttemptScope) -> str:
    count = scope.item_count or 5
    avoid = DISCUSSION_AVOID_PATTERNS[context.cefr_level]
    avoid_line = f"Never use these phrases: {', '.join(avoid)}." if avoid else ""
    return f"""Create exactly {count} discussion questions for a conversation lesson.
{_level_line(context)}
{_themes_line(context)}
{_vocabulary_line(context)}
Topic summary: {context.summary}

Questions should invite personal opinions and experiences connected to the themes.
{_question_rules(context)}
{avoid_line}
{_retry_hint(scope)}
Return only the {count} questions, one per line.
{_budget_rule(scope)}"""


def build_wrapup_prompt(context: SharedContext, scope: AttemptScope) -> str:
    count = scope.item_count or 3
    return f"""Create exactly {count} wrap-up questions that help the student reflect on the lesson.
{_level_line(context)}
{_themes_line(context)}
{_vocabulary_line(context)}

Ask what the student learned, which words they will use and how the topic relates to their life.
Each question must end with a question mark.
{_retry_hint(scope)}
Return only the {count} questions, one per line.
{_budget_rule(scope)}"""


# ============================================================================
# Vocabulary and reading
# ============================================================================


def build_vocabulary_prompt(context: SharedContext, scope: AttemptScope) -> str:
    """Prompt for one vocabulary word; ``scope.item`` names the word."""
    word = scope.item or ""
    count = scope.item_count or examples_per_word(context.cefr_level)
    low, high = VOCAB_EXAMPLE_WORD_RANGE[context.cefr_level]
    return f"""Explain the word "{word}" for a {context.target_language} learner.
{_level_line(context)}
{_themes_line(context)}
Context: {context.excerpt(scope.excerpt_chars)}

Write a short meaning (under 20 words) and exactly {count} example sentences.
Every example must contain the word "{word}", be {low}-{high} words long, start with a
capital letter, end with a full stop, and relate to the lesson themes.
Style: {VOCAB_EXAMPLE_STYLE[context.cefr_level]}.
{_retry_hint(scope)}
Format:
MEANING: <meaning>
<example 1>
<example 2>
...
{_budget_rule(scope)}"""


def build_reading_prompt(context: SharedContext, scope: AttemptScope) -> str:
    low, high = READING_TARGET_WORDS
    words = context.vocabulary_words()
    return f"""Rewrite this text for {context.cefr_level.value} level students of {context.target_language}.
{_level_line(context)}
Use these vocabulary words and mark each one in bold like **word**: {', '.join(words)}
Do not bold any other words. Keep it {low}-{high} words.
{_retry_hint(scope)}
Text:
{context.excerpt(scope.excerpt_chars)}

Return only the rewritten text.
{_budget_rule(scope)}"""


# ============================================================================
# Core sections
# ============================================================================


def build_grammar_prompt(context: SharedContext, scope: AttemptScope) -> str:
    count = scope.item_count or 5
    return f"""Choose one grammar point that suits {context.cefr_level.value} students and appears in this text.
Typical grammar for this level: {GRAMMAR_POINTS[context.cefr_level]}.
{_themes_line(context)}
{_vocabulary_line(context)}
Text:
{context.excerpt(scope.excerpt_chars)}

Return a single JSON object:
{{
  "focus": "<grammar point name>",
  "form": "<how the structure is formed, at least 20 characters>",
  "usage": "<when and why it is used, at least 30 characters>",
  "examples": ["<at least 5 full sentences about the lesson themes>"],
  "exercises": [{{"prompt": "<gap sentence or transformation task>", "answer": "<answer>"}}]
}}
Include exactly {count} exercises. Examples must use the lesson themes or vocabulary.
{_retry_hint(scope)}
Return only the JSON, no code fences.
{_budget_rule(scope)}"""


def build_pronunciation_prompt(context: SharedContext, scope: AttemptScope) -> str:
    count = scope.item_count or 5
    words = context.vocabulary_words()
    return f"""Create a pronunciation activity for {context.cefr_level.value} students of {context.target_language}.
Choose exactly {count} words from this list only: {', '.join(words)}

Return a single JSON object:
{{
  "words": [{{"word": "<word from the list>", "ipa": "/<IPA>/", "difficult_sounds": ["<sound>"],
             "tips": ["<practical tip>"], "practice_sentence": "<sentence containing the word>"}}],
  "tongue_twisters": [{{"text": "<tongue twister>", "target_sounds": ["<sound>"], "difficulty": "<easy|medium|hard>"}}]
}}
Include at least 2 tongue twisters that practise the difficult sounds.
{_retry_hint(scope)}
Return only the JSON, no code fences.
{_budget_rule(scope)}"""


def build_dialogue_prompt(context: SharedContext, scope: AttemptScope) -> str:
    count = scope.item_count or 12
    low, high = DIALOGUE_LINE_WORD_RANGE[context.cefr_level]
    variant = dialogue_variant_for(context.lesson_type)
    if variant == DialogueVariant.FILL_GAP:
        gap_rules = (
            "Replace one key word or phrase in at least 3 different lines with _____ "
            "(five underscores). After the dialogue add one line:\n"
            "ANSWERS: <answer 1> | <answer 2> | ... (one answer per blank, in order)"
        )
    else:
        gap_rules = "Do not leave any blanks."
    return f"""Write a realistic {context.lesson_type.value} dialogue between a student and a tutor.
{_level_line(context)}
{_themes_line(context)}
{_vocabulary_line(context)}
Situation: {context.summary}

Write at least {count} lines. Lines alternate and the Student speaks first.
Each line is {low}-{high} words. Use at least two of the lesson vocabulary words naturally.
Format every line as "Student: ..." or "Tutor: ...".
{gap_rules}
{_retry_hint(scope)}
{_budget_rule(scope)}"""


def build_title_prompt(context: SharedContext, scope: AttemptScope) -> str:
    return f"""Write a short, engaging title for a {context.lesson_type.value} lesson.
{_themes_line(context)}
{_vocabulary_line(context)}
Summary: {context.summary}

The title must be 3-8 words, must not contain the word "lesson", and must not use quotes.
{_retry_hint(scope)}
Return only the title."""


SECTION_PROMPTS: Dict[SectionName, PromptFunction] = {
    SectionName.WARMUP: build_warmup_prompt,
    SectionName.VOCABULARY: build_vocabulary_prompt,
    SectionName.READING: build_reading_prompt,
    SectionName.COMPREHENSION: build_comprehension_prompt,
    SectionName.DISCUSSION: build_discussion_prompt,
    SectionName.GRAMMAR: build_grammar_prompt,
    SectionName.PRONUNCIATION: build_pronunciation_prompt,
    SectionName.DIALOGUE: build_dialogue_prompt,
    SectionName.WRAPUP: build_wrapup_prompt,
}


class PromptBuilder:
    """Dispatches to the prompt function registered for each step."""

    def __init__(self, overrides: Optional[Dict[SectionName, PromptFunction]] = None):
        self.prompts = dict(SECTION_PROMPTS)
        if overrides:
            self.prompts.update(overrides)

    def build(self, section: SectionName, context: SharedContext, scope: AttemptScope) -> str:
        """Build the prompt for a section attempt.

        Raises:
            KeyError: If no prompt function is registered for the section
        """
        return self.prompts[section](context, scope).strip()

    def build_title(self, context: SharedContext, scope: AttemptScope) -> str:
        return build_title_prompt(context, scope).strip()
