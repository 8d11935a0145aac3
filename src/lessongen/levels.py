"""CEFR level tables shared by prompt builders and section validators.

Every level-dependent number used by the pipeline lives here so prompts and
validators can never disagree about what a level requires.
"""

from typing import Dict, List, Tuple

from lessongen.validators.schema import CEFRLevel


# ============================================================================
# Vocabulary
# ============================================================================

# Examples generated per vocabulary word
VOCAB_EXAMPLES_PER_WORD: Dict[CEFRLevel, int] = {
    CEFRLevel.A1: 5,
    CEFRLevel.A2: 5,
    CEFRLevel.B1: 4,
    CEFRLevel.B2: 3,
    CEFRLevel.C1: 2,
}

# Allowed (min, max) word count of a single vocabulary example sentence
VOCAB_EXAMPLE_WORD_RANGE: Dict[CEFRLevel, Tuple[int, int]] = {
    CEFRLevel.A1: (5, 10),
    CEFRLevel.A2: (8, 15),
    CEFRLevel.B1: (10, 18),
    CEFRLevel.B2: (12, 22),
    CEFRLevel.C1: (15, 25),
}

VOCAB_EXAMPLE_STYLE: Dict[CEFRLevel, str] = {
    CEFRLevel.A1: "very short sentences, present simple, everyday words only",
    CEFRLevel.A2: "short sentences, simple past and future, common words",
    CEFRLevel.B1: "medium sentences, varied tenses, some linking words",
    CEFRLevel.B2: "longer sentences, complex structures, precise vocabulary",
    CEFRLevel.C1: "sophisticated sentences, nuanced meaning, advanced structures",
}


# ============================================================================
# Questions and dialogue
# ============================================================================

DISCUSSION_WORD_RANGE: Dict[CEFRLevel, Tuple[int, int]] = {
    CEFRLevel.A1: (4, 12),
    CEFRLevel.A2: (5, 15),
    CEFRLevel.B1: (6, 18),
    CEFRLevel.B2: (8, 22),
    CEFRLevel.C1: (10, 25),
}

DISCUSSION_AVOID_PATTERNS: Dict[CEFRLevel, List[str]] = {
    CEFRLevel.A1: ["to what extent", "how might", "in what ways"],
    CEFRLevel.A2: ["to what extent", "how might one", "what are the implications"],
    CEFRLevel.B1: ["to what extent", "how might one reconcile"],
    CEFRLevel.B2: [],
    CEFRLevel.C1: [],
}

# Words too abstract for beginner discussion questions
BEGINNER_COMPLEX_WORDS = [
    "implications",
    "consequences",
    "reconcile",
    "evaluate",
    "analyze",
    "synthesize",
]

DIALOGUE_LINE_WORD_RANGE: Dict[CEFRLevel, Tuple[int, int]] = {
    CEFRLevel.A1: (3, 12),
    CEFRLevel.A2: (5, 18),
    CEFRLevel.B1: (7, 22),
    CEFRLevel.B2: (8, 25),
    CEFRLevel.C1: (10, 30),
}

QUESTION_STYLE: Dict[CEFRLevel, str] = {
    CEFRLevel.A1: "Use only present simple and very common words. Ask about personal likes and daily life.",
    CEFRLevel.A2: "Use simple past and future. Ask about experiences and preferences.",
    CEFRLevel.B1: "Use varied tenses. Ask for opinions with reasons and comparisons.",
    CEFRLevel.B2: "Use complex structures. Ask learners to weigh advantages and disadvantages.",
    CEFRLevel.C1: "Use sophisticated language. Ask learners to evaluate, speculate and justify.",
}


# ============================================================================
# Grammar and reading
# ============================================================================

GRAMMAR_POINTS: Dict[CEFRLevel, str] = {
    CEFRLevel.A1: "present simple, articles, basic prepositions",
    CEFRLevel.A2: "past simple, comparatives, modal verbs",
    CEFRLevel.B1: "present perfect, conditionals, passive voice",
    CEFRLevel.B2: "relative clauses, advanced conditionals, reported speech",
    CEFRLevel.C1: "subjunctive, cleft sentences, inversion",
}

LEVEL_DESCRIPTIONS: Dict[CEFRLevel, str] = {
    CEFRLevel.A1: "Beginner: the most common everyday words, present simple, very short sentences",
    CEFRLevel.A2: "Elementary: familiar vocabulary, simple past and future, short connected sentences",
    CEFRLevel.B1: "Intermediate: some less common words and phrasal verbs, varied tenses",
    CEFRLevel.B2: "Upper intermediate: precise vocabulary, complex sentences, opinions with nuance",
    CEFRLevel.C1: "Advanced: idiomatic and academic language, sophisticated structures",
}

READING_TARGET_WORDS: Tuple[int, int] = (200, 400)
READING_ACCEPTED_WORDS: Tuple[int, int] = (150, 450)


def examples_per_word(level: CEFRLevel) -> int:
    """Number of example sentences required per vocabulary word."""
    return VOCAB_EXAMPLES_PER_WORD[level]
