"""Shared fixtures: a scripted generation client and ready-made contexts."""

import os
import threading
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Union

# Tracing stays off in tests; set before lessongen.utils.llm_client is imported
os.environ.setdefault("LANGFUSE_TRACING_ENABLED", "false")
os.environ.setdefault("ENABLE_LANGFUSE", "false")

import pytest

from lessongen.generators.retry_policy import AttemptScope
from lessongen.parsers.context_extractor import ContextExtractor
from lessongen.utils.llm_client import (
    GenerationClient,
    Ok,
    Outcome,
    TokenUsage,
)
from lessongen.validators.schema import (
    CEFRLevel,
    GenerateLessonRequest,
    LessonType,
    SharedContext,
    SourceMetadata,
    VocabularyEntry,
)


CLIMATE_ARTICLE = """Scientists around the world agree that global temperatures are rising faster than ever before. Our planet is warming because people burn coal, oil and gas for energy.

Last summer, many cities recorded their hottest days. Heatwaves closed schools in some countries, and farmers watched their crops dry out in the fields. Hospitals treated more patients with heat problems, especially older people and young children.

The warming climate also changes the oceans. Warmer water melts ice at the poles, and sea levels slowly rise. Coastal towns now build walls to protect homes from floods. Some families have already moved away from the coast because storms damage their houses every year.

There is good news too. Solar panels and wind turbines are cheaper than they were ten years ago, and many countries produce more clean energy every year. Electric cars are becoming popular in large cities, and engineers are designing batteries that store energy for longer.

Governments met last year to discuss new climate targets. They promised to cut emissions, protect forests and help poorer countries prepare for extreme weather. Critics say the promises are not enough, because emissions are still rising in many places.

Ordinary people can help as well. Scientists suggest simple steps: use public transport, waste less food, save energy at home and choose local products. Small changes in daily habits, repeated by millions of people, can reduce emissions and slow the warming of our planet.

Experts believe the next ten years are important. If countries reduce emissions quickly, temperatures may stop rising before the end of the century. If they wait, scientists warn that floods, droughts and heatwaves will become more common and more dangerous for everyone."""

ORIGINAL_TITLE = "Record Heat Around the Globe"


class ScriptedClient(GenerationClient):
    """GenerationClient that replays scripted outcomes per step.

    ``script`` maps a step label to a list of responses used in order for each
    (label, item) pair; the last response repeats once the list runs out. A
    response is a string (returned as Ok), an Outcome, or a callable taking
    ``(prompt, item)`` and returning either of those.
    """

    model = "scripted"

    def __init__(self, script: Dict[str, List[Union[str, Outcome, Callable]]]):
        super().__init__()
        self.script = script
        self.calls: List[dict] = []
        self._counts: Dict[tuple, int] = defaultdict(int)
        self._lock = threading.Lock()
        self._local = threading.local()

    def call(self, prompt, token_cap, timeout=None, label="generation", item=None, monitor=None):
        self._local.key = (label, item)
        return super().call(
            prompt, token_cap, timeout=timeout, label=label, item=item, monitor=monitor
        )

    def _complete(self, prompt: str, token_cap: int, timeout: Optional[float]) -> Outcome:
        label, item = self._local.key
        responses = self.script[label]
        with self._lock:
            index = min(self._counts[(label, item)], len(responses) - 1)
            self._counts[(label, item)] += 1
            self.calls.append(
                {"label": label, "item": item, "token_cap": token_cap, "timeout": timeout, "prompt": prompt}
            )

        response = responses[index]
        if callable(response):
            response = response(prompt, item)
        if isinstance(response, str):
            tokens = max(1, len(response) // 4)
            return Ok(
                text=response,
                usage=TokenUsage(prompt_tokens=50, completion_tokens=tokens, total_tokens=50 + tokens),
            )
        return response

    def calls_for(self, label: str) -> List[dict]:
        return [c for c in self.calls if c["label"] == label]


# ============================================================================
# Scripted responses
# ============================================================================

WARMUP_OUTPUT = """1. How do you usually feel during very hot summer days?
2. What do you do at home to save energy?
3. Do you think the weather is changing where you live?"""

COMPREHENSION_OUTPUT = """Why are global temperatures rising so quickly?
What happened to crops during the hottest days last summer?
How do warmer oceans affect coastal towns?
Which clean energy sources are becoming cheaper?
What simple steps can ordinary people take to help?"""

DISCUSSION_OUTPUT = """What do you think is the biggest cause of climate change today?
How has the weather in your city changed in recent years?
Would you pay more for clean energy to help the planet?
Which daily habits could you change to reduce your energy use?
Should governments or ordinary people do more to protect the climate?"""

WRAPUP_OUTPUT = """Which new word from today will you use this week?
What surprised you most about our warming planet?
How will you talk about the climate with your friends?"""

TITLE_OUTPUT = "Our Warming Planet and Everyday Choices"

GRAMMAR_OUTPUT = """{
  "focus": "present perfect",
  "form": "have or has plus the past participle of the main verb",
  "usage": "We use it for changes that started in the past and still matter now.",
  "examples": [
    "Global temperatures have risen quickly.",
    "Many cities have recorded their hottest days.",
    "Solar panels have become much cheaper.",
    "Some families have moved away from the coast.",
    "Governments have promised to cut emissions."
  ],
  "exercises": [
    {"prompt": "Sea levels _____ (rise) in recent years.", "answer": "have risen"},
    {"prompt": "Engineers _____ (design) better batteries.", "answer": "have designed"},
    {"prompt": "The climate _____ (change) a lot.", "answer": "has changed"},
    {"prompt": "We _____ (save) energy at home.", "answer": "have saved"},
    {"prompt": "Scientists _____ (warn) us many times.", "answer": "have warned"}
  ]
}"""

VOCABULARY_TEMPLATES = [
    "Many scientists now say that {word} really matters for the climate of our planet.",
    "Our tutor used the word {word} when we talked about the warming planet.",
    "The news about rising temperatures made me think about {word} again this week.",
    "I read that {word} is an important part of the global climate debate.",
    "My family talked about {word} and the climate during dinner last night.",
]


def vocabulary_output(word: str, count: int) -> str:
    examples = [template.format(word=word) for template in VOCABULARY_TEMPLATES[:count]]
    return f"MEANING: a word connected to {word} in this text\n" + "\n".join(examples)


def vocabulary_responder(count: int) -> Callable:
    return lambda prompt, item: vocabulary_output(item, count)


def reading_output(vocabulary: List[str]) -> str:
    filler = (
        "Scientists around the world agree that our planet is getting warmer every year, "
        "and they ask ordinary people to help by saving energy at home and at work. "
    ) * 6
    bolded = ", ".join(f"**{word}**" for word in vocabulary[:3])
    return f"{filler}The report used the words {bolded} many times to explain the problem."


def pronunciation_output(vocabulary: List[str]) -> str:
    entries = ",\n".join(
        f'{{"word": "{word}", "ipa": "/{word}/", "difficult_sounds": ["r"], '
        f'"tips": ["Say it slowly first."], "practice_sentence": "I can say {word} clearly."}}'
        for word in vocabulary[:5]
    )
    return f"""{{
  "words": [{entries}],
  "tongue_twisters": [
    {{"text": "Red lorry, yellow lorry.", "target_sounds": ["r", "l"], "difficulty": "easy"}},
    {{"text": "She sells sea shells by the sea shore.", "target_sounds": ["s", "sh"]}}
  ]
}}"""


def dialogue_output(vocabulary: List[str], fill_gap: bool = False) -> str:
    word = vocabulary[0]
    lines = [
        f"Student: I read an article about {word} and the climate yesterday.",
        "Tutor: That sounds interesting. What was the main idea of it?",
        "Student: It said that temperatures are rising faster than ever before.",
        "Tutor: Right. Have you noticed any changes where you live now?",
        "Student: Yes, the summers are much hotter than when I was young.",
        "Tutor: Many people say the same thing about their own cities.",
        "Student: I want to save more energy at home this year.",
        "Tutor: Good idea. What could you start doing this very week?",
        "Student: I could take the bus to work instead of driving.",
        "Tutor: That is a simple step that really helps the planet.",
        "Student: I will also try to waste less food at home.",
        "Tutor: Great. Small changes like these can make a big difference.",
    ]
    if fill_gap:
        lines[2] = "Student: It said that temperatures are _____ faster than ever before."
        lines[6] = "Student: I want to _____ more energy at home this year."
        lines[10] = "Student: I will also try to _____ less food at home."
        lines.append("ANSWERS: rising | save | waste")
    return "\n".join(lines)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def extractor() -> ContextExtractor:
    return ContextExtractor()


@pytest.fixture
def climate_request() -> GenerateLessonRequest:
    return GenerateLessonRequest(
        source_text=CLIMATE_ARTICLE,
        lesson_type=LessonType.DISCUSSION,
        cefr_level=CEFRLevel.B1,
        source_metadata=SourceMetadata(title=ORIGINAL_TITLE, domain="example.com"),
    )


@pytest.fixture
def candidate_words(extractor) -> List[str]:
    return extractor.extract_text(CLIMATE_ARTICLE, CEFRLevel.B1, LessonType.DISCUSSION).candidate_words


@pytest.fixture
def base_context(extractor) -> SharedContext:
    """Context as produced by the extractor, before any section ran."""
    return extractor.extract_text(CLIMATE_ARTICLE, CEFRLevel.B1, LessonType.DISCUSSION)


@pytest.fixture
def vocab_context(base_context) -> SharedContext:
    """Context after the vocabulary section added every candidate word."""
    base_context.add_vocabulary(
        VocabularyEntry(word=word, meaning=f"meaning of {word}", example_count=4)
        for word in base_context.candidate_words
    )
    return base_context


@pytest.fixture
def make_scope() -> Callable[..., AttemptScope]:
    def _make(item_count=None, token_cap=500, attempt_number=1, item=None, previous_reasons=None):
        return AttemptScope(
            attempt_number=attempt_number,
            token_cap=token_cap,
            item_count=item_count,
            item=item,
            previous_reasons=previous_reasons or [],
        )

    return _make


@pytest.fixture
def lesson_script(candidate_words) -> Dict[str, list]:
    """Script under which every step of a B1 lesson succeeds first time."""
    return {
        "warmup": [WARMUP_OUTPUT],
        "vocabulary": [vocabulary_responder(4)],
        "reading": [reading_output(candidate_words)],
        "comprehension": [COMPREHENSION_OUTPUT],
        "discussion": [DISCUSSION_OUTPUT],
        "grammar": [GRAMMAR_OUTPUT],
        "pronunciation": [pronunciation_output(candidate_words)],
        "dialogue": [dialogue_output(candidate_words)],
        "wrapup": [WRAPUP_OUTPUT],
        "title": [TITLE_OUTPUT],
    }
