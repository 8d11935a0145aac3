"""Local context extraction from source text.

Seeds the SharedContext with themes, candidate vocabulary and a short summary
using keyword and frequency analysis only. No LLM calls are made, so this
stage always succeeds and costs no token budget.
"""

import logging
import re
from collections import Counter
from typing import List, Optional

from lessongen.validators.schema import (
    CEFRLevel,
    GenerateLessonRequest,
    LessonType,
    MAX_THEMES,
    SharedContext,
)

logger = logging.getLogger(__name__)

MAX_CANDIDATE_WORDS = 8
MIN_CANDIDATE_WORDS = 4
SUMMARY_MAX_CHARS = 200

GENERIC_THEMES = ["general topic", "communication", "daily life"]
GENERIC_WORDS = [
    "communication",
    "important",
    "different",
    "example",
    "information",
    "situation",
]

# Phrase found in the text -> theme label
TOPIC_KEYWORDS = {
    "climate": "climate change",
    "environment": "environment",
    "golf": "golf",
    "competition": "competition",
    "sport": "sports",
    "game": "sports",
    "team": "sports",
    "business": "business",
    "company": "business",
    "travel": "travel",
    "tourism": "travel",
    "culture": "culture",
    "technology": "technology",
    "computer": "technology",
    "internet": "technology",
    "health": "health",
    "medical": "health",
    "doctor": "health",
    "education": "education",
    "school": "education",
    "food": "food",
    "music": "music",
    "history": "history",
    "science": "science",
}

STOPWORDS = {
    "about", "above", "after", "again", "against", "also", "although", "among",
    "another", "anyone", "around", "because", "been", "before", "being", "below",
    "between", "both", "came", "come", "could", "does", "doing", "down", "during",
    "each", "even", "every", "from", "further", "have", "having", "here", "however",
    "into", "itself", "just", "know", "last", "like", "made", "make", "many", "more",
    "most", "much", "must", "never", "next", "nothing", "once", "only", "other",
    "ours", "over", "people", "said", "same", "says", "should", "since", "some",
    "something", "still", "such", "take", "than", "that", "their", "theirs", "them",
    "then", "there", "these", "they", "thing", "things", "this", "those", "though",
    "through", "time", "told", "under", "until", "upon", "very", "want", "were",
    "what", "when", "where", "whether", "which", "while", "whom", "whose", "will",
    "with", "within", "without", "would", "year", "years", "your", "yours", "were",
    "will", "according", "already", "always", "around", "become", "behind",
    "across", "almost", "perhaps", "really", "themselves", "yourself",
}

WORD_PATTERN = re.compile(r"\b[a-z]{4,12}\b")
SENTENCE_PATTERN = re.compile(r"(?<=[.!?])\s+")


class ContextExtractor:
    """Builds the initial SharedContext for a request.

    Never raises for any string input; degrades to generic themes and words
    when the text offers nothing usable.
    """

    def __init__(self, max_candidate_words: int = MAX_CANDIDATE_WORDS):
        self.max_candidate_words = max_candidate_words

    def extract(self, request: GenerateLessonRequest) -> SharedContext:
        """Extract context for a validated request."""
        original_title = request.source_metadata.title if request.source_metadata else None
        return self.extract_text(
            source_text=request.source_text,
            cefr_level=request.cefr_level,
            lesson_type=request.lesson_type,
            target_language=request.target_language,
            original_title=original_title,
        )

    def extract_text(
        self,
        source_text: str,
        cefr_level: CEFRLevel,
        lesson_type: LessonType,
        target_language: str = "English",
        original_title: Optional[str] = None,
    ) -> SharedContext:
        """Extract context from raw text.

        Args:
            source_text: Raw source text
            cefr_level: Target CEFR level
            lesson_type: Lesson type
            target_language: Language being learned
            original_title: Title supplied with the source, if any

        Returns:
            Freshly created SharedContext
        """
        text = source_text or ""
        context = SharedContext(
            source_text=text,
            lesson_type=lesson_type,
            cefr_level=cefr_level,
            target_language=target_language,
            summary=self.extract_summary(text),
            candidate_words=self.extract_candidate_words(text),
            original_title=original_title.strip() if original_title and original_title.strip() else None,
        )
        context.add_themes(self.extract_themes(text))

        logger.info(
            f"Extracted context: themes={context.themes}, "
            f"candidate_words={len(context.candidate_words)}, "
            f"summary_chars={len(context.summary)}"
        )
        return context

    def extract_themes(self, text: str) -> List[str]:
        """Themes from topic keywords, headings and frequent words, in that order."""
        lowered = text.lower()
        themes: List[str] = []

        for keyword, theme in TOPIC_KEYWORDS.items():
            if re.search(rf"\b{keyword}", lowered) and theme not in themes:
                themes.append(theme)

        for heading in self._extract_headings(text):
            if heading.lower() not in themes:
                themes.append(heading.lower())

        for word, _ in self._rank_words(text)[:3]:
            if word not in themes:
                themes.append(word)

        if not themes:
            logger.debug("No themes found, using generic themes")
            return list(GENERIC_THEMES)
        return themes[:MAX_THEMES]

    def extract_candidate_words(self, text: str) -> List[str]:
        """Frequent content words, most frequent first."""
        words = [word for word, _ in self._rank_words(text)][: self.max_candidate_words]
        if len(words) < MIN_CANDIDATE_WORDS:
            logger.debug(f"Only {len(words)} candidate words found, using generic words")
            return list(GENERIC_WORDS)
        return words

    def extract_summary(self, text: str) -> str:
        """Leading sentences of the text, capped at SUMMARY_MAX_CHARS."""
        flat = " ".join(text.split())
        if not flat:
            return ""

        summary = ""
        for sentence in SENTENCE_PATTERN.split(flat):
            candidate = f"{summary} {sentence}".strip()
            if len(candidate) > SUMMARY_MAX_CHARS:
                break
            summary = candidate

        if not summary:
            return flat[:SUMMARY_MAX_CHARS].rstrip() + "..."
        if len(summary) < len(flat):
            return summary + "..."
        return summary

    def _rank_words(self, text: str) -> List[tuple]:
        words = [w for w in WORD_PATTERN.findall(text.lower()) if w not in STOPWORDS]
        counts = Counter(words)
        first_seen = {}
        for index, word in enumerate(words):
            first_seen.setdefault(word, index)
        return sorted(counts.items(), key=lambda kv: (-kv[1], first_seen[kv[0]]))

    def _extract_headings(self, text: str) -> List[str]:
        """Short title-like lines without terminal punctuation."""
        headings = []
        for line in text.splitlines():
            line = line.strip().lstrip("#").strip()
            words = line.split()
            if not 1 <= len(words) <= 6 or line.endswith((".", "!", "?", ",", ":")):
                continue
            if all(w[:1].isupper() or not w[:1].isalpha() for w in words):
                headings.append(line)
        return headings[:2]
