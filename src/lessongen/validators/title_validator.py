"""Validator for the generated lesson title."""

import re
from typing import Any, List, Optional, Tuple

from lessongen.generators.retry_policy import AttemptScope
from lessongen.parsers.response_parsers import parse_lines
from lessongen.validators.base import BaseSectionValidator
from lessongen.validators.schema import SharedContext

MIN_TITLE_WORDS = 3
MAX_TITLE_WORDS = 8
MAX_TITLE_CHARS = 80
TITLE_PREFIX = re.compile(r"^title\s*:\s*", re.IGNORECASE)
QUOTES = "\"'“”‘’`*"


def clean_title(raw_output: str) -> str:
    lines = parse_lines(raw_output)
    if not lines:
        return ""
    title = TITLE_PREFIX.sub("", lines[0].strip(QUOTES)).strip(QUOTES).strip()
    return title.rstrip(".")


class TitleValidator(BaseSectionValidator):
    name = "title"

    def check(
        self,
        raw_output: str,
        context: SharedContext,
        scope: AttemptScope,
        partial: bool,
        partial_threshold: Optional[int],
    ) -> Tuple[Any, List[str], List[str]]:
        title = clean_title(raw_output)
        issues = []
        words = len(title.split())
        if not MIN_TITLE_WORDS <= words <= MAX_TITLE_WORDS:
            issues.append(f"title has {words} words, expected {MIN_TITLE_WORDS}-{MAX_TITLE_WORDS}")
        if not 5 < len(title) < MAX_TITLE_CHARS:
            issues.append(f"title length {len(title)} outside 6-{MAX_TITLE_CHARS - 1}")
        if "lesson" in title.lower():
            issues.append("title must not contain the word 'lesson'")
        if issues:
            return None, issues, []
        return title, [], []
