"""
Progressive Lesson Generation Pipeline

This package turns raw source text plus a CEFR level and lesson type into a
validated, multi-section language lesson by running a sequence of
token-capped LLM calls, each checked by a section validator and retried with
narrowed scope when the output does not meet its contract.

**Version**: 0.1.0
**Python**: >=3.11
**Key Dependencies**: openai, anthropic, google-generativeai, langfuse, pydantic
"""

__version__ = "0.1.0"
__author__ = "lessongen"

SUPPORTED_LEVELS = ["A1", "A2", "B1", "B2", "C1"]
SUPPORTED_LESSON_TYPES = ["discussion", "grammar", "pronunciation", "travel", "business"]

__all__ = [
    "__version__",
    "__author__",
    "SUPPORTED_LEVELS",
    "SUPPORTED_LESSON_TYPES",
]
