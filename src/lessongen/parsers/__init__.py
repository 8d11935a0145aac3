"""Parsers for source text and model responses.

This module provides the local context extractor that seeds every lesson and
the helpers that turn raw model output into structured pieces.
"""

from lessongen.parsers.context_extractor import ContextExtractor
from lessongen.parsers.response_parsers import (
    extract_json_object,
    repair_incomplete_json,
)

__all__ = [
    "ContextExtractor",
    "extract_json_object",
    "repair_incomplete_json",
]
