"""Helpers that turn raw model text into structured pieces.

All functions are pure. JSON helpers raise ``ValueError`` on unusable input;
section validators convert that into an ``Invalid`` result.
"""

import json
import re
from typing import Any, Dict, List, Tuple

FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)
LIST_PREFIX_PATTERN = re.compile(r"^\s*(?:[-*•]+|\d+[.)]|[a-zA-Z][.)])\s+")
BOLD_PATTERN = re.compile(r"\*\*([^*]+?)\*\*")
BLANK_PATTERN = re.compile(r"_{3,}")


# ============================================================================
# JSON
# ============================================================================


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences such as ```json."""
    return FENCE_PATTERN.sub("", text).strip()


def repair_incomplete_json(text: str) -> str:
    """Close a JSON document that was cut off mid-way.

    Closes an unterminated string, drops a dangling comma or key, then closes
    open arrays and objects in the order they were opened.
    """
    stack: List[str] = []
    in_string = False
    escaped = False
    for char in text:
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char in "{[":
            stack.append(char)
        elif char in "}]" and stack:
            stack.pop()

    repaired = text
    if in_string:
        repaired += '"'

    repaired = repaired.rstrip()
    if stack and stack[-1] == "{":
        # A key without a value cannot be closed as-is
        repaired = re.sub(r'([,{])\s*"[^"]*"\s*:?\s*$', r"\1", repaired)
    repaired = re.sub(r",\s*$", "", repaired)

    for opener in reversed(stack):
        repaired += "]" if opener == "[" else "}"
    return repaired


def extract_json_object(text: str, allow_repair: bool = False) -> Dict[str, Any]:
    """Extract the first JSON object from model output.

    Args:
        text: Raw model output, possibly wrapped in prose or code fences
        allow_repair: Try to close truncated JSON before giving up

    Returns:
        Parsed JSON object

    Raises:
        ValueError: If no JSON object can be recovered
    """
    cleaned = strip_code_fences(text)
    start = cleaned.find("{")
    if start == -1:
        raise ValueError("no JSON object found in response")

    end = cleaned.rfind("}")
    candidates = []
    if end > start:
        candidates.append(cleaned[start:end + 1])
    if allow_repair:
        candidates.append(repair_incomplete_json(cleaned[start:]))

    last_error = "unterminated JSON object"
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as e:
            last_error = f"malformed JSON: {e.msg} at position {e.pos}"
            continue
        if isinstance(data, dict):
            return data
        last_error = "JSON root is not an object"

    raise ValueError(last_error)


# ============================================================================
# Lines and lists
# ============================================================================


def clean_line(line: str) -> str:
    """Strip list markers, surrounding quotes and markdown emphasis."""
    line = LIST_PREFIX_PATTERN.sub("", line.strip())
    line = line.strip().strip('"').strip("'").strip()
    if line.startswith("**") and line.endswith("**") and len(line) > 4:
        line = line[2:-2].strip()
    return line


def parse_lines(text: str) -> List[str]:
    """Non-empty cleaned lines of the text."""
    lines = []
    for raw in text.splitlines():
        line = clean_line(raw)
        if line:
            lines.append(line)
    return lines


def parse_labelled_block(text: str, label: str) -> Tuple[str, List[str]]:
    """Split ``LABEL: value`` from the remaining lines.

    Returns:
        Tuple of (label value or "", remaining cleaned lines)
    """
    value = ""
    rest = []
    prefix = f"{label.lower()}:"
    for line in parse_lines(text):
        if not value and line.lower().startswith(prefix):
            value = line[len(prefix):].strip()
        else:
            rest.append(line)
    return value, rest


def count_words(text: str) -> int:
    return len(re.findall(r"[A-Za-z0-9'’-]+", text))


def find_bolded(text: str) -> List[str]:
    """Words and phrases wrapped in **double asterisks**."""
    return [m.strip() for m in BOLD_PATTERN.findall(text)]


def count_blanks(text: str) -> int:
    return len(BLANK_PATTERN.findall(text))
