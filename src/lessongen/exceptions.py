"""Exceptions raised at the pipeline's public boundary."""

from lessongen.validators.schema import GenerationError


class LessonGenerationError(Exception):
    """A required step failed exhausted; no lesson was produced.

    The structured payload is available as ``error``.
    """

    def __init__(self, error: GenerationError):
        self.error = error
        reasons = "; ".join(error.reasons[:3]) or "no reasons recorded"
        super().__init__(
            f"Section '{error.section_name}' failed ({error.kind.value}) "
            f"after {error.attempts_exhausted} attempt(s): {reasons}"
        )


class AssemblyError(Exception):
    """The assembler was handed an incomplete set of sections."""
