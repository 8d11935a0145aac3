"""Assembles validated sections and the title into the final Lesson."""

import logging
from typing import Any, Dict, Mapping, Optional

from lessongen.exceptions import AssemblyError
from lessongen.generators.section_plan import required_sections
from lessongen.validators.schema import (
    Lesson,
    LessonMetadata,
    Section,
    SectionName,
    SectionStatus,
    SharedContext,
    SourceMetadata,
)

logger = logging.getLogger(__name__)


class LessonAssembler:
    """Pure merge of section contents into a Lesson.

    A lesson is only built when every required section is valid; otherwise
    ``AssemblyError`` is raised and nothing is produced.
    """

    def assemble(
        self,
        sections: Mapping[SectionName, Section],
        title: str,
        context: SharedContext,
        token_report: Optional[Dict[str, Any]] = None,
        source_metadata: Optional[SourceMetadata] = None,
    ) -> Lesson:
        """Build the lesson.

        Args:
            sections: Sections by name
            title: Final lesson title
            context: Shared context of the run (level, type, language)
            token_report: Usage report stored in the metadata
            source_metadata: Source metadata passed through untouched

        Returns:
            Lesson with sections in lesson order

        Raises:
            AssemblyError: If a required section is missing or not valid, or the title is blank
        """
        if not title or not title.strip():
            raise AssemblyError("lesson title is empty")

        contents = {}
        for name in required_sections(context.lesson_type):
            section = sections.get(name)
            if section is None:
                raise AssemblyError(f"required section '{name.value}' is missing")
            if section.status != SectionStatus.VALID or section.content is None:
                raise AssemblyError(
                    f"required section '{name.value}' is {section.status.value}, not valid"
                )
            contents[name] = section.content

        lesson = Lesson(
            title=title.strip(),
            sections=contents,
            metadata=LessonMetadata(
                cefr_level=context.cefr_level,
                lesson_type=context.lesson_type,
                target_language=context.target_language,
                token_report=token_report or {},
                source_metadata=source_metadata,
            ),
        )
        logger.info(f"Assembled lesson '{lesson.title}' with sections {[s.value for s in contents]}")
        return lesson
