"""Pipeline orchestrator for progressive lesson generation.

Runs the section plan for one request in its fixed order:

    extract context -> warmup -> vocabulary -> reading -> comprehension
    -> core section (discussion | grammar | pronunciation | dialogue)
    -> wrapup -> title -> assemble

Each step runs under the RetryController with its own RetryPolicy and sees a
snapshot of the SharedContext restricted to its declared reads. The context
is updated only after a step succeeds, before the next one starts. The only
parallel work is the per-word vocabulary sub-steps, which run on a bounded
thread pool.

Any step that fails exhausted aborts the run with LessonGenerationError.
Nothing is ever filled in with template content.
"""

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional

from lessongen import constants
from lessongen.exceptions import LessonGenerationError
from lessongen.generators.lesson_assembler import LessonAssembler
from lessongen.generators.retry_controller import Deadline, RetryController, RetryResult
from lessongen.generators.retry_policy import RetryPolicy, load_policies
from lessongen.generators.section_plan import SectionStep, build_plan
from lessongen.levels import examples_per_word
from lessongen.parsers.context_extractor import ContextExtractor
from lessongen.prompts.section_prompts import PromptBuilder
from lessongen.utils.llm_client import GenerationClient
from lessongen.utils.logging_config import pipeline_stage_logger
from lessongen.utils.usage_monitor import UsageMonitor
from lessongen.validators.schema import (
    GenerateLessonRequest,
    GenerationError,
    GrammarContent,
    Lesson,
    ProgressEvent,
    Section,
    SectionName,
    SharedContext,
    TITLE_STEP,
    VocabularyContent,
    VocabularyEntry,
)
from lessongen.validators.section_validator import SectionValidator

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

MAX_TITLE_CHARS = 120

# Progress percentages for the fixed milestones; section steps share 15-85
PROGRESS_INIT = 5
PROGRESS_ANALYSIS = 10
PROGRESS_SECTIONS_START = 15
PROGRESS_SECTIONS_END = 85
PROGRESS_TITLE_START = 88
PROGRESS_TITLE_END = 90
PROGRESS_ASSEMBLY = 95
PROGRESS_DONE = 100

# Sections of the first phase; everything after belongs to phase2
PHASE1_SECTIONS = {
    SectionName.WARMUP,
    SectionName.VOCABULARY,
    SectionName.READING,
    SectionName.COMPREHENSION,
}


def combine_titles(generated: str, original: Optional[str]) -> str:
    """Combine the generated descriptive title with the source's own title."""
    generated = generated.strip()
    if not original or not original.strip():
        return generated
    original = original.strip()
    if original.lower() in generated.lower() or generated.lower() in original.lower():
        return generated
    return f"{generated}: {original}"[:MAX_TITLE_CHARS].rstrip()


class PipelineOrchestrator:
    """Generates lessons; holds configuration only, never per-request state.

    Example:
        >>> orchestrator = PipelineOrchestrator(LLMGenerationClient())
        >>> lesson = orchestrator.generate(request, on_progress=print)
    """

    def __init__(
        self,
        client: GenerationClient,
        prompt_builder: Optional[PromptBuilder] = None,
        validator: Optional[SectionValidator] = None,
        extractor: Optional[ContextExtractor] = None,
        assembler: Optional[LessonAssembler] = None,
        policies: Optional[Dict[str, RetryPolicy]] = None,
        vocab_max_workers: Optional[int] = None,
        call_timeout: Optional[float] = None,
        request_timeout: Optional[float] = None,
    ):
        """Initialize the orchestrator.

        Args:
            client: Generation client shared by all requests
            prompt_builder: Prompt builder (default: PromptBuilder())
            validator: Section validator (default: SectionValidator())
            extractor: Context extractor (default: ContextExtractor())
            assembler: Lesson assembler (default: LessonAssembler())
            policies: Retry policy per step (default: load_policies with RETRY_POLICY_OVERRIDES)
            vocab_max_workers: Worker pool size for vocabulary words (default: VOCAB_MAX_WORKERS)
            call_timeout: Per-call timeout in seconds (default: LLM_CALL_TIMEOUT_SECONDS)
            request_timeout: Whole-request timeout in seconds (default: REQUEST_TIMEOUT_SECONDS)
        """
        self.client = client
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.validator = validator or SectionValidator()
        self.extractor = extractor or ContextExtractor()
        self.assembler = assembler or LessonAssembler()
        self.policies = policies or load_policies(
            constants.RETRY_POLICY_OVERRIDES, max_attempts=constants.MAX_ATTEMPTS
        )
        self.vocab_max_workers = vocab_max_workers or constants.VOCAB_MAX_WORKERS
        self.call_timeout = call_timeout or constants.LLM_CALL_TIMEOUT_SECONDS
        self.request_timeout = request_timeout or constants.REQUEST_TIMEOUT_SECONDS

        logger.info(
            f"PipelineOrchestrator initialized: vocab_max_workers={self.vocab_max_workers}, "
            f"call_timeout={self.call_timeout}s, request_timeout={self.request_timeout}s"
        )

    def generate(
        self,
        request: GenerateLessonRequest,
        on_progress: Optional[ProgressCallback] = None,
        monitor: Optional[UsageMonitor] = None,
    ) -> Lesson:
        """Generate a complete lesson.

        Args:
            request: Validated lesson request
            on_progress: Callback receiving each ProgressEvent in order
            monitor: UsageMonitor to record into (default: a fresh one)

        Returns:
            Lesson containing every required section

        Raises:
            LessonGenerationError: If any step fails exhausted
        """
        run = PipelineRun(self, request, on_progress, monitor)
        return run.execute()


class PipelineRun:
    """State of one request: context, sections, progress and usage."""

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        request: GenerateLessonRequest,
        on_progress: Optional[ProgressCallback],
        monitor: Optional[UsageMonitor],
    ):
        self.orchestrator = orchestrator
        self.request = request
        self.on_progress = on_progress
        self.request_id = uuid.uuid4().hex[:12]
        self.monitor = monitor or UsageMonitor(request_id=self.request_id)
        self.controller = RetryController(
            orchestrator.client,
            monitor=self.monitor,
            call_timeout=orchestrator.call_timeout,
            deadline=Deadline(orchestrator.request_timeout),
        )
        self.events: List[ProgressEvent] = []
        self.sections: Dict[SectionName, Section] = {}
        self.context: Optional[SharedContext] = None

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def emit(self, step: str, percent: int, phase: str, section: Optional[str] = None) -> None:
        last = self.events[-1].progress_percent if self.events else 0
        event = ProgressEvent(
            step=step, progress_percent=max(percent, last), phase=phase, section=section
        )
        self.events.append(event)
        logger.debug(f"Progress {event.progress_percent}%: {step}")
        if self.on_progress is not None:
            self.on_progress(event)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def execute(self) -> Lesson:
        request = self.request
        logger.info(
            f"Generating lesson {self.request_id}: type={request.lesson_type.value}, "
            f"level={request.cefr_level.value}, source_chars={len(request.source_text)}"
        )
        self.emit("Initializing lesson generation", PROGRESS_INIT, "initialization")

        self.context = self.orchestrator.extractor.extract(request)
        plan = build_plan(request.lesson_type)
        self.emit("Analyzing source text", PROGRESS_ANALYSIS, "analysis")

        section_steps = [step for step in plan if step.section is not None]
        span = (PROGRESS_SECTIONS_END - PROGRESS_SECTIONS_START) / len(section_steps)
        for index, step in enumerate(section_steps):
            start = int(PROGRESS_SECTIONS_START + index * span)
            end = int(PROGRESS_SECTIONS_START + (index + 1) * span)
            self.run_section(step, start, end)

        title = self.run_title(next(step for step in plan if step.section is None))

        self.emit("Assembling lesson", PROGRESS_ASSEMBLY, "assembly")
        lesson = self.orchestrator.assembler.assemble(
            self.sections,
            title,
            self.context,
            token_report=self.monitor.get_usage_report(),
            source_metadata=request.source_metadata,
        )
        self.emit("Lesson ready", PROGRESS_DONE, "done")
        return lesson

    def run_section(self, step: SectionStep, start: int, end: int) -> None:
        name = step.section
        phase = "phase1" if name in PHASE1_SECTIONS else "phase2"
        section = Section(name=name)
        self.sections[name] = section
        section.start()
        self.emit(f"Generating {name.value}", start, phase, name.value)

        with pipeline_stage_logger(
            name.value,
            request_id=self.request_id,
            lesson_type=self.request.lesson_type.value,
            cefr_level=self.request.cefr_level.value,
        ):
            if name == SectionName.VOCABULARY:
                result = self.run_vocabulary(step)
            else:
                result = self.controller.run(
                    name.value,
                    step.view(self.context),
                    self.orchestrator.policies[name.value],
                    lambda ctx, scope: self.orchestrator.prompt_builder.build(name, ctx, scope),
                    lambda raw, ctx, scope, partial, threshold: self.orchestrator.validator.validate(
                        name, raw, ctx, scope, partial=partial, partial_threshold=threshold
                    ),
                )
            section.record_attempts(result.attempts)

        if not result.succeeded:
            section.mark_failed()
            self.fail(name.value, result)

        section.mark_valid(result.content)
        self.apply_writes(step, result)
        self.emit(f"Completed {name.value}", end, phase, name.value)

    def run_vocabulary(self, step: SectionStep) -> RetryResult:
        """Run one retry loop per candidate word on a bounded worker pool.

        Words are independent of each other, so they may run concurrently;
        the merged result keeps candidate order. One failed word fails the
        whole section.
        """
        view = step.view(self.context)
        words = list(view.candidate_words)
        policy = self.orchestrator.policies[SectionName.VOCABULARY.value]
        example_count = examples_per_word(view.cefr_level)
        builder = self.orchestrator.prompt_builder
        validator = self.orchestrator.validator

        def build_prompt(ctx, scope):
            return builder.build(SectionName.VOCABULARY, ctx, scope)

        def validate(raw, ctx, scope, partial, threshold):
            return validator.validate(
                SectionName.VOCABULARY, raw, ctx, scope, partial=partial, partial_threshold=threshold
            )

        results: Dict[str, RetryResult] = {}
        with ThreadPoolExecutor(max_workers=self.orchestrator.vocab_max_workers) as executor:
            future_to_word = {
                executor.submit(
                    self.controller.run,
                    SectionName.VOCABULARY.value,
                    view,
                    policy,
                    build_prompt,
                    validate,
                    item=word,
                    default_item_count=example_count,
                ): word
                for word in words
            }
            for future in as_completed(future_to_word):
                if future.cancelled():
                    continue
                word = future_to_word[future]
                results[word] = future.result()
                if not results[word].succeeded:
                    # Words not yet started are pointless once the section has failed
                    for pending in future_to_word:
                        pending.cancel()

        finished = [results[word] for word in words if word in results]
        attempts = [attempt for result in finished for attempt in result.attempts]
        failed = [result for result in finished if not result.succeeded]
        if failed:
            first = failed[0]
            return RetryResult(
                step=SectionName.VOCABULARY.value,
                item=first.item,
                succeeded=False,
                attempts=attempts,
                error_kind=first.error_kind,
                reasons=first.reasons,
                states=first.states,
            )

        content = VocabularyContent(words=[result.content for result in finished])
        return RetryResult(
            step=SectionName.VOCABULARY.value,
            succeeded=True,
            content=content,
            attempts=attempts,
            warnings=[w for result in finished for w in result.warnings],
            score=min((result.score or 0 for result in finished), default=0),
        )

    def run_title(self, step: SectionStep) -> str:
        self.emit("Generating title", PROGRESS_TITLE_START, TITLE_STEP, TITLE_STEP)
        builder = self.orchestrator.prompt_builder
        validator = self.orchestrator.validator

        with pipeline_stage_logger(TITLE_STEP, request_id=self.request_id):
            result = self.controller.run(
                TITLE_STEP,
                step.view(self.context),
                self.orchestrator.policies[TITLE_STEP],
                builder.build_title,
                lambda raw, ctx, scope, partial, threshold: validator.validate_title(raw, ctx, scope),
            )

        if not result.succeeded:
            self.fail(TITLE_STEP, result)

        title = combine_titles(result.content, self.context.original_title)
        self.context.set_title(title)
        self.emit("Title ready", PROGRESS_TITLE_END, TITLE_STEP, TITLE_STEP)
        return title

    def apply_writes(self, step: SectionStep, result: RetryResult) -> None:
        """Update the shared context with what a successful step produced."""
        content = result.content
        if isinstance(content, VocabularyContent):
            entries = [
                VocabularyEntry(word=word.word.lower(), meaning=word.meaning, example_count=len(word.examples))
                for word in content.words
            ]
            added = self.context.add_vocabulary(entries)
            logger.info(f"Context vocabulary +{added}: {self.context.vocabulary_words()}")
        elif isinstance(content, GrammarContent):
            self.context.add_themes([content.focus])

    def fail(self, step_name: str, result: RetryResult) -> None:
        """Report the active step in a final progress event and abort the run."""
        last = self.events[-1].progress_percent if self.events else 0
        self.emit(f"Failed to generate {step_name}", last, "failed", step_name)

        attempts = [a for a in result.attempts if a.item == result.item]
        error = GenerationError(
            section_name=step_name,
            kind=result.error_kind,
            reasons=result.reasons or ["no reasons recorded"],
            attempts_exhausted=len(attempts),
        )
        logger.error(
            f"Lesson {self.request_id} failed at '{step_name}' ({error.kind.value}) "
            f"after {error.attempts_exhausted} attempt(s): {error.reasons}"
        )
        raise LessonGenerationError(error)
