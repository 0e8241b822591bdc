"""
Collaboration pipeline.

Runs one request across several executors in four ordered phases:

1. Decompose - the decomposer splits the request into independent subtasks
2. Execute - every subtask runs concurrently on its target executor
3. Synthesize - the synthesizer merges the labeled outputs
4. Quality check - the reviewer may improve the synthesis

Every phase degrades instead of failing: a missing or failing decomposer
yields a fixed fallback decomposition, a missing or failing synthesizer
yields a concatenation of the successful outputs, and a missing or failing
reviewer keeps the synthesis. The run fails only when no text was produced
at all.
"""

import asyncio
import json
import re
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from arena_agents import AgentTask, ResilientExecutor, Usage, resolve_type
from arena_core import (
    ArenaError,
    CancellationToken,
    CollaborationError,
    EventDispatcher,
    EventType,
    ParseError,
    PipelineSettings,
    get_logger,
)
from arena_core.metrics import pipeline_phase_duration_seconds, pipeline_runs_total

logger = get_logger(__name__)

PIPELINE_SOURCE = "pipeline"
SECTION_SEPARATOR = "\n\n---\n\n"
EXECUTOR_NOT_FOUND = "executor not found"

_JSON_ARRAY = re.compile(r"\[[\s\S]*?\]")

DECOMPOSITION_PROMPT = """You are the task decomposer of a multi-executor system.

Split the request below into {min_subtasks}-{max_subtasks} independent subtasks, each \
handled by the executor best suited for it.

AVAILABLE EXECUTORS:
{executors}

REQUEST:
\"\"\"
{request}
\"\"\"

RULES:
- Subtasks must be executable in parallel, independently of each other
- Every subtask must be clear and specific
- Only use executors that genuinely contribute

Reply ONLY with a JSON array in this format:
[
  {{"id": 1, "agent": "<executor>", "task": "<what to do>", "purpose": "<why this executor>"}}
]

JSON array:"""

SUBTASK_PROMPT = """You are part of a multi-executor team.
Your role: {role} EXECUTOR
Your purpose: {purpose}

- Focus only on your area of expertise
- Your answer will be combined with the answers of other executors
- Be concrete and precise

TASK:
{task}

ORIGINAL REQUEST:
{request}

Your specialized answer:"""

SYNTHESIS_PROMPT = """You are the synthesizer of a multi-executor system.

Combine the results of {count} specialized executors into one complete answer.

ORIGINAL REQUEST:
\"\"\"
{request}
\"\"\"

EXECUTOR RESULTS:
{results}

Take the best parts of each result, remove redundancy and contradictions, and \
answer the original request fully and clearly.

Your synthesis:"""

QUALITY_PROMPT = """You are the quality checker of a multi-executor system.

Review and improve the answer below, written jointly by several executors.

ORIGINAL REQUEST:
\"\"\"
{request}
\"\"\"

ANSWER TO REVIEW:
\"\"\"
{answer}
\"\"\"

Check completeness, correctness, clarity, structure and relevance. Fix any \
problems, add missing information, remove superfluous parts.

Your final answer:"""


class Subtask(BaseModel):
    """One unit of a decomposed request."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    target_executor: str = Field(alias="agent", min_length=1)
    instructions: str = Field(alias="task", min_length=1)
    rationale: str = Field(default="", alias="purpose")
    original_request: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("target_executor", mode="before")
    @classmethod
    def _normalize_target(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


@dataclass
class SubtaskOutcome:
    subtask: Subtask
    executor_id: str
    result: str | None = None
    error: str | None = None
    skipped: bool = False
    provider: str | None = None
    latency_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error is None and bool(self.result)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.subtask.id,
            "executor": self.executor_id,
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "error": self.error,
            "provider": self.provider,
            "latency_ms": round(self.latency_ms, 2),
        }


@dataclass
class CollaborationResult:
    run_id: str
    result: str
    phase_summary: dict[str, Any] = field(default_factory=dict)
    usage: Usage = field(default_factory=Usage)
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "result": self.result,
            "phase_summary": self.phase_summary,
            "usage": self.usage.to_dict(),
            "duration_ms": round(self.duration_ms, 2),
        }


def fallback_subtasks(request: str) -> list[Subtask]:
    """Fixed decomposition used when the decomposer cannot help."""
    return [
        Subtask(
            id="1",
            target_executor="research",
            instructions=f"Gather background facts about: {request}",
            rationale="Fact gathering",
            original_request=request,
        ),
        Subtask(
            id="2",
            target_executor="creative",
            instructions=f"Write an engaging answer to: {request}",
            rationale="Phrasing",
            original_request=request,
        ),
        Subtask(
            id="3",
            target_executor="analysis",
            instructions=f"Analyze and critically evaluate the request: {request}",
            rationale="Critical evaluation",
            original_request=request,
        ),
    ]


def _load_array(text: str) -> Any:
    start, end = text.find("["), text.rfind("]")
    if start != -1 and end > start:
        try:
            return json.loads(text[start:end + 1])
        except json.JSONDecodeError:
            pass

    match = _JSON_ARRAY.search(text)
    if match is None:
        raise ParseError("No JSON array in decomposition output")
    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ParseError("Malformed JSON in decomposition output", cause=e) from e


def parse_subtasks(text: str, request: str) -> list[Subtask]:
    """
    Extract subtasks from decomposer output.

    Entries that do not validate are dropped.

    Raises:
        ParseError: If no JSON array can be read from ``text``
    """
    data = _load_array(text)
    if not isinstance(data, list):
        raise ParseError("Decomposition output is not a JSON array")

    subtasks: list[Subtask] = []
    for entry in data:
        if not isinstance(entry, dict):
            continue
        try:
            subtasks.append(Subtask.model_validate({**entry, "original_request": request}))
        except ValidationError as e:
            logger.debug("Dropping invalid subtask", entry=str(entry)[:200], error=str(e)[:200])
    return subtasks


class CollaborationPipeline:
    """Decompose, execute in parallel, synthesize, quality check."""

    def __init__(
        self,
        executors: Mapping[str, ResilientExecutor],
        settings: PipelineSettings | None = None,
        events: EventDispatcher | None = None,
    ) -> None:
        self._executors = executors
        self.settings = settings or PipelineSettings()
        self.events = events or EventDispatcher()

    def find_executor(self, name: str | None) -> ResilientExecutor | None:
        """Executor registered under ``name``, or the one whose type ``name`` aliases."""
        if not name:
            return None
        executor = self._executors.get(name)
        if executor is not None:
            return executor
        executor_type = resolve_type(name)
        if executor_type is None:
            return None
        for candidate in self._executors.values():
            if candidate.type == executor_type:
                return candidate
        return None

    async def execute(
        self,
        task: AgentTask,
        token: CancellationToken | None = None,
    ) -> CollaborationResult:
        """
        Run the four phases for ``task``.

        Raises:
            CollaborationError: If neither a subtask nor the synthesis produced text
            ExecutionCancelledError: If ``token`` was cancelled
        """
        token = token or CancellationToken()
        run_id = str(uuid.uuid4())
        started = time.perf_counter()
        usage = Usage()
        request = task.content

        logger.info("Collaboration started", run_id=run_id, task_id=task.id)

        # Phase 1: decompose
        with self._phase(run_id, "decompose") as phase:
            subtasks, used_fallback, decompose_usage = await self._decompose(task, token)
            usage += decompose_usage
            phase.update(count=len(subtasks), used_fallback=used_fallback)
        token.raise_if_cancelled()

        # Phase 2: parallel execution
        with self._phase(run_id, "execute") as phase:
            outcomes, execute_usage = await self._execute_subtasks(task, subtasks, token)
            usage += execute_usage
            phase.update(
                succeeded=sum(1 for o in outcomes if o.succeeded),
                failed=sum(1 for o in outcomes if not o.succeeded),
            )
        token.raise_if_cancelled()

        # Phase 3: synthesize
        with self._phase(run_id, "synthesize") as phase:
            result, synthesized, synth_usage = await self._synthesize(task, outcomes, token)
            usage += synth_usage
            phase.update(synthesized=synthesized)
        token.raise_if_cancelled()

        if not result:
            pipeline_runs_total.labels(status="failed").inc()
            logger.error("Collaboration produced no output", run_id=run_id, task_id=task.id)
            raise CollaborationError(
                "No subtask or synthesis produced any output",
                context={"run_id": run_id, "subtasks": len(subtasks)},
            )

        # Phase 4: quality check
        quality_checked = False
        if self.settings.quality_check:
            with self._phase(run_id, "quality_check") as phase:
                reviewed, review_usage = await self._quality_check(request, result, token)
                usage += review_usage
                if reviewed:
                    result = reviewed
                    quality_checked = True
                phase.update(applied=quality_checked)
            token.raise_if_cancelled()

        duration_ms = (time.perf_counter() - started) * 1000
        summary = {
            "decomposition_count": len(subtasks),
            "used_fallback_decomposition": used_fallback,
            "executors_used": sorted({o.executor_id for o in outcomes if o.succeeded}),
            "failed_subtasks": [o.subtask.id for o in outcomes if not o.succeeded and not o.skipped],
            "skipped_subtasks": [o.subtask.id for o in outcomes if o.skipped],
            "synthesized": synthesized,
            "quality_checked": quality_checked,
            "subtasks": [o.to_dict() for o in outcomes],
        }

        pipeline_runs_total.labels(status="success").inc()
        logger.info(
            "Collaboration completed",
            run_id=run_id,
            task_id=task.id,
            subtasks=len(subtasks),
            failed=len(summary["failed_subtasks"]),
            skipped=len(summary["skipped_subtasks"]),
            duration_ms=round(duration_ms, 1),
        )
        return CollaborationResult(
            run_id=run_id,
            result=result,
            phase_summary=summary,
            usage=usage,
            duration_ms=duration_ms,
        )

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    async def _decompose(
        self,
        task: AgentTask,
        token: CancellationToken,
    ) -> tuple[list[Subtask], bool, Usage]:
        request = task.content
        decomposer = self.find_executor(self.settings.decomposer)
        if decomposer is None:
            logger.warning("Decomposer not available, using fallback subtasks", decomposer=self.settings.decomposer)
            return fallback_subtasks(request), True, Usage()

        prompt = DECOMPOSITION_PROMPT.format(
            min_subtasks=self.settings.min_subtasks,
            max_subtasks=self.settings.max_subtasks,
            executors="\n".join(
                f"- {executor_id}: {executor.role.description}"
                for executor_id, executor in self._executors.items()
            ),
            request=request,
        )
        try:
            outcome = await decomposer.execute(
                AgentTask(content=prompt, type=decomposer.type.value),
                token=token.child(),
            )
        except ArenaError as e:
            logger.warning("Decomposition failed, using fallback subtasks", error_code=e.error_code, error=e.message[:200])
            return fallback_subtasks(request), True, Usage()

        try:
            subtasks = parse_subtasks(outcome.result, request)
        except ParseError as e:
            logger.warning("Decomposition unparseable, using fallback subtasks", error=e.message)
            return fallback_subtasks(request), True, outcome.usage

        if len(subtasks) < self.settings.min_subtasks:
            logger.warning(
                "Too few subtasks, using fallback subtasks",
                count=len(subtasks),
                min_subtasks=self.settings.min_subtasks,
            )
            return fallback_subtasks(request), True, outcome.usage

        return subtasks[:self.settings.max_subtasks], False, outcome.usage

    async def _execute_subtasks(
        self,
        task: AgentTask,
        subtasks: list[Subtask],
        token: CancellationToken,
    ) -> tuple[list[SubtaskOutcome], Usage]:
        results = await asyncio.gather(
            *(self._run_subtask(task, subtask, token) for subtask in subtasks)
        )
        usage = Usage()
        for _, subtask_usage in results:
            usage += subtask_usage
        return [outcome for outcome, _ in results], usage

    async def _run_subtask(
        self,
        task: AgentTask,
        subtask: Subtask,
        token: CancellationToken,
    ) -> tuple[SubtaskOutcome, Usage]:
        executor = self.find_executor(subtask.target_executor)
        if executor is None:
            logger.warning("Subtask target not found, skipping", subtask=subtask.id, target=subtask.target_executor)
            return SubtaskOutcome(
                subtask=subtask,
                executor_id=subtask.target_executor,
                error=EXECUTOR_NOT_FOUND,
                skipped=True,
            ), Usage()

        prompt = SUBTASK_PROMPT.format(
            role=executor.id.upper(),
            purpose=subtask.rationale or subtask.instructions,
            task=subtask.instructions,
            request=subtask.original_request or task.content,
        )
        try:
            outcome = await executor.execute(
                AgentTask(
                    content=prompt,
                    type=executor.type.value,
                    metadata={"parent_task_id": task.id, "subtask_id": subtask.id},
                ),
                token=token.child(),
            )
        except ArenaError as e:
            logger.warning(
                "Subtask failed",
                subtask=subtask.id,
                executor=executor.id,
                error_code=e.error_code,
                error=e.message[:200],
            )
            return SubtaskOutcome(subtask=subtask, executor_id=executor.id, error=e.message), Usage()

        return SubtaskOutcome(
            subtask=subtask,
            executor_id=executor.id,
            result=outcome.result,
            provider=outcome.provider,
            latency_ms=outcome.latency_ms,
        ), outcome.usage

    async def _synthesize(
        self,
        task: AgentTask,
        outcomes: list[SubtaskOutcome],
        token: CancellationToken,
    ) -> tuple[str, bool, Usage]:
        successful = [o for o in outcomes if o.succeeded]
        synthesizer = self.find_executor(self.settings.synthesizer)
        if synthesizer is not None:
            prompt = SYNTHESIS_PROMPT.format(
                count=len(successful),
                request=task.content,
                results="\n---\n".join(self._label(o) for o in outcomes),
            )
            try:
                outcome = await synthesizer.execute(
                    AgentTask(content=prompt, type=synthesizer.type.value),
                    token=token.child(),
                )
            except ArenaError as e:
                logger.warning("Synthesis failed, concatenating results", error_code=e.error_code, error=e.message[:200])
            else:
                if outcome.result.strip():
                    return outcome.result, True, outcome.usage
                logger.warning("Synthesis was empty, concatenating results")
                return self._concatenate(successful), False, outcome.usage

        return self._concatenate(successful), False, Usage()

    async def _quality_check(
        self,
        request: str,
        answer: str,
        token: CancellationToken,
    ) -> tuple[str | None, Usage]:
        reviewer = self.find_executor(self.settings.reviewer)
        if reviewer is None:
            return None, Usage()
        try:
            outcome = await reviewer.execute(
                AgentTask(
                    content=QUALITY_PROMPT.format(request=request, answer=answer),
                    type=reviewer.type.value,
                ),
                token=token.child(),
            )
        except ArenaError as e:
            logger.warning("Quality check failed, keeping synthesis", error_code=e.error_code, error=e.message[:200])
            return None, Usage()
        if not outcome.result.strip():
            return None, outcome.usage
        return outcome.result, outcome.usage

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _label(outcome: SubtaskOutcome) -> str:
        name = outcome.executor_id.upper()
        if not outcome.succeeded:
            return f"[{name} - ERROR]: {outcome.error or 'empty output'}"
        return (
            f"=== {name} ===\n"
            f"Task: {outcome.subtask.instructions}\n"
            f"Purpose: {outcome.subtask.rationale}\n"
            f"Result:\n{outcome.result}"
        )

    @staticmethod
    def _concatenate(outcomes: list[SubtaskOutcome]) -> str:
        return SECTION_SEPARATOR.join(
            f"=== {o.executor_id.upper()} ===\n{o.result}" for o in outcomes
        )

    def _phase(self, run_id: str, name: str) -> "_PhaseTimer":
        return _PhaseTimer(self, run_id, name)


class _PhaseTimer:
    """Times one phase and reports it as a metric and a lifecycle event."""

    def __init__(self, pipeline: CollaborationPipeline, run_id: str, name: str) -> None:
        self._pipeline = pipeline
        self._run_id = run_id
        self._name = name
        self._details: dict[str, Any] = {}
        self._started = 0.0

    def update(self, **details: Any) -> None:
        self._details.update(details)

    def __enter__(self) -> "_PhaseTimer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        elapsed = time.perf_counter() - self._started
        pipeline_phase_duration_seconds.labels(phase=self._name).observe(elapsed)
        self._pipeline.events.emit(
            EventType.PIPELINE_PHASE,
            source=PIPELINE_SOURCE,
            run_id=self._run_id,
            phase=self._name,
            duration_ms=round(elapsed * 1000, 2),
            succeeded=exc_type is None,
            **self._details,
        )
        logger.debug("Pipeline phase finished", run_id=self._run_id, phase=self._name, **self._details)
