"""Run orchestration: selection, preconditions, sequential or pooled execution."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, model_validator

from suitekit.config import settings
from suitekit.errors import NoEnabledTestCasesError, NoMatchingTestCasesError, TargetNotFoundError
from suitekit.logging import get_logger
from suitekit.rounding import round_half_up
from suitekit.runners.executor import ExecutionContext, execute_test_case, resolve_provider_model
from suitekit.scoring.judge import DEFAULT_JUDGE_PROVIDER
from suitekit.types import (
    Credentials,
    EndpointTarget,
    JudgeConfig,
    ModelOverride,
    PromptTarget,
    RunStatus,
    Target,
    TargetType,
    TestCase,
    TestResult,
    TestRun,
    TestRunSummary,
    ValidationRule,
)

logger = get_logger(__name__)

MAX_ITERATIONS = 100
MAX_NOTE_LENGTH = 500


class RunRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    target_type: TargetType
    target: Target
    target_version: Optional[int] = None
    test_cases: list[TestCase] = Field(default_factory=list)
    validation_rules: list[ValidationRule] = Field(default_factory=list)
    judge_config: JudgeConfig = Field(default_factory=JudgeConfig)
    credentials: Credentials = Field(default_factory=Credentials)
    model_override: Optional[ModelOverride] = None
    note: Optional[str] = None
    iterations: Optional[int] = None
    tags: list[str] = Field(default_factory=list)
    test_case_ids: list[str] = Field(default_factory=list)
    parallel_execution: bool = False
    max_concurrency: int = Field(default_factory=lambda: settings.max_concurrency, ge=1)

    @model_validator(mode="before")
    @classmethod
    def _target_matches_type(cls, data: Any) -> Any:
        # Both target models accept loose dicts, so pick by target_type.
        if isinstance(data, dict) and isinstance(data.get("target"), dict):
            model = EndpointTarget if data.get("target_type") == "endpoint" else PromptTarget
            data = {**data, "target": model.model_validate(data["target"])}
        return data

    def context(self, client: Optional[httpx.AsyncClient] = None) -> ExecutionContext:
        return ExecutionContext(
            target_type=self.target_type,
            target=self.target,
            target_version=self.target_version,
            validation_rules=self.validation_rules,
            judge_config=self.judge_config,
            credentials=self.credentials,
            model_override=self.model_override,
            http_client=client,
        )


class WorkUnit(BaseModel):
    test_case: TestCase
    iteration: int


class RunObserver:
    """Execution hooks. Subclass and override what you need."""

    async def on_progress(
        self, current: int, total: int, iteration: int, test_case: TestCase
    ) -> None:
        pass

    async def on_result(self, result: TestResult) -> None:
        pass

    async def on_error(self, message: str, test_case_id: Optional[str]) -> None:
        pass


class PreparedRun(BaseModel):
    run: TestRun
    units: list[WorkUnit]
    iterations: int


# ---------------------------------------------------------------------------
# Request normalisation
# ---------------------------------------------------------------------------

def clamp_iterations(value: Any) -> int:
    try:
        count = int(value)
    except (TypeError, ValueError):
        return 1
    return max(1, min(MAX_ITERATIONS, count))


def normalize_note(note: Optional[str]) -> Optional[str]:
    if not note:
        return None
    trimmed = note.strip()[:MAX_NOTE_LENGTH]
    return trimmed or None


def select_test_cases(
    cases: list[TestCase],
    test_case_ids: Optional[list[str]] = None,
    tags: Optional[list[str]] = None,
) -> list[TestCase]:
    """Explicit IDs win over tags; tags OR together; disabled cases are dropped last."""
    if not cases:
        raise NoMatchingTestCasesError("Test suite has no test cases")

    selected = cases
    if test_case_ids:
        wanted = set(test_case_ids)
        selected = [c for c in cases if c.id in wanted]
        if not selected:
            raise NoMatchingTestCasesError("No test cases match the selected IDs")
    elif tags:
        wanted = set(tags)
        selected = [c for c in cases if wanted.intersection(c.tags)]
        if not selected:
            raise NoMatchingTestCasesError("No test cases match the selected tags")

    enabled = [c for c in selected if c.enabled]
    if not enabled:
        raise NoEnabledTestCasesError("No enabled test cases to run")
    return enabled


def check_preconditions(request: RunRequest) -> None:
    """Raise a PreconditionError if the run cannot start. Nothing executes first."""
    if request.target_type == "prompt":
        target = request.target
        if not isinstance(target, PromptTarget):
            raise TypeError("prompt runs need a PromptTarget")
        if target.resolve_version(request.target_version) is None:
            raise TargetNotFoundError("Prompt has no versions to run")
        provider, _ = resolve_provider_model(target, request.target_version, request.model_override)
        request.credentials.require(provider)

    if request.judge_config.enabled:
        judge_provider = request.judge_config.provider or DEFAULT_JUDGE_PROVIDER
        request.credentials.require(judge_provider, "LLM judge")


def build_units(cases: list[TestCase], iterations: int) -> list[WorkUnit]:
    """Iteration-major: every case once, then every case again."""
    return [
        WorkUnit(test_case=case, iteration=i)
        for i in range(1, iterations + 1)
        for case in cases
    ]


# ---------------------------------------------------------------------------
# Accumulation
# ---------------------------------------------------------------------------

class RunAccumulator:
    """Single writer for a run's results and counters."""

    def __init__(self, run: TestRun) -> None:
        self.run = run
        self.passed = 0
        self.failed = 0

    def add(self, result: TestResult) -> None:
        self.run.results.append(result)
        if result.passed:
            self.passed += 1
        else:
            self.failed += 1

    @property
    def count(self) -> int:
        return len(self.run.results)

    def summary(self) -> TestRunSummary:
        results = self.run.results
        total = len(results)
        avg_time = round_half_up(sum(r.response_time_ms for r in results) / total) if total else 0
        scores = [r.judge_score for r in results if r.judge_score is not None]
        avg_score = round_half_up(sum(scores) / len(scores), 2) if scores else None
        return TestRunSummary(
            total=total,
            passed=self.passed,
            failed=self.failed,
            avg_score=avg_score,
            avg_response_time=int(avg_time),
        )

    def finish(self, cancelled: bool) -> TestRun:
        self.run.summary = self.summary()
        if not cancelled:
            self.run.status = RunStatus.completed
        elif self.run.results:
            self.run.status = RunStatus.incomplete
        else:
            self.run.status = RunStatus.failed
        return self.run


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

async def _notify(hook, *args) -> None:
    try:
        await hook(*args)
    except Exception as exc:
        logger.warning(f"Run observer hook {hook.__name__} failed: {exc}")


async def _run_unit(
    ctx: ExecutionContext,
    unit: WorkUnit,
    stamp_iteration: bool,
    accumulator: RunAccumulator,
    observer: RunObserver,
) -> None:
    result = await execute_test_case(ctx, unit.test_case)
    if stamp_iteration:
        result.iteration = unit.iteration
    accumulator.add(result)
    await _notify(observer.on_result, result)
    if result.error:
        await _notify(observer.on_error, result.error, result.test_case_id)


async def _run_sequential(
    ctx: ExecutionContext,
    prepared: PreparedRun,
    accumulator: RunAccumulator,
    observer: RunObserver,
    cancel_event: asyncio.Event,
) -> bool:
    total = len(prepared.units)
    stamp = prepared.iterations > 1
    for index, unit in enumerate(prepared.units, start=1):
        if cancel_event.is_set():
            return True
        await _notify(observer.on_progress, index, total, unit.iteration, unit.test_case)
        await _run_unit(ctx, unit, stamp, accumulator, observer)
    return False


async def _run_parallel(
    ctx: ExecutionContext,
    prepared: PreparedRun,
    accumulator: RunAccumulator,
    observer: RunObserver,
    cancel_event: asyncio.Event,
    max_concurrency: int,
) -> bool:
    total = len(prepared.units)
    stamp = prepared.iterations > 1
    queue: asyncio.Queue[WorkUnit] = asyncio.Queue()
    for unit in prepared.units:
        queue.put_nowait(unit)
    started = 0

    async def worker() -> None:
        nonlocal started
        while not cancel_event.is_set():
            try:
                unit = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            started += 1
            await _notify(observer.on_progress, started, total, unit.iteration, unit.test_case)
            await _run_unit(ctx, unit, stamp, accumulator, observer)

    pool = min(max_concurrency, total)
    await asyncio.gather(*(worker() for _ in range(pool)))
    return accumulator.count < total


def prepare_run(request: RunRequest) -> PreparedRun:
    """Validate the request and lay out work units. Raises PreconditionError."""
    cases = select_test_cases(request.test_cases, request.test_case_ids, request.tags)
    check_preconditions(request)
    iterations = clamp_iterations(request.iterations if request.iterations is not None else 1)
    run = TestRun(
        note=normalize_note(request.note),
        model_override=request.model_override,
        iterations=iterations if iterations > 1 else None,
    )
    return PreparedRun(run=run, units=build_units(cases, iterations), iterations=iterations)


async def execute_prepared(
    request: RunRequest,
    prepared: PreparedRun,
    cancel_event: Optional[asyncio.Event] = None,
    observer: Optional[RunObserver] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> TestRun:
    cancel_event = cancel_event or asyncio.Event()
    observer = observer or RunObserver()
    accumulator = RunAccumulator(prepared.run)
    ctx = request.context(client)
    mode = "parallel" if request.parallel_execution else "sequential"

    logger.info(
        f"Run {prepared.run.id}: target={request.target_type}, units={len(prepared.units)}, "
        f"iterations={prepared.iterations}, mode={mode}"
    )

    if request.parallel_execution:
        cancelled = await _run_parallel(
            ctx, prepared, accumulator, observer, cancel_event, request.max_concurrency
        )
    else:
        cancelled = await _run_sequential(ctx, prepared, accumulator, observer, cancel_event)

    run = accumulator.finish(cancelled)
    logger.info(
        f"Run {run.id} {run.status}: {run.summary.passed}/{run.summary.total} passed, "
        f"avg {run.summary.avg_response_time}ms"
    )
    return run


async def execute_run(
    request: RunRequest,
    cancel_event: Optional[asyncio.Event] = None,
    observer: Optional[RunObserver] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> TestRun:
    """Execute a full run and return the finished TestRun.

    Precondition errors propagate before anything executes. Per-unit failures
    are recorded in the results. Setting ``cancel_event`` stops dispatch of new
    units; in-flight units finish and are kept. ``client`` is shared by every
    adapter call of the run.
    """
    prepared = prepare_run(request)
    return await execute_prepared(request, prepared, cancel_event, observer, client)
