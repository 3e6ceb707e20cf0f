"""LangGraph pipeline orchestrator.

A run moves through the states:

    pending -> running(call) -> running(extract) -> running(transform) -> success
                        \\______________\\_________________\\____________> failed

Only configured steps are part of the graph; they always execute in the
order call, extract, transform, each consuming the previous step's output.
A failing step sends the graph straight to `finalize`, so later steps never
run. The orchestrator is the only writer of the run record and persists it
at every transition.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Mapping, Sequence
from datetime import datetime
from enum import Enum
from typing import Any, TypedDict, Union

import structlog
from langgraph.graph import END, StateGraph

from ..errors import CallFailure, ConfigNotFound, GenerationExhausted, GlueError, StoreFailure
from ..models import (
    STEP_ORDER,
    BaseConfig,
    ErrorDetail,
    PipelineStep,
    Run,
    RunStatus,
    StepKind,
    StepResult,
    StepStatus,
)
from ..store import Store
from ..utils import utc_now
from .healing import SelfHealingExecutor

logger = structlog.get_logger(component="orchestrator")

RunObserver = Callable[[Run], Union[None, Awaitable[None]]]
StepInput = Union[PipelineStep, BaseConfig, Mapping[str, Any]]


class PipelineAction(str, Enum):
    """Nodes of the pipeline graph."""

    CALL = "call"
    EXTRACT = "extract"
    TRANSFORM = "transform"
    FINALIZE = "finalize"


class PipelineState(TypedDict):
    """State passed between graph nodes."""

    data: Any  # output of the last successful step, initially the payload
    failed: bool
    action: str


class _RunTrace:
    """Working copy of one run, owned by a single `run` invocation."""

    def __init__(self, run: Run):
        self.run = run
        self.current_step: StepKind | None = None
        self.current_config_id: str | None = None
        self.step_started_at: datetime | None = None

    def begin(self, step: PipelineStep) -> datetime:
        self.current_step = step.kind
        self.current_config_id = step.config_id
        self.step_started_at = utc_now()
        return self.step_started_at

    def end(self) -> None:
        self.current_step = None
        self.current_config_id = None
        self.step_started_at = None


def normalize_steps(steps: Sequence[StepInput]) -> list[PipelineStep]:
    """Turn configs, dicts and steps into validated pipeline steps.

    Steps must appear in call, extract, transform order, each kind at most once.
    """
    normalized: list[PipelineStep] = []
    for step in steps:
        if isinstance(step, PipelineStep):
            normalized.append(step)
        elif isinstance(step, BaseConfig):
            normalized.append(PipelineStep.of(step))
        else:
            normalized.append(PipelineStep.model_validate(step))

    if not normalized:
        raise ValueError("A pipeline needs at least one step")

    positions = [STEP_ORDER.index(s.kind) for s in normalized]
    if positions != sorted(set(positions)):
        order = ", ".join(s.kind.value for s in normalized)
        raise ValueError(f"Steps must run in call, extract, transform order without repeats; got {order}")
    return normalized


def _elapsed_ms(started_at: datetime | None) -> float:
    if started_at is None:
        return 0.0
    return (utc_now() - started_at).total_seconds() * 1000


def _failure_retries(error: Exception) -> int:
    if isinstance(error, GenerationExhausted):
        return error.attempts
    if isinstance(error, CallFailure):
        return error.retries
    return 0


class PipelineOrchestrator:
    """Runs call → extract → transform pipelines and records each run."""

    def __init__(
        self,
        executor: SelfHealingExecutor,
        store: Store,
        on_run_update: RunObserver | None = None,
    ):
        self.executor = executor
        self.store = store
        self.on_run_update = on_run_update

    async def _persist(self, run: Run) -> None:
        await self.store.put_run(run)
        if self.on_run_update is None:
            return
        # Observer errors never change the run's outcome.
        try:
            notified = self.on_run_update(run.model_copy(deep=True))
            if inspect.isawaitable(notified):
                await notified
        except Exception:
            logger.exception("run_observer_failed", run_id=run.id, status=run.status.value)

    async def _resolve(self, step: PipelineStep) -> BaseConfig:
        """Load a stored config, or store an inline one that has no revision yet."""
        if step.config is not None:
            config = step.config
            if config.revision == 0:
                revision = await self.store.put_config(config)
                config = config.model_copy(update={"revision": revision})
            return config

        config = await self.store.get_config(step.config_id)
        if config is None:
            raise ConfigNotFound(step.config_id)
        if config.step != step.kind:
            raise GlueError(
                f"Config '{config.id}' is a {config.kind} config and cannot run as a {step.kind.value} step",
                config_id=config.id,
            )
        return config

    def _make_step_node(self, step: PipelineStep, next_action: PipelineAction, trace: _RunTrace):
        async def step_node(state: PipelineState) -> dict:
            log = logger.bind(run_id=trace.run.id, step=step.kind.value)
            started_at = trace.begin(step)
            config: BaseConfig | None = None

            try:
                config = await self._resolve(step)
                outcome = await self.executor.execute(config, state["data"])
            except StoreFailure:
                raise
            except Exception as e:
                if not isinstance(e, GlueError):
                    log.exception("step_crashed", config_id=step.config_id)
                else:
                    log.warning("step_failed", config_id=step.config_id, error_kind=e.kind, error=str(e))
                error = ErrorDetail.from_exception(e, config_id=step.config_id)
                trace.run.steps.append(
                    StepResult(
                        step=step.kind,
                        config_id=step.config_id,
                        revision=config.revision if config is not None else None,
                        status=StepStatus.FAILED,
                        started_at=started_at,
                        duration_ms=_elapsed_ms(started_at),
                        retries=_failure_retries(e),
                        error=error,
                    )
                )
                trace.run.error = error
                trace.end()
                return {"failed": True, "action": PipelineAction.FINALIZE.value}

            trace.run.steps.append(
                StepResult(
                    step=step.kind,
                    config_id=outcome.config.id,
                    revision=outcome.config.revision,
                    status=StepStatus.SUCCESS,
                    started_at=started_at,
                    duration_ms=_elapsed_ms(started_at),
                    retries=outcome.retries,
                )
            )
            trace.end()
            log.info(
                "step_succeeded",
                config_id=outcome.config.id,
                revision=outcome.config.revision,
                repair_attempts=outcome.repair_attempts,
            )
            if next_action != PipelineAction.FINALIZE:
                await self._persist(trace.run)
            return {"data": outcome.result.data, "action": next_action.value}

        return step_node

    def _make_finalize_node(self, trace: _RunTrace):
        async def finalize_node(state: PipelineState) -> dict:
            run = trace.run
            if state["failed"]:
                run.status = RunStatus.FAILED
            else:
                run.status = RunStatus.SUCCESS
                run.result = state["data"]
            run.completed_at = utc_now()
            await self._persist(run)
            logger.info(
                "run_finalized",
                run_id=run.id,
                status=run.status.value,
                steps=len(run.steps),
            )
            return {}

        return finalize_node

    def build_graph(self, steps: list[PipelineStep], trace: _RunTrace) -> StateGraph:
        """Build the LangGraph for one run."""
        graph = StateGraph(PipelineState)
        actions = [PipelineAction(step.kind.value) for step in steps]

        for i, step in enumerate(steps):
            next_action = actions[i + 1] if i + 1 < len(steps) else PipelineAction.FINALIZE
            graph.add_node(actions[i].value, self._make_step_node(step, next_action, trace))
            routes = {PipelineAction.FINALIZE.value: PipelineAction.FINALIZE.value}
            routes[next_action.value] = next_action.value
            graph.add_conditional_edges(actions[i].value, lambda s: s["action"], routes)

        graph.add_node(PipelineAction.FINALIZE.value, self._make_finalize_node(trace))
        graph.add_edge(PipelineAction.FINALIZE.value, END)
        graph.set_entry_point(actions[0].value)
        return graph

    async def _finalize_cancelled(self, trace: _RunTrace) -> None:
        run = trace.run
        error = ErrorDetail(kind="cancelled", message="Run was cancelled", config_id=trace.current_config_id)
        if trace.current_step is not None:
            run.steps.append(
                StepResult(
                    step=trace.current_step,
                    config_id=trace.current_config_id,
                    status=StepStatus.FAILED,
                    started_at=trace.step_started_at or utc_now(),
                    duration_ms=_elapsed_ms(trace.step_started_at),
                    error=error,
                )
            )
        succeeded = any(s.status == StepStatus.SUCCESS for s in run.steps)
        run.status = RunStatus.PARTIAL if succeeded else RunStatus.FAILED
        run.error = error
        run.completed_at = utc_now()
        await self._persist(run)
        logger.warning("run_cancelled", run_id=run.id, status=run.status.value)

    async def run(
        self,
        steps: Sequence[StepInput],
        payload: Any = None,
        run_id: str | None = None,
    ) -> Run:
        """Execute a pipeline and return its finalized run record.

        Raises:
            ValueError: If the steps are empty or out of order.
            StoreFailure: If the run record cannot be persisted.
            asyncio.CancelledError: After recording the cancellation in the run.
        """
        plan = normalize_steps(steps)
        run = Run(id=run_id) if run_id else Run()
        trace = _RunTrace(run)

        run.status = RunStatus.RUNNING
        await self._persist(run)
        logger.info(
            "run_started",
            run_id=run.id,
            steps=[s.kind.value for s in plan],
        )

        app = self.build_graph(plan, trace).compile()
        initial_state: PipelineState = {
            "data": payload,
            "failed": False,
            "action": plan[0].kind.value,
        }
        try:
            await app.ainvoke(initial_state)
        except asyncio.CancelledError:
            await self._finalize_cancelled(trace)
            raise
        except StoreFailure:
            logger.error("run_store_failure", run_id=run.id)
            raise

        return run
