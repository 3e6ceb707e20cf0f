"""Self-healing execution: run a config, repair it with the oracle when it fails.

`SelfHealingExecutor` exposes one method per config kind and dispatches on
`config.step` in `execute`. A config that is incomplete (nothing generated yet)
or fails with a repairable error is handed to the repair loop. The repaired
config is stored as a new revision before its result is returned.
"""

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar, Union

import httpx
import structlog

from ..errors import CallFailure, ValidationFailure
from ..models import (
    ApiConfig,
    BaseConfig,
    CallResult,
    ExtractConfig,
    ExtractResult,
    StepKind,
    TransformConfig,
    TransformResult,
)
from ..store import Store
from .call import CallExecutor, send_request
from .extract import ExtractExecutor
from .generator import (
    apply_api_artifact,
    apply_artifact,
    build_api_task,
    build_extract_task,
    build_transform_task,
)
from .oracle import GenerationOracle
from .repair import TemperatureRamp, repair
from .transform import TransformExecutor

logger = structlog.get_logger()

StepResultData = Union[CallResult, ExtractResult, TransformResult]
T = TypeVar("T")

MAX_DOCUMENTATION_CHARS = 8000


@dataclass(frozen=True)
class StepOutcome:
    """Result of one self-healing step.

    `repair_attempts` counts oracle attempts; 0 means the config ran as given.
    `timeout_retries` counts outbound requests re-issued after a timeout.
    """

    result: StepResultData
    config: BaseConfig
    repair_attempts: int = 0
    timeout_retries: int = 0

    @property
    def retries(self) -> int:
        return self.repair_attempts + self.timeout_retries


class TimeoutRetries:
    """Re-issues outbound requests that timed out, up to `max_retries` times each.

    The count is shared by every request of one step so it ends up in the
    step's trace.
    """

    def __init__(self, max_retries: int, config_id: str):
        self.max_retries = max_retries
        self.config_id = config_id
        self.count = 0

    async def __call__(self, send: Callable[[], Awaitable[T]]) -> T:
        retries = 0
        while True:
            try:
                return await send()
            except CallFailure as e:
                if e.failure_kind != CallFailure.TIMEOUT or retries >= self.max_retries:
                    e.retries = self.count
                    raise
                retries += 1
                self.count += 1
                logger.warning(
                    "request_timeout_retry",
                    component="healing",
                    config_id=self.config_id,
                    retry=retries,
                    max_retries=self.max_retries,
                    url=e.url,
                )


class SelfHealingExecutor:
    """Executes configs of every kind, repairing them within a retry budget."""

    def __init__(
        self,
        store: Store,
        oracle: GenerationOracle,
        client: httpx.AsyncClient,
        *,
        max_retries: int = 3,
        ramp: TemperatureRamp | None = None,
        http_timeout: float = 30.0,
        credentials: Mapping[str, Any] | None = None,
    ):
        self.store = store
        self.oracle = oracle
        self.client = client
        self.max_retries = max_retries
        self.ramp = ramp or TemperatureRamp()
        self.http_timeout = http_timeout
        self.credentials = dict(credentials or {})
        self.call_executor = CallExecutor(client, timeout=http_timeout)
        self.extract_executor = ExtractExecutor(client, timeout=http_timeout)
        self.transform_executor = TransformExecutor()
        self._dispatch = {
            StepKind.CALL: self.execute_call,
            StepKind.EXTRACT: self.execute_extract,
            StepKind.TRANSFORM: self.execute_transform,
        }

    async def execute(self, config: BaseConfig, payload: Any = None) -> StepOutcome:
        """Run any config kind."""
        return await self._dispatch[config.step](config, payload)

    async def _commit(self, config: BaseConfig) -> BaseConfig:
        revision = await self.store.put_config(config)
        logger.info("config_revised", component="healing", config_id=config.id, revision=revision)
        return config.model_copy(update={"revision": revision})

    async def _fetch_documentation(self, config: ApiConfig) -> str | None:
        if not config.documentation_url:
            return None
        try:
            response = await send_request(
                self.client,
                "GET",
                config.documentation_url,
                timeout=self.http_timeout,
                config_id=config.id,
            )
        except CallFailure as e:
            logger.warning(
                "documentation_fetch_failed",
                component="healing",
                config_id=config.id,
                url=config.documentation_url,
                error=str(e),
            )
            return None
        return response.text[:MAX_DOCUMENTATION_CHARS]

    async def execute_call(
        self,
        config: ApiConfig,
        payload: Any = None,
        credentials: Mapping[str, Any] | None = None,
    ) -> StepOutcome:
        """Execute an API config, generating or repairing it when needed.

        Timeouts are re-issued with the same config up to `max_retries` times.

        Raises:
            CallFailure: For network and non-template failures, and for
                timeouts that outlast the retry budget.
            GenerationExhausted: When repair runs out of attempts.
        """
        creds = {**self.credentials, **(credentials or {})}
        timeouts = TimeoutRetries(self.max_retries, config.id)
        error: CallFailure | ValidationFailure | None = None

        if not config.needs_generation:
            try:
                result = await timeouts(lambda: self.call_executor.execute(config, payload, creds))
                return StepOutcome(result=result, config=config, timeout_retries=timeouts.count)
            except (CallFailure, ValidationFailure) as e:
                if not e.repairable:
                    raise
                logger.info("call_needs_repair", component="healing", config_id=config.id, error=str(e))
                error = e

        async def check(artifact: dict[str, Any]) -> tuple[ApiConfig, CallResult]:
            candidate = apply_api_artifact(config, artifact)
            return candidate, await timeouts(lambda: self.call_executor.execute(candidate, payload, creds))

        variables = set(creds)
        if isinstance(payload, Mapping):
            variables.update(str(k) for k in payload)

        task = build_api_task(
            config,
            variables,
            check,
            error=error,
            documentation=await self._fetch_documentation(config),
            subject=payload,
        )
        outcome = await repair(task, self.max_retries, self.oracle, self.ramp)
        candidate, result = outcome.artifact
        stored = await self._commit(candidate)
        return StepOutcome(
            result=result.model_copy(update={"revision": stored.revision}),
            config=stored,
            repair_attempts=outcome.attempts,
            timeout_retries=timeouts.count,
        )

    async def execute_extract(self, config: ExtractConfig, payload: Any = None) -> StepOutcome:
        """Execute an extract config, generating or repairing its selector when needed.

        An external source that times out is fetched again up to `max_retries` times.

        Raises:
            CallFailure: When an external source cannot be fetched.
            GenerationExhausted: When repair runs out of attempts.
        """
        error: ValidationFailure | None = None
        timeouts = TimeoutRetries(self.max_retries, config.id)
        source = await timeouts(lambda: self.extract_executor.load_source(config, payload))

        if not config.needs_generation:
            try:
                return StepOutcome(
                    result=self.extract_executor.apply(config, source),
                    config=config,
                    timeout_retries=timeouts.count,
                )
            except ValidationFailure as e:
                logger.info("extract_needs_repair", component="healing", config_id=config.id, error=str(e))
                error = e

        async def check(artifact: dict[str, Any]) -> tuple[ExtractConfig, ExtractResult]:
            candidate = apply_artifact(config, data_path=artifact["dataPath"])
            return candidate, self.extract_executor.apply(candidate, source)

        task = build_extract_task(config, source, check, error=error)
        outcome = await repair(task, self.max_retries, self.oracle, self.ramp)
        candidate, result = outcome.artifact
        stored = await self._commit(candidate)
        return StepOutcome(
            result=result.model_copy(update={"revision": stored.revision}),
            config=stored,
            repair_attempts=outcome.attempts,
            timeout_retries=timeouts.count,
        )

    async def execute_transform(self, config: TransformConfig, payload: Any = None) -> StepOutcome:
        """Execute a transform config, generating or repairing its mapping when needed.

        Raises:
            GenerationExhausted: When repair runs out of attempts.
        """
        error: ValidationFailure | None = None

        if not config.needs_generation:
            try:
                result = await self.transform_executor.execute(config, payload)
                return StepOutcome(result=result, config=config)
            except ValidationFailure as e:
                logger.info("transform_needs_repair", component="healing", config_id=config.id, error=str(e))
                error = e

        async def check(artifact: dict[str, Any]) -> tuple[TransformConfig, TransformResult]:
            candidate = apply_artifact(config, mapping=artifact["mapping"])
            return candidate, await self.transform_executor.execute(candidate, payload)

        task = build_transform_task(config, payload, check, error=error)
        outcome = await repair(task, self.max_retries, self.oracle, self.ramp)
        candidate, result = outcome.artifact
        stored = await self._commit(candidate)
        return StepOutcome(
            result=result.model_copy(update={"revision": stored.revision}),
            config=stored,
            repair_attempts=outcome.attempts,
        )
