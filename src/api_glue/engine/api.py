"""Public engine API.

`Engine` wires the store, the generation oracle and a shared HTTP client
into the self-healing executors and the pipeline orchestrator.

## Quick Start

```python
from api_glue import Engine, TransformConfig

async with Engine.from_env() as engine:
    run = await engine.run_pipeline(
        [TransformConfig(instruction="Convert temp_f to Celsius as tempC")],
        {"temp_f": 72},
    )
    print(run.status, run.result)
```
"""

from collections.abc import Mapping, Sequence
from typing import Any

import httpx
import structlog

from ..models import (
    ApiConfig,
    BaseConfig,
    CallResult,
    ExtractConfig,
    ExtractResult,
    Run,
    TransformConfig,
    TransformResult,
)
from ..settings import Settings
from ..store import Store, create_store
from .generator import generate_schema as _generate_schema
from .healing import SelfHealingExecutor
from .oracle import GenerationOracle, OpenAIOracle
from .pipeline import PipelineOrchestrator, RunObserver, StepInput
from .repair import TemperatureRamp

logger = structlog.get_logger()


class Engine:
    """Entry point for executing configs and pipelines."""

    def __init__(
        self,
        store: Store,
        oracle: GenerationOracle,
        client: httpx.AsyncClient | None = None,
        *,
        settings: Settings | None = None,
        schema_oracle: GenerationOracle | None = None,
        credentials: Mapping[str, Any] | None = None,
        on_run_update: RunObserver | None = None,
    ):
        self.settings = settings or Settings()
        self.store = store
        self.oracle = oracle
        self.schema_oracle = schema_oracle or oracle
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient()
        self.ramp = TemperatureRamp(
            step=self.settings.temperature_step,
            cap=self.settings.temperature_cap,
        )
        self.executor = SelfHealingExecutor(
            store,
            oracle,
            self.client,
            max_retries=self.settings.max_repair_retries,
            ramp=self.ramp,
            http_timeout=self.settings.http_timeout_seconds,
            credentials=credentials,
        )
        self.orchestrator = PipelineOrchestrator(self.executor, store, on_run_update=on_run_update)

    @classmethod
    def from_env(cls, **kwargs: Any) -> "Engine":
        """Build an engine from environment settings (OpenAI oracle, configured store)."""
        settings = Settings.from_env()
        oracle = OpenAIOracle.from_settings(settings)
        schema_oracle = oracle
        if settings.schema_generation_model != settings.llm_model:
            schema_oracle = OpenAIOracle.from_settings(settings, model=settings.schema_generation_model)
        logger.info(
            "engine_configured",
            model=settings.llm_model,
            datastore=settings.datastore_type,
            max_repair_retries=settings.max_repair_retries,
        )
        return cls(
            create_store(settings),
            oracle,
            settings=settings,
            schema_oracle=schema_oracle,
            **kwargs,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "Engine":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def execute_call(
        self,
        config: ApiConfig,
        payload: Any = None,
        credentials: Mapping[str, Any] | None = None,
    ) -> CallResult:
        """Run an API config, generating or repairing it when needed."""
        outcome = await self.executor.execute_call(config, payload, credentials)
        return outcome.result

    async def execute_extract(self, config: ExtractConfig, payload: Any = None) -> ExtractResult:
        """Run an extract config, generating or repairing its selector when needed."""
        outcome = await self.executor.execute_extract(config, payload)
        return outcome.result

    async def execute_transform(self, config: TransformConfig, payload: Any = None) -> TransformResult:
        """Run a transform config, generating or repairing its mapping when needed."""
        outcome = await self.executor.execute_transform(config, payload)
        return outcome.result

    async def run_pipeline(
        self,
        steps: Sequence[StepInput],
        payload: Any = None,
        run_id: str | None = None,
    ) -> Run:
        """Run up to three steps (call, extract, transform) and return the run record."""
        return await self.orchestrator.run(steps, payload, run_id=run_id)

    async def generate_schema(self, instruction: str, sample_data: Any = None) -> dict[str, Any]:
        """Generate a JSON schema for the data described by `instruction`."""
        return await _generate_schema(
            instruction,
            sample_data,
            self.schema_oracle,
            max_retries=self.settings.max_repair_retries,
            ramp=self.ramp,
        )

    # Store passthroughs

    async def upsert_config(self, config: BaseConfig) -> BaseConfig:
        revision = await self.store.put_config(config)
        return config.model_copy(update={"revision": revision})

    async def get_config(self, config_id: str) -> BaseConfig | None:
        return await self.store.get_config(config_id)

    async def list_configs(self, kind: str | None = None) -> list[BaseConfig]:
        return await self.store.list_configs(kind)

    async def delete_config(self, config_id: str) -> bool:
        return await self.store.delete_config(config_id)

    async def get_run(self, run_id: str) -> Run | None:
        return await self.store.get_run(run_id)

    async def list_runs(self, limit: int | None = None) -> list[Run]:
        return await self.store.list_runs(limit)


async def run_pipeline(steps: Sequence[StepInput], payload: Any = None) -> Run:
    """Run a pipeline with an engine built from the environment.

    Args:
        steps: Configs, `PipelineStep`s or step dicts in call, extract, transform order.
        payload: Input of the first step; also the call step's template bindings.

    Returns:
        The finalized run record.
    """
    async with Engine.from_env() as engine:
        return await engine.run_pipeline(steps, payload)


async def generate_schema(instruction: str, sample_data: Any = None) -> dict[str, Any]:
    """Generate a JSON schema with an engine built from the environment."""
    async with Engine.from_env() as engine:
        return await engine.generate_schema(instruction, sample_data)
