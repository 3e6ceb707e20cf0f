"""API Glue - self-healing call, extract and transform pipelines for HTTP APIs."""

from .engine import Engine, generate_schema, run_pipeline
from .errors import (
    CallFailure,
    ConfigNotFound,
    GenerationExhausted,
    GlueError,
    MalformedOutput,
    OracleFailure,
    StoreFailure,
    ValidationFailure,
)
from .models import (
    ApiConfig,
    ExtractConfig,
    PipelineStep,
    Run,
    RunStatus,
    StepKind,
    StepResult,
    StepStatus,
    TransformConfig,
)
from .store import FileStore, MemoryStore, Store

__version__ = "0.1.0"

__all__ = [
    "Engine",
    "generate_schema",
    "run_pipeline",
    "ApiConfig",
    "ExtractConfig",
    "TransformConfig",
    "PipelineStep",
    "Run",
    "RunStatus",
    "StepKind",
    "StepResult",
    "StepStatus",
    "Store",
    "MemoryStore",
    "FileStore",
    "GlueError",
    "ConfigNotFound",
    "OracleFailure",
    "ValidationFailure",
    "MalformedOutput",
    "CallFailure",
    "GenerationExhausted",
    "StoreFailure",
]
