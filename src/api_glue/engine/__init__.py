"""Execution engine: validation, repair, executors and orchestration."""

from .api import Engine, generate_schema, run_pipeline
from .call import CallExecutor
from .extract import ExtractExecutor
from .healing import SelfHealingExecutor, StepOutcome
from .oracle import GenerationOracle, OpenAIOracle
from .pipeline import PipelineAction, PipelineOrchestrator, normalize_steps
from .repair import Conversation, RepairOutcome, RepairTask, TemperatureRamp, repair
from .transform import TransformExecutor
from .validator import check_schema, validate

__all__ = [
    # Facade
    "Engine",
    "run_pipeline",
    "generate_schema",
    # Executors
    "CallExecutor",
    "ExtractExecutor",
    "TransformExecutor",
    "SelfHealingExecutor",
    "StepOutcome",
    # Oracle and repair
    "GenerationOracle",
    "OpenAIOracle",
    "Conversation",
    "RepairTask",
    "RepairOutcome",
    "TemperatureRamp",
    "repair",
    # Validation
    "validate",
    "check_schema",
    # Orchestration
    "PipelineAction",
    "PipelineOrchestrator",
    "normalize_steps",
]
