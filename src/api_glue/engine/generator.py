"""Repair-task builders for every config kind, and schema generation.

Each builder returns a `RepairTask` whose artifact shape matches what the
corresponding prompt asks for. Applying an artifact to a config goes through
pydantic validation so malformed fields surface as `ValidationFailure`.
"""

import json
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

import structlog
from pydantic import ValidationError

from ..errors import ValidationFailure
from ..models import (
    ApiConfig,
    AuthType,
    BaseConfig,
    ExtractConfig,
    HttpMethod,
    PaginationType,
    TransformConfig,
    Violation,
)
from .oracle import GenerationOracle
from .prompts import (
    API_CONFIG_SYSTEM_PROMPT,
    EXTRACT_CONFIG_SYSTEM_PROMPT,
    SCHEMA_GENERATION_SYSTEM_PROMPT,
    TRANSFORM_CONFIG_SYSTEM_PROMPT,
)
from .repair import RepairTask, TemperatureRamp, repair
from .validator import check_schema

logger = structlog.get_logger()

T = TypeVar("T")
C = TypeVar("C", bound=BaseConfig)

API_ARTIFACT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["urlPath", "method"],
    "properties": {
        "urlHost": {"type": "string"},
        "urlPath": {"type": "string"},
        "method": {"type": "string", "enum": [m.value for m in HttpMethod] + [m.value.lower() for m in HttpMethod]},
        "headers": {"type": ["object", "null"], "additionalProperties": {"type": "string"}},
        "queryParams": {"type": ["object", "null"], "additionalProperties": {"type": "string"}},
        "body": {"type": ["string", "null"]},
        "authentication": {"type": ["string", "null"], "enum": [a.value for a in AuthType] + [None]},
        "pagination": {
            "type": ["object", "null"],
            "properties": {
                "type": {"type": "string", "enum": [p.value for p in PaginationType]},
                "pageSize": {"type": "integer", "minimum": 1},
            },
        },
        "dataPath": {"type": ["string", "null"]},
    },
}

EXTRACT_ARTIFACT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["dataPath"],
    "properties": {"dataPath": {"type": "string", "minLength": 1}},
}

TRANSFORM_ARTIFACT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["mapping"],
    "properties": {"mapping": {"type": "string", "minLength": 1}},
}

SCHEMA_ARTIFACT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["jsonSchema"],
    "properties": {"jsonSchema": {"type": "object"}},
}


def _format_loc(loc: Iterable[Any]) -> str:
    path = "$"
    for part in loc:
        path += f"[{part}]" if isinstance(part, int) else f".{part}"
    return path


def apply_artifact(config: C, **changes: Any) -> C:
    """Revise `config` with generated fields, reporting bad fields as a validation failure."""
    try:
        return config.revise(**changes)
    except ValidationError as e:
        raise ValidationFailure(
            "Generated config is invalid",
            [Violation(path=_format_loc(err["loc"]), message=err["msg"]) for err in e.errors()],
            config_id=config.id,
        ) from e


def _failure_context(config: BaseConfig, error: Exception | None, current: dict[str, Any]) -> str:
    if error is None:
        return ""
    describe = getattr(error, "describe", None)
    detail = describe() if callable(describe) else str(error)
    return (
        f"The current config failed.\nCurrent config:\n{json.dumps(current, indent=2, default=str)}\n\n"
        f"Error:\n{detail}"
    )


def _schema_context(schema: dict[str, Any] | None) -> str:
    if not schema:
        return "Target schema: (none, any output is accepted)"
    return f"Target schema:\n{json.dumps(schema, indent=2)}"


def build_api_task(
    config: ApiConfig,
    variables: Iterable[str],
    check: Callable[[dict[str, Any]], Awaitable[T]],
    error: Exception | None = None,
    documentation: str | None = None,
    subject: Any = None,
) -> RepairTask[T]:
    """Task asking the oracle for the request part of an API config."""
    current = {
        "urlHost": config.url_host,
        "urlPath": config.url_path,
        "method": config.method.value if config.method else None,
        "headers": config.headers,
        "queryParams": config.query_params,
        "body": config.body,
        "pagination": config.pagination.model_dump(mode="json"),
        "dataPath": config.data_path,
    }
    parts = [
        f"API host: {config.url_host}",
        f"Available variables: {', '.join(sorted(variables)) or '(none)'}",
    ]
    if documentation:
        parts.append(f"API documentation (truncated):\n{documentation}")
    if config.response_schema:
        parts.append(_schema_context(config.response_schema))
    failure = _failure_context(config, error, current)
    if failure:
        parts.append(failure)

    return RepairTask(
        name="api_config",
        system_prompt=API_CONFIG_SYSTEM_PROMPT,
        instruction=config.instruction,
        subject=subject,
        output_schema=API_ARTIFACT_SCHEMA,
        check=check,
        context="\n\n".join(parts),
        config_id=config.id,
    )


def apply_api_artifact(config: ApiConfig, artifact: dict[str, Any]) -> ApiConfig:
    changes: dict[str, Any] = {
        "url_path": artifact.get("urlPath") or "",
        "method": str(artifact["method"]).upper(),
        "headers": artifact.get("headers") or {},
        "query_params": artifact.get("queryParams") or {},
        "body": artifact.get("body"),
        "data_path": artifact.get("dataPath"),
    }
    if artifact.get("urlHost"):
        changes["url_host"] = artifact["urlHost"]
    if artifact.get("authentication"):
        changes["authentication"] = artifact["authentication"]
    pagination = artifact.get("pagination")
    if pagination:
        changes["pagination"] = {
            "type": pagination.get("type", PaginationType.DISABLED.value),
            "page_size": pagination.get("pageSize", config.pagination.page_size),
            "max_pages": config.pagination.max_pages,
        }
    return apply_artifact(config, **changes)


def build_extract_task(
    config: ExtractConfig,
    source: Any,
    check: Callable[[dict[str, Any]], Awaitable[T]],
    error: Exception | None = None,
) -> RepairTask[T]:
    """Task asking the oracle for a JSONPath selector."""
    parts = [_schema_context(config.response_schema)]
    failure = _failure_context(config, error, {"dataPath": config.data_path})
    if failure:
        parts.append(failure)
    return RepairTask(
        name="extract_config",
        system_prompt=EXTRACT_CONFIG_SYSTEM_PROMPT,
        instruction=config.instruction,
        subject=source,
        output_schema=EXTRACT_ARTIFACT_SCHEMA,
        check=check,
        context="\n\n".join(parts),
        config_id=config.id,
    )


def build_transform_task(
    config: TransformConfig,
    payload: Any,
    check: Callable[[dict[str, Any]], Awaitable[T]],
    error: Exception | None = None,
) -> RepairTask[T]:
    """Task asking the oracle for a JSONata mapping."""
    parts = [_schema_context(config.response_schema)]
    failure = _failure_context(config, error, {"mapping": config.mapping})
    if failure:
        parts.append(failure)
    return RepairTask(
        name="transform_config",
        system_prompt=TRANSFORM_CONFIG_SYSTEM_PROMPT,
        instruction=config.instruction,
        subject=payload,
        output_schema=TRANSFORM_ARTIFACT_SCHEMA,
        check=check,
        context="\n\n".join(parts),
        config_id=config.id,
    )


async def _check_generated_schema(artifact: dict[str, Any]) -> dict[str, Any]:
    schema = artifact["jsonSchema"]
    result = check_schema(schema)
    if not result.valid:
        raise ValidationFailure("Generated JSON schema is invalid", result.violations)
    return schema


def build_schema_task(instruction: str, sample_data: Any) -> RepairTask[dict[str, Any]]:
    """Task asking the oracle for a JSON schema describing the requested output."""
    return RepairTask(
        name="json_schema",
        system_prompt=SCHEMA_GENERATION_SYSTEM_PROMPT,
        instruction=instruction,
        subject=sample_data,
        output_schema=SCHEMA_ARTIFACT_SCHEMA,
        check=_check_generated_schema,
    )


async def generate_schema(
    instruction: str,
    sample_data: Any,
    oracle: GenerationOracle,
    max_retries: int = 3,
    ramp: TemperatureRamp | None = None,
) -> dict[str, Any]:
    """Generate a JSON schema for `instruction`, optionally grounded on sample data.

    Sample data given as a string is parsed as JSON when possible.

    Raises:
        GenerationExhausted: If no structurally valid schema was produced.
    """
    if isinstance(sample_data, str):
        try:
            sample_data = json.loads(sample_data)
        except json.JSONDecodeError:
            pass  # keep raw text as the sample

    outcome = await repair(build_schema_task(instruction, sample_data), max_retries, oracle, ramp)
    logger.info("schema_generated", attempts=outcome.attempts)
    return outcome.artifact
