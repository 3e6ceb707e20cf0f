"""Transform executor: evaluates a JSONata mapping and checks the result."""

import json
from typing import Any

import jsonata
import structlog

from ..errors import ValidationFailure
from ..models import TransformConfig, TransformResult, Violation
from ..utils import utc_now
from .validator import validate

logger = structlog.get_logger()


def _to_plain(value: Any) -> Any:
    # JSONata sequences are list subclasses; normalise to plain JSON values.
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))


def evaluate_mapping(expression: str, data: Any) -> Any:
    """Evaluate a JSONata expression against `data`.

    Raises:
        ValidationFailure: If the expression does not compile or fails at runtime.
    """
    try:
        compiled = jsonata.Jsonata(expression)
    except Exception as e:  # jsonata raises JException for every parse error
        raise ValidationFailure(
            f"Invalid mapping expression: {e}",
            [Violation(path="$", message=f"mapping does not compile: {e}")],
        ) from e

    try:
        return _to_plain(compiled.evaluate(data))
    except Exception as e:
        raise ValidationFailure(
            f"Mapping evaluation failed: {e}",
            [Violation(path="$", message=f"mapping failed at runtime: {e}")],
        ) from e


class TransformExecutor:
    """Executes transform configs. Pure: no I/O, no state."""

    async def execute(self, config: TransformConfig, payload: Any = None) -> TransformResult:
        """Execute a transform config.

        Raises:
            ValidationFailure: When the mapping is missing or broken, or its
                output violates the response schema.
        """
        if not config.mapping:
            raise ValidationFailure("Transform config has no mapping yet", config_id=config.id)

        started_at = utc_now()
        try:
            value = evaluate_mapping(config.mapping, payload)
        except ValidationFailure as e:
            e.config_id = config.id
            raise

        result = validate(value, config.response_schema)
        if not result.valid:
            raise ValidationFailure(
                "Transformed data does not match the response schema",
                result.violations,
                config_id=config.id,
            )

        logger.info("transform_completed", component="transform_executor", config_id=config.id)
        return TransformResult(
            config_id=config.id,
            revision=config.revision,
            data=value,
            started_at=started_at,
            completed_at=utc_now(),
        )
