"""Extract executor: selects a sub-value from the step input or an external file."""

import csv
import io
import json
from collections.abc import Mapping
from datetime import datetime
from typing import Any

import httpx
import structlog

from ..errors import ValidationFailure
from ..models import ExtractConfig, ExtractResult, FileType, Violation
from ..utils import utc_now
from .call import render_template, send_request
from .selectors import SelectorError, select
from .validator import validate

logger = structlog.get_logger()


def decode_content(text: str, file_type: FileType, content_type: str = "") -> Any:
    """Decode fetched text according to the configured file type."""
    if file_type == FileType.AUTO:
        if "json" in content_type or text.lstrip()[:1] in ("{", "["):
            file_type = FileType.JSON
        elif "csv" in content_type:
            file_type = FileType.CSV
        else:
            file_type = FileType.TEXT

    if file_type == FileType.JSON:
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ValidationFailure(
                f"Source is not valid JSON: {e}",
                [Violation(path="$", message="source could not be decoded as JSON")],
            ) from e
    if file_type == FileType.CSV:
        return [dict(row) for row in csv.DictReader(io.StringIO(text))]
    return text


class ExtractExecutor:
    """Executes extract configs."""

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 30.0):
        self.client = client
        self.timeout = timeout

    async def load_source(self, config: ExtractConfig, payload: Any) -> Any:
        """Return the data the selector applies to."""
        if not config.url:
            return payload
        if self.client is None:
            raise ValueError("ExtractExecutor needs an HTTP client for external sources")

        bindings = payload if isinstance(payload, Mapping) else {}
        response = await send_request(
            self.client,
            "GET",
            render_template(config.url, bindings),
            headers={k: render_template(v, bindings) for k, v in config.headers.items()},
            timeout=self.timeout,
            config_id=config.id,
        )
        return decode_content(
            response.text,
            config.file_type,
            response.headers.get("content-type", ""),
        )

    async def execute(self, config: ExtractConfig, payload: Any = None) -> ExtractResult:
        """Execute an extract config.

        Raises:
            ValidationFailure: When the selector is invalid, matches nothing, or
                the selected value violates the response schema.
            CallFailure: When an external source cannot be fetched.
        """
        if config.data_path is None:
            raise ValidationFailure("Extract config has no data_path yet", config_id=config.id)

        started_at = utc_now()
        source = await self.load_source(config, payload)
        return self.apply(config, source, started_at=started_at)

    def apply(
        self,
        config: ExtractConfig,
        source: Any,
        started_at: datetime | None = None,
    ) -> ExtractResult:
        """Apply the selector and schema check to already loaded source data."""
        if config.data_path is None:
            raise ValidationFailure("Extract config has no data_path yet", config_id=config.id)
        started_at = started_at or utc_now()

        try:
            found, value = select(source, config.data_path)
        except SelectorError as e:
            raise ValidationFailure(
                str(e),
                [Violation(path=config.data_path, message="invalid JSONPath expression")],
                config_id=config.id,
            ) from e
        if not found:
            raise ValidationFailure(
                f"Selector '{config.data_path}' matched nothing",
                [Violation(path=config.data_path, message="no value at this path")],
                config_id=config.id,
            )

        result = validate(value, config.response_schema)
        if not result.valid:
            raise ValidationFailure(
                "Extracted data does not match the response schema",
                result.violations,
                config_id=config.id,
            )

        logger.info("extract_completed", component="extract_executor", config_id=config.id)
        return ExtractResult(
            config_id=config.id,
            revision=config.revision,
            data=value,
            started_at=started_at,
            completed_at=utc_now(),
        )
