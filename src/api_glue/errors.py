"""Error taxonomy for the execution engine.

Repairable failures (`OracleFailure`, `ValidationFailure` and config-shaped
`CallFailure`) are absorbed by the repair loop up to its budget. Everything else
propagates to the orchestrator, which records it in the run trace.
"""

from typing import Any


class GlueError(Exception):
    """Base class for engine errors."""

    kind = "error"

    def __init__(self, message: str, *, config_id: str | None = None, path: str | None = None):
        super().__init__(message)
        self.message = message
        self.config_id = config_id
        self.path = path

    @property
    def repairable(self) -> bool:
        """Whether the repair loop may retry after this failure."""
        return False


class ConfigNotFound(GlueError):
    """Referenced config id is absent from the store."""

    kind = "config_not_found"

    def __init__(self, config_id: str):
        super().__init__(f"Config '{config_id}' not found", config_id=config_id)


class OracleFailure(GlueError):
    """Generation oracle failed (network, timeout, quota, empty response)."""

    kind = "oracle_failure"

    @property
    def repairable(self) -> bool:
        return True


class ValidationFailure(GlueError):
    """Output did not satisfy its target schema."""

    kind = "validation_failure"

    def __init__(
        self,
        message: str,
        violations: list[Any] | None = None,
        *,
        config_id: str | None = None,
        path: str | None = None,
    ):
        super().__init__(message, config_id=config_id, path=path)
        self.violations = list(violations or [])
        if self.path is None and self.violations:
            self.path = getattr(self.violations[0], "path", None)

    @property
    def repairable(self) -> bool:
        return True

    def describe(self) -> str:
        """Human-readable message including every violation."""
        if not self.violations:
            return self.message
        lines = [self.message]
        for v in self.violations[:20]:
            lines.append(f"- at {v.path}: {v.message}")
        return "\n".join(lines)


class MalformedOutput(ValidationFailure):
    """Oracle output could not be parsed as the expected artifact."""

    kind = "malformed_output"

    def __init__(self, message: str, raw: str | None = None):
        super().__init__(message)
        self.raw = raw


class CallFailure(GlueError):
    """HTTP call failed.

    Only failures that look like a bad request template (`config_related`)
    are handed to the repair loop. Timeouts are re-issued unchanged by the
    self-healing executor; `retries` counts those re-issues.
    """

    kind = "call_failure"

    NETWORK = "network"
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    TEMPLATE = "template"

    def __init__(
        self,
        message: str,
        failure_kind: str,
        *,
        status_code: int | None = None,
        url: str | None = None,
        config_related: bool = False,
        config_id: str | None = None,
    ):
        super().__init__(message, config_id=config_id, path=url)
        self.failure_kind = failure_kind
        self.status_code = status_code
        self.url = url
        self.config_related = config_related
        self.retries = 0

    @property
    def repairable(self) -> bool:
        return self.config_related


class GenerationExhausted(GlueError):
    """Repair budget consumed without producing a valid artifact."""

    kind = "generation_exhausted"

    def __init__(self, task_name: str, attempts: int, last_error: Exception | None):
        detail = str(last_error) if last_error else "no attempts made"
        super().__init__(
            f"Generation for '{task_name}' failed after {attempts} attempts: {detail}",
            config_id=getattr(last_error, "config_id", None),
            path=getattr(last_error, "path", None),
        )
        self.task_name = task_name
        self.attempts = attempts
        self.last_error = last_error


class StoreFailure(GlueError):
    """Persistence layer unavailable. Always fatal."""

    kind = "store_failure"
