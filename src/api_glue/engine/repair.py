"""Bounded LLM repair loop.

The loop is a fold over attempts: each attempt takes the current immutable
`Conversation`, asks the oracle for an artifact and either returns the checked
artifact or produces the next conversation with a corrective message appended.
No state is shared between invocations, so independent tasks may run
concurrently.
"""

import json
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import structlog

from ..errors import GenerationExhausted, GlueError, MalformedOutput, ValidationFailure
from ..logging_config import save_debug_artifact
from ..utils import sample_for_prompt
from .oracle import JSON_OBJECT_FORMAT, GenerationOracle, Message
from .validator import validate

logger = structlog.get_logger()

T = TypeVar("T")

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


@dataclass(frozen=True)
class Conversation:
    """Immutable message list sent to the oracle."""

    messages: tuple[Message, ...] = ()

    def append(self, role: str, content: str) -> "Conversation":
        return Conversation(self.messages + ({"role": role, "content": content},))

    def after_failure(self, raw_response: str | None, error: Exception) -> "Conversation":
        """Conversation for the next attempt, carrying the failure back to the oracle."""
        conversation = self
        if raw_response:
            conversation = conversation.append("assistant", raw_response)
        describe = getattr(error, "describe", None)
        detail = describe() if callable(describe) else str(error)
        return conversation.append(
            "user",
            f"The previous attempt failed with error: {detail}\nPlease fix the problem and try again.",
        )


@dataclass(frozen=True)
class ParsedArtifact:
    """Oracle output that parsed as a JSON object."""

    data: dict[str, Any]


def parse_artifact(text: str) -> ParsedArtifact | MalformedOutput:
    """Parse oracle text into a JSON object artifact.

    Returns a `MalformedOutput` instead of raising so that callers fold it into
    the same retry path as a validation failure.
    """
    cleaned = _CODE_FENCE.sub("", text.strip()).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        return MalformedOutput(f"Response is not valid JSON: {e}", raw=text)
    if not isinstance(data, dict):
        return MalformedOutput(
            f"Response must be a JSON object, got {type(data).__name__}",
            raw=text,
        )
    return ParsedArtifact(data)


@dataclass(frozen=True)
class TemperatureRamp:
    """Sampling temperature per attempt: 0 first, then `step * attempt` up to `cap`."""

    step: float = 0.3
    cap: float = 1.0

    def temperature_for(self, attempt: int) -> float:
        if attempt <= 0:
            return 0.0
        return min(self.step * attempt, self.cap)


@dataclass(frozen=True)
class RepairTask(Generic[T]):
    """One generation problem for the oracle.

    Attributes:
        name: Short label used in logs and errors.
        system_prompt: System message for the oracle.
        instruction: What the user wants.
        subject: Data the artifact must work on (may be None).
        output_schema: JSON schema the parsed artifact must satisfy.
        check: Optional async callable turning the artifact into the final value.
            It raises a repairable `GlueError` to trigger another attempt; any
            other exception propagates.
        context: Extra prompt text (documentation, current config, last error).
        config_id: Config being generated or repaired, for logs.
    """

    name: str
    system_prompt: str
    instruction: str
    subject: Any
    output_schema: dict[str, Any]
    check: Callable[[dict[str, Any]], Awaitable[T]] | None = None
    context: str = ""
    config_id: str | None = None

    def initial_conversation(self) -> Conversation:
        parts = [f"Instruction: {self.instruction or '(none given, infer from the data)'}"]
        if self.context:
            parts.append(self.context)
        parts.append(f"Data:\n{sample_for_prompt(self.subject)}")
        parts.append(
            "Respond with a single JSON object matching this JSON schema:\n"
            + json.dumps(self.output_schema, indent=2)
        )
        return Conversation().append("system", self.system_prompt).append("user", "\n\n".join(parts))


@dataclass(frozen=True)
class RepairOutcome(Generic[T]):
    """Successful result of a repair loop."""

    artifact: T
    attempts: int
    conversation: Conversation = field(repr=False, default_factory=Conversation)

    @property
    def retries(self) -> int:
        return self.attempts - 1


async def repair(
    task: RepairTask[T],
    max_retries: int,
    oracle: GenerationOracle,
    ramp: TemperatureRamp | None = None,
    response_format: dict[str, Any] | None = JSON_OBJECT_FORMAT,
) -> RepairOutcome[T]:
    """Run up to `max_retries + 1` attempts to produce a valid artifact.

    Raises:
        GenerationExhausted: If every attempt failed with a repairable error.
        GlueError: Non-repairable errors raised by `task.check` propagate as is.
    """
    if max_retries < 0:
        raise ValueError("max_retries must be >= 0")

    ramp = ramp or TemperatureRamp()
    log = logger.bind(component="repair_loop", task=task.name, config_id=task.config_id)
    conversation = task.initial_conversation()
    last_error: GlueError | None = None
    max_attempts = max_retries + 1

    for attempt in range(max_attempts):
        temperature = ramp.temperature_for(attempt) if oracle.supports_temperature else None
        raw: str | None = None
        try:
            raw = await oracle.complete(
                conversation.messages,
                temperature=temperature,
                response_format=response_format,
            )
            parsed = parse_artifact(raw)
            if isinstance(parsed, MalformedOutput):
                raise parsed

            shape = validate(parsed.data, task.output_schema)
            if not shape.valid:
                raise ValidationFailure(
                    "Response does not match the expected format",
                    shape.violations,
                    config_id=task.config_id,
                )

            value = await task.check(parsed.data) if task.check else parsed.data
        except GlueError as e:
            if not e.repairable:
                raise
            last_error = e
            log.warning(
                "repair_attempt_failed",
                attempt=attempt + 1,
                max_attempts=max_attempts,
                temperature=temperature,
                error_kind=e.kind,
                error=str(e),
            )
            conversation = conversation.after_failure(raw, e)
            continue

        log.info("repair_succeeded", attempts=attempt + 1)
        return RepairOutcome(artifact=value, attempts=attempt + 1, conversation=conversation)

    save_debug_artifact(
        f"{task.name}_exhausted",
        {"messages": list(conversation.messages), "error": str(last_error)},
        config_id=task.config_id,
        phase="repair",
    )
    log.error("repair_exhausted", attempts=max_attempts, error=str(last_error))
    raise GenerationExhausted(task.name, max_attempts, last_error) from last_error
