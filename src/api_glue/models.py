"""Data models for configs, step results and runs."""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from .utils import utc_now


def _new_id() -> str:
    return uuid4().hex


class StepKind(str, Enum):
    """Pipeline step, in execution order."""

    CALL = "call"
    EXTRACT = "extract"
    TRANSFORM = "transform"


STEP_ORDER: tuple[StepKind, ...] = (StepKind.CALL, StepKind.EXTRACT, StepKind.TRANSFORM)


class HttpMethod(str, Enum):
    """HTTP methods an API config may use."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"


class AuthType(str, Enum):
    """How credentials are passed to the target API."""

    NONE = "none"
    HEADER = "header"
    QUERY_PARAM = "query_param"
    OAUTH2 = "oauth2"


class PaginationType(str, Enum):
    """Pagination policy for API calls."""

    DISABLED = "disabled"
    OFFSET_BASED = "offset_based"
    PAGE_BASED = "page_based"


class FileType(str, Enum):
    """Decoding applied to an external extract source."""

    AUTO = "auto"
    JSON = "json"
    CSV = "csv"
    TEXT = "text"


class Pagination(BaseModel):
    """Pagination settings for an API config."""

    type: PaginationType = PaginationType.DISABLED
    page_size: int = Field(default=100, ge=1)
    max_pages: int = Field(default=100, ge=1)


class BaseConfig(BaseModel, ABC):
    """Abstract base holding the fields shared by every config kind.

    Only the variants (`ApiConfig`, `ExtractConfig`, `TransformConfig`) are
    instantiated.

    `id` identifies the logical step and is stable across repairs. `revision`
    is assigned by the store; 0 means the config has never been stored.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=_new_id)
    revision: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    instruction: str = ""
    response_schema: dict[str, Any] | None = None

    @property
    @abstractmethod
    def step(self) -> StepKind: ...

    @property
    @abstractmethod
    def needs_generation(self) -> bool:
        """True when the config lacks the part the oracle has to infer."""

    def revise(self, **changes: Any) -> "BaseConfig":
        """Return a validated copy with `changes` applied and `updated_at` bumped."""
        data = self.model_dump()
        data.update(changes)
        data["updated_at"] = utc_now()
        return type(self).model_validate(data)


class ApiConfig(BaseConfig):
    """How to call one HTTP endpoint.

    String fields may contain `{name}` placeholders rendered from the payload
    and credentials at call time. `method=None` means the endpoint still has
    to be inferred from the instruction.
    """

    kind: Literal["api"] = "api"
    url_host: str
    url_path: str = ""
    method: HttpMethod | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    query_params: dict[str, str] = Field(default_factory=dict)
    body: str | None = None
    authentication: AuthType = AuthType.NONE
    pagination: Pagination = Field(default_factory=Pagination)
    data_path: str | None = None  # JSONPath to the item list within a page
    documentation_url: str | None = None

    @property
    def step(self) -> StepKind:
        return StepKind.CALL

    @property
    def needs_generation(self) -> bool:
        return self.method is None


class ExtractConfig(BaseConfig):
    """How to pull a sub-value out of a prior result or an external source."""

    kind: Literal["extract"] = "extract"
    data_path: str | None = None  # JSONPath selector
    url: str | None = None  # optional external source
    headers: dict[str, str] = Field(default_factory=dict)
    file_type: FileType = FileType.AUTO

    @property
    def step(self) -> StepKind:
        return StepKind.EXTRACT

    @property
    def needs_generation(self) -> bool:
        return self.data_path is None


class TransformConfig(BaseConfig):
    """A JSONata mapping from the source shape to the target shape."""

    kind: Literal["transform"] = "transform"
    mapping: str | None = None

    @property
    def step(self) -> StepKind:
        return StepKind.TRANSFORM

    @property
    def needs_generation(self) -> bool:
        return not self.mapping


Config = Annotated[Union[ApiConfig, ExtractConfig, TransformConfig], Field(discriminator="kind")]

CONFIG_ADAPTER: TypeAdapter = TypeAdapter(Config)


def parse_config(data: dict[str, Any]) -> BaseConfig:
    """Build the right config variant from a dict carrying `kind`."""
    return CONFIG_ADAPTER.validate_python(data)


class Violation(BaseModel):
    """One schema violation.

    `path` points into the validated value, `schema_path` into the schema.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    schema_path: str = ""
    message: str


class ValidationResult(BaseModel):
    """Outcome of validating a value against a schema."""

    model_config = ConfigDict(frozen=True)

    valid: bool
    violations: list[Violation] = Field(default_factory=list)


class _TimedResult(BaseModel):
    config_id: str
    revision: int = 0
    data: Any = None
    started_at: datetime
    completed_at: datetime

    @property
    def duration_ms(self) -> float:
        return (self.completed_at - self.started_at).total_seconds() * 1000


class CallResult(_TimedResult):
    """Aggregated response of an API call."""

    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    resolved_url: str
    pages: int = 1


class ExtractResult(_TimedResult):
    """Value pulled out by an extract config."""


class TransformResult(_TimedResult):
    """Value produced by a transform config."""


class ErrorDetail(BaseModel):
    """Error recorded in a run trace."""

    kind: str
    message: str
    path: str | None = None
    config_id: str | None = None

    @classmethod
    def from_exception(cls, error: BaseException, config_id: str | None = None) -> "ErrorDetail":
        describe = getattr(error, "describe", None)
        message = describe() if callable(describe) else str(error)
        return cls(
            kind=getattr(error, "kind", type(error).__name__),
            message=message or type(error).__name__,
            path=getattr(error, "path", None),
            config_id=getattr(error, "config_id", None) or config_id,
        )


class StepStatus(str, Enum):
    """Outcome of one pipeline step."""

    SUCCESS = "success"
    FAILED = "failed"


class StepResult(BaseModel):
    """Trace entry for one executed step."""

    step: StepKind
    config_id: str | None = None
    revision: int | None = None
    status: StepStatus
    started_at: datetime
    duration_ms: float = 0.0
    retries: int = 0
    error: ErrorDetail | None = None


class RunStatus(str, Enum):
    """Lifecycle of a run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.SUCCESS, RunStatus.PARTIAL, RunStatus.FAILED)


class Run(BaseModel):
    """One end-to-end pipeline execution."""

    id: str = Field(default_factory=_new_id)
    status: RunStatus = RunStatus.PENDING
    steps: list[StepResult] = Field(default_factory=list)
    result: Any = None
    error: ErrorDetail | None = None
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None

    @property
    def duration_ms(self) -> float | None:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds() * 1000


class PipelineStep(BaseModel):
    """A pipeline step referencing a stored config by id or carrying it inline."""

    kind: StepKind
    config_id: str | None = None
    config: Config | None = None

    @model_validator(mode="after")
    def _check_reference(self) -> "PipelineStep":
        if self.config is None and not self.config_id:
            raise ValueError("PipelineStep needs either config or config_id")
        if self.config is not None:
            if self.config.step != self.kind:
                raise ValueError(
                    f"Config kind '{self.config.kind}' does not match step '{self.kind.value}'"
                )
            if self.config_id is None:
                self.config_id = self.config.id
        return self

    @classmethod
    def of(cls, config: BaseConfig) -> "PipelineStep":
        return cls(kind=config.step, config=config)
