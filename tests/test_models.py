"""Tests for data models."""

import pytest
from pydantic import ValidationError

from api_glue.errors import CallFailure, GenerationExhausted, ValidationFailure
from api_glue.models import (
    ApiConfig,
    BaseConfig,
    ErrorDetail,
    ExtractConfig,
    HttpMethod,
    PipelineStep,
    Run,
    RunStatus,
    StepKind,
    TransformConfig,
    Violation,
    parse_config,
)


class TestConfigs:
    """Tests for config variants."""

    def test_step_kinds(self):
        assert ApiConfig(url_host="https://a.example.com").step == StepKind.CALL
        assert ExtractConfig().step == StepKind.EXTRACT
        assert TransformConfig().step == StepKind.TRANSFORM

    def test_needs_generation(self):
        assert ApiConfig(url_host="https://a.example.com").needs_generation
        assert not ApiConfig(url_host="https://a.example.com", method="GET").needs_generation
        assert ExtractConfig().needs_generation
        assert not TransformConfig(mapping="$").needs_generation

    def test_new_configs_are_unsaved(self):
        config = TransformConfig(mapping="$")

        assert config.revision == 0
        assert config.id

    def test_revise_keeps_identity(self):
        config = ApiConfig(url_host="https://a.example.com", method="GET")

        revised = config.revise(url_path="/v2", method="POST")

        assert revised.id == config.id
        assert revised.method == HttpMethod.POST
        assert revised.updated_at >= config.updated_at
        assert config.url_path == ""

    def test_revise_validates(self):
        config = ApiConfig(url_host="https://a.example.com", method="GET")

        with pytest.raises(ValidationError):
            config.revise(method="FETCH")

    def test_parse_config_dispatches_on_kind(self):
        config = parse_config({"kind": "extract", "data_path": "$.items"})

        assert isinstance(config, ExtractConfig)
        assert config.data_path == "$.items"

    def test_base_config_is_abstract(self):
        with pytest.raises(TypeError):
            BaseConfig()

    def test_parse_config_rejects_unknown_kind(self):
        with pytest.raises(ValidationError):
            parse_config({"kind": "scrape"})


class TestPipelineStep:
    """Tests for pipeline step references."""

    def test_inline_config_fills_id(self):
        config = TransformConfig(mapping="$")

        step = PipelineStep.of(config)

        assert step.kind == StepKind.TRANSFORM
        assert step.config_id == config.id

    def test_kind_mismatch_rejected(self):
        with pytest.raises(ValidationError):
            PipelineStep(kind=StepKind.CALL, config=TransformConfig(mapping="$"))

    def test_inline_config_from_dict(self):
        step = PipelineStep.model_validate(
            {"kind": "call", "config": {"kind": "api", "url_host": "https://a.example.com"}}
        )

        assert isinstance(step.config, ApiConfig)


class TestErrorDetail:
    """Tests for recording exceptions in run traces."""

    def test_from_validation_failure(self):
        error = ValidationFailure(
            "bad output",
            [Violation(path="$.tempC", message="is required")],
            config_id="cfg-1",
        )

        detail = ErrorDetail.from_exception(error)

        assert detail.kind == "validation_failure"
        assert detail.path == "$.tempC"
        assert detail.config_id == "cfg-1"
        assert "$.tempC" in detail.message

    def test_from_generation_exhausted_falls_back_to_step_config(self):
        last = CallFailure("404", CallFailure.HTTP_STATUS, status_code=404, config_related=True)
        detail = ErrorDetail.from_exception(GenerationExhausted("api_config", 4, last), config_id="cfg-2")

        assert detail.kind == "generation_exhausted"
        assert detail.config_id == "cfg-2"
        assert "4 attempts" in detail.message

    def test_from_plain_exception(self):
        detail = ErrorDetail.from_exception(KeyError("x"))

        assert detail.kind == "KeyError"


class TestRun:
    """Tests for run records."""

    def test_defaults(self):
        run = Run()

        assert run.status == RunStatus.PENDING
        assert run.steps == []
        assert run.duration_ms is None

    def test_terminal_states(self):
        assert RunStatus.SUCCESS.is_terminal
        assert RunStatus.PARTIAL.is_terminal
        assert RunStatus.FAILED.is_terminal
        assert not RunStatus.RUNNING.is_terminal
        assert not RunStatus.PENDING.is_terminal
