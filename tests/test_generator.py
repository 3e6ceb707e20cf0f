"""Tests for artifact application and schema generation."""

import pytest
from conftest import ScriptedOracle

from api_glue.engine.generator import apply_api_artifact, apply_artifact, generate_schema
from api_glue.errors import GenerationExhausted, ValidationFailure
from api_glue.models import ApiConfig, PaginationType, TransformConfig

GENERATED_SCHEMA = {
    "type": "object",
    "properties": {"tempC": {"type": "number"}},
    "required": ["tempC"],
}


class TestApplyArtifact:
    """Tests for applying oracle artifacts to configs."""

    def test_api_artifact(self):
        config = ApiConfig(url_host="https://api.example.com", instruction="List items")

        revised = apply_api_artifact(
            config,
            {
                "urlPath": "/items",
                "method": "get",
                "queryParams": {"q": "{query}"},
                "pagination": {"type": "offset_based", "pageSize": 50},
                "dataPath": "$.results",
            },
        )

        assert revised.id == config.id
        assert revised.method.value == "GET"
        assert revised.query_params == {"q": "{query}"}
        assert revised.pagination.type == PaginationType.OFFSET_BASED
        assert revised.pagination.page_size == 50
        assert revised.data_path == "$.results"

    def test_invalid_field_is_validation_failure(self):
        config = ApiConfig(url_host="https://api.example.com")

        with pytest.raises(ValidationFailure) as exc_info:
            apply_api_artifact(config, {"urlPath": "/x", "method": "FETCH"})

        assert exc_info.value.violations[0].path == "$.method"

    def test_generic_artifact(self):
        config = TransformConfig()

        assert apply_artifact(config, mapping="$.a").mapping == "$.a"


class TestGenerateSchema:
    """Tests for generate_schema()."""

    @pytest.mark.asyncio
    async def test_returns_schema(self):
        oracle = ScriptedOracle([{"jsonSchema": GENERATED_SCHEMA}])

        schema = await generate_schema("Temperature in Celsius", {"temp_f": 72}, oracle)

        assert schema == GENERATED_SCHEMA
        prompt = oracle.calls[0]["messages"][1]["content"]
        assert "Temperature in Celsius" in prompt
        assert "temp_f" in prompt

    @pytest.mark.asyncio
    async def test_string_sample_parsed_as_json(self):
        oracle = ScriptedOracle([{"jsonSchema": GENERATED_SCHEMA}])

        await generate_schema("Temperature", '{"temp_f": 72}', oracle)

        prompt = oracle.calls[0]["messages"][1]["content"]
        assert '"temp_f": 72' in prompt

    @pytest.mark.asyncio
    async def test_no_sample(self):
        oracle = ScriptedOracle([{"jsonSchema": GENERATED_SCHEMA}])

        await generate_schema("Temperature", None, oracle)

        assert "no data available" in oracle.calls[0]["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_invalid_schema_is_retried(self):
        oracle = ScriptedOracle(
            [
                {"jsonSchema": {}},
                {"jsonSchema": {"type": "object", "required": "tempC"}},
                {"jsonSchema": GENERATED_SCHEMA},
            ]
        )

        schema = await generate_schema("Temperature", None, oracle)

        assert schema == GENERATED_SCHEMA
        assert len(oracle.calls) == 3
        assert [c["temperature"] for c in oracle.calls] == pytest.approx([0.0, 0.3, 0.6])

    @pytest.mark.asyncio
    async def test_exhaustion(self):
        oracle = ScriptedOracle([{"schema": "wrong key"}])

        with pytest.raises(GenerationExhausted):
            await generate_schema("Temperature", None, oracle, max_retries=2)

        assert len(oracle.calls) == 3
