"""Tests for the transform executor."""

import pytest

from api_glue.engine.transform import TransformExecutor, evaluate_mapping
from api_glue.errors import ValidationFailure
from api_glue.models import TransformConfig

CELSIUS_MAPPING = '{"tempC": $round((temp_f - 32) * 5 / 9, 1)}'


class TestEvaluateMapping:
    """Tests for JSONata evaluation."""

    def test_field_mapping(self):
        assert evaluate_mapping('{"name": user.name}', {"user": {"name": "Ada"}}) == {"name": "Ada"}

    def test_array_mapping(self):
        data = {"items": [{"id": 1, "price": 2}, {"id": 2, "price": 3}]}
        assert evaluate_mapping("items.price", data) == [2, 3]

    def test_invalid_expression(self):
        with pytest.raises(ValidationFailure) as exc_info:
            evaluate_mapping('{"a": ', {})

        assert "Invalid mapping expression" in str(exc_info.value)


class TestTransformExecutor:
    """Tests for TransformExecutor.execute()."""

    @pytest.mark.asyncio
    async def test_fahrenheit_to_celsius(self, weather_schema):
        config = TransformConfig(mapping=CELSIUS_MAPPING, response_schema=weather_schema)

        result = await TransformExecutor().execute(config, {"temp_f": 72})

        assert result.data["tempC"] == pytest.approx(22.2)
        assert result.config_id == config.id

    @pytest.mark.asyncio
    async def test_idempotent(self, weather_schema):
        """Test that the same mapping and input always give the same output."""
        config = TransformConfig(mapping=CELSIUS_MAPPING, response_schema=weather_schema)
        executor = TransformExecutor()

        first = await executor.execute(config, {"temp_f": 50})
        second = await executor.execute(config, {"temp_f": 50})

        assert first.data == second.data

    @pytest.mark.asyncio
    async def test_output_violating_schema(self, weather_schema):
        config = TransformConfig(mapping='{"temperature": temp_f}', response_schema=weather_schema)

        with pytest.raises(ValidationFailure) as exc_info:
            await TransformExecutor().execute(config, {"temp_f": 72})

        assert exc_info.value.config_id == config.id
        assert "'tempC' is a required property" in exc_info.value.describe()

    @pytest.mark.asyncio
    async def test_missing_mapping(self):
        with pytest.raises(ValidationFailure):
            await TransformExecutor().execute(TransformConfig(), {"temp_f": 72})

    @pytest.mark.asyncio
    async def test_compile_error_carries_config_id(self):
        config = TransformConfig(mapping="$round(")

        with pytest.raises(ValidationFailure) as exc_info:
            await TransformExecutor().execute(config, {})

        assert exc_info.value.config_id == config.id

    @pytest.mark.asyncio
    async def test_no_schema_accepts_any_output(self):
        config = TransformConfig(mapping="$count(items)")

        result = await TransformExecutor().execute(config, {"items": [1, 2, 3]})

        assert result.data == 3
