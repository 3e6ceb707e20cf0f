"""Tests for the schema validator."""

from api_glue.engine.validator import check_schema, format_path, validate

PERSON_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "age": {"type": "integer", "minimum": 0},
        "tags": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["name"],
}


class TestFormatPath:
    """Tests for rendering jsonschema paths."""

    def test_root(self):
        assert format_path([]) == "$"

    def test_nested(self):
        assert format_path(["items", 0, "id"]) == "$.items[0].id"


class TestValidate:
    """Tests for validate()."""

    def test_valid_value(self):
        """Test that a conforming value has no violations."""
        result = validate({"name": "Ada", "age": 36}, PERSON_SCHEMA)

        assert result.valid
        assert result.violations == []

    def test_missing_required_property(self):
        """Test that a missing required property is reported at the root."""
        result = validate({"age": 36}, PERSON_SCHEMA)

        assert not result.valid
        assert len(result.violations) == 1
        assert result.violations[0].path == "$"
        assert "'name' is a required property" in result.violations[0].message

    def test_nested_violation_path(self):
        """Test that violations point at the offending element."""
        result = validate({"name": "Ada", "tags": ["a", 2]}, PERSON_SCHEMA)

        assert not result.valid
        assert result.violations[0].path == "$.tags[1]"
        assert result.violations[0].schema_path.endswith("/type")

    def test_multiple_violations_reported(self):
        """Test that every violation is listed."""
        result = validate({"age": -1, "tags": [1]}, PERSON_SCHEMA)

        paths = {v.path for v in result.violations}
        assert paths == {"$", "$.age", "$.tags[0]"}

    def test_empty_schema_accepts_anything(self):
        """Test that a missing or empty schema accepts any value."""
        assert validate({"anything": [1, 2]}, None).valid
        assert validate("text", {}).valid

    def test_broken_schema_does_not_raise(self):
        """Test that an invalid schema is reported as a violation."""
        result = validate({"a": 1}, {"type": "not-a-type"})

        assert not result.valid
        assert "Invalid schema" in result.violations[0].message

    def test_any_of_errors_are_flattened(self):
        """Test that anyOf failures are reported as concrete leaf errors."""
        schema = {"anyOf": [{"type": "string"}, {"type": "integer"}]}

        result = validate([1], schema)

        assert not result.valid
        assert len(result.violations) == 2

    def test_idempotent(self):
        """Test that validating twice gives the same result."""
        value = {"age": "x"}
        assert validate(value, PERSON_SCHEMA) == validate(value, PERSON_SCHEMA)


class TestCheckSchema:
    """Tests for check_schema()."""

    def test_valid_schema(self):
        assert check_schema(PERSON_SCHEMA).valid

    def test_empty_schema_rejected(self):
        assert not check_schema({}).valid

    def test_non_object_rejected(self):
        assert not check_schema(["type", "object"]).valid

    def test_schema_without_type_rejected(self):
        assert not check_schema({"description": "nothing"}).valid

    def test_invalid_keyword_value_rejected(self):
        result = check_schema({"type": "object", "required": "name"})

        assert not result.valid
        assert result.violations[0].path == "$.required"
