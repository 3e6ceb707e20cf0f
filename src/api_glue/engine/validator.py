"""JSON schema validation for step outputs and generated schemas.

Validation never raises: every outcome, including a broken schema, is
reported through a `ValidationResult`.
"""

from collections.abc import Iterable
from typing import Any

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError, ValidationError
from jsonschema.validators import validator_for

from ..models import ValidationResult, Violation


def format_path(parts: Iterable[Any]) -> str:
    """Render a jsonschema path deque as `$.a[0].b`."""
    path = "$"
    for part in parts:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}"
    return path


def _schema_pointer(parts: Iterable[Any]) -> str:
    return "/" + "/".join(str(p) for p in parts)


def _to_violation(error: ValidationError) -> Violation:
    return Violation(
        path=format_path(error.absolute_path),
        schema_path=_schema_pointer(error.absolute_schema_path),
        message=error.message,
    )


def _leaf_errors(errors: Iterable[ValidationError]) -> list[ValidationError]:
    """Flatten anyOf/oneOf context errors so each violation names a concrete path."""
    leaves: list[ValidationError] = []
    for error in errors:
        if error.context:
            leaves.extend(_leaf_errors(error.context))
        else:
            leaves.append(error)
    return leaves


def validate(value: Any, schema: dict[str, Any] | None) -> ValidationResult:
    """Validate `value` against `schema`.

    A missing or empty schema accepts any value.
    """
    if not schema:
        return ValidationResult(valid=True)

    if not isinstance(schema, dict):
        return ValidationResult(
            valid=False,
            violations=[Violation(path="$", message=f"Schema must be an object, got {type(schema).__name__}")],
        )

    cls = validator_for(schema, default=Draft7Validator)
    try:
        cls.check_schema(schema)
    except SchemaError as e:
        return ValidationResult(
            valid=False,
            violations=[
                Violation(
                    path="$",
                    schema_path=_schema_pointer(e.absolute_path),
                    message=f"Invalid schema: {e.message}",
                )
            ],
        )

    errors = sorted(cls(schema).iter_errors(value), key=lambda e: format_path(e.absolute_path))
    violations = [_to_violation(e) for e in _leaf_errors(errors)]
    return ValidationResult(valid=not violations, violations=violations)


def check_schema(schema: Any) -> ValidationResult:
    """Check that `schema` is structurally a usable JSON schema."""
    if not isinstance(schema, dict):
        return ValidationResult(
            valid=False,
            violations=[Violation(path="$", message="JSON schema must be an object")],
        )
    if not schema:
        return ValidationResult(
            valid=False,
            violations=[Violation(path="$", message="JSON schema must not be empty")],
        )
    if "type" not in schema and "properties" not in schema and "$ref" not in schema:
        return ValidationResult(
            valid=False,
            violations=[Violation(path="$", message="JSON schema must declare a type or properties")],
        )

    cls = validator_for(schema, default=Draft7Validator)
    try:
        cls.check_schema(schema)
    except SchemaError as e:
        return ValidationResult(
            valid=False,
            violations=[
                Violation(
                    path=format_path(e.absolute_path),
                    schema_path=_schema_pointer(e.absolute_schema_path),
                    message=e.message,
                )
            ],
        )
    return ValidationResult(valid=True)
