"""JSON Schema helpers for tool parameter validation."""

from typing import Any

from jsonschema import Draft7Validator


def validate_schema(data: Any, schema: dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate data against a JSON Schema.

    Args:
        data: The data to validate
        schema: JSON Schema to validate against

    Returns:
        Tuple of (is_valid, list of error messages)
    """
    if not schema:
        return True, []

    validator = Draft7Validator(schema)
    errors = sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.path])

    if not errors:
        return True, []

    error_messages = [
        f"{'.'.join(str(p) for p in e.path)}: {e.message}" if e.path else e.message
        for e in errors
    ]

    return False, error_messages


TYPE_MAPPING = {
    "string": "string",
    "str": "string",
    "integer": "integer",
    "int": "integer",
    "boolean": "boolean",
    "bool": "boolean",
    "array": "array",
    "list": "array",
}


def object_schema(
    properties: dict[str, str | dict[str, Any]],
    required: list[str] | None = None
) -> dict[str, Any]:
    """
    Build an object schema from a compact property map.

    Values are either a type name ("string", "bool", ...) or a full
    property schema.
    """
    props: dict[str, Any] = {}
    for name, spec in properties.items():
        if isinstance(spec, str):
            props[name] = {"type": TYPE_MAPPING.get(spec, spec)}
        else:
            props[name] = spec

    return {
        "type": "object",
        "properties": props,
        "required": list(required or []),
    }
