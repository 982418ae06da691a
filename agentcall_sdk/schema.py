"""
Structural schema validation for agent inputs and outputs.

Schemas are the JSON-Schema subset that agents declare at registration
(``type``, ``properties``, ``required``, ``items``, ``enum`` and the usual
length/range bounds). Validation is a pure function: it never raises for a
bad value or a bad schema, it reports violations instead.
"""
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .exceptions import SchemaValidationError

_TYPE_NAMES = ("object", "array", "string", "number", "integer", "boolean", "null")


@dataclass(frozen=True)
class Violation:
    """A single schema violation."""
    path: str
    message: str
    code: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


@dataclass
class ValidationResult:
    """Result of validating a value: an empty violation list means valid."""
    violations: List[Violation] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations

    def messages(self) -> List[str]:
        return [str(v) for v in self.violations]

    def __bool__(self) -> bool:
        return self.ok


def _matches_type(value: Any, type_name: str) -> bool:
    # bool is an int subclass; JSON keeps them apart
    if type_name == "object":
        return isinstance(value, Mapping)
    if type_name == "array":
        return isinstance(value, (list, tuple))
    if type_name == "string":
        return isinstance(value, str)
    if type_name == "boolean":
        return isinstance(value, bool)
    if type_name == "null":
        return value is None
    if type_name == "integer":
        if isinstance(value, bool):
            return False
        if isinstance(value, int):
            return True
        return isinstance(value, float) and math.isfinite(value) and value.is_integer()
    if type_name == "number":
        if isinstance(value, bool):
            return False
        if isinstance(value, int):
            return True
        return isinstance(value, float) and math.isfinite(value)
    return False


def _describe(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, (list, tuple)):
        return "array"
    return type(value).__name__


def _child(path: str, key: Any) -> str:
    if isinstance(key, int):
        return f"{path}[{key}]"
    return f"{path}.{key}"


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _is_bound(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class _Validator:
    """Walks a value alongside its schema and collects violations."""

    def __init__(self) -> None:
        self.violations: List[Violation] = []

    def add(self, path: str, message: str, code: str) -> None:
        self.violations.append(Violation(path=path, message=message, code=code))

    def check(self, value: Any, schema: Any, path: str) -> None:
        if isinstance(schema, bool):
            # true accepts anything, false accepts nothing
            if not schema:
                self.add(path, "no value is allowed here", "not_allowed")
            return
        if not isinstance(schema, Mapping):
            self.add(path, f"schema must be an object, got {_describe(schema)}", "invalid_schema")
            return

        if not self._check_type(value, schema, path):
            # Nested checks on a wrong-typed value only produce noise
            return

        if "enum" in schema:
            self._check_enum(value, schema["enum"], path)

        if isinstance(value, str):
            self._check_length(value, schema, path, "minLength", "maxLength", "characters")
        elif isinstance(value, Mapping):
            self._check_object(value, schema, path)
        elif isinstance(value, (list, tuple)):
            self._check_length(value, schema, path, "minItems", "maxItems", "items")
            self._check_items(value, schema, path)
        elif _matches_type(value, "number"):
            self._check_range(value, schema, path)

    def _check_type(self, value: Any, schema: Mapping, path: str) -> bool:
        if "type" not in schema:
            return True
        declared = schema["type"]
        names = declared if isinstance(declared, (list, tuple)) else [declared]
        unknown = [n for n in names if n not in _TYPE_NAMES]
        if unknown or not names:
            self.add(path, f"schema declares unknown type {declared!r}", "invalid_schema")
            return False
        if any(_matches_type(value, n) for n in names):
            return True
        expected = " or ".join(names)
        self.add(path, f"expected {expected}, got {_describe(value)}", "type")
        return False

    def _check_enum(self, value: Any, options: Any, path: str) -> None:
        if not isinstance(options, (list, tuple)):
            self.add(path, "schema 'enum' must be an array", "invalid_schema")
            return
        for option in options:
            # Compare with type so that True does not match 1
            if type(option) is type(value) and option == value:
                return
            if _matches_type(value, "number") and _matches_type(option, "number") and option == value:
                return
        self.add(path, f"value must be one of {list(options)!r}", "enum")

    def _check_length(self, value: Any, schema: Mapping, path: str,
                      min_key: str, max_key: str, unit: str) -> None:
        length = len(value)
        minimum = schema.get(min_key)
        maximum = schema.get(max_key)
        if minimum is not None:
            if not _is_count(minimum):
                self.add(path, f"schema '{min_key}' must be a non-negative integer", "invalid_schema")
            elif length < minimum:
                self.add(path, f"must have at least {minimum} {unit}", min_key)
        if maximum is not None:
            if not _is_count(maximum):
                self.add(path, f"schema '{max_key}' must be a non-negative integer", "invalid_schema")
            elif length > maximum:
                self.add(path, f"must have at most {maximum} {unit}", max_key)

    def _check_range(self, value: Any, schema: Mapping, path: str) -> None:
        minimum = schema.get("minimum")
        maximum = schema.get("maximum")
        if minimum is not None:
            if not _is_bound(minimum):
                self.add(path, "schema 'minimum' must be a number", "invalid_schema")
            elif value < minimum:
                self.add(path, f"must be >= {minimum}", "minimum")
        if maximum is not None:
            if not _is_bound(maximum):
                self.add(path, "schema 'maximum' must be a number", "invalid_schema")
            elif value > maximum:
                self.add(path, f"must be <= {maximum}", "maximum")

    def _check_object(self, value: Mapping, schema: Mapping, path: str) -> None:
        properties = schema.get("properties", {})
        if not isinstance(properties, Mapping):
            self.add(path, "schema 'properties' must be an object", "invalid_schema")
            properties = {}

        required = schema.get("required", [])
        if not isinstance(required, (list, tuple)) or not all(isinstance(r, str) for r in required):
            self.add(path, "schema 'required' must be an array of strings", "invalid_schema")
            required = []
        for name in required:
            if name not in value:
                self.add(_child(path, name), "required field is missing", "required")

        for key, item in value.items():
            if key in properties:
                self.check(item, properties[key], _child(path, key))

        additional = schema.get("additionalProperties", True)
        if additional is False:
            for key in value:
                if key not in properties:
                    self.add(_child(path, key), "additional property is not allowed", "additional_properties")
        elif isinstance(additional, Mapping):
            for key, item in value.items():
                if key not in properties:
                    self.check(item, additional, _child(path, key))

    def _check_items(self, value: Any, schema: Mapping, path: str) -> None:
        items = schema.get("items")
        if items is None:
            return
        if not isinstance(items, (Mapping, bool)):
            self.add(path, "schema 'items' must be an object", "invalid_schema")
            return
        for index, item in enumerate(value):
            self.check(item, items, _child(path, index))


def validate(value: Any, schema: Optional[Dict[str, Any]]) -> ValidationResult:
    """
    Validate a value against a declared structural schema.

    Args:
        value: The value to check (typically decoded JSON)
        schema: The declared schema; ``None`` or ``{}`` accepts anything

    Returns:
        ValidationResult whose ``violations`` list is empty when valid
    """
    if schema is None:
        return ValidationResult()
    validator = _Validator()
    try:
        validator.check(value, schema, "$")
    except RecursionError:
        validator.add("$", "value is nested too deeply to validate", "too_deep")
    return ValidationResult(violations=validator.violations)


def require_valid(value: Any, schema: Optional[Dict[str, Any]]) -> None:
    """
    Validate and raise if the value does not match.

    Raises:
        SchemaValidationError: With the full violation list attached
    """
    result = validate(value, schema)
    if not result.ok:
        raise SchemaValidationError(
            f"Value does not match schema: {'; '.join(result.messages())}",
            violations=result.violations,
        )
