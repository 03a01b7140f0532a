"""
Schema Validator for DocShield Gateway

Declarative JSON schemas for LLM output, with recursive type and bound
checks and stripping of unknown fields.
"""

import copy
import json
import math
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Union

logger = logging.getLogger(__name__)


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


@dataclass(frozen=True)
class FieldDef:
    """Expected type and constraints of one field.

    ``max_len`` and ``min_len`` apply to strings and count UTF-8 bytes.
    ``nested`` describes object values, ``items`` describes array elements.
    ``required`` only controls whether an explicit null is an error; presence
    is governed by ``Schema.required``.
    """

    type: FieldType
    max_len: Optional[int] = None
    min_len: Optional[int] = None
    nested: Optional["Schema"] = None
    items: Optional["FieldDef"] = None
    required: bool = False

    @classmethod
    def string(cls, max_len: Optional[int] = None, min_len: Optional[int] = None) -> "FieldDef":
        return cls(FieldType.STRING, max_len=max_len, min_len=min_len)

    @classmethod
    def number(cls) -> "FieldDef":
        return cls(FieldType.NUMBER)

    @classmethod
    def boolean(cls) -> "FieldDef":
        return cls(FieldType.BOOLEAN)

    @classmethod
    def array(cls, items: Optional["FieldDef"] = None) -> "FieldDef":
        return cls(FieldType.ARRAY, items=items)

    @classmethod
    def object(cls, nested: Optional["Schema"] = None) -> "FieldDef":
        return cls(FieldType.OBJECT, nested=nested)


@dataclass(frozen=True)
class Schema:
    """Accepted shape of one JSON object."""

    fields: Mapping[str, FieldDef]
    required: FrozenSet[str] = frozenset()

    def is_required(self, name: str) -> bool:
        return name in self.required or (
            name in self.fields and self.fields[name].required
        )


@dataclass
class ValidationResult:
    """Outcome of validating one JSON document."""

    valid: bool = True
    errors: List[str] = field(default_factory=list)
    stripped_fields: List[str] = field(default_factory=list)
    sanitized_output: Optional[Dict[str, Any]] = None

    def add_error(self, message: str) -> None:
        self.valid = False
        self.errors.append(message)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not a valid JSON number")


def parse_json(text: Union[str, bytes]) -> Any:
    """json.loads without the NaN and Infinity extensions."""
    return json.loads(text, parse_constant=_reject_constant)


def is_finite_number(value: Union[int, float]) -> bool:
    """True if the number is finite and fits a double."""
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def json_type_name(value: Any) -> str:
    """Name of the JSON type of a parsed value."""
    if value is None:
        return "null"
    # bool is a subclass of int and must be tested first
    if isinstance(value, bool):
        return FieldType.BOOLEAN.value
    if isinstance(value, (int, float)):
        if not is_finite_number(value):
            return "non-finite number"
        return FieldType.NUMBER.value
    if isinstance(value, str):
        return FieldType.STRING.value
    if isinstance(value, list):
        return FieldType.ARRAY.value
    if isinstance(value, dict):
        return FieldType.OBJECT.value
    return "unknown"


def join_path(base: str, name: str) -> str:
    return f"{base}.{name}" if base else name


class SchemaValidator:
    """Validates LLM output against a declarative schema."""

    def __init__(self, allow_extra_fields: bool = False):
        self.allow_extra_fields = allow_extra_fields

    def validate_json(self, output: Union[str, bytes], schema: Schema) -> ValidationResult:
        """
        Parse and validate raw output that should be one JSON object.

        Args:
            output: Raw JSON text or bytes
            schema: Schema the object must satisfy

        Returns:
            ValidationResult; never raises for bad input
        """
        try:
            data = parse_json(output)
        except (TypeError, ValueError) as e:
            result = ValidationResult()
            result.add_error(f"invalid JSON: {e}")
            return result

        return self.validate(data, schema)

    def validate(self, data: Any, schema: Schema) -> ValidationResult:
        """Validate an already parsed value. The input is not mutated."""
        result = ValidationResult()

        if not isinstance(data, dict):
            result.add_error(f"invalid JSON: expected object, got {json_type_name(data)}")
            return result

        sanitized = copy.deepcopy(data)
        self._validate_object(sanitized, schema, "", result)

        if not self.allow_extra_fields:
            self._strip_unknown_fields(sanitized, schema, "", result)

        result.sanitized_output = sanitized
        if result.errors:
            logger.info(f"Schema validation failed with {len(result.errors)} errors")
        return result

    def _validate_object(
        self, data: Dict[str, Any], schema: Schema, path: str, result: ValidationResult
    ) -> None:
        for name in sorted(schema.required):
            if name not in data:
                result.add_error(f"missing required field: {join_path(path, name)}")

        for name, value in data.items():
            field_def = schema.fields.get(name)
            if field_def is None:
                continue
            self._validate_field(
                value, field_def, join_path(path, name), schema.is_required(name), result
            )

    def _validate_field(
        self,
        value: Any,
        field_def: FieldDef,
        path: str,
        required: bool,
        result: ValidationResult,
    ) -> None:
        if value is None:
            if required:
                result.add_error(f"required field is null: {path}")
            return

        actual = json_type_name(value)
        if actual != field_def.type.value:
            result.add_error(
                f"type mismatch at {path}: expected {field_def.type.value}, got {actual}"
            )
            return

        if field_def.type is FieldType.STRING:
            length = len(value.encode("utf-8"))
            if field_def.max_len is not None and length > field_def.max_len:
                result.add_error(
                    f"string too long at {path}: max {field_def.max_len}, got {length}"
                )
            if field_def.min_len is not None and length < field_def.min_len:
                result.add_error(
                    f"string too short at {path}: min {field_def.min_len}, got {length}"
                )

        elif field_def.type is FieldType.OBJECT and field_def.nested is not None:
            self._validate_object(value, field_def.nested, path, result)

        elif field_def.type is FieldType.ARRAY and field_def.items is not None:
            for index, item in enumerate(value):
                self._validate_field(
                    item, field_def.items, f"{path}[{index}]", field_def.items.required, result
                )

    def _strip_unknown_fields(
        self, data: Dict[str, Any], schema: Schema, path: str, result: ValidationResult
    ) -> None:
        for name in list(data):
            field_def = schema.fields.get(name)
            field_path = join_path(path, name)

            if field_def is None:
                result.stripped_fields.append(field_path)
                del data[name]
                continue

            value = data[name]
            if field_def.type is FieldType.OBJECT and field_def.nested is not None:
                if isinstance(value, dict):
                    self._strip_unknown_fields(value, field_def.nested, field_path, result)

            elif (
                field_def.type is FieldType.ARRAY
                and field_def.items is not None
                and field_def.items.type is FieldType.OBJECT
                and field_def.items.nested is not None
                and isinstance(value, list)
            ):
                for index, item in enumerate(value):
                    if isinstance(item, dict):
                        self._strip_unknown_fields(
                            item, field_def.items.nested, f"{field_path}[{index}]", result
                        )


# Common schemas for AI responses

DOCUMENT_ANALYSIS_SCHEMA = Schema(
    required=frozenset({"summary", "document_type"}),
    fields={
        "summary": FieldDef.string(max_len=5000),
        "document_type": FieldDef.string(max_len=100),
        "deadline": FieldDef.string(max_len=100),
        "amount": FieldDef.number(),
        "action_items": FieldDef.array(FieldDef.string(max_len=500)),
        "confidence": FieldDef.number(),
    },
)

ACTION_ITEMS_SCHEMA = Schema(
    required=frozenset({"items"}),
    fields={
        "items": FieldDef.array(
            FieldDef.object(
                Schema(
                    required=frozenset({"description"}),
                    fields={
                        "description": FieldDef.string(max_len=1000),
                        "deadline": FieldDef.string(max_len=50),
                        "priority": FieldDef.string(max_len=20),
                    },
                )
            )
        ),
    },
)
