"""
Schema Codec
------------
Parameter validators and their persisted shape.

Each validator declares its kind at construction, so encoding never
inspects classes at runtime.

Known limitation: the wire shape is coarse ({type, description,
required}). Finer constraints (length bounds, ranges, enums) are NOT
persisted, so decode(encode(v)) keeps v's required flag and coarse type
class but accepts values v would have rejected.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict


class ParameterKind(str, Enum):
    """Declared kind of a validator; the value is its wire type tag."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    ANY = "unknown"


TYPE_TAGS = frozenset(kind.value for kind in ParameterKind)


class ParameterDescriptor(BaseModel):
    """Persisted description of one parameter."""
    model_config = ConfigDict(extra="ignore")

    type: str = ParameterKind.ANY.value
    description: Optional[str] = None
    required: bool = True
    example: Optional[str] = None


@dataclass(frozen=True)
class ParameterValidator:
    """
    Typed parameter validator.

    kind is fixed at construction; optional mirrors "not required".
    """
    kind: ParameterKind
    description: Optional[str] = None
    optional: bool = False
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    enum: Optional[Tuple[Any, ...]] = None

    def describe(self, description: str) -> "ParameterValidator":
        return replace(self, description=description)

    def as_optional(self) -> "ParameterValidator":
        return replace(self, optional=True)

    @property
    def required(self) -> bool:
        return not self.optional

    def _type_ok(self, value: Any) -> bool:
        if self.kind == ParameterKind.STRING:
            return isinstance(value, str)
        if self.kind == ParameterKind.NUMBER:
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        if self.kind == ParameterKind.BOOLEAN:
            return isinstance(value, bool)
        if self.kind == ParameterKind.ARRAY:
            return isinstance(value, (list, tuple))
        if self.kind == ParameterKind.OBJECT:
            return isinstance(value, Mapping)
        return True

    def validate(self, value: Any) -> Tuple[bool, Optional[str]]:
        """
        Validate a single value.
        Returns (is_valid, error_message).
        """
        if not self._type_ok(value):
            return False, f"expected {self.kind.value}, got {type(value).__name__}"

        if self.enum is not None and value not in self.enum:
            return False, f"must be one of {list(self.enum)}"

        if self.kind == ParameterKind.STRING:
            if self.min_length is not None and len(value) < self.min_length:
                return False, f"must be at least {self.min_length} characters"
            if self.max_length is not None and len(value) > self.max_length:
                return False, f"must be at most {self.max_length} characters"

        if self.kind == ParameterKind.NUMBER:
            if self.minimum is not None and value < self.minimum:
                return False, f"must be >= {self.minimum}"
            if self.maximum is not None and value > self.maximum:
                return False, f"must be <= {self.maximum}"

        return True, None


# Constructors

def string(description: Optional[str] = None, **constraints) -> ParameterValidator:
    return ParameterValidator(ParameterKind.STRING, description=description, **constraints)


def number(description: Optional[str] = None, **constraints) -> ParameterValidator:
    return ParameterValidator(ParameterKind.NUMBER, description=description, **constraints)


def boolean(description: Optional[str] = None) -> ParameterValidator:
    return ParameterValidator(ParameterKind.BOOLEAN, description=description)


def array(description: Optional[str] = None) -> ParameterValidator:
    return ParameterValidator(ParameterKind.ARRAY, description=description)


def object_(description: Optional[str] = None) -> ParameterValidator:
    return ParameterValidator(ParameterKind.OBJECT, description=description)


def any_(description: Optional[str] = None) -> ParameterValidator:
    return ParameterValidator(ParameterKind.ANY, description=description)


# Codec

def encode(validator: ParameterValidator) -> ParameterDescriptor:
    """Map a validator to its persisted shape. Unrecognized kinds encode as unknown."""
    kind = getattr(validator, "kind", None)
    if not isinstance(kind, ParameterKind):
        kind = ParameterKind.ANY
    return ParameterDescriptor(
        type=kind.value,
        description=getattr(validator, "description", None) or None,
        required=not getattr(validator, "optional", False),
    )


def decode(descriptor: ParameterDescriptor) -> ParameterValidator:
    """
    Map a persisted shape back to a validator.

    Unknown type tags decode to an accept-anything validator: previously
    stored tools stay available rather than failing closed.
    """
    kind = ParameterKind(descriptor.type) if descriptor.type in TYPE_TAGS else ParameterKind.ANY
    return ParameterValidator(
        kind=kind,
        description=descriptor.description or None,
        optional=descriptor.required is False,
    )


def encode_schema(schema: Mapping[str, ParameterValidator]) -> Dict[str, ParameterDescriptor]:
    return {name: encode(validator) for name, validator in schema.items()}


def decode_schema(schema: Mapping[str, ParameterDescriptor]) -> Dict[str, ParameterValidator]:
    return {name: decode(descriptor) for name, descriptor in schema.items()}


def validate_args(
    validators: Mapping[str, ParameterValidator],
    args: Mapping[str, Any],
    strict: bool = False,
) -> Tuple[bool, Optional[str]]:
    """
    Validate a call's arguments against a schema.
    Returns (is_valid, error_message).

    Unknown arguments pass through unless strict is set; stored schemas
    may predate arguments a template reads (e.g. transformation input).
    """
    for name, validator in validators.items():
        if name not in args:
            if validator.required:
                return False, f"Missing required parameter: {name}"
            continue

        valid, error = validator.validate(args[name])
        if not valid:
            return False, f"Invalid value for {name}: {error}"

    unknown: List[str] = [name for name in args if name not in validators]
    if strict and unknown:
        return False, f"Unknown parameter: {unknown[0]}"

    return True, None


def to_json_schema(validators: Mapping[str, ParameterValidator], strict: bool = False) -> Dict[str, Any]:
    """
    Render a schema as JSON Schema for an orchestrating layer.

    additionalProperties follows the same strict flag as validate_args,
    so the advertised schema accepts exactly what invoke accepts.
    """
    properties = {}
    required = []
    for name, validator in validators.items():
        prop: Dict[str, Any] = {}
        if validator.kind != ParameterKind.ANY:
            prop["type"] = validator.kind.value
        if validator.description:
            prop["description"] = validator.description
        properties[name] = prop
        if validator.required:
            required.append(name)

    return {
        "type": "object",
        "properties": properties,
        "required": required,
        "additionalProperties": not strict,
    }
