from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Type, Union

from jsonschema import Draft7Validator, SchemaError
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .errors import SchemaValidationError

SchemaLike = Union[Type[BaseModel], Mapping[str, Any]]


def _is_model_class(schema: Any) -> bool:
    return isinstance(schema, type) and issubclass(schema, BaseModel)


class ResponseSchema:
    """
    Caller-supplied schema for structured generation.

    Accepts either a pydantic model class (results are model instances) or a
    Draft-07 JSON Schema mapping (results are plain JSON data validated with
    jsonschema).
    """

    def __init__(self, schema: SchemaLike) -> None:
        if _is_model_class(schema):
            self.model = schema
            self.json_schema: Dict[str, Any] = schema.model_json_schema()
            self._validator = None
        elif isinstance(schema, Mapping):
            try:
                Draft7Validator.check_schema(schema)
            except SchemaError as exc:
                raise ValueError(f"Invalid JSON schema: {exc.message}") from exc
            self.model = None
            self.json_schema = dict(schema)
            self._validator = Draft7Validator(self.json_schema)
        else:
            raise TypeError("schema must be a pydantic model class or a JSON Schema mapping")

    def validate(self, data: Any) -> Any:
        if self.model is not None:
            try:
                return self.model.model_validate(data)
            except PydanticValidationError as exc:
                raise SchemaValidationError(f"Response does not match schema: {exc}") from exc

        errors = _collect_errors(self._validator, data)
        if errors:
            summary = "; ".join(f"{'/'.join(str(p) for p in err['path']) or '<root>'}: {err['message']}" for err in errors)
            raise SchemaValidationError(f"Response does not match schema: {summary}")
        return data

    def parse_text(self, text: str) -> Any:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise SchemaValidationError(f"Failed to parse structured response: {exc}\nResponse: {text}") from exc
        return self.validate(data)

    @staticmethod
    def dump(value: Any) -> Any:
        if isinstance(value, BaseModel):
            return value.model_dump(mode="json")
        return value


def _collect_errors(validator: Draft7Validator, instance: Any) -> List[Dict[str, Any]]:
    errors: List[Dict[str, Any]] = []
    for err in validator.iter_errors(instance):
        errors.append(
            {
                "path": list(err.path),
                "message": err.message,
            }
        )
    return errors
