"""Tool contract and schema types."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from reagent.exceptions import InvalidToolArgumentsError
from reagent.value import SendableValue, ValueKind

if TYPE_CHECKING:
  from reagent.guardrail.base import ToolInputGuardrail, ToolOutputGuardrail


class ParameterKind(str, Enum):
  STRING = "string"
  INT = "int"
  DOUBLE = "double"
  BOOL = "bool"
  ARRAY = "array"
  OBJECT = "object"
  ONE_OF = "one_of"
  ANY = "any"


_JSON_TYPES = {
  ParameterKind.STRING: "string",
  ParameterKind.INT: "integer",
  ParameterKind.DOUBLE: "number",
  ParameterKind.BOOL: "boolean",
  ParameterKind.ARRAY: "array",
  ParameterKind.OBJECT: "object",
  ParameterKind.ONE_OF: "string",
}


class ParameterType(BaseModel):
  """Recursive parameter type: scalar, ``array(element)``, ``object(properties)``, ``one_of(choices)`` or ``any``.

  Build instances with the class constructors::

      ParameterType.array(ParameterType.string())
      ParameterType.one_of(["celsius", "fahrenheit"])
  """

  model_config = ConfigDict(frozen=True)

  kind: ParameterKind
  element: Optional["ParameterType"] = None
  properties: Tuple["ToolParameter", ...] = ()
  choices: Tuple[str, ...] = ()

  @classmethod
  def string(cls) -> ParameterType:
    return cls(kind=ParameterKind.STRING)

  @classmethod
  def int(cls) -> ParameterType:
    return cls(kind=ParameterKind.INT)

  @classmethod
  def double(cls) -> ParameterType:
    return cls(kind=ParameterKind.DOUBLE)

  @classmethod
  def bool(cls) -> ParameterType:
    return cls(kind=ParameterKind.BOOL)

  @classmethod
  def any(cls) -> ParameterType:
    return cls(kind=ParameterKind.ANY)

  @classmethod
  def array(cls, element: ParameterType) -> ParameterType:
    return cls(kind=ParameterKind.ARRAY, element=element)

  @classmethod
  def object(cls, properties: Sequence["ToolParameter"]) -> ParameterType:
    return cls(kind=ParameterKind.OBJECT, properties=tuple(properties))

  @classmethod
  def one_of(cls, choices: Sequence[str]) -> ParameterType:
    return cls(kind=ParameterKind.ONE_OF, choices=tuple(choices))

  @property
  def description(self) -> str:
    if self.kind == ParameterKind.ARRAY and self.element is not None:
      return f"array of {self.element.description}"
    if self.kind == ParameterKind.ONE_OF:
      return f"one of: {', '.join(self.choices)}"
    return self.kind.value

  def to_json_schema(self) -> Dict[str, Any]:
    """JSON Schema fragment describing this type."""
    if self.kind == ParameterKind.ANY:
      return {}
    schema: Dict[str, Any] = {"type": _JSON_TYPES[self.kind]}
    if self.kind == ParameterKind.ARRAY:
      schema["items"] = self.element.to_json_schema() if self.element is not None else {}
    elif self.kind == ParameterKind.OBJECT:
      schema.update(_object_schema(self.properties))
    elif self.kind == ParameterKind.ONE_OF:
      schema["enum"] = list(self.choices)
    return schema

  def accepts(self, value: SendableValue) -> Optional[str]:
    """Return a reason string when *value* does not fit this type, else None."""
    kind = self.kind
    if kind == ParameterKind.ANY:
      return None
    if kind == ParameterKind.STRING and value.kind != ValueKind.STRING:
      return f"expected string, got {value.kind.value}"
    if kind == ParameterKind.INT and value.kind != ValueKind.INT:
      return f"expected int, got {value.kind.value}"
    if kind == ParameterKind.DOUBLE and value.kind not in (ValueKind.INT, ValueKind.DOUBLE):
      return f"expected double, got {value.kind.value}"
    if kind == ParameterKind.BOOL and value.kind != ValueKind.BOOL:
      return f"expected bool, got {value.kind.value}"
    if kind == ParameterKind.ONE_OF:
      if value.string_value not in self.choices:
        return f"must be one of [{', '.join(self.choices)}]"
    if kind == ParameterKind.ARRAY:
      if value.kind != ValueKind.ARRAY:
        return f"expected array, got {value.kind.value}"
      if self.element is not None:
        for index, item in enumerate(value.array_value or ()):
          reason = self.element.accepts(item)
          if reason:
            return f"item {index}: {reason}"
    if kind == ParameterKind.OBJECT:
      if value.kind != ValueKind.DICTIONARY:
        return f"expected object, got {value.kind.value}"
      return validate_parameters(self.properties, value.dictionary_value or {})
    return None


class ToolParameter(BaseModel):
  """A single named tool parameter."""

  model_config = ConfigDict(frozen=True)

  name: str
  description: str = ""
  type: ParameterType = Field(default_factory=ParameterType.string)
  is_required: bool = True

  @property
  def signature(self) -> str:
    requirement = "required" if self.is_required else "optional"
    return f"{self.name} ({requirement}): {self.description}"


class ToolDefinition(BaseModel):
  """Name, description and parameters of a tool, as advertised to the model.

  Parameter names must be unique within one definition.
  """

  model_config = ConfigDict(frozen=True)

  name: str
  description: str = ""
  parameters: Tuple[ToolParameter, ...] = ()

  @model_validator(mode="after")
  def _unique_parameter_names(self) -> ToolDefinition:
    names = [p.name for p in self.parameters]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
      raise ValueError(f"Duplicate parameter names in tool '{self.name}': {', '.join(duplicates)}")
    return self

  def to_json_schema(self) -> Dict[str, Any]:
    """OpenAI function-calling schema for this tool."""
    return {
      "type": "function",
      "function": {
        "name": self.name,
        "description": self.description,
        "parameters": {"type": "object", **_object_schema(self.parameters)},
      },
    }


ParameterType.model_rebuild()


def _object_schema(parameters: Sequence[ToolParameter]) -> Dict[str, Any]:
  properties: Dict[str, Any] = {}
  for parameter in parameters:
    prop = parameter.type.to_json_schema()
    if parameter.description:
      prop["description"] = parameter.description
    properties[parameter.name] = prop
  return {"properties": properties, "required": [p.name for p in parameters if p.is_required]}


def validate_parameters(parameters: Sequence[ToolParameter], arguments: Mapping[str, SendableValue]) -> Optional[str]:
  """Check *arguments* against *parameters*. Returns the first problem found, or None."""
  for parameter in parameters:
    value = arguments.get(parameter.name)
    if value is None or value.is_null:
      if parameter.is_required:
        return f"Missing required parameter '{parameter.name}'"
      continue
    reason = parameter.type.accepts(value)
    if reason:
      return f"Parameter '{parameter.name}' {reason}"
  return None


class Tool(ABC):
  """Base class for tools callable by an agent.

  Subclasses set ``name``, ``description`` and ``parameters`` and implement
  :meth:`execute`. Guardrail lists default to empty.

  Example::

      class Weather(Tool):
          name = "weather"
          description = "Current weather for a city"
          parameters = [ToolParameter(name="city", description="City name")]

          async def execute(self, arguments):
              return SendableValue.of(f"Sunny in {arguments['city'].string_value}")
  """

  name: str = ""
  description: str = ""
  parameters: Sequence[ToolParameter] = ()
  input_guardrails: Sequence["ToolInputGuardrail"] = ()
  output_guardrails: Sequence["ToolOutputGuardrail"] = ()

  @abstractmethod
  async def execute(self, arguments: Dict[str, SendableValue]) -> SendableValue:
    """Run the tool. Raise to signal failure."""

  @property
  def definition(self) -> ToolDefinition:
    return ToolDefinition(name=self.name, description=self.description, parameters=tuple(self.parameters))

  def validate_arguments(self, arguments: Mapping[str, SendableValue]) -> None:
    """Raise :class:`InvalidToolArgumentsError` when *arguments* do not fit the parameters."""
    reason = validate_parameters(self.parameters, arguments)
    if reason:
      raise InvalidToolArgumentsError(self.name, reason)

  def __repr__(self) -> str:
    return f"{type(self).__name__}(name={self.name!r})"
