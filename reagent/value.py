"""SendableValue: the universal, immutable data value for tool arguments and results.

A closed variant over ``null | bool | int | double | string | array | dictionary``.

Usage::

    from reagent.value import SendableValue

    v = SendableValue.of({"city": "Paris", "days": 3, "tags": ["trip"]})
    v["days"].int_value          # 3
    SendableValue.decode(v.encode()) == v

JSON boundary: whole-number doubles decode as ints, so
``SendableValue.decode(SendableValue.from_double(4.0).encode()) == SendableValue.from_int(4)``.
This is the only lossy case.
"""

import json
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union


class ValueKind(str, Enum):
  NULL = "null"
  BOOL = "bool"
  INT = "int"
  DOUBLE = "double"
  STRING = "string"
  ARRAY = "array"
  DICTIONARY = "dictionary"


@dataclass(frozen=True)
class SendableValue:
  """Immutable tagged value. Build instances with the ``from_*`` factories or :meth:`of`."""

  kind: ValueKind
  value: Any = None

  def __post_init__(self) -> None:
    # Normalise containers so callers cannot mutate a value after construction.
    if self.kind is ValueKind.ARRAY and not isinstance(self.value, tuple):
      object.__setattr__(self, "value", tuple(self.value))
    elif self.kind is ValueKind.DICTIONARY and not isinstance(self.value, _FrozenDict):
      object.__setattr__(self, "value", _FrozenDict(self.value))

  # ------------------------------------------------------------------
  # Factories
  # ------------------------------------------------------------------

  @classmethod
  def null(cls) -> "SendableValue":
    return NULL

  @classmethod
  def from_bool(cls, value: bool) -> "SendableValue":
    return cls(ValueKind.BOOL, bool(value))

  @classmethod
  def from_int(cls, value: int) -> "SendableValue":
    return cls(ValueKind.INT, int(value))

  @classmethod
  def from_double(cls, value: float) -> "SendableValue":
    return cls(ValueKind.DOUBLE, float(value))

  @classmethod
  def from_string(cls, value: str) -> "SendableValue":
    return cls(ValueKind.STRING, str(value))

  @classmethod
  def from_array(cls, items: Iterable["SendableValue"]) -> "SendableValue":
    return cls(ValueKind.ARRAY, tuple(items))

  @classmethod
  def from_dictionary(cls, items: Mapping[str, "SendableValue"]) -> "SendableValue":
    return cls(ValueKind.DICTIONARY, dict(items))

  @classmethod
  def of(cls, obj: Any) -> "SendableValue":
    """Convert a plain Python object (recursively) into a SendableValue.

    ``bool`` is checked before ``int`` so ``True`` never becomes ``1``. Tuples and
    sets become arrays; mapping keys are converted with ``str()``.

    Raises:
      TypeError: If *obj* (or a nested item) has no SendableValue equivalent.
    """
    if isinstance(obj, SendableValue):
      return obj
    if obj is None:
      return NULL
    if isinstance(obj, bool):
      return cls.from_bool(obj)
    if isinstance(obj, int):
      return cls.from_int(obj)
    if isinstance(obj, float):
      return cls.from_double(obj)
    if isinstance(obj, str):
      return cls.from_string(obj)
    if isinstance(obj, Mapping):
      return cls.from_dictionary({str(k): cls.of(v) for k, v in obj.items()})
    if isinstance(obj, (list, tuple, set, frozenset)):
      return cls.from_array(cls.of(v) for v in obj)
    raise TypeError(f"Cannot convert {type(obj).__name__} to SendableValue")

  # ------------------------------------------------------------------
  # Accessors
  # ------------------------------------------------------------------

  @property
  def is_null(self) -> bool:
    return self.kind is ValueKind.NULL

  @property
  def bool_value(self) -> Optional[bool]:
    return self.value if self.kind is ValueKind.BOOL else None

  @property
  def int_value(self) -> Optional[int]:
    return self.value if self.kind is ValueKind.INT else None

  @property
  def double_value(self) -> Optional[float]:
    """The numeric value as a float. Ints widen to floats."""
    if self.kind is ValueKind.DOUBLE:
      return self.value
    if self.kind is ValueKind.INT:
      return float(self.value)
    return None

  @property
  def string_value(self) -> Optional[str]:
    return self.value if self.kind is ValueKind.STRING else None

  @property
  def array_value(self) -> Optional[Tuple["SendableValue", ...]]:
    return self.value if self.kind is ValueKind.ARRAY else None

  @property
  def dictionary_value(self) -> Optional[Mapping[str, "SendableValue"]]:
    return self.value if self.kind is ValueKind.DICTIONARY else None

  def get(self, key: Union[str, int], default: Optional["SendableValue"] = None) -> Optional["SendableValue"]:
    """Look up a dictionary key or array index, returning *default* when absent."""
    try:
      return self[key]
    except (KeyError, IndexError, TypeError):
      return default

  def __getitem__(self, key: Union[str, int]) -> "SendableValue":
    if self.kind is ValueKind.DICTIONARY and isinstance(key, str):
      return self.value[key]
    if self.kind is ValueKind.ARRAY and isinstance(key, int) and not isinstance(key, bool):
      return self.value[key]
    raise TypeError(f"Cannot subscript a {self.kind.value} value with {type(key).__name__}")

  # ------------------------------------------------------------------
  # Conversion
  # ------------------------------------------------------------------

  def to_python(self) -> Any:
    """Convert back into plain Python objects (lists and dicts)."""
    if self.kind is ValueKind.ARRAY:
      return [item.to_python() for item in self.value]
    if self.kind is ValueKind.DICTIONARY:
      return {k: v.to_python() for k, v in self.value.items()}
    return self.value

  def encode(self) -> str:
    """Serialise to JSON text. Keys are sorted so the output is deterministic.

    Raises:
      ValueError: If the value contains NaN or infinity.
    """
    return json.dumps(self.to_python(), sort_keys=True, allow_nan=False)

  @classmethod
  def decode(cls, text: Union[str, bytes]) -> "SendableValue":
    """Parse JSON text. Whole-number doubles come back as ints."""
    return cls.from_json(json.loads(text))

  @classmethod
  def from_json(cls, obj: Any) -> "SendableValue":
    """Convert an already-parsed JSON object, applying the int-first numeric rule."""
    if isinstance(obj, float) and math.isfinite(obj) and obj.is_integer():
      return cls.from_int(int(obj))
    if isinstance(obj, dict):
      return cls.from_dictionary({str(k): cls.from_json(v) for k, v in obj.items()})
    if isinstance(obj, list):
      return cls.from_array(cls.from_json(v) for v in obj)
    return cls.of(obj)

  @property
  def description(self) -> str:
    """Human-readable rendering used in prompts and observations."""
    if self.kind is ValueKind.NULL:
      return "null"
    if self.kind is ValueKind.BOOL:
      return "true" if self.value else "false"
    if self.kind is ValueKind.STRING:
      return self.value
    if self.kind is ValueKind.ARRAY:
      return "[" + ", ".join(item.description for item in self.value) + "]"
    if self.kind is ValueKind.DICTIONARY:
      return "{" + ", ".join(f"{k}: {self.value[k].description}" for k in sorted(self.value)) + "}"
    return repr(self.value)

  def __str__(self) -> str:
    return self.description

  def __repr__(self) -> str:
    if self.kind is ValueKind.NULL:
      return "SendableValue.null()"
    return f"SendableValue.{self.kind.value}({self.value!r})"


class _FrozenDict(dict):
  """Read-only dict used as the payload of dictionary values."""

  def _readonly(self, *args: Any, **kwargs: Any) -> None:
    raise TypeError("SendableValue dictionaries are immutable")

  __setitem__ = _readonly  # type: ignore[assignment]
  __delitem__ = _readonly  # type: ignore[assignment]
  clear = _readonly  # type: ignore[assignment]
  pop = _readonly  # type: ignore[assignment]
  popitem = _readonly  # type: ignore[assignment]
  setdefault = _readonly  # type: ignore[assignment]
  update = _readonly  # type: ignore[assignment]

  def __hash__(self) -> int:  # type: ignore[override]
    return hash(tuple(sorted(self.items())))


NULL = SendableValue(ValueKind.NULL, None)

SendableArguments = Dict[str, SendableValue]


def to_arguments(raw: Optional[Mapping[str, Any]]) -> SendableArguments:
  """Convert a plain mapping into tool arguments."""
  if not raw:
    return {}
  return {str(k): SendableValue.of(v) for k, v in raw.items()}


def arguments_to_python(arguments: Mapping[str, SendableValue]) -> Dict[str, Any]:
  return {k: v.to_python() for k, v in arguments.items()}


def describe_arguments(arguments: Mapping[str, SendableValue]) -> str:
  """Render arguments as ``key: value, ...`` in sorted key order."""
  return ", ".join(f"{k}: {arguments[k].description}" for k in sorted(arguments))


__all__: List[str] = [
  "NULL",
  "SendableArguments",
  "SendableValue",
  "ValueKind",
  "arguments_to_python",
  "describe_arguments",
  "to_arguments",
]
