"""The ``@tool`` decorator: turn a plain function into a :class:`FunctionTool`."""

from __future__ import annotations

import inspect
import re
import types
from collections import abc
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence, Tuple, Union, get_args, get_origin, get_type_hints

from reagent.tool.base import ParameterType, Tool, ToolParameter
from reagent.value import SendableValue, arguments_to_python

_ARGS_HEADER = re.compile(r"^\s*(Args|Arguments|Parameters):\s*$")
_ARG_LINE = re.compile(r"^\s+(\w+)(?:\s*\([^)]*\))?:\s*(.*)$")


class FunctionTool(Tool):
  """A :class:`Tool` backed by a Python callable.

  Arguments are converted to plain Python values before the call and the return
  value is converted back with :meth:`SendableValue.of`.
  """

  def __init__(
    self,
    fn: Callable,
    name: Optional[str] = None,
    description: Optional[str] = None,
    parameters: Optional[Sequence[ToolParameter]] = None,
    input_guardrails: Optional[Sequence[Any]] = None,
    output_guardrails: Optional[Sequence[Any]] = None,
  ):
    self.entrypoint = fn
    self.name = name or fn.__name__
    summary, arg_docs = _parse_docstring(inspect.getdoc(fn) or "")
    self.description = description if description is not None else summary
    self.parameters = tuple(parameters) if parameters is not None else tuple(_parameters_from_signature(fn, arg_docs))
    self.input_guardrails = tuple(input_guardrails or ())
    self.output_guardrails = tuple(output_guardrails or ())

  async def execute(self, arguments: Dict[str, SendableValue]) -> SendableValue:
    result = self.entrypoint(**arguments_to_python(arguments))
    if inspect.isawaitable(result):
      result = await result
    if isinstance(result, SendableValue):
      return result
    return SendableValue.of(result)


def tool(
  fn: Optional[Callable] = None,
  *,
  name: Optional[str] = None,
  description: Optional[str] = None,
  input_guardrails: Optional[Sequence[Any]] = None,
  output_guardrails: Optional[Sequence[Any]] = None,
):
  """Decorator to create a :class:`FunctionTool` from a sync or async function.

  Supports both ``@tool`` and ``@tool(name=..., description=...)``. Parameters are
  derived from type hints; descriptions come from the docstring's ``Args:`` section.

  Example::

      @tool
      def add(a: int, b: int) -> int:
          '''Add two numbers.

          Args:
              a: First addend.
              b: Second addend.
          '''
          return a + b
  """
  if fn is not None:
    return FunctionTool(fn, name=name, description=description, input_guardrails=input_guardrails, output_guardrails=output_guardrails)

  def decorator(f: Callable) -> FunctionTool:
    return FunctionTool(f, name=name, description=description, input_guardrails=input_guardrails, output_guardrails=output_guardrails)

  return decorator


# ------------------------------------------------------------------
# Signature introspection
# ------------------------------------------------------------------


def _parse_docstring(doc: str) -> Tuple[str, Dict[str, str]]:
  """Split a Google-style docstring into its first paragraph and per-argument descriptions."""
  first_paragraph = doc.strip().split("\n\n")[0] if doc.strip() else ""
  summary = "" if _ARGS_HEADER.match(first_paragraph) else " ".join(line.strip() for line in first_paragraph.splitlines())
  arg_docs: Dict[str, str] = {}
  in_args = False
  for line in doc.splitlines():
    if _ARGS_HEADER.match(line):
      in_args = True
      continue
    if not in_args:
      continue
    if line.strip() and not line[:1].isspace():
      in_args = False
      continue
    match = _ARG_LINE.match(line)
    if match:
      arg_docs[match.group(1)] = match.group(2).strip()
  return summary, arg_docs


def _parameters_from_signature(fn: Callable, arg_docs: Dict[str, str]) -> List[ToolParameter]:
  try:
    hints = get_type_hints(fn)
  except (NameError, TypeError):
    hints = {}
  parameters: List[ToolParameter] = []
  for param in inspect.signature(fn).parameters.values():
    if param.name in ("self", "cls") or param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
      continue
    annotation = hints.get(param.name, Any)
    param_type, optional = _parameter_type(annotation)
    parameters.append(
      ToolParameter(
        name=param.name,
        description=arg_docs.get(param.name, ""),
        type=param_type,
        is_required=param.default is inspect.Parameter.empty and not optional,
      )
    )
  return parameters


def _parameter_type(annotation: Any) -> Tuple[ParameterType, bool]:
  """Map a type hint to ``(ParameterType, is_optional)``."""
  origin = get_origin(annotation)
  args = get_args(annotation)
  if origin in (Union, types.UnionType):
    non_null = [a for a in args if a is not type(None)]
    inner, _ = _parameter_type(non_null[0]) if len(non_null) == 1 else (ParameterType.any(), False)
    return inner, type(None) in args
  if origin is Literal:
    return ParameterType.one_of([str(a) for a in args]), False
  if annotation is str:
    return ParameterType.string(), False
  if annotation is bool:
    return ParameterType.bool(), False
  if annotation is int:
    return ParameterType.int(), False
  if annotation is float:
    return ParameterType.double(), False
  if annotation is list or origin in (list, tuple, abc.Sequence):
    element = _parameter_type(args[0])[0] if args else ParameterType.any()
    return ParameterType.array(element), False
  if annotation is dict or origin in (dict, abc.Mapping):
    return ParameterType.object([]), False
  return ParameterType.any(), False
