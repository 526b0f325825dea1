"""Decorators for creating guardrails from plain functions.

Usage::

    @input_guardrail
    async def no_profanity(input: str, agent, context) -> GuardrailResult:
        if "badword" in input.lower():
            return GuardrailResult.tripwire("Profanity detected")
        return GuardrailResult.passed()

    @output_guardrail(name="custom_name")
    def my_output_guard(output: str, agent, context) -> GuardrailResult:
        ...

    @tool_input_guardrail
    async def no_delete(data: ToolGuardrailData) -> GuardrailResult:
        if data.tool_name == "delete_all":
            return GuardrailResult.tripwire("delete_all is forbidden")
        return GuardrailResult.passed()

Both sync and async functions are accepted.
"""

from __future__ import annotations

import inspect
from typing import Any, Callable, Optional

from reagent.guardrail.base import GuardrailResult, ToolGuardrailData
from reagent.run.base import RunContext
from reagent.value import SendableValue


async def _call(fn: Callable, *args: Any) -> GuardrailResult:
  result = fn(*args)
  if inspect.isawaitable(result):
    result = await result
  return result


# ------------------------------------------------------------------
# Wrapper classes that satisfy the Protocol contracts
# ------------------------------------------------------------------


class _InputGuardrailWrapper:
  """Wraps a function into an InputGuardrail-compliant object."""

  def __init__(self, fn: Callable, name: str, run_in_parallel: bool = True):
    self.name = name
    self.run_in_parallel = run_in_parallel
    self._fn = fn

  async def validate(self, input: str, agent: Any, context: Optional[RunContext]) -> GuardrailResult:
    return await _call(self._fn, input, agent, context)

  def __repr__(self) -> str:
    return f"InputGuardrail({self.name!r})"


class _OutputGuardrailWrapper:
  """Wraps a function into an OutputGuardrail-compliant object."""

  def __init__(self, fn: Callable, name: str):
    self.name = name
    self._fn = fn

  async def validate(self, output: str, agent: Any, context: Optional[RunContext]) -> GuardrailResult:
    return await _call(self._fn, output, agent, context)

  def __repr__(self) -> str:
    return f"OutputGuardrail({self.name!r})"


class _ToolInputGuardrailWrapper:
  """Wraps a function into a ToolInputGuardrail-compliant object."""

  def __init__(self, fn: Callable, name: str):
    self.name = name
    self._fn = fn

  async def validate(self, data: ToolGuardrailData) -> GuardrailResult:
    return await _call(self._fn, data)

  def __repr__(self) -> str:
    return f"ToolInputGuardrail({self.name!r})"


class _ToolOutputGuardrailWrapper:
  """Wraps a function into a ToolOutputGuardrail-compliant object."""

  def __init__(self, fn: Callable, name: str):
    self.name = name
    self._fn = fn

  async def validate(self, data: ToolGuardrailData, output: SendableValue) -> GuardrailResult:
    return await _call(self._fn, data, output)

  def __repr__(self) -> str:
    return f"ToolOutputGuardrail({self.name!r})"


# ------------------------------------------------------------------
# Public decorator factories
# ------------------------------------------------------------------


def input_guardrail(fn: Optional[Callable] = None, *, name: Optional[str] = None, run_in_parallel: bool = True):
  """Decorator to create an :class:`InputGuardrail` from a function.

  Supports both ``@input_guardrail`` and ``@input_guardrail(name=..., run_in_parallel=False)``.
  """
  if fn is not None:
    # Used as @input_guardrail (no parens)
    return _InputGuardrailWrapper(fn, name=name or fn.__name__, run_in_parallel=run_in_parallel)

  # Used as @input_guardrail(name=...)
  def decorator(f: Callable) -> _InputGuardrailWrapper:
    return _InputGuardrailWrapper(f, name=name or f.__name__, run_in_parallel=run_in_parallel)

  return decorator


def output_guardrail(fn: Optional[Callable] = None, *, name: Optional[str] = None):
  """Decorator to create an :class:`OutputGuardrail` from a function.

  Supports both ``@output_guardrail`` and ``@output_guardrail(name=...)``.
  """
  if fn is not None:
    return _OutputGuardrailWrapper(fn, name=name or fn.__name__)

  def decorator(f: Callable) -> _OutputGuardrailWrapper:
    return _OutputGuardrailWrapper(f, name=name or f.__name__)

  return decorator


def tool_input_guardrail(fn: Optional[Callable] = None, *, name: Optional[str] = None):
  """Decorator to create a :class:`ToolInputGuardrail` from a function."""
  if fn is not None:
    return _ToolInputGuardrailWrapper(fn, name=name or fn.__name__)

  def decorator(f: Callable) -> _ToolInputGuardrailWrapper:
    return _ToolInputGuardrailWrapper(f, name=name or f.__name__)

  return decorator


def tool_output_guardrail(fn: Optional[Callable] = None, *, name: Optional[str] = None):
  """Decorator to create a :class:`ToolOutputGuardrail` from a function."""
  if fn is not None:
    return _ToolOutputGuardrailWrapper(fn, name=name or fn.__name__)

  def decorator(f: Callable) -> _ToolOutputGuardrailWrapper:
    return _ToolOutputGuardrailWrapper(f, name=name or f.__name__)

  return decorator
