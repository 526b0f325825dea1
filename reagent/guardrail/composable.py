"""Composable guardrail combinators: ALL, ANY, NOT, when."""

from __future__ import annotations

from typing import Any, Callable, Optional

from reagent.guardrail.base import GuardrailResult, ToolGuardrailData, runs_in_parallel
from reagent.run.base import RunContext


class ALL:
  """All child guardrails must pass; the first tripwire is returned.

  Works with every guardrail role: ``validate()`` forwards whatever arguments
  it receives to the children.
  """

  def __init__(self, *guardrails: Any, name: str = "ALL"):
    self.name = name
    self._guardrails = guardrails
    self.run_in_parallel = all(runs_in_parallel(g) for g in guardrails)

  async def validate(self, *args: Any, **kwargs: Any) -> GuardrailResult:
    for g in self._guardrails:
      result = await g.validate(*args, **kwargs)
      if result.tripwire_triggered:
        return result
    return GuardrailResult.passed()


class ANY:
  """At least one child guardrail must pass; trip only if all trip."""

  def __init__(self, *guardrails: Any, name: str = "ANY"):
    self.name = name
    self._guardrails = guardrails
    self.run_in_parallel = all(runs_in_parallel(g) for g in guardrails)

  async def validate(self, *args: Any, **kwargs: Any) -> GuardrailResult:
    last_trip: Optional[GuardrailResult] = None
    for g in self._guardrails:
      result = await g.validate(*args, **kwargs)
      if not result.tripwire_triggered:
        return result
      last_trip = result
    # All tripped: report the last one
    return last_trip or GuardrailResult.tripwire("All guardrails tripped")


class NOT:
  """Invert a guardrail: passed becomes tripwire and tripwire becomes passed."""

  def __init__(self, guardrail: Any, name: str = "NOT"):
    self.name = name
    self._guardrail = guardrail
    self.run_in_parallel = runs_in_parallel(guardrail)

  async def validate(self, *args: Any, **kwargs: Any) -> GuardrailResult:
    result = await self._guardrail.validate(*args, **kwargs)
    if result.tripwire_triggered:
      return GuardrailResult.passed(message=result.message)
    return GuardrailResult.tripwire(f"NOT({self._guardrail.name}): inverted pass -> tripwire")


class when:
  """Conditional guardrail: only run the child if *condition* returns True.

  If the condition is not met the guardrail is skipped (passes).
  The *condition* receives the :class:`RunContext` and should return ``bool``.
  """

  def __init__(self, condition: Callable[[RunContext], bool], guardrail: Any, name: str = "when"):
    self.name = name
    self._condition = condition
    self._guardrail = guardrail
    self.run_in_parallel = runs_in_parallel(guardrail)

  async def validate(self, *args: Any, **kwargs: Any) -> GuardrailResult:
    context = _find_context(args, kwargs)
    if context is None or not self._condition(context):
      return GuardrailResult.passed()
    return await self._guardrail.validate(*args, **kwargs)


def _find_context(args: tuple, kwargs: dict) -> Optional[RunContext]:
  # Input/output guardrails take the context last; tool guardrails carry it in their data.
  if isinstance(kwargs.get("context"), RunContext):
    return kwargs["context"]
  for arg in args:
    if isinstance(arg, RunContext):
      return arg
    if isinstance(arg, ToolGuardrailData):
      return arg.context
  return None
