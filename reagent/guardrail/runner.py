"""GuardrailRunner: executes ordered guardrail chains and raises on the first tripwire."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, List, Optional, Sequence, Tuple, Type

from reagent.exceptions import (
  GuardrailExecutionError,
  GuardrailTripwireError,
  InputGuardrailTripwireError,
  OutputGuardrailTripwireError,
  ToolInputGuardrailTripwireError,
  ToolOutputGuardrailTripwireError,
)
from reagent.guardrail.base import (
  GuardrailResult,
  InputGuardrail,
  OutputGuardrail,
  ToolGuardrailData,
  ToolInputGuardrail,
  ToolOutputGuardrail,
  runs_in_parallel,
)
from reagent.run.events import GuardrailPassedEvent, GuardrailStartedEvent, GuardrailTriggeredEvent
from reagent.utils.log import log_debug, log_warning
from reagent.value import SendableValue

if TYPE_CHECKING:
  from reagent.agent.hooks import RunHooks
  from reagent.run.base import RunContext


@dataclass(frozen=True)
class GuardrailRunnerConfiguration:
  """Runner policy.

  Attributes:
    run_in_parallel: Force every input guardrail into the concurrent phase,
      ignoring per-guardrail ``run_in_parallel`` flags.
    stop_on_first_tripwire: Abort the chain at the first tripwire. When False,
      every guardrail in a sequential chain runs and the first tripwire is raised
      once the chain has finished.
  """

  run_in_parallel: bool = False
  stop_on_first_tripwire: bool = True

  @staticmethod
  def default() -> GuardrailRunnerConfiguration:
    return GuardrailRunnerConfiguration()


_Check = Callable[[Any], Awaitable[GuardrailResult]]


class GuardrailRunner:
  """Runs one role's guardrails and reports the individual results.

  Every ``run_*`` method returns the list of :class:`GuardrailResult` objects in
  evaluation order when nothing trips. The first tripwire raises the role's
  :class:`GuardrailTripwireError` subclass. A guardrail that raises instead of
  returning becomes :class:`GuardrailExecutionError`. Nothing is retried.

  Example::

      runner = GuardrailRunner()
      results = await runner.run_input_guardrails([no_pii], "hello", agent, context)
  """

  def __init__(self, configuration: Optional[GuardrailRunnerConfiguration] = None):
    self.configuration = configuration or GuardrailRunnerConfiguration.default()

  # ------------------------------------------------------------------
  # Public runner methods
  # ------------------------------------------------------------------

  async def run_input_guardrails(
    self,
    guardrails: Sequence[InputGuardrail],
    input: str,
    agent: Any = None,
    context: Optional["RunContext"] = None,
    hooks: Optional["RunHooks"] = None,
  ) -> List[GuardrailResult]:
    """Two-phase input check.

    Phase one runs sequential guardrails in declaration order. Phase two launches
    the parallel ones concurrently; the first tripwire by completion order wins
    and the remaining checks are cancelled before the runner returns.
    """
    if self.configuration.run_in_parallel:
      sequential: List[InputGuardrail] = []
      parallel = list(guardrails)
    else:
      sequential = [g for g in guardrails if not runs_in_parallel(g)]
      parallel = [g for g in guardrails if runs_in_parallel(g)]

    def check(guardrail: InputGuardrail) -> Awaitable[GuardrailResult]:
      return guardrail.validate(input, agent, context)

    results = await self._run_sequential(sequential, check, "input", InputGuardrailTripwireError, context, hooks)
    results.extend(await self._run_parallel(parallel, check, "input", InputGuardrailTripwireError, context, hooks))
    return results

  async def run_output_guardrails(
    self,
    guardrails: Sequence[OutputGuardrail],
    output: str,
    agent: Any = None,
    context: Optional["RunContext"] = None,
    hooks: Optional["RunHooks"] = None,
  ) -> List[GuardrailResult]:
    """Run output guardrails in declaration order."""
    return await self._run_sequential(
      list(guardrails),
      lambda g: g.validate(output, agent, context),
      "output",
      OutputGuardrailTripwireError,
      context,
      hooks,
    )

  async def run_tool_input_guardrails(
    self,
    guardrails: Sequence[ToolInputGuardrail],
    data: ToolGuardrailData,
    hooks: Optional["RunHooks"] = None,
  ) -> List[GuardrailResult]:
    """Run tool-input guardrails in declaration order, before the tool executes."""
    return await self._run_sequential(
      list(guardrails),
      lambda g: g.validate(data),
      "tool_input",
      _bind_tool(ToolInputGuardrailTripwireError, data.tool_name),
      data.context,
      hooks,
    )

  async def run_tool_output_guardrails(
    self,
    guardrails: Sequence[ToolOutputGuardrail],
    data: ToolGuardrailData,
    output: SendableValue,
    hooks: Optional["RunHooks"] = None,
  ) -> List[GuardrailResult]:
    """Run tool-output guardrails in declaration order, after the tool succeeded."""
    return await self._run_sequential(
      list(guardrails),
      lambda g: g.validate(data, output),
      "tool_output",
      _bind_tool(ToolOutputGuardrailTripwireError, data.tool_name),
      data.context,
      hooks,
    )

  # ------------------------------------------------------------------
  # Shared machinery
  # ------------------------------------------------------------------

  async def _run_sequential(
    self,
    guardrails: List[Any],
    check: _Check,
    guardrail_type: str,
    error_factory: Callable[[str, GuardrailResult], GuardrailTripwireError],
    context: Optional["RunContext"],
    hooks: Optional["RunHooks"],
  ) -> List[GuardrailResult]:
    results: List[GuardrailResult] = []
    first_trip: Optional[Tuple[str, GuardrailResult]] = None
    for guardrail in guardrails:
      name, result = await self._evaluate(guardrail, check, guardrail_type, context)
      results.append(result)
      if result.tripwire_triggered:
        await self._report_tripwire(name, result, guardrail_type, context, hooks)
        if first_trip is None:
          first_trip = (name, result)
        if self.configuration.stop_on_first_tripwire:
          break
    if first_trip is not None:
      raise error_factory(*first_trip)
    return results

  async def _run_parallel(
    self,
    guardrails: List[Any],
    check: _Check,
    guardrail_type: str,
    error_factory: Callable[[str, GuardrailResult], GuardrailTripwireError],
    context: Optional["RunContext"],
    hooks: Optional["RunHooks"],
  ) -> List[GuardrailResult]:
    if not guardrails:
      return []
    if len(guardrails) == 1:
      return await self._run_sequential(guardrails, check, guardrail_type, error_factory, context, hooks)

    tasks = [asyncio.ensure_future(self._evaluate(g, check, guardrail_type, context)) for g in guardrails]
    results: List[GuardrailResult] = []
    try:
      for next_done in asyncio.as_completed(tasks):
        name, result = await next_done
        results.append(result)
        if result.tripwire_triggered:
          await self._report_tripwire(name, result, guardrail_type, context, hooks)
          raise error_factory(name, result)
    finally:
      pending = [t for t in tasks if not t.done()]
      for task in pending:
        task.cancel()
      if pending:
        await asyncio.gather(*pending, return_exceptions=True)
    return results

  async def _evaluate(
    self,
    guardrail: Any,
    check: _Check,
    guardrail_type: str,
    context: Optional["RunContext"],
  ) -> Tuple[str, GuardrailResult]:
    name = getattr(guardrail, "name", type(guardrail).__name__)
    await _emit(context, GuardrailStartedEvent(guardrail_name=name, guardrail_type=guardrail_type))
    start = time.perf_counter()
    try:
      result = await check(guardrail)
    except asyncio.CancelledError:
      raise
    except GuardrailTripwireError:
      raise
    except Exception as exc:
      log_warning(f"{_label(guardrail_type)} guardrail '{name}' raised: {exc}")
      raise GuardrailExecutionError(name, str(exc)) from exc
    if not isinstance(result, GuardrailResult):
      log_warning(f"{_label(guardrail_type)} guardrail '{name}' returned {type(result).__name__}")
      raise GuardrailExecutionError(name, f"expected GuardrailResult, got {type(result).__name__}")
    elapsed = (time.perf_counter() - start) * 1000
    result = result.with_metadata(duration_ms=elapsed, guardrail_name=name)
    verdict = "tripwire" if result.tripwire_triggered else "passed"
    log_debug(f"{_label(guardrail_type)} guardrail '{name}' -> {verdict} ({elapsed:.1f}ms)")
    if not result.tripwire_triggered:
      await _emit(context, GuardrailPassedEvent(guardrail_name=name, guardrail_type=guardrail_type, duration_ms=elapsed))
    return name, result

  async def _report_tripwire(
    self,
    name: str,
    result: GuardrailResult,
    guardrail_type: str,
    context: Optional["RunContext"],
    hooks: Optional["RunHooks"],
  ) -> None:
    log_warning(f"{_label(guardrail_type)} guardrail '{name}' triggered: {result.message}")
    await _emit(
      context,
      GuardrailTriggeredEvent(guardrail_name=name, guardrail_type=guardrail_type, message=result.message, result=result),
    )
    if hooks is not None:
      await hooks.on_guardrail_triggered(context, name, guardrail_type, result)


def _label(guardrail_type: str) -> str:
  return guardrail_type.replace("_", " ").capitalize()


def _bind_tool(
  error_cls: Type[GuardrailTripwireError],
  tool_name: str,
) -> Callable[[str, GuardrailResult], GuardrailTripwireError]:
  def factory(name: str, result: GuardrailResult) -> GuardrailTripwireError:
    return error_cls(name, result, tool_name)  # type: ignore[call-arg]

  return factory


async def _emit(context: Optional["RunContext"], event: Any) -> None:
  if context is None or context.event_bus is None:
    return
  event.run_id = context.run_id
  await context.event_bus.emit(event)
