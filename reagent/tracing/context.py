"""Trace context for grouping related spans.

A :class:`TraceContext` is bound to the current task with :func:`with_trace` and is
also threaded explicitly through :class:`~reagent.run.base.RunContext`, so agents
started in child tasks see the same trace.

Example::

    async with with_trace("checkout-flow", group_id="session-123") as trace:
        span = trace.start_span("tool:lookup")
        ...
        trace.end_span(span, SpanStatus.OK)
"""

import asyncio
import contextvars
import threading
import time
from contextlib import asynccontextmanager, contextmanager, nullcontext
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import AsyncIterator, ContextManager, Dict, Iterator, List, Optional
from uuid import uuid4

from reagent.exceptions import AgentCancelledError
from reagent.value import SendableValue

_current_trace: contextvars.ContextVar[Optional["TraceContext"]] = contextvars.ContextVar("reagent_trace", default=None)
# Open span per trace, per task: child tasks inherit the parent task's open span at creation
_open_spans: contextvars.ContextVar[Dict[str, str]] = contextvars.ContextVar("reagent_open_spans", default={})


class SpanStatus(str, Enum):
  UNSET = "unset"
  OK = "ok"
  ERROR = "error"
  CANCELLED = "cancelled"


@dataclass(frozen=True)
class TraceSpan:
  """A timed unit of work inside a trace. Immutable; ``completed()`` returns a copy."""

  name: str
  id: str = field(default_factory=lambda: str(uuid4()))
  parent_span_id: Optional[str] = None
  start_time: float = field(default_factory=time.time)
  end_time: Optional[float] = None
  status: SpanStatus = SpanStatus.UNSET
  metadata: Dict[str, SendableValue] = field(default_factory=dict, hash=False, compare=False)

  @property
  def duration(self) -> Optional[float]:
    if self.end_time is None:
      return None
    return self.end_time - self.start_time

  def completed(self, status: SpanStatus = SpanStatus.OK) -> "TraceSpan":
    return replace(self, end_time=time.time(), status=status)


class TraceContext:
  """Collects spans for one logical operation.

  Use :func:`with_trace` rather than instantiating directly so the context is bound
  to the current task.
  """

  def __init__(
    self,
    name: str,
    group_id: Optional[str] = None,
    metadata: Optional[Dict[str, SendableValue]] = None,
    trace_id: Optional[str] = None,
  ):
    self.name = name
    self.trace_id = trace_id or str(uuid4())
    self.group_id = group_id
    self.metadata: Dict[str, SendableValue] = dict(metadata or {})
    self.start_time = time.time()
    self._spans: List[TraceSpan] = []
    self._lock = threading.Lock()

  @staticmethod
  def current() -> Optional["TraceContext"]:
    """The trace bound by the nearest enclosing :func:`with_trace`, if any."""
    return _current_trace.get()

  @property
  def duration(self) -> float:
    return time.time() - self.start_time

  @property
  def current_span_id(self) -> Optional[str]:
    """Id of the span open in the calling task, if any."""
    return _open_spans.get().get(self.trace_id)

  def _set_open_span(self, span_id: Optional[str]) -> None:
    open_spans = dict(_open_spans.get())
    if span_id is None:
      open_spans.pop(self.trace_id, None)
    else:
      open_spans[self.trace_id] = span_id
    _open_spans.set(open_spans)

  def start_span(self, name: str, metadata: Optional[Dict[str, SendableValue]] = None) -> TraceSpan:
    """Record a new span whose parent is the span open in the calling task.

    Tasks started while a span is open inherit it as their parent, so
    concurrent members of a composite each nest under the composite's span.
    """
    with self._lock:
      span = TraceSpan(name=name, parent_span_id=self.current_span_id, metadata=dict(metadata or {}))
      self._spans.append(span)
      self._set_open_span(span.id)
      return span

  def end_span(self, span: TraceSpan, status: SpanStatus = SpanStatus.OK) -> None:
    """Complete *span*. Unknown spans are ignored."""
    with self._lock:
      for index, recorded in enumerate(self._spans):
        if recorded.id == span.id:
          self._spans[index] = recorded.completed(status)
          break
      else:
        return
      if self.current_span_id == span.id:
        self._set_open_span(span.parent_span_id)

  def add_span(self, span: TraceSpan) -> None:
    with self._lock:
      self._spans.append(span)

  def get_spans(self) -> List[TraceSpan]:
    with self._lock:
      return list(self._spans)

  @contextmanager
  def span(self, name: str, metadata: Optional[Dict[str, SendableValue]] = None) -> Iterator[TraceSpan]:
    """Open a span for the block; the exit path decides its status."""
    opened = self.start_span(name, metadata)
    try:
      yield opened
    except (AgentCancelledError, asyncio.CancelledError):
      self.end_span(opened, SpanStatus.CANCELLED)
      raise
    except BaseException:
      self.end_span(opened, SpanStatus.ERROR)
      raise
    self.end_span(opened, SpanStatus.OK)

  def __repr__(self) -> str:
    return f"TraceContext({self.name})"


def span_for(trace: Optional[TraceContext], name: str, metadata: Optional[Dict[str, SendableValue]] = None) -> ContextManager:
  """``trace.span(...)`` when a trace is active, otherwise a no-op context."""
  if trace is None:
    return nullcontext()
  return trace.span(name, metadata)


@asynccontextmanager
async def with_trace(
  name: str,
  group_id: Optional[str] = None,
  metadata: Optional[Dict[str, SendableValue]] = None,
) -> AsyncIterator[TraceContext]:
  """Bind a fresh :class:`TraceContext` to the current task for the block's duration."""
  context = TraceContext(name, group_id=group_id, metadata=metadata)
  token = _current_trace.set(context)
  try:
    yield context
  finally:
    _current_trace.reset(token)
