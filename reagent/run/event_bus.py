"""User-registerable event callbacks for agent runs."""

import asyncio
from typing import Any, Callable, Dict, Iterable, List, Optional

from reagent.run.events import AgentEvent
from reagent.utils.log import log_warning


class EventBus:
  """Dispatches :class:`AgentEvent` instances to typed handlers.

  Handlers match by ``isinstance``, so registering for ``AgentEvent`` receives
  everything. Streams attach an ``asyncio.Queue`` with :meth:`attach_queue`.

  Example::

      bus = EventBus()

      @bus.on(ToolCallStartedEvent)
      def log_tool(event):
          print(f"Tool started: {event.tool_call.tool_name}")

      agent = ReActAgent(..., event_bus=bus)
  """

  def __init__(self) -> None:
    self._handlers: Dict[type, List[Callable]] = {}
    self._queues: List["asyncio.Queue[AgentEvent]"] = []

  @classmethod
  def forwarding(cls, targets: Iterable["EventBus"]) -> "EventBus":
    """A fresh bus that re-emits every event on each of *targets*."""
    bus = cls()
    for target in targets:
      bus.on(AgentEvent, target.emit)
    return bus

  def on(self, event_type: type, handler: Optional[Callable] = None) -> Callable:
    """Register a handler for *event_type*.

    Can be used as a decorator (no handler) or as a direct call::

        @bus.on(RunCompletedEvent)
        def handle(event): ...

        bus.on(RunCompletedEvent, my_handler)
    """
    if handler is not None:
      self._handlers.setdefault(event_type, []).append(handler)
      return handler

    def decorator(fn: Callable) -> Callable:
      self._handlers.setdefault(event_type, []).append(fn)
      return fn

    return decorator

  def off(self, event_type: type, handler: Callable) -> None:
    """Remove a previously-registered handler."""
    handlers = self._handlers.get(event_type, [])
    if handler in handlers:
      handlers.remove(handler)

  def attach_queue(self, queue: "asyncio.Queue[AgentEvent]") -> None:
    """Forward every emitted event into *queue*."""
    self._queues.append(queue)

  def detach_queue(self, queue: "asyncio.Queue[AgentEvent]") -> None:
    if queue in self._queues:
      self._queues.remove(queue)

  @property
  def has_subscribers(self) -> bool:
    return bool(self._queues) or any(self._handlers.values())

  def clear(self) -> None:
    self._handlers.clear()
    self._queues.clear()

  async def emit(self, event: Any) -> None:
    """Dispatch *event* to all matching handlers and attached queues.

    Coroutine handlers are awaited; sync handlers are called directly. Handler
    errors are logged and never propagate into the run.
    """
    for queue in list(self._queues):
      queue.put_nowait(event)
    for event_type, handlers in list(self._handlers.items()):
      if not isinstance(event, event_type):
        continue
      for handler in list(handlers):
        try:
          result = handler(event)
          if asyncio.iscoroutine(result):
            await result
        except Exception as exc:
          log_warning(f"EventBus handler error for {event_type.__name__}: {exc}")
