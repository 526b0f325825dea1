"""
Root conftest: shared fixtures for the unit suite.

Everything here is offline. Model calls go through MockInferenceProvider and
OpenAI traffic is faked with MagicMock clients inside the provider tests.
"""

import pytest

from reagent.agent.testing import MockInferenceProvider, RecordingRunHooks, SpyMemory, SpySession
from reagent.memory import MemoryMessage
from reagent.run import EventBus
from reagent.run.events import AgentEvent
from reagent.tool import tool

# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@tool
def add(a: int, b: int) -> int:
  """Add two integers.

  Args:
    a: First addend.
    b: Second addend.
  """
  return a + b


@tool
def explode(reason: str = "boom") -> str:
  """Always raises."""
  raise RuntimeError(reason)


@pytest.fixture
def add_tool():
  return add


@pytest.fixture
def failing_tool():
  return explode


# ---------------------------------------------------------------------------
# Providers, sessions, memory and hooks
# ---------------------------------------------------------------------------


@pytest.fixture
def provider_factory():
  """Factory for MockInferenceProvider with canned responses."""

  def _create(*responses, **kwargs):
    return MockInferenceProvider(responses=list(responses) or None, **kwargs)

  return _create


@pytest.fixture
def spy_session():
  return SpySession("session-1")


@pytest.fixture
def seeded_session():
  """Session holding one earlier exchange."""
  return SpySession(
    "session-2",
    items=[MemoryMessage.user("My name is Ada."), MemoryMessage.assistant("Nice to meet you, Ada.")],
  )


@pytest.fixture
def spy_memory():
  return SpyMemory()


@pytest.fixture
def recording_hooks():
  return RecordingRunHooks()


# ---------------------------------------------------------------------------
# Event capture
# ---------------------------------------------------------------------------


class EventRecorder:
  """Subscribes to every event on a bus and keeps them in order."""

  def __init__(self, bus: EventBus):
    self.events = []
    bus.on(AgentEvent, self.events.append)

  @property
  def names(self):
    return [e.event for e in self.events]

  def of_type(self, event_type):
    return [e for e in self.events if isinstance(e, event_type)]


@pytest.fixture
def record_events():
  """``record_events(bus)`` attaches an EventRecorder to *bus*."""
  return EventRecorder
