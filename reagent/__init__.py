"""
Reagent: ReAct agents with guardrails, tools and composable pipelines.

Quick Start:
    from reagent import ReActAgent, tool
    from reagent.provider.openai import OpenAIProvider

    @tool
    def add(a: int, b: int) -> int:
        \"\"\"Add two integers.\"\"\"
        return a + b

    agent = ReActAgent(tools=[add], inference_provider=OpenAIProvider())
    result = await agent.run("What is 2 + 3?")

Blocks:
    from reagent.guardrail import input_guardrail, max_length, pii_filter, ALL, ANY, NOT
    from reagent.memory import InMemorySession, ConversationMemory, MemoryMessage
    from reagent.tracing import with_trace
    from reagent.run import EventBus, RunContext

Events:
    from reagent.run.events import RunStartedEvent, ToolCallStartedEvent, RunCompletedEvent
"""

from typing import TYPE_CHECKING

# --- Eager exports (core classes used by every consumer) ---

from reagent.agent import (
  Agent,
  AgentConfiguration,
  AgentResult,
  CancellationToken,
  EmptyAgent,
  ErrorHandlingStrategy,
  FallbackAgent,
  MergeStrategy,
  ParallelAgent,
  ReActAgent,
  RunHooks,
  SequentialAgent,
)
from reagent.exceptions import AgentError, GuardrailTripwireError, ReagentError
from reagent.guardrail import GuardrailResult
from reagent.memory import ConversationMemory, InMemorySession, MemoryMessage
from reagent.run import EventBus, RunContext
from reagent.tool import Tool, ToolRegistry, tool
from reagent.value import SendableValue

if TYPE_CHECKING:
  from reagent.provider.openai import OpenAIProvider, OpenAIProviderConfig


# --- Lazy exports (loaded on first access via __getattr__) ---

_LAZY_IMPORTS: dict = {
  "OpenAIProvider": ("reagent.provider.openai", "OpenAIProvider"),
  "OpenAIProviderConfig": ("reagent.provider.openai", "OpenAIProviderConfig"),
}


def __getattr__(name: str):
  if name in _LAZY_IMPORTS:
    module_path, attr_name = _LAZY_IMPORTS[name]
    import importlib

    module = importlib.import_module(module_path)
    return getattr(module, attr_name)
  raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
  # Agents
  "Agent",
  "ReActAgent",
  "EmptyAgent",
  "SequentialAgent",
  "ParallelAgent",
  "FallbackAgent",
  "MergeStrategy",
  "ErrorHandlingStrategy",
  "AgentConfiguration",
  "AgentResult",
  "CancellationToken",
  "RunHooks",
  # Tools
  "Tool",
  "ToolRegistry",
  "tool",
  # Values and memory
  "SendableValue",
  "MemoryMessage",
  "InMemorySession",
  "ConversationMemory",
  # Run plumbing
  "EventBus",
  "RunContext",
  "GuardrailResult",
  # Errors
  "ReagentError",
  "AgentError",
  "GuardrailTripwireError",
  # Providers
  "OpenAIProvider",
  "OpenAIProviderConfig",
]
