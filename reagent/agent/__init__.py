"""
Reagent Agent: the ReAct loop, composites and run plumbing.

Quick Start:
    from reagent.agent import ReActAgent, AgentConfiguration
    from reagent.provider.openai import OpenAIProvider

    agent = ReActAgent(
        tools=[my_tool],
        instructions="You are a helpful assistant.",
        configuration=AgentConfiguration(max_iterations=5),
        inference_provider=OpenAIProvider(),
    )
    result = await agent.run("Hello!")

Composition:
    pipeline = researcher >> writer                       # SequentialAgent
    panel = (critic_a + critic_b).with_merge_strategy(MergeStrategy.concatenate())
    resilient = pipeline | backup                         # FallbackAgent
"""

from reagent.agent.base import Agent, EmptyAgent
from reagent.agent.cancellation import CancellationToken
from reagent.agent.composition import (
  ErrorHandlingStrategy,
  FallbackAgent,
  MergeKind,
  MergeStrategy,
  ParallelAgent,
  SequentialAgent,
)
from reagent.agent.config import AgentConfiguration, GuardrailRunnerConfiguration
from reagent.agent.hooks import CompositeRunHooks, LoggingRunHooks, RunHooks
from reagent.agent.parser import ParsedResponse, ResponseKind, parse_response
from reagent.agent.react import ReActAgent, ReActAgentBuilder
from reagent.agent.result import AgentResult, AgentResultBuilder, ToolCall, ToolResult
from reagent.provider.base import TokenUsage

__all__ = [
  # Agents
  "Agent",
  "EmptyAgent",
  "ReActAgent",
  "ReActAgentBuilder",
  "SequentialAgent",
  "ParallelAgent",
  "FallbackAgent",
  "MergeStrategy",
  "MergeKind",
  "ErrorHandlingStrategy",
  # Configuration
  "AgentConfiguration",
  "GuardrailRunnerConfiguration",
  "CancellationToken",
  # Hooks
  "RunHooks",
  "CompositeRunHooks",
  "LoggingRunHooks",
  # Results
  "AgentResult",
  "AgentResultBuilder",
  "ToolCall",
  "ToolResult",
  "TokenUsage",
  # Parsing
  "ParsedResponse",
  "ResponseKind",
  "parse_response",
]
