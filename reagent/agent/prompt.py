"""Prompt construction for the ReAct loop.

The prompt is deterministic: identical instructions, tools, history, scratchpad
and input always render to the same text.
"""

from typing import Sequence

from reagent.memory.types import MemoryMessage
from reagent.tool.base import ToolDefinition, ToolParameter

DEFAULT_INSTRUCTIONS = "You are a helpful AI assistant."

REACT_FORMAT = """You are a ReAct agent that solves problems by interleaving Thought, Action, and Observation steps.

{tools}

Format your response EXACTLY as follows:
- To reason: Start with "Thought:" followed by your reasoning about what to do next.
- To use a tool: Write "Action: tool_name(arg1: value1, arg2: value2)"
- To give your final answer: Write "Final Answer:" followed by your complete response to the user.

Rules:
1. Always start with a Thought to reason about the problem.
2. After an Observation, decide if you need another Action or can give the Final Answer.
3. Only use tools that are available in the list above.
4. When you have enough information, provide the Final Answer."""


def build_prompt(
  input: str,
  instructions: str,
  tools: Sequence[ToolDefinition],
  history: Sequence[MemoryMessage] = (),
  scratchpad: str = "",
) -> str:
  """Render the full prompt for one loop iteration."""
  tool_block = format_tools(tools)
  sections = [
    instructions.strip() or DEFAULT_INSTRUCTIONS,
    "",
    REACT_FORMAT.format(tools=f"Available Tools:\n{tool_block}" if tool_block else "No tools are available."),
  ]
  conversation = format_history(history)
  if conversation:
    sections.extend(["", "Conversation History:", conversation])
  sections.extend(["", f"User Query: {input}"])
  prompt = "\n".join(sections)

  if not scratchpad:
    return prompt + "\n\nBegin with your first Thought:"
  return prompt + "\n\nPrevious steps:" + scratchpad + "\n\nContinue with your next step:"


def format_tools(tools: Sequence[ToolDefinition]) -> str:
  return "\n\n".join(_format_tool(t) for t in tools)


def _format_tool(definition: ToolDefinition) -> str:
  header = f"- {definition.name}: {definition.description}"
  if not definition.parameters:
    return header
  return header + "\n  Parameters:\n" + "\n".join(_format_parameter(p) for p in definition.parameters)


def _format_parameter(parameter: ToolParameter) -> str:
  line = f"    - {parameter.signature}"
  type_hint = parameter.type.description
  if type_hint != "any":
    line += f" [{type_hint}]"
  return line


def format_history(history: Sequence[MemoryMessage]) -> str:
  return "\n".join(message.formatted for message in history)


# ------------------------------------------------------------------
# Scratchpad entries
# ------------------------------------------------------------------


def thought_entry(thought: str) -> str:
  return f"\nThought: {thought}"


def observation_entry(tool_name: str, call: str, observation: str) -> str:
  return f"\nThought: I need to use the {tool_name} tool.\nAction: {call}\nObservation: {observation}"


def error_observation_entry(tool_name: str, call: str, error: str) -> str:
  return observation_entry(tool_name, call, f"Error - {error}")
