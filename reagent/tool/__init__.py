"""
Reagent Tools: the Tool contract, the ``@tool`` decorator and the registry.

Usage:
    from reagent.tool import tool, Tool, ToolRegistry
"""

from reagent.tool.base import ParameterKind, ParameterType, Tool, ToolDefinition, ToolParameter
from reagent.tool.decorator import FunctionTool, tool
from reagent.tool.registry import ToolRegistry

__all__ = [
  "tool",
  "Tool",
  "FunctionTool",
  "ToolRegistry",
  "ToolDefinition",
  "ToolParameter",
  "ParameterType",
  "ParameterKind",
]
