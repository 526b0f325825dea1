"""ReAct response parsing.

The model is asked to answer in one of three textual forms::

    Thought: <reasoning>
    Action: tool_name(arg1: value1, arg2: value2)
    Final Answer: <answer>

``parse_response`` maps raw model text onto :class:`ParsedResponse`. Anything
that fits none of the forms is reported as ``invalid``; the loop treats it as
a thinking step.
"""

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from reagent.value import SendableValue

_FINAL_ANSWER_RE = re.compile(r"final\s+answer\s*:", re.IGNORECASE)
_ACTION_RE = re.compile(r"^[ \t]*action\s*:\s*([A-Za-z_][\w.\-]*)[ \t]*(\()?", re.IGNORECASE | re.MULTILINE)
_ACTION_INPUT_RE = re.compile(r"^[ \t]*action\s+input\s*:\s*", re.IGNORECASE | re.MULTILINE)
_THOUGHT_RE = re.compile(r"thought\s*:", re.IGNORECASE)
_OBSERVATION_RE = re.compile(r"^[ \t]*observation\s*:", re.IGNORECASE | re.MULTILINE)

_CLOSERS = {"(": ")", "[": "]", "{": "}"}


class ResponseKind(str, Enum):
  FINAL_ANSWER = "final_answer"
  TOOL_CALL = "tool_call"
  THINKING = "thinking"
  INVALID = "invalid"


@dataclass(frozen=True)
class ParsedResponse:
  kind: ResponseKind
  text: str = ""
  tool_name: Optional[str] = None
  arguments: Dict[str, SendableValue] = field(default_factory=dict)

  @staticmethod
  def final_answer(text: str) -> "ParsedResponse":
    return ParsedResponse(ResponseKind.FINAL_ANSWER, text=text)

  @staticmethod
  def tool_call(name: str, arguments: Dict[str, SendableValue]) -> "ParsedResponse":
    return ParsedResponse(ResponseKind.TOOL_CALL, tool_name=name, arguments=arguments)

  @staticmethod
  def thinking(text: str) -> "ParsedResponse":
    return ParsedResponse(ResponseKind.THINKING, text=text)

  @staticmethod
  def invalid(raw: str) -> "ParsedResponse":
    return ParsedResponse(ResponseKind.INVALID, text=raw)


def parse_response(text: str) -> ParsedResponse:
  """Classify raw model output.

  When both an ``Action:`` and a ``Final Answer:`` appear, the one written first
  wins: text after an action is a hallucinated observation, not an answer.
  """
  stripped = text.strip()
  if not stripped:
    return ParsedResponse.invalid(text)

  final_match = _FINAL_ANSWER_RE.search(stripped)
  action_match = _ACTION_RE.search(stripped)

  if final_match and (action_match is None or final_match.start() < action_match.start()):
    answer = stripped[final_match.end() :].strip()
    return ParsedResponse.final_answer(answer) if answer else ParsedResponse.invalid(text)

  if action_match:
    parsed = _parse_action(stripped, action_match)
    if parsed is not None:
      return parsed

  thought_match = _THOUGHT_RE.search(stripped)
  if thought_match:
    thought = _cut_at_observation(stripped[thought_match.end() :]).strip()
    if thought:
      return ParsedResponse.thinking(thought)
  return ParsedResponse.invalid(text)


# ------------------------------------------------------------------
# Actions
# ------------------------------------------------------------------


def _parse_action(text: str, match: "re.Match[str]") -> Optional[ParsedResponse]:
  name = match.group(1)
  if match.group(2):
    body = _balanced(text, match.end(2) - 1)
    if body is None:
      return None
    arguments = parse_arguments(body)
    return None if arguments is None else ParsedResponse.tool_call(name, arguments)

  # "Action: name" followed by an "Action Input:" line holding a JSON object
  rest = text[match.end() :]
  input_match = _ACTION_INPUT_RE.search(rest)
  if input_match is None:
    return ParsedResponse.tool_call(name, {})
  raw = _cut_at_observation(rest[input_match.end() :]).strip()
  arguments = parse_arguments(raw) if raw else {}
  return None if arguments is None else ParsedResponse.tool_call(name, arguments)


def _balanced(text: str, open_index: int) -> Optional[str]:
  """Return the text between the bracket at *open_index* and its partner."""
  stack: List[str] = []
  quote: Optional[str] = None
  escaped = False
  for index in range(open_index, len(text)):
    char = text[index]
    if quote:
      if escaped:
        escaped = False
      elif char == "\\":
        escaped = True
      elif char == quote:
        quote = None
      continue
    if char in ("'", '"'):
      quote = char
    elif char in _CLOSERS:
      stack.append(_CLOSERS[char])
    elif stack and char == stack[-1]:
      stack.pop()
      if not stack:
        return text[open_index + 1 : index]
  return None


def parse_arguments(body: str) -> Optional[Dict[str, SendableValue]]:
  """Parse ``key: value, ...`` or a JSON object into tool arguments.

  Returns None when the body is not a recognisable argument list.
  """
  body = body.strip()
  if not body:
    return {}
  if body.startswith("{"):
    try:
      decoded = json.loads(body)
    except ValueError:
      decoded = None
    if isinstance(decoded, dict):
      return {str(k): SendableValue.from_json(v) for k, v in decoded.items()}

  arguments: Dict[str, SendableValue] = {}
  for part in _split_top_level(body):
    if not part.strip():
      continue
    key, sep, raw = _split_pair(part)
    if not sep or not key:
      return None
    arguments[key] = _parse_value(raw)
  return arguments


def _split_top_level(body: str) -> List[str]:
  parts: List[str] = []
  depth = 0
  quote: Optional[str] = None
  escaped = False
  current: List[str] = []
  for char in body:
    if quote:
      current.append(char)
      if escaped:
        escaped = False
      elif char == "\\":
        escaped = True
      elif char == quote:
        quote = None
      continue
    if char in ("'", '"'):
      quote = char
    elif char in "([{":
      depth += 1
    elif char in ")]}":
      depth -= 1
    elif char == "," and depth == 0:
      parts.append("".join(current))
      current = []
      continue
    current.append(char)
  parts.append("".join(current))
  return parts


def _split_pair(part: str):
  # Accept both "key: value" and "key=value"
  for separator in (":", "="):
    key, sep, raw = part.partition(separator)
    if sep and re.fullmatch(r"\s*[\"']?[A-Za-z_][\w\-]*[\"']?\s*", key):
      return key.strip().strip("\"'"), sep, raw
  return "", "", part


def _parse_value(raw: str) -> SendableValue:
  raw = raw.strip()
  if not raw:
    return SendableValue.from_string("")
  if raw[0] == "'" and raw[-1] == "'" and len(raw) >= 2:
    return SendableValue.from_string(raw[1:-1])
  try:
    return SendableValue.from_json(json.loads(raw))
  except ValueError:
    return SendableValue.from_string(raw)


def _cut_at_observation(text: str) -> str:
  match = _OBSERVATION_RE.search(text)
  return text[: match.start()] if match else text
