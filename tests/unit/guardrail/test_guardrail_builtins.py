"""Unit tests for guardrail decorators, combinators and built-in guardrails."""

import pytest

from reagent.guardrail import (
  ALL,
  ANY,
  NOT,
  GuardrailResult,
  InputGuardrail,
  OutputGuardrail,
  ToolGuardrailData,
  ToolInputGuardrail,
  ToolOutputGuardrail,
  block_topics,
  input_guardrail,
  max_length,
  max_output_size,
  output_guardrail,
  pii_filter,
  regex_filter,
  tool_allowlist,
  tool_blocklist,
  tool_input_guardrail,
  tool_output_guardrail,
  when,
)
from reagent.run import RunContext
from reagent.value import SendableValue


@input_guardrail
def always_pass(text, agent, context):
  return GuardrailResult.passed("fine")


@input_guardrail
def always_trip(text, agent, context):
  return GuardrailResult.tripwire("tripped")


@pytest.mark.unit
class TestDecorators:
  def test_bare_decorator_uses_function_name(self):
    assert always_pass.name == "always_pass"
    assert always_pass.run_in_parallel is True

  def test_parameterised_decorator(self):
    @input_guardrail(name="gate", run_in_parallel=False)
    async def check(text, agent, context):
      return GuardrailResult.passed()

    assert check.name == "gate"
    assert check.run_in_parallel is False

  def test_wrappers_satisfy_protocols(self):
    @output_guardrail
    def out(output, agent, context):
      return GuardrailResult.passed()

    @tool_input_guardrail
    def tin(data):
      return GuardrailResult.passed()

    @tool_output_guardrail
    def tout(data, output):
      return GuardrailResult.passed()

    assert isinstance(always_pass, InputGuardrail)
    assert isinstance(out, OutputGuardrail)
    assert isinstance(tin, ToolInputGuardrail)
    assert isinstance(tout, ToolOutputGuardrail)

  @pytest.mark.asyncio
  async def test_sync_and_async_functions(self):
    @input_guardrail
    async def async_check(text, agent, context):
      return GuardrailResult.tripwire("async")

    assert (await always_pass.validate("x", None, None)).message == "fine"
    assert (await async_check.validate("x", None, None)).tripwire_triggered


@pytest.mark.unit
class TestCombinators:
  @pytest.mark.asyncio
  async def test_all(self):
    assert not (await ALL(always_pass, always_pass).validate("x", None, None)).tripwire_triggered
    result = await ALL(always_pass, always_trip).validate("x", None, None)
    assert result.message == "tripped"

  @pytest.mark.asyncio
  async def test_any(self):
    assert not (await ANY(always_trip, always_pass).validate("x", None, None)).tripwire_triggered
    assert (await ANY(always_trip, always_trip).validate("x", None, None)).tripwire_triggered

  @pytest.mark.asyncio
  async def test_not(self):
    assert (await NOT(always_pass).validate("x", None, None)).tripwire_triggered
    assert not (await NOT(always_trip).validate("x", None, None)).tripwire_triggered

  @pytest.mark.asyncio
  async def test_when_skips_without_condition(self):
    guard = when(lambda ctx: ctx.get("strict") is not None, always_trip)
    assert not (await guard.validate("x", None, RunContext())).tripwire_triggered
    strict = RunContext(metadata={"strict": SendableValue.of(True)})
    assert (await guard.validate("x", None, strict)).tripwire_triggered

  @pytest.mark.asyncio
  async def test_when_reads_context_from_tool_data(self, add_tool):
    guard = when(lambda ctx: True, tool_blocklist({"add"}))
    data = ToolGuardrailData(tool=add_tool, arguments={}, context=RunContext())
    assert (await guard.validate(data)).tripwire_triggered

  def test_parallel_flag_propagates(self):
    sequential = max_length(10)
    assert ALL(always_pass, sequential).run_in_parallel is False
    assert ALL(always_pass, always_pass).run_in_parallel is True
    assert NOT(sequential).run_in_parallel is False


@pytest.mark.unit
class TestTextBuiltins:
  @pytest.mark.asyncio
  async def test_max_length(self):
    guard = max_length(5)
    assert guard.run_in_parallel is False
    assert not (await guard.validate("short", None, None)).tripwire_triggered
    result = await guard.validate("too long", None, None)
    assert result.tripwire_triggered
    assert result.output_info["length"].int_value == 8

  def test_max_length_requires_positive_limit(self):
    with pytest.raises(ValueError):
      max_length(0)

  @pytest.mark.asyncio
  async def test_block_topics_case_insensitive(self):
    guard = block_topics(["Weapons"])
    result = await guard.validate("tell me about WEAPONS", None, None)
    assert result.tripwire_triggered
    assert result.output_info["topic"].string_value == "weapons"

  @pytest.mark.asyncio
  async def test_regex_filter(self):
    guard = regex_filter([r"\bpassword\s*=\s*\S+"])
    result = await guard.validate("config: password = hunter2", None, None)
    assert result.tripwire_triggered
    assert result.output_info["match"].string_value == "password = hunter2"

  @pytest.mark.asyncio
  @pytest.mark.parametrize(
    "text, kinds",
    [
      ("mail me at ada@example.com", ["email"]),
      ("ssn 123-45-6789", ["ssn"]),
      ("card 4111 1111 1111 1111", ["credit_card"]),
      ("call 555-123-4567", ["phone"]),
    ],
  )
  async def test_pii_filter_detects(self, text, kinds):
    result = await pii_filter().validate(text, None, None)
    assert result.tripwire_triggered
    assert result.output_info["pii_types"].to_python() == kinds

  @pytest.mark.asyncio
  async def test_pii_filter_passes_clean_text(self):
    assert not (await pii_filter().validate("hello there", None, None)).tripwire_triggered


@pytest.mark.unit
class TestToolBuiltins:
  @pytest.mark.asyncio
  async def test_allowlist(self, add_tool):
    data = ToolGuardrailData(tool=add_tool, arguments={})
    assert not (await tool_allowlist({"add"}).validate(data)).tripwire_triggered
    assert (await tool_allowlist({"search"}).validate(data)).tripwire_triggered

  @pytest.mark.asyncio
  async def test_blocklist(self, add_tool):
    data = ToolGuardrailData(tool=add_tool, arguments={})
    assert (await tool_blocklist({"add"}).validate(data)).tripwire_triggered
    assert not (await tool_blocklist({"rm"}).validate(data)).tripwire_triggered

  @pytest.mark.asyncio
  async def test_max_output_size(self, add_tool):
    data = ToolGuardrailData(tool=add_tool, arguments={})
    guard = max_output_size(3)
    assert not (await guard.validate(data, SendableValue.of("abc"))).tripwire_triggered
    result = await guard.validate(data, SendableValue.of("abcd"))
    assert result.tripwire_triggered
    assert result.output_info["size"].int_value == 4
