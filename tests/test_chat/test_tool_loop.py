import pytest
from pydantic import BaseModel

from chatline.exceptions import (
    EmptyCompletionError,
    LLMAPIError,
    ToolLoopExhaustedError,
    ToolNotFoundError,
)
from chatline.llm import LLMProvider, LLMResponse, Message, ToolCall, ToolDefinition
from chatline.tool_loop import LoopState, ToolLoop
from chatline.tools.registry import Tool, ToolRegistry, ToolResult


class ScriptedProvider(LLMProvider):
    """Replays queued responses; repeats the last one once the script runs out."""

    model = "stub"

    def __init__(self, *responses: LLMResponse):
        self.responses = list(responses)
        self.calls: list[dict] = []

    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        self.calls.append({"messages": list(messages), "tools": tools})
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


class FailingProvider(LLMProvider):
    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        raise LLMAPIError("OpenAI API error 500: Internal Server Error", status_code=500)


class EchoArguments(BaseModel):
    value: str


class EchoTool(Tool):
    name = "echo"
    description = "Echo a value"
    parameters = {
        "type": "object",
        "properties": {"value": {"type": "string"}},
        "required": ["value"],
    }
    arguments_model = EchoArguments

    def __init__(self):
        self.calls: list[str] = []

    async def execute(self, value: str, **kwargs) -> ToolResult:
        self.calls.append(value)
        return ToolResult(success=True, content=f"echo: {value}")


class BrokenTool(Tool):
    name = "broken"
    description = "Always raises"

    async def execute(self, **kwargs) -> ToolResult:
        raise RuntimeError("backend down")


def _registry(*tools: Tool) -> ToolRegistry:
    registry = ToolRegistry()
    for tool in tools:
        registry.register(tool)
    return registry


def _history() -> list[Message]:
    return [Message(role="system", content="sys"), Message(role="user", content="hi")]


@pytest.mark.asyncio
async def test_direct_answer_finishes_in_one_round():
    provider = ScriptedProvider(LLMResponse.text("hello there"))
    loop = ToolLoop(provider, _registry(EchoTool()))

    result = await loop.run(_history())

    assert result.content == "hello there"
    assert result.rounds == 1
    assert loop.state == LoopState.DONE
    assert provider.calls[0]["tools"][0].name == "echo"


@pytest.mark.asyncio
async def test_tool_call_result_is_fed_back_before_next_round():
    tool = EchoTool()
    provider = ScriptedProvider(
        LLMResponse.calls(ToolCall(id="c1", name="echo", arguments="{\"value\": \"ping\"}")),
        LLMResponse.text("final"),
    )
    loop = ToolLoop(provider, _registry(tool))

    result = await loop.run(_history())

    assert result.content == "final"
    assert result.rounds == 2
    assert tool.calls == ["ping"]
    second_round = provider.calls[1]["messages"]
    assert second_round[-2].role == "assistant"
    assert second_round[-2].tool_calls[0].id == "c1"
    assert second_round[-1].role == "tool"
    assert second_round[-1].tool_call_id == "c1"
    assert second_round[-1].content == "echo: ping"


@pytest.mark.asyncio
async def test_input_history_is_not_modified():
    history = _history()
    provider = ScriptedProvider(
        LLMResponse.calls(ToolCall(id="c1", name="echo", arguments="{\"value\": \"x\"}")),
        LLMResponse.text("done"),
    )

    result = await ToolLoop(provider, _registry(EchoTool())).run(history)

    assert len(history) == 2
    assert len(result.messages) == 4


@pytest.mark.asyncio
async def test_loop_fails_after_exactly_fifteen_rounds():
    provider = ScriptedProvider(
        LLMResponse.calls(ToolCall(id="c", name="echo", arguments="{\"value\": \"again\"}"))
    )
    loop = ToolLoop(provider, _registry(EchoTool()), max_rounds=15)

    with pytest.raises(ToolLoopExhaustedError, match="too many tool calls"):
        await loop.run(_history())

    assert len(provider.calls) == 15
    assert loop.rounds == 15
    assert loop.state == LoopState.FAILED


@pytest.mark.asyncio
async def test_unknown_tool_fails_without_second_round():
    provider = ScriptedProvider(
        LLMResponse.calls(ToolCall(id="c1", name="launch_rockets", arguments="{}")),
        LLMResponse.text("never reached"),
    )
    loop = ToolLoop(provider, _registry(EchoTool()))

    with pytest.raises(ToolNotFoundError, match="unknown tool call: launch_rockets"):
        await loop.run(_history())

    assert len(provider.calls) == 1
    assert loop.state == LoopState.FAILED


@pytest.mark.asyncio
async def test_malformed_arguments_become_tool_result():
    tool = EchoTool()
    provider = ScriptedProvider(
        LLMResponse.calls(ToolCall(id="c1", name="echo", arguments="{not json")),
        LLMResponse.text("recovered"),
    )

    result = await ToolLoop(provider, _registry(tool)).run(_history())

    assert result.content == "recovered"
    assert tool.calls == []
    tool_message = provider.calls[1]["messages"][-1]
    assert tool_message.role == "tool"
    assert tool_message.content.startswith("failed to parse echo arguments")


@pytest.mark.asyncio
async def test_schema_violation_becomes_tool_result():
    provider = ScriptedProvider(
        LLMResponse.calls(ToolCall(id="c1", name="echo", arguments="{}")),
        LLMResponse.text("recovered"),
    )

    result = await ToolLoop(provider, _registry(EchoTool())).run(_history())

    assert result.content == "recovered"
    assert "failed to parse echo arguments" in provider.calls[1]["messages"][-1].content


@pytest.mark.asyncio
async def test_tool_exception_becomes_tool_result():
    provider = ScriptedProvider(
        LLMResponse.calls(ToolCall(id="c1", name="broken", arguments="")),
        LLMResponse.text("sorry"),
    )

    result = await ToolLoop(provider, _registry(BrokenTool())).run(_history())

    assert result.content == "sorry"
    assert "backend down" in provider.calls[1]["messages"][-1].content


@pytest.mark.asyncio
async def test_every_tool_call_in_a_round_gets_a_result():
    tool = EchoTool()
    provider = ScriptedProvider(
        LLMResponse.calls(
            ToolCall(id="a", name="echo", arguments="{\"value\": \"1\"}"),
            ToolCall(id="b", name="echo", arguments="{\"value\": \"2\"}"),
        ),
        LLMResponse.text("both"),
    )

    await ToolLoop(provider, _registry(tool)).run(_history())

    results = [m for m in provider.calls[1]["messages"] if m.role == "tool"]
    assert [m.tool_call_id for m in results] == ["a", "b"]
    assert tool.calls == ["1", "2"]


@pytest.mark.asyncio
async def test_zero_choices_is_fatal():
    provider = ScriptedProvider(LLMResponse(choices=[]))
    loop = ToolLoop(provider, _registry(EchoTool()))

    with pytest.raises(EmptyCompletionError):
        await loop.run(_history())
    assert loop.state == LoopState.FAILED


@pytest.mark.asyncio
async def test_model_failure_is_fatal():
    loop = ToolLoop(FailingProvider(), _registry(EchoTool()))

    with pytest.raises(LLMAPIError):
        await loop.run(_history())
    assert loop.state == LoopState.FAILED
