"""Bounded tool-calling loop that drives the model to a final answer."""

from dataclasses import dataclass, field
from enum import Enum

from chatline.exceptions import (
    EmptyCompletionError,
    ToolArgumentError,
    ToolExecutionError,
    ToolLoopExhaustedError,
)
from chatline.llm import Choice, LLMProvider, LLMResponse, Message, ToolCall
from chatline.logging import get_logger
from chatline.tools.registry import ToolRegistry

log = get_logger(__name__)

DEFAULT_MAX_ROUNDS = 15


class LoopState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    DISPATCHING_TOOLS = "dispatching_tools"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ToolLoopResult:
    """Final answer plus the exchange that produced it."""

    content: str
    messages: list[Message] = field(default_factory=list)
    rounds: int = 0
    state: LoopState = LoopState.DONE


class ToolLoop:
    """Send history to the model, run requested tools, repeat until a final answer.

    Every round is one model call. Tool failures (bad arguments, missing
    configuration, provider errors) are fed back to the model as tool
    results; an unknown tool name, a failed model call, a response with no
    choices, or running out of rounds ends the loop in ``FAILED``.
    """

    def __init__(
        self,
        provider: LLMProvider,
        registry: ToolRegistry,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
    ):
        self.provider = provider
        self.registry = registry
        self.max_rounds = max(1, int(max_rounds))
        self.state = LoopState.AWAITING_MODEL
        self.rounds = 0

    async def run(self, messages: list[Message]) -> ToolLoopResult:
        """Run the loop over ``messages`` (system prompt first).

        The input list is not modified; the returned result carries the
        extended exchange.
        """
        history = list(messages)
        definitions = self.registry.get_definitions()
        self.state = LoopState.AWAITING_MODEL
        self.rounds = 0

        try:
            while True:
                if self.rounds >= self.max_rounds:
                    log.error("Tool loop exhausted", rounds=self.rounds)
                    raise ToolLoopExhaustedError(self.rounds)

                self.rounds += 1
                response = await self.provider.complete(history, tools=definitions)
                choice = self._first_choice(response)

                if not choice.tool_calls:
                    log.info(
                        "No tool calls made - model generated direct response",
                        round=self.rounds,
                        content_length=len(choice.content),
                    )
                    self.state = LoopState.DONE
                    return ToolLoopResult(
                        content=choice.content,
                        messages=history,
                        rounds=self.rounds,
                        state=self.state,
                    )

                self.state = LoopState.DISPATCHING_TOOLS
                log.info("Tool calls detected", round=self.rounds, count=len(choice.tool_calls))
                history.append(Message(role="assistant", content=choice.content, tool_calls=list(choice.tool_calls)))
                for call in choice.tool_calls:
                    history.append(await self._dispatch(call))
                self.state = LoopState.AWAITING_MODEL
        except BaseException:
            self.state = LoopState.FAILED
            raise

    def _first_choice(self, response: LLMResponse) -> Choice:
        if not response.choices:
            raise EmptyCompletionError("no choices returned by the model")
        return response.choices[0]

    async def _dispatch(self, call: ToolCall) -> Message:
        """Run one tool call and wrap its outcome as a tool message.

        Raises:
            ToolNotFoundError for a tool name outside the registry
        """
        log.info("Tool call received", tool=call.name, call_id=call.id, args=call.arguments)
        tool = self.registry.get(call.name)

        try:
            arguments = tool.parse_arguments(call.arguments)
            result = await self.registry.execute(call.name, arguments)
            content = result.as_text()
        except (ToolArgumentError, ToolExecutionError) as e:
            log.warning("Tool call failed", tool=call.name, error=str(e))
            content = str(e)

        return Message(role="tool", content=content, tool_call_id=call.id, tool_name=call.name)
