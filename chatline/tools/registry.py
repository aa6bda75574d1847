"""Tool registry and base tool class."""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, ClassVar

from pydantic import BaseModel, ValidationError, model_validator

from chatline.exceptions import (
    ToolArgumentError,
    ToolExecutionError,
    ToolNotFoundError,
)
from chatline.llm import ToolDefinition
from chatline.logging import get_logger

log = get_logger(__name__)


class ToolResult(BaseModel):
    """Result from tool execution."""

    success: bool = True
    content: str = ""
    error: str | None = None

    @model_validator(mode="after")
    def _normalize_failure_error(self) -> "ToolResult":
        """Ensure failed results always provide an error message."""
        if not self.success and not (self.error or "").strip():
            fallback = (self.content or "").strip()
            self.error = fallback or "Tool execution failed"
        return self

    def as_text(self) -> str:
        """Text fed back to the model for this result."""
        return self.content if self.success else (self.error or "")


class NoArguments(BaseModel):
    """Argument model for tools that take nothing."""

    pass


class Tool(ABC):
    """Base class for all tools."""

    name: ClassVar[str] = ""
    description: ClassVar[str] = ""
    parameters: ClassVar[dict[str, Any]] = {}
    arguments_model: ClassVar[type[BaseModel]] = NoArguments
    timeout_seconds: ClassVar[float] = 30.0

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult:
        """Execute the tool.

        Args:
            **kwargs: Tool-specific arguments, already validated

        Returns:
            ToolResult with success status and content
        """
        pass

    def get_definition(self) -> ToolDefinition:
        """Get the tool definition for the LLM."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )

    def parse_arguments(self, raw: str | dict[str, Any] | None) -> dict[str, Any]:
        """Decode and validate a raw argument payload against this tool's schema.

        Raises:
            ToolArgumentError if the payload is not valid JSON or fails validation
        """
        if isinstance(raw, str):
            text = raw.strip()
            try:
                payload = json.loads(text) if text else {}
            except json.JSONDecodeError as e:
                raise ToolArgumentError(self.name, str(e))
        else:
            payload = raw or {}

        if not isinstance(payload, dict):
            raise ToolArgumentError(self.name, "arguments must be a JSON object")

        try:
            parsed = self.arguments_model.model_validate(payload)
        except ValidationError as e:
            raise ToolArgumentError(self.name, str(e))
        return parsed.model_dump()

    async def close(self) -> None:
        """Release resources held by the tool."""
        return None


class ToolRegistry:
    """Registry for managing available tools."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Register a tool.

        Args:
            tool: Tool instance to register
        """
        if not tool.name:
            raise ValueError("Tool must have a name")

        log.debug("Registering tool", tool=tool.name)
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError if not found
        """
        if name not in self._tools:
            raise ToolNotFoundError(name)
        return self._tools[name]

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return list(self._tools)

    def get_definitions(self) -> list[ToolDefinition]:
        """Get all tool definitions for the LLM."""
        return [tool.get_definition() for tool in self._tools.values()]

    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Execute a tool by name with already-parsed arguments.

        Raises:
            ToolNotFoundError if tool not found
            ToolExecutionError if execution fails or times out
        """
        tool = self.get(name)

        try:
            log.info("Executing tool", tool=name, args=arguments)
            async with asyncio.timeout(max(1.0, float(tool.timeout_seconds))):
                result = await tool.execute(**arguments)
        except TimeoutError:
            raise ToolExecutionError(name, f"Execution timed out after {tool.timeout_seconds}s")
        except ToolExecutionError:
            raise
        except Exception as e:
            log.error("Tool execution failed", tool=name, error=str(e))
            raise ToolExecutionError(name, str(e))

        if not isinstance(result, ToolResult):
            raise ToolExecutionError(name, "Tool returned invalid result payload")
        log.info("Tool executed", tool=name, success=result.success)
        return result

    async def close(self) -> None:
        """Close every registered tool."""
        for tool in self._tools.values():
            await tool.close()
