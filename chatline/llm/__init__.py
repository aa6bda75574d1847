"""LLM providers - direct HTTP calls to chat-completion APIs."""

import json
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from chatline.exceptions import ConfigurationError, LLMAPIError, LLMError
from chatline.logging import get_logger

log = get_logger(__name__)


OPENAI_BASE_URL = "https://api.openai.com/v1"
OLLAMA_NATIVE_BASE_URL = "http://127.0.0.1:11434"


@dataclass
class ToolCall:
    """A tool call from the LLM.

    ``arguments`` is the raw payload as sent by the provider: a JSON string
    for OpenAI-compatible APIs, an already-decoded mapping for Ollama.
    """

    id: str
    name: str
    arguments: str | dict[str, Any] = ""


@dataclass
class Message:
    """A message in the model exchange."""

    role: str  # "system", "user", "assistant", "tool"
    content: str
    tool_call_id: str | None = None
    tool_name: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)


@dataclass
class Choice:
    """One completion alternative."""

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str = ""


@dataclass
class LLMResponse:
    """Response from the LLM."""

    choices: list[Choice] = field(default_factory=list)
    model: str = ""
    usage: dict[str, int] = field(default_factory=dict)

    @classmethod
    def text(cls, content: str, **kwargs: Any) -> "LLMResponse":
        """Build a single-choice response carrying final text."""
        return cls(choices=[Choice(content=content, finish_reason="stop")], **kwargs)

    @classmethod
    def calls(cls, *tool_calls: ToolCall, **kwargs: Any) -> "LLMResponse":
        """Build a single-choice response carrying tool calls."""
        return cls(choices=[Choice(tool_calls=list(tool_calls), finish_reason="tool_calls")], **kwargs)


@dataclass
class ToolDefinition:
    """Definition of a tool for the LLM."""

    name: str
    description: str
    parameters: dict[str, Any]  # JSON Schema


def _definition_fields(tool: ToolDefinition | dict[str, Any]) -> tuple[str, str, dict[str, Any]]:
    if isinstance(tool, dict):
        return (
            str(tool.get("name") or ""),
            str(tool.get("description") or ""),
            tool.get("parameters") or {},
        )
    return tool.name, tool.description or "", tool.parameters or {}


def _decode_arguments(arguments: str | dict[str, Any]) -> dict[str, Any]:
    if isinstance(arguments, dict):
        return arguments
    try:
        decoded = json.loads(arguments or "{}")
    except json.JSONDecodeError:
        return {"raw": arguments}
    return decoded if isinstance(decoded, dict) else {"raw": arguments}


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    model: str = ""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        pass

    async def close(self) -> None:
        """Release network resources."""
        return None


class OpenAIProvider(LLMProvider):
    """OpenAI-compatible chat completions provider."""

    def __init__(
        self,
        model: str = "o1",
        api_key: str | None = None,
        base_url: str = OPENAI_BASE_URL,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize OpenAI-compatible provider.

        Args:
            model: Model name (e.g., 'o1', 'gpt-4o-mini')
            api_key: API key, sent as a Bearer token
            base_url: API base URL (anything exposing /chat/completions)
            temperature: Optional sampling temperature
            max_tokens: Optional completion token cap
            timeout: HTTP timeout in seconds
            client: Optional preconfigured HTTP client
        """
        self.model = model
        self.api_key = api_key or ""
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    @staticmethod
    def _convert_messages(messages: list[Message]) -> list[dict[str, Any]]:
        """Convert messages to OpenAI format."""
        result: list[dict[str, Any]] = []
        for msg in messages:
            if msg.role == "tool":
                result.append({
                    "role": "tool",
                    "tool_call_id": msg.tool_call_id or "",
                    "content": msg.content or "",
                })
            elif msg.role == "assistant" and msg.tool_calls:
                result.append({
                    "role": "assistant",
                    "content": msg.content or None,
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {
                                "name": tc.name,
                                "arguments": (
                                    tc.arguments
                                    if isinstance(tc.arguments, str)
                                    else json.dumps(tc.arguments)
                                ),
                            },
                        }
                        for tc in msg.tool_calls
                    ],
                })
            else:
                result.append({"role": msg.role, "content": msg.content or ""})
        return result

    @staticmethod
    def _convert_tools(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Convert tools to OpenAI function format."""
        result = []
        for tool in tools:
            name, description, parameters = _definition_fields(tool)
            if not name:
                continue
            function: dict[str, Any] = {"name": name, "description": description}
            if parameters:
                function["parameters"] = parameters
            result.append({"type": "function", "function": function})
        return result

    @staticmethod
    def _parse_choice(raw: dict[str, Any]) -> Choice:
        message = raw.get("message") or {}
        tool_calls = [
            ToolCall(
                id=str(tc.get("id", "")),
                name=str((tc.get("function") or {}).get("name", "")),
                arguments=(tc.get("function") or {}).get("arguments", "") or "",
            )
            for tc in message.get("tool_calls") or []
        ]
        return Choice(
            content=message.get("content") or "",
            tool_calls=tool_calls,
            finish_reason=raw.get("finish_reason") or "",
        )

    def _request_body(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None,
        temperature: float | None,
        max_tokens: int | None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(messages),
        }
        if tools:
            body["tools"] = self._convert_tools(tools)
        effective_temperature = temperature if temperature is not None else self.temperature
        if effective_temperature is not None:
            body["temperature"] = effective_temperature
        effective_max_tokens = max_tokens or self.max_tokens
        if effective_max_tokens:
            body["max_completion_tokens"] = effective_max_tokens
        return body

    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion."""
        url = f"{self.base_url}/chat/completions"
        body = self._request_body(messages, tools, temperature, max_tokens)

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            log.debug("Calling OpenAI", model=self.model, url=url, msg_count=len(body["messages"]))

            response = await self.client.post(url, json=body, headers=headers)

            if not response.is_success:
                raise LLMAPIError(
                    f"OpenAI API error {response.status_code}: {response.text}",
                    status_code=response.status_code,
                )

            data = response.json()
            return LLMResponse(
                choices=[self._parse_choice(choice) for choice in data.get("choices") or []],
                model=str(data.get("model") or self.model),
                usage=dict(data.get("usage") or {}),
            )
        except LLMError:
            raise
        except httpx.HTTPError as e:
            raise LLMAPIError(f"OpenAI HTTP error: {e}")
        except json.JSONDecodeError as e:
            raise LLMError(f"OpenAI response decode error: {e}")
        except Exception as e:
            raise LLMError(f"OpenAI call failed: {e}")

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


class OllamaProvider(LLMProvider):
    """Direct Ollama API provider."""

    def __init__(
        self,
        model: str = "llama3.2",
        base_url: str = OLLAMA_NATIVE_BASE_URL,
        temperature: float | None = None,
        max_tokens: int | None = None,
        api_key: str | None = None,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_key = api_key
        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    @staticmethod
    def _convert_messages(messages: list[Message]) -> list[dict[str, Any]]:
        """Convert messages to Ollama format."""
        result = []
        for msg in messages:
            entry: dict[str, Any] = {"role": msg.role, "content": msg.content or ""}
            if msg.role == "tool" and msg.tool_name:
                entry["tool_name"] = msg.tool_name
            if msg.role == "assistant" and msg.tool_calls:
                entry["tool_calls"] = [
                    {
                        "function": {
                            "name": tc.name,
                            "arguments": _decode_arguments(tc.arguments),
                        }
                    }
                    for tc in msg.tool_calls
                ]
            result.append(entry)
        return result

    @staticmethod
    def _convert_tools(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Convert tools to Ollama format."""
        result = []
        for tool in tools:
            name, description, parameters = _definition_fields(tool)
            if name:
                result.append({
                    "type": "function",
                    "function": {
                        "name": name,
                        "description": description,
                        "parameters": parameters or {"type": "object", "properties": {}},
                    },
                })
        return result

    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion."""
        url = f"{self.base_url}/api/chat"

        options: dict[str, Any] = {}
        effective_temperature = temperature if temperature is not None else self.temperature
        if effective_temperature is not None:
            options["temperature"] = effective_temperature
        if max_tokens or self.max_tokens:
            options["num_predict"] = max_tokens or self.max_tokens

        body: dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(messages),
            "stream": False,
        }
        if options:
            body["options"] = options
        if tools:
            body["tools"] = self._convert_tools(tools)

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            log.debug("Calling Ollama", model=self.model, url=url, msg_count=len(body["messages"]))

            response = await self.client.post(url, json=body, headers=headers)

            if not response.is_success:
                raise LLMAPIError(
                    f"Ollama API error {response.status_code}: {response.text}",
                    status_code=response.status_code,
                )

            data = response.json()
            message = data.get("message") or {}
            tool_calls = [
                ToolCall(
                    id=f"ollama_call_{idx}",
                    name=tc.get("function", {}).get("name", ""),
                    arguments=tc.get("function", {}).get("arguments", {}) or {},
                )
                for idx, tc in enumerate(message.get("tool_calls") or [])
            ]
            usage = {
                "prompt_tokens": data.get("prompt_eval_count", 0),
                "completion_tokens": data.get("eval_count", 0),
                "total_tokens": data.get("prompt_eval_count", 0) + data.get("eval_count", 0),
            }

            # Ollama returns a single message; an empty body means no choice at all.
            if not message:
                return LLMResponse(choices=[], model=self.model, usage=usage)
            return LLMResponse(
                choices=[Choice(
                    content=message.get("content", ""),
                    tool_calls=tool_calls,
                    finish_reason=str(data.get("done_reason") or ""),
                )],
                model=self.model,
                usage=usage,
            )
        except LLMError:
            raise
        except httpx.HTTPError as e:
            raise LLMAPIError(f"Ollama HTTP error: {e}")
        except json.JSONDecodeError as e:
            raise LLMError(f"Ollama response decode error: {e}")
        except Exception as e:
            raise LLMError(f"Ollama call failed: {e}")

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


def create_provider(
    provider: str = "openai",
    model: str = "o1",
    api_key: str | None = None,
    base_url: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
    timeout: float = 60.0,
) -> LLMProvider:
    """Create an LLM provider.

    Args:
        provider: Provider name (openai, chatgpt, ollama)
        model: Model name
        api_key: Optional API key (falls back to OPENAI_API_KEY for openai)
        base_url: Optional base URL
        temperature: Default temperature
        max_tokens: Default max tokens
        timeout: HTTP timeout in seconds

    Returns:
        Configured LLMProvider instance
    """
    name = (provider or "").strip().lower()
    if name in {"openai", "chatgpt"}:
        return OpenAIProvider(
            model=model,
            api_key=api_key or os.environ.get("OPENAI_API_KEY", ""),
            base_url=base_url or OPENAI_BASE_URL,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
    if name == "ollama":
        return OllamaProvider(
            model=model,
            base_url=base_url or OLLAMA_NATIVE_BASE_URL,
            temperature=temperature,
            max_tokens=max_tokens,
            api_key=api_key,
            timeout=timeout,
        )
    raise ConfigurationError(f"Provider '{provider}' not supported. Use 'openai' or 'ollama'.")

