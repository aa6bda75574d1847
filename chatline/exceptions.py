"""Custom exceptions for Chatline."""


class ChatlineError(Exception):
    """Base exception for Chatline."""

    pass


class ConfigurationError(ChatlineError):
    """Configuration-related errors."""

    pass


class ValidationError(ChatlineError):
    """Request validation errors."""

    def __init__(self, argument: str, message: str | None = None):
        super().__init__(message or f"{argument} is required")
        self.argument = argument


class LLMError(ChatlineError):
    """LLM-related errors."""

    pass


class LLMAPIError(LLMError):
    """LLM API errors (rate limit, auth, etc.)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class EmptyCompletionError(LLMError):
    """The model answered without any completion choices."""

    pass


class ToolError(ChatlineError):
    """Tool execution errors."""

    pass


class ToolNotFoundError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"unknown tool call: {tool_name}")
        self.tool_name = tool_name


class ToolArgumentError(ToolError):
    """Tool arguments could not be parsed or validated."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"failed to parse {tool_name} arguments: {message}")
        self.tool_name = tool_name


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class ToolLoopExhaustedError(ToolError):
    """The model kept calling tools past the round limit."""

    def __init__(self, rounds: int):
        super().__init__(f"too many tool calls, unable to generate reply after {rounds} rounds")
        self.rounds = rounds


class WeatherServiceError(ChatlineError):
    """Weather provider request failed."""

    pass


class HolidayFeedError(ChatlineError):
    """Holiday calendar feed could not be loaded."""

    pass


class ConversationError(ChatlineError):
    """Conversation storage errors."""

    pass


class ConversationNotFoundError(ConversationError):
    """Conversation not found."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class TitleGenerationError(ChatlineError):
    """Title could not be generated."""

    pass


class TurnError(ChatlineError):
    """A conversation turn failed to produce a reply."""

    pass


class TurnTimeoutError(TurnError):
    """A conversation turn ran past its deadline."""

    def __init__(self, timeout: float | None):
        super().__init__(f"Turn exceeded its deadline of {timeout}s")
        self.timeout = timeout
