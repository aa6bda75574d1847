"""Title and reply generation on top of the model provider."""

from chatline.conversation import Conversation, Role
from chatline.exceptions import ConversationError, TitleGenerationError
from chatline.llm import LLMProvider, Message
from chatline.logging import get_logger
from chatline.tool_loop import DEFAULT_MAX_ROUNDS, ToolLoop
from chatline.tools.registry import ToolRegistry

log = get_logger(__name__)

EMPTY_CONVERSATION_TITLE = "An empty conversation"
MAX_TITLE_LENGTH = 80

TITLE_SYSTEM_PROMPT = """You are a title generator.

TASK
- Return ONLY a short, descriptive title for the conversation/topic.

FORMAT
- Output exactly one line with the title text. No quotes, no code blocks, no extra words.
- Maximum 80 characters.
- No emojis or unusual symbols.
- Do NOT answer the question or explain anything.

SPECIAL CASE
- If the conversation is empty, return: An empty conversation

EXAMPLES
User: What is the weather like in Barcelona?
You: Weather in Barcelona

User: How do I add items to a list in Python?
You: Python list methods

User: Tell me the steps to set up a Postgres replica
You: Setting up a PostgreSQL replica"""

REPLY_SYSTEM_PROMPT = """You are a helpful AI assistant with access to specialized tools.

WEATHER - TOOL USE
1) Always call **get_weather** for weather/temperature/forecast/climate questions. Never invent weather.
2) Args for get_weather:
   - **location**: extract from the user message (city, "City,Country", or "lat,lon").
   - **forecast_days**:
     - If the user asks for a specific **weekday or date** (e.g., "Friday", "Sep 5"), first call **get_today_date**, compute the day difference from today, then set **forecast_days = diff + 1** (clamp 1-10). After receiving data, answer **only for that target day** (not the whole range).
     - Otherwise, default to a **short forecast** (1-3 days). Do NOT request 7+ days unless explicitly asked.
   - If the location is missing or ambiguous, ask one brief clarifying question.

RESPONSE STYLE (IMPORTANT)
3) Write a concise, readable answer tailored to the user's request. Do **not** just echo tool output.
   - Start with a single line header: **<City, Country> - <Day label>** (e.g., **Barcelona, Spain - Friday**).
   - Then 3-5 short bullet points covering conditions, High/Low temperatures in °C (add °F only if the user used °F), rain chance or precipitation if available, and wind.
   - Keep numbers clean (no excessive decimals). Avoid long paragraphs.
   - If the user specifies part of day (e.g., "morning"), focus the summary on that period; if hourly detail isn't available, state what's most likely and include the day's range.

OTHER TOOLS
4) Use **get_today_date** for current date/time questions.
5) Use **get_holidays** for holiday/calendar questions.
6) For non-tool queries, answer normally."""

WEATHER_KEYWORDS = (
    "weather", "temperature", "forecast", "climate", "hot", "cold", "rain", "snow",
    "sunny", "cloudy", "wind", "humidity", "°c", "°f", "celsius", "fahrenheit",
)

WEATHER_STEERING_PREFIX = (
    "IMPORTANT: You MUST use the get_weather function to answer this question. "
    "Do NOT generate weather information from your training data. "
    "Extract the location and forecast_days (if any) from the user's text. Question: "
)


def is_weather_query(content: str) -> bool:
    """Check if a message is asking about the weather."""
    lowered = content.lower()
    return any(keyword in lowered for keyword in WEATHER_KEYWORDS)


def clean_title(raw: str, max_length: int = MAX_TITLE_LENGTH) -> str:
    title = raw.replace("\n", " ").strip(" \t\r\n-\"'")
    return title[:max_length]


def _history(conversation: Conversation, steer_weather: bool = False) -> list[Message]:
    messages: list[Message] = []
    for message in conversation.messages:
        if message.role == Role.USER:
            content = message.content
            if steer_weather and is_weather_query(content):
                content = WEATHER_STEERING_PREFIX + content
                log.info("Weather query detected, forcing function usage", message=message.content)
            messages.append(Message(role="user", content=content))
        elif message.role == Role.ASSISTANT:
            messages.append(Message(role="assistant", content=message.content))
    return messages


class Assistant:
    """Generates conversation titles and replies."""

    def __init__(
        self,
        provider: LLMProvider,
        registry: ToolRegistry,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        title_max_length: int = MAX_TITLE_LENGTH,
    ):
        self.provider = provider
        self.registry = registry
        self.max_rounds = max_rounds
        self.title_max_length = title_max_length

    @property
    def model(self) -> str:
        return self.provider.model

    async def title(self, conversation: Conversation) -> str:
        """Single tool-free model call producing a one-line title.

        Raises:
            TitleGenerationError if the model answers with nothing usable
        """
        if not conversation.messages:
            return EMPTY_CONVERSATION_TITLE

        log.info("Generating title for conversation", conversation_id=conversation.id)
        messages = [Message(role="system", content=TITLE_SYSTEM_PROMPT), *_history(conversation)]
        response = await self.provider.complete(messages)

        if not response.choices or not response.choices[0].content.strip():
            raise TitleGenerationError("empty response from the model for title generation")
        return clean_title(response.choices[0].content, self.title_max_length)

    async def reply(self, conversation: Conversation) -> str:
        """Run the tool loop over the conversation and return the final answer."""
        if not conversation.messages:
            raise ConversationError("conversation has no messages")

        log.info("Generating reply for conversation", conversation_id=conversation.id)
        messages = [
            Message(role="system", content=REPLY_SYSTEM_PROMPT),
            *_history(conversation, steer_weather=True),
        ]
        loop = ToolLoop(self.provider, self.registry, max_rounds=self.max_rounds)
        result = await loop.run(messages)
        return result.content
