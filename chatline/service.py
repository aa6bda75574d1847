"""Chat service: the four conversation operations exposed to transports."""

from chatline.assistant import Assistant
from chatline.config import Config, get_config
from chatline.conversation import Conversation, ConversationStore, Role
from chatline.exceptions import ConversationNotFoundError, ValidationError
from chatline.llm import LLMProvider, create_provider
from chatline.logging import get_logger
from chatline.title_cache import TitleCache
from chatline.tools import create_default_registry
from chatline.tools.registry import ToolRegistry
from chatline.turn import TurnCoordinator, TurnResult

log = get_logger(__name__)


def _require(value: str | None, argument: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(argument)
    return cleaned


class ChatService:
    """Conversation operations on top of the turn coordinator and store."""

    def __init__(
        self,
        coordinator: TurnCoordinator,
        store: ConversationStore,
        default_title: str = "Untitled conversation",
    ):
        self.coordinator = coordinator
        self.store = store
        self.default_title = default_title

    async def start_conversation(self, message: str) -> TurnResult:
        """Open a conversation with ``message`` and return its title and reply."""
        content = _require(message, "message")
        conversation = Conversation.start(content, title=self.default_title)
        log.info("Starting conversation", conversation_id=conversation.id)
        return await self.coordinator.start(conversation)

    async def continue_conversation(self, conversation_id: str, message: str) -> TurnResult:
        """Add a user message to an existing conversation and reply to it.

        Raises:
            ValidationError for a blank id or message
            ConversationNotFoundError if the conversation does not exist
        """
        conversation_id = _require(conversation_id, "conversation_id")
        content = _require(message, "message")

        conversation = await self.store.describe(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)

        conversation.add_message(Role.USER, content)
        return await self.coordinator.continue_conversation(conversation)

    async def list_conversations(self) -> list[Conversation]:
        """All conversations, newest first, without their messages."""
        conversations = await self.store.list()
        for conversation in conversations:
            conversation.messages = []
        return conversations

    async def describe_conversation(self, conversation_id: str) -> Conversation:
        conversation_id = _require(conversation_id, "conversation_id")
        conversation = await self.store.describe(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    async def close(self) -> None:
        """Release the store, model and tool resources."""
        await self.store.close()
        await self.coordinator.assistant.provider.close()
        await self.coordinator.assistant.registry.close()


def build_service(
    config: Config | None = None,
    provider: LLMProvider | None = None,
    registry: ToolRegistry | None = None,
    store: ConversationStore | None = None,
) -> ChatService:
    """Wire a ChatService from configuration.

    Any collaborator passed in explicitly replaces the configured one.
    """
    cfg = config or get_config()

    if provider is None:
        provider = create_provider(
            provider=cfg.model.provider,
            model=cfg.model.model,
            api_key=cfg.model.api_key or None,
            base_url=cfg.model.base_url or None,
            temperature=cfg.model.temperature,
            max_tokens=cfg.model.max_tokens,
            timeout=cfg.model.timeout,
        )
    if registry is None:
        registry = create_default_registry()
    if store is None:
        store = ConversationStore(cfg.storage.path)

    assistant = Assistant(
        provider,
        registry,
        max_rounds=cfg.turn.max_tool_rounds,
        title_max_length=cfg.title.max_length,
    )
    coordinator = TurnCoordinator(
        assistant=assistant,
        store=store,
        title_cache=TitleCache(capacity=cfg.title.cache_size, max_length=cfg.title.max_length),
        request_timeout=cfg.turn.request_timeout_seconds,
        max_title_budget=cfg.title.max_budget_seconds,
        safety_margin=cfg.title.safety_margin_seconds,
        min_title_budget=cfg.title.min_budget_seconds,
        prompt_version=cfg.title.prompt_version,
    )
    log.info(
        "Chat service ready",
        provider=cfg.model.provider,
        model=provider.model,
        tools=registry.list_tools(),
    )
    return ChatService(coordinator, store, default_title=cfg.title.default_title)
