"""Conversation turn orchestration: concurrent title and reply under one deadline."""

import asyncio
from dataclasses import dataclass

from chatline.assistant import Assistant
from chatline.conversation import Conversation, ConversationStore, Role
from chatline.exceptions import TurnError, TurnTimeoutError
from chatline.logging import get_logger
from chatline.title_cache import TitleCache, make_title_key

log = get_logger(__name__)


@dataclass
class TurnResult:
    """Outcome of one successful turn."""

    conversation_id: str
    title: str
    reply: str


class TurnCoordinator:
    """Runs one conversation turn end to end.

    Reply generation goes through the tool loop and is fatal on failure.
    Title generation (first turn only) goes through the shared title cache
    under a shorter, adaptive budget; its failures are logged and dropped.
    Both run as sibling tasks inside one deadline scope.
    """

    def __init__(
        self,
        assistant: Assistant,
        store: ConversationStore,
        title_cache: TitleCache,
        request_timeout: float | None = 30.0,
        max_title_budget: float = 15.0,
        safety_margin: float = 0.5,
        min_title_budget: float = 0.5,
        prompt_version: str = "v1",
    ):
        self.assistant = assistant
        self.store = store
        self.title_cache = title_cache
        self.request_timeout = request_timeout
        self.max_title_budget = max_title_budget
        self.safety_margin = safety_margin
        self.min_title_budget = min_title_budget
        self.prompt_version = prompt_version

    def title_budget(self, deadline: float | None) -> float:
        """Seconds the title task may run given the absolute loop-time ``deadline``.

        ``min(max_title_budget, remaining - safety_margin)``, replaced by
        ``min_title_budget`` when that comes out non-positive.
        """
        if deadline is None:
            return self.max_title_budget
        remaining = deadline - asyncio.get_running_loop().time() - self.safety_margin
        if remaining <= 0:
            return self.min_title_budget
        return min(self.max_title_budget, remaining)

    async def start(self, conversation: Conversation) -> TurnResult:
        """First turn of a brand-new conversation.

        The conversation (holding only the user's message) is created before
        any generation starts; the final write afterwards is best effort.

        Raises:
            ConversationError if the initial write fails
            TurnError if reply generation fails
            TurnTimeoutError if the deadline passes before a reply exists
        """
        result: TurnResult | None = None
        try:
            async with asyncio.timeout(self.request_timeout) as scope:
                await self.store.create(conversation)
                title, reply = await self._generate(conversation, scope.when(), with_title=True)
                result = self._complete(conversation, title, reply)
                try:
                    await self.store.update(conversation)
                except Exception as e:
                    log.error(
                        "Failed to persist conversation turn",
                        conversation_id=conversation.id,
                        error=str(e),
                    )
        except TimeoutError as e:
            if result is None:
                log.error("Turn deadline exceeded", conversation_id=conversation.id)
                raise TurnTimeoutError(self.request_timeout) from e
            log.error("Final conversation write timed out", conversation_id=conversation.id)
        return result

    async def continue_conversation(self, conversation: Conversation) -> TurnResult:
        """Later turn: reply only, persisted by a single required write.

        ``conversation`` must already carry the new user message.
        """
        try:
            async with asyncio.timeout(self.request_timeout) as scope:
                _, reply = await self._generate(conversation, scope.when(), with_title=False)
                result = self._complete(conversation, None, reply)
                await self.store.update(conversation)
        except TimeoutError as e:
            log.error("Turn deadline exceeded", conversation_id=conversation.id)
            raise TurnTimeoutError(self.request_timeout) from e
        return result

    async def _generate(
        self,
        conversation: Conversation,
        deadline: float | None,
        with_title: bool,
    ) -> tuple[str | None, str]:
        title_task: asyncio.Task[str | None] | None = None
        try:
            async with asyncio.TaskGroup() as group:
                if with_title:
                    title_task = group.create_task(
                        self._title(conversation, self.title_budget(deadline))
                    )
                reply_task = group.create_task(self.assistant.reply(conversation))
        except ExceptionGroup as eg:
            error = eg.exceptions[0]
            log.error("Reply generation failed", conversation_id=conversation.id, error=str(error))
            raise TurnError(f"failed to generate reply: {error}") from error

        title = title_task.result() if title_task is not None else None
        return title, reply_task.result()

    async def _title(self, conversation: Conversation, budget: float) -> str | None:
        """Title from the cache or the model; ``None`` when unavailable."""
        key = make_title_key(conversation.messages[0].content, self.assistant.model, self.prompt_version)
        try:
            async with asyncio.timeout(budget):
                title = await self.title_cache.get_or_compute(
                    key, lambda: self.assistant.title(conversation)
                )
        except TimeoutError:
            log.warning("Title generation timed out", conversation_id=conversation.id, budget=budget)
            return None
        except Exception as e:
            log.warning("Failed to generate title", conversation_id=conversation.id, error=str(e))
            return None

        title = (title or "").strip()
        if not title:
            log.warning("Title generation returned nothing", conversation_id=conversation.id)
            return None
        return title

    def _complete(self, conversation: Conversation, title: str | None, reply: str) -> TurnResult:
        conversation.add_message(Role.ASSISTANT, reply)
        if title:
            conversation.title = title
        conversation.touch()
        return TurnResult(conversation_id=conversation.id, title=conversation.title, reply=reply)
