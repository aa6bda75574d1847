"""Recency-bounded title cache with duplicate-request collapsing."""

import asyncio
import hashlib
from collections import OrderedDict
from collections.abc import Awaitable, Callable

from chatline.exceptions import TitleGenerationError
from chatline.logging import get_logger

log = get_logger(__name__)

DEFAULT_CAPACITY = 10_000
MAX_TITLE_LENGTH = 80


def normalize_for_key(text: str) -> str:
    """Lowercase, trim and collapse internal whitespace."""
    return " ".join((text or "").lower().split())


def make_title_key(first_message: str, model: str, prompt_version: str) -> str:
    """Digest identifying one title computation.

    Model and prompt version are part of the key so that changing either
    never serves a title produced under the old setup.
    """
    raw = "|".join(["title", model, prompt_version, normalize_for_key(first_message)])
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def normalize_title(title: str, max_length: int = MAX_TITLE_LENGTH) -> str:
    """Single line, no surrounding whitespace or quotes, at most ``max_length`` chars."""
    cleaned = (title or "").replace("\r\n", " ").replace("\n", " ").replace("\r", " ")
    cleaned = cleaned.strip().strip("\"'`").strip()
    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length].rstrip()
    return cleaned


class TitleCache:
    """LRU cache of normalized titles in front of a slow title computation.

    Concurrent misses for the same key share one in-flight future: the first
    caller runs ``compute`` and resolves the future, later callers await it.
    All state changes happen between suspension points of a single event
    loop, so no lock is needed.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, max_length: int = MAX_TITLE_LENGTH):
        self.capacity = max(1, int(capacity))
        self.max_length = max_length
        self._entries: OrderedDict[str, str] = OrderedDict()
        self._inflight: dict[str, asyncio.Future[str]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> str | None:
        """Cached title for ``key``, marking it most recently used."""
        value = self._entries.get(key)
        if value is not None:
            self._entries.move_to_end(key)
        return value

    def put(self, key: str, value: str) -> None:
        self._entries[key] = value
        self._entries.move_to_end(key)
        while len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            log.debug("Evicted cached title", key=evicted)

    async def get_or_compute(self, key: str, compute: Callable[[], Awaitable[str]]) -> str:
        """Return the cached title or compute it once for all concurrent callers.

        Non-empty normalized results are cached and returned. Empty results
        are returned raw and not cached. Errors are never cached and reach
        every caller that was waiting on the same computation.
        """
        cached = self.get(key)
        if cached is not None:
            log.debug("Title cache hit", key=key)
            return cached

        pending = self._inflight.get(key)
        if pending is not None:
            log.debug("Joining in-flight title computation", key=key)
            return await asyncio.shield(pending)

        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            raw = await compute()
        except asyncio.CancelledError:
            self._fail(future, TitleGenerationError("title computation was cancelled"))
            raise
        except Exception as e:
            self._fail(future, e)
            raise
        finally:
            self._inflight.pop(key, None)

        normalized = normalize_title(raw, self.max_length)
        value = raw
        if normalized:
            self.put(key, normalized)
            value = normalized
        future.set_result(value)
        return value

    @staticmethod
    def _fail(future: asyncio.Future[str], error: BaseException) -> None:
        future.set_exception(error)
        # Mark retrieved so a computation nobody joined does not log a warning.
        future.exception()
