"""HTTP JSON API for Chatline."""

import asyncio
import json
import signal
from typing import Any

from aiohttp import web

from chatline.config import Config
from chatline.conversation import Conversation
from chatline.exceptions import (
    ChatlineError,
    ConversationNotFoundError,
    TurnError,
    TurnTimeoutError,
    ValidationError,
)
from chatline.logging import get_logger
from chatline.service import ChatService, build_service
from chatline.turn import TurnResult

log = get_logger(__name__)


def _summary(conversation: Conversation) -> dict[str, Any]:
    return conversation.to_dict(include_messages=False)


def _turn_payload(result: TurnResult) -> dict[str, Any]:
    return {
        "conversation_id": result.conversation_id,
        "title": result.title,
        "reply": result.reply,
    }


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


def _internal_error(e: Exception) -> web.Response:
    if isinstance(e, ChatlineError):
        return _error(str(e), 500)
    log.error("Unhandled request error", error=str(e), exc_info=True)
    return _error("internal server error", 500)


class WebServer:
    """Chatline HTTP API server."""

    def __init__(self, service: ChatService):
        self.service = service

    async def _read_message(self, request: web.Request) -> str:
        try:
            body = await request.json()
        except json.JSONDecodeError:
            raise ValidationError("message", "Invalid JSON body")
        if not isinstance(body, dict):
            raise ValidationError("message", "Invalid JSON body")
        message = body.get("message")
        if message is not None and not isinstance(message, str):
            raise ValidationError("message", "message must be a string")
        return message or ""

    async def start_conversation(self, request: web.Request) -> web.Response:
        """POST /api/conversations - open a conversation with its first message."""
        try:
            message = await self._read_message(request)
            result = await self.service.start_conversation(message)
        except ValidationError as e:
            return _error(str(e), 400)
        except TurnTimeoutError as e:
            return _error(str(e), 504)
        except TurnError as e:
            return _error(str(e), 500)
        except Exception as e:
            return _internal_error(e)
        return web.json_response(_turn_payload(result), status=201)

    async def continue_conversation(self, request: web.Request) -> web.Response:
        """POST /api/conversations/{id}/messages - add a message and reply."""
        conversation_id = request.match_info.get("id", "")
        try:
            message = await self._read_message(request)
            result = await self.service.continue_conversation(conversation_id, message)
        except ValidationError as e:
            return _error(str(e), 400)
        except ConversationNotFoundError as e:
            return _error(str(e), 404)
        except TurnTimeoutError as e:
            return _error(str(e), 504)
        except TurnError as e:
            return _error(str(e), 500)
        except Exception as e:
            return _internal_error(e)
        return web.json_response({"reply": result.reply})

    async def list_conversations(self, request: web.Request) -> web.Response:
        try:
            conversations = await self.service.list_conversations()
        except Exception as e:
            return _internal_error(e)
        return web.json_response({"conversations": [_summary(c) for c in conversations]})

    async def describe_conversation(self, request: web.Request) -> web.Response:
        conversation_id = request.match_info.get("id", "")
        try:
            conversation = await self.service.describe_conversation(conversation_id)
        except ValidationError as e:
            return _error(str(e), 400)
        except ConversationNotFoundError as e:
            return _error(str(e), 404)
        except Exception as e:
            return _internal_error(e)
        return web.json_response(conversation.to_dict())

    # ── App setup ────────────────────────────────────────────────────

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/api/conversations", self.start_conversation)
        app.router.add_get("/api/conversations", self.list_conversations)
        app.router.add_get("/api/conversations/{id}", self.describe_conversation)
        app.router.add_post("/api/conversations/{id}/messages", self.continue_conversation)
        app.on_cleanup.append(self._on_cleanup)
        return app

    async def _on_cleanup(self, app: web.Application) -> None:
        await self.service.close()


async def _run_server(config: Config) -> None:
    """Start the web server and block until SIGINT/SIGTERM."""
    server = WebServer(build_service(config))
    loop = asyncio.get_running_loop()

    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        if not stop_event.is_set():
            stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except (NotImplementedError, OSError):
            # Windows doesn't support add_signal_handler for SIGTERM.
            log.debug("Signal handler unavailable", signal=sig.name)

    runner = web.AppRunner(server.create_app())
    await runner.setup()

    host = config.web.host
    port = config.web.port
    site = web.TCPSite(runner, host, port)
    await site.start()

    print(f"\n  Chatline API running at http://{host}:{port}")
    print("  Press Ctrl+C to stop.\n")
    log.info("Web server started", host=host, port=port)

    try:
        await stop_event.wait()
    finally:
        print("\nShutting down...")
        await runner.cleanup()
        log.info("Web server stopped")


def run_web_server(config: Config) -> None:
    """Entry point for running the web server."""
    asyncio.run(_run_server(config))
