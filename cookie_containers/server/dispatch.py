"""
Action dispatch table for popup messages.

Every request is a dict with an `action` key; every response is a dict.
Failures never escape the boundary: they are rendered as {success: false, error}.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from ..errors import ChannelFailure, ContainerError

if TYPE_CHECKING:
    from ..engine import ContainersEngine

logger = logging.getLogger("containers.dispatch")

HandlerFunc = Callable[["ContainersEngine", dict[str, Any]], Awaitable[dict[str, Any]]]


def error_response(message: str, **extra: Any) -> dict[str, Any]:
    return {"success": False, "error": message, **extra}


class MessageDispatcher:
    def __init__(self, engine: ContainersEngine) -> None:
        self.engine = engine
        self._handlers: dict[str, HandlerFunc] = {}

    def register_many(self, handlers: dict[str, HandlerFunc]) -> None:
        self._handlers.update(handlers)

    async def handle(self, request: dict[str, Any]) -> dict[str, Any]:
        action = request.get("action") if isinstance(request, dict) else None
        if not isinstance(action, str) or not action:
            return error_response("Missing action")
        handler = self._handlers.get(action)
        if handler is None:
            return error_response(f"Unknown action: {action}")

        logger.info("message action=%s", action)
        try:
            return await handler(self.engine, request)
        except ContainerError as e:
            logger.info("message_error action=%s kind=%s reason=%s", action, type(e).__name__, e.reason)
            return error_response(e.reason, kind=type(e).__name__)
        except ChannelFailure as e:
            logger.warning("channel_failure action=%s error=%s", action, e)
            return error_response(str(e), kind="ChannelFailure")
        except ValueError as e:
            return error_response(str(e), kind="InvalidRequest")
        except Exception as exc:
            logger.exception("message_failed action=%s", action)
            return error_response(str(exc) or type(exc).__name__)


def create_default_dispatcher(engine: ContainersEngine) -> MessageDispatcher:
    from .handlers import MESSAGE_HANDLERS

    dispatcher = MessageDispatcher(engine)
    dispatcher.register_many(MESSAGE_HANDLERS)
    return dispatcher
