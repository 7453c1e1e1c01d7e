"""Message protocol served to the popup / extension."""

from .dispatch import MessageDispatcher, create_default_dispatcher

__all__ = ["MessageDispatcher", "create_default_dispatcher"]
