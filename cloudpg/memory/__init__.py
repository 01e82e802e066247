"""Chat message history persisted in PostgreSQL."""

from cloudpg.memory.chat_message_history import (
    ChatMessage,
    ChatMessageHistory,
    MessageType,
    init_chat_history_table,
)

__all__ = [
    "ChatMessage",
    "ChatMessageHistory",
    "MessageType",
    "init_chat_history_table",
]
