"""
Durable chat message history stored in a PostgreSQL table.

One table holds many sessions; each row is one message:

    id SERIAL, session_id TEXT, data JSONB, type TEXT, timestamp TIMESTAMPTZ

Message content is stored JSON-encoded in ``data``. Destructive calls
(``clear``, ``set_messages``) are refused unless the history was built
with ``overwrite=True``.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

import structlog

from cloudpg.observability.metrics import get_metrics
from cloudpg.storage.database import Database
from cloudpg.vectorstore.errors import (
    ConfigurationError,
    OverwriteRequiredError,
    QueryFailedError,
    ResultDecodeError,
)
from cloudpg.vectorstore.sql import is_valid_identifier, qualified_name

logger = structlog.get_logger(__name__)

REQUIRED_COLUMNS = ("id", "session_id", "data", "type")


class MessageType(str, Enum):
    """Author of a chat message."""

    AI = "ai"
    HUMAN = "human"
    SYSTEM = "system"


@dataclass
class ChatMessage:
    """A single chat turn."""

    type: MessageType
    content: str
    timestamp: datetime | None = None


async def init_chat_history_table(
    database: Database,
    table_name: str,
    schema_name: str = "public",
) -> None:
    """
    Create a chat history table if it does not exist.

    Raises:
        ConfigurationError: invalid table or schema name
        QueryFailedError: the DDL failed
    """
    if not is_valid_identifier(table_name) or not is_valid_identifier(schema_name):
        raise ConfigurationError(
            f"Invalid table {schema_name!r}.{table_name!r}",
            operation="init_chat_history_table",
            table=table_name,
        )

    create_sql = f"""
        CREATE TABLE IF NOT EXISTS {qualified_name(schema_name, table_name)} (
            id SERIAL PRIMARY KEY,
            session_id TEXT NOT NULL,
            data JSONB NOT NULL,
            type TEXT NOT NULL,
            timestamp TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """
    try:
        await database.execute(create_sql)
    except Exception as e:
        raise QueryFailedError(
            f"Failed to create chat history table {table_name!r}: {e}",
            operation="init_chat_history_table",
            table=table_name,
        ) from e
    logger.info("Initialized chat history table", table=table_name, schema=schema_name)


class ChatMessageHistory:
    """
    Message history for one session.

    Usage:
        history = await ChatMessageHistory.create(db, "chat_history", "session-1")
        await history.add_user_message("hi")
        await history.add_ai_message("hello!")
        messages = await history.messages()
    """

    def __init__(
        self,
        database: Database,
        table_name: str,
        session_id: str,
        schema_name: str = "public",
        overwrite: bool = False,
    ):
        """
        Initialize the history without touching the database.

        Use ``create()`` to also validate the table layout.

        Raises:
            ConfigurationError: a required input is missing or invalid
        """
        if database is None:
            raise ConfigurationError("A database handle is required", operation="init")
        if not table_name or not is_valid_identifier(table_name):
            raise ConfigurationError(
                f"Invalid table name: {table_name!r}", operation="init", table=table_name or None
            )
        if not is_valid_identifier(schema_name):
            raise ConfigurationError(
                f"Invalid schema name: {schema_name!r}", operation="init", table=table_name
            )
        if not session_id:
            raise ConfigurationError("A session id is required", operation="init", table=table_name)

        self._db = database
        self._table = table_name
        self._schema = schema_name
        self._session_id = session_id
        self._overwrite = overwrite

    @classmethod
    async def create(
        cls,
        database: Database,
        table_name: str,
        session_id: str,
        schema_name: str = "public",
        overwrite: bool = False,
    ) -> "ChatMessageHistory":
        """Build a history and check that its table exists with the required columns."""
        history = cls(database, table_name, session_id, schema_name, overwrite)
        await history.validate_table()
        return history

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def qualified_table(self) -> str:
        return qualified_name(self._schema, self._table)

    async def validate_table(self) -> None:
        """
        Check the table exists and has id, session_id, data and type columns.

        Raises:
            ConfigurationError: the table or a required column is missing
            QueryFailedError: the catalog query failed
        """
        try:
            rows = await self._db.fetch(
                """
                SELECT column_name FROM information_schema.columns
                WHERE table_schema = $1 AND table_name = $2
                """,
                self._schema,
                self._table,
            )
        except Exception as e:
            raise QueryFailedError(
                f"Failed to inspect table {self._table!r}: {e}",
                operation="validate_table",
                table=self._table,
            ) from e
        if not rows:
            raise ConfigurationError(
                f"Table {self._table!r} does not exist in schema {self._schema!r}",
                operation="validate_table",
                table=self._table,
            )

        present = {row["column_name"] for row in rows}
        for column in REQUIRED_COLUMNS:
            if column not in present:
                raise ConfigurationError(
                    f"Column {column!r} is missing in table {self._table!r}. "
                    f"Expected columns: {list(REQUIRED_COLUMNS)}",
                    operation="validate_table",
                    table=self._table,
                    column=column,
                )

    def _insert_sql(self) -> str:
        return (
            f"INSERT INTO {self.qualified_table} (session_id, data, type) "
            f"VALUES ($1, $2::jsonb, $3)"
        )

    def _row(self, message: ChatMessage) -> tuple[Any, ...]:
        return (self._session_id, json.dumps(message.content), MessageType(message.type).value)

    async def add_message(self, message: ChatMessage) -> None:
        """Append one message to this session."""
        try:
            await self._db.execute(self._insert_sql(), *self._row(message))
        except Exception as e:
            raise QueryFailedError(
                f"Failed to add message to {self._table!r}: {e}",
                operation="add_message",
                table=self._table,
            ) from e
        get_metrics().record_chat_messages(self._table)

    async def add_user_message(self, content: str) -> None:
        await self.add_message(ChatMessage(MessageType.HUMAN, content))

    async def add_ai_message(self, content: str) -> None:
        await self.add_message(ChatMessage(MessageType.AI, content))

    async def add_messages(self, messages: list[ChatMessage]) -> None:
        """Append several messages atomically."""
        if not messages:
            return
        try:
            await self._db.executemany(self._insert_sql(), [self._row(m) for m in messages])
        except Exception as e:
            raise QueryFailedError(
                f"Failed to add {len(messages)} messages to {self._table!r}: {e}",
                operation="add_messages",
                table=self._table,
            ) from e
        get_metrics().record_chat_messages(self._table, len(messages))

    async def messages(self) -> list[ChatMessage]:
        """
        Return this session's messages in insertion order.

        Raises:
            ResultDecodeError: a row has undecodable data or an unknown type
            QueryFailedError: the SELECT failed
        """
        try:
            rows = await self._db.fetch(
                f"SELECT id, session_id, data, type, timestamp FROM {self.qualified_table} "
                f"WHERE session_id = $1 ORDER BY id",
                self._session_id,
            )
        except Exception as e:
            raise QueryFailedError(
                f"Failed to load messages for session {self._session_id!r}: {e}",
                operation="messages",
                table=self._table,
            ) from e

        result = []
        for row in rows:
            data = row["data"]
            try:
                content = json.loads(data) if isinstance(data, str) else data
            except json.JSONDecodeError as e:
                raise ResultDecodeError(
                    f"Message {row['id']} holds invalid JSON: {e}",
                    operation="messages",
                    table=self._table,
                    column="data",
                ) from e

            try:
                message_type = MessageType(row["type"])
            except ValueError as e:
                raise ResultDecodeError(
                    f"Unsupported message type: {row['type']!r}",
                    operation="messages",
                    table=self._table,
                    column="type",
                ) from e

            result.append(ChatMessage(message_type, content, row["timestamp"]))
        return result

    async def clear(self) -> None:
        """
        Delete every message in this session.

        Raises:
            OverwriteRequiredError: overwrite is not enabled; nothing is executed
        """
        self._require_overwrite("clear")
        try:
            await self._db.execute(
                f"DELETE FROM {self.qualified_table} WHERE session_id = $1",
                self._session_id,
            )
        except Exception as e:
            raise QueryFailedError(
                f"Failed to clear session {self._session_id!r}: {e}",
                operation="clear",
                table=self._table,
            ) from e
        logger.info("Cleared chat session", table=self._table, session_id=self._session_id)

    async def set_messages(self, messages: list[ChatMessage]) -> None:
        """
        Replace this session's messages in one transaction.

        Raises:
            OverwriteRequiredError: overwrite is not enabled; nothing is executed
        """
        self._require_overwrite("set_messages")
        try:
            async with self._db.transaction() as conn:
                await conn.execute(
                    f"DELETE FROM {self.qualified_table} WHERE session_id = $1",
                    self._session_id,
                )
                if messages:
                    await conn.executemany(self._insert_sql(), [self._row(m) for m in messages])
        except Exception as e:
            raise QueryFailedError(
                f"Failed to replace messages for session {self._session_id!r}: {e}",
                operation="set_messages",
                table=self._table,
            ) from e
        get_metrics().record_chat_messages(self._table, len(messages))

    def _require_overwrite(self, operation: str) -> None:
        if not self._overwrite:
            raise OverwriteRequiredError(
                f"{operation} on {self._table!r} requires overwrite to be enabled",
                operation=operation,
                table=self._table,
            )
