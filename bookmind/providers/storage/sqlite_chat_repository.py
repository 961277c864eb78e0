"""SQLite-backed chat transcript repository.

Each row is one message of a session.  ``message_index`` is assigned at
insert time inside an immediate transaction, so concurrent appends to the
same session never produce duplicate indices.
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import structlog

from bookmind.interfaces.repositories import IChatRepository
from bookmind.models.chat import Role, StoredMessage

logger = structlog.get_logger(logger_name=__name__)

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS chat_messages (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id    TEXT    NOT NULL,
    document_id   TEXT    NOT NULL,
    user_id       TEXT,
    message_index INTEGER NOT NULL,
    role          TEXT    NOT NULL,
    content       TEXT    NOT NULL,
    created_at    TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    UNIQUE(session_id, message_index)
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_chat_session ON chat_messages(session_id);",
    "CREATE INDEX IF NOT EXISTS idx_chat_doc_user ON chat_messages(document_id, user_id);",
]

_NEXT_INDEX_SQL = (
    "SELECT COALESCE(MAX(message_index) + 1, 0) FROM chat_messages WHERE session_id = ?;"
)

_INSERT_SQL = """\
INSERT INTO chat_messages (session_id, document_id, user_id, message_index, role, content)
VALUES (?, ?, ?, ?, ?, ?);
"""

_SELECT_SESSION_SQL = """\
SELECT session_id, document_id, user_id, message_index, role, content, created_at
FROM chat_messages
WHERE session_id = ?
ORDER BY message_index ASC;
"""

_LATEST_SESSION_SQL = """\
SELECT session_id FROM chat_messages
WHERE document_id = ? AND user_id = ?
ORDER BY id DESC
LIMIT 1;
"""


class SQLiteChatRepository(IChatRepository):
    """Append-only chat transcript persistence."""

    def __init__(self, db_path: str | Path = "data/bookmind.db") -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("chat_db_initialized", path=str(self._db_path))

    async def append_message(
        self,
        session_id: str,
        document_id: str,
        role: Role,
        content: str,
        user_id: str | None = None,
    ) -> StoredMessage:
        async with aiosqlite.connect(str(self._db_path), isolation_level=None) as db:
            await db.execute("BEGIN IMMEDIATE;")
            try:
                cursor = await db.execute(_NEXT_INDEX_SQL, (session_id,))
                row = await cursor.fetchone()
                index = int(row[0])
                await db.execute(
                    _INSERT_SQL,
                    (session_id, document_id, user_id, index, role.value, content),
                )
                await db.execute("COMMIT;")
            except BaseException:
                await db.execute("ROLLBACK;")
                raise
        return StoredMessage(
            session_id=session_id,
            document_id=document_id,
            user_id=user_id,
            message_index=index,
            role=role,
            content=content,
        )

    async def get_session_messages(self, session_id: str) -> list[StoredMessage]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_SESSION_SQL, (session_id,))
            rows = await cursor.fetchall()
        return [StoredMessage(**dict(r)) for r in rows]

    async def get_latest_user_session(
        self, document_id: str, user_id: str
    ) -> list[StoredMessage]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(_LATEST_SESSION_SQL, (document_id, user_id))
            row = await cursor.fetchone()
        if row is None:
            return []
        return await self.get_session_messages(row[0])
