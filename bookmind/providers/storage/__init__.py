"""SQLite persistence adapters (documents, chat transcripts, jobs)."""

from bookmind.providers.storage.sqlite_chat_repository import SQLiteChatRepository
from bookmind.providers.storage.sqlite_document_repository import SQLiteDocumentRepository
from bookmind.providers.storage.sqlite_job_store import SQLiteJobStore

__all__ = ["SQLiteChatRepository", "SQLiteDocumentRepository", "SQLiteJobStore"]
