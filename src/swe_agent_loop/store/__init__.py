from swe_agent_loop.store.blob_store import BlobStore, FileBlobStore
from swe_agent_loop.store.content_codec import ContentOffloadCodec
from swe_agent_loop.store.database import Database
from swe_agent_loop.store.message_store import MessageStore, format_sequence_key
from swe_agent_loop.store.models import MessageRecord, MessageType, TokenLedgerEntry, TokenUsage
from swe_agent_loop.store.token_ledger import TokenLedger

__all__ = [
    "BlobStore",
    "ContentOffloadCodec",
    "Database",
    "FileBlobStore",
    "MessageRecord",
    "MessageStore",
    "MessageType",
    "TokenLedger",
    "TokenLedgerEntry",
    "TokenUsage",
    "format_sequence_key",
]
