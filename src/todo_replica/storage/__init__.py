"""Remote store gateway contract and implementations."""

from todo_replica.storage.gateway import Document, RemoteStoreGateway
from todo_replica.storage.memory_gateway import InMemoryGateway
from todo_replica.storage.sqlite_gateway import SqliteGateway

__all__ = [
    "Document",
    "RemoteStoreGateway",
    "InMemoryGateway",
    "SqliteGateway",
]
