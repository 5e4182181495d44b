"""Content transfer from the chat platform into durable object storage."""
from .object_store import InMemoryObjectStore, ObjectStore, S3ObjectStore, StoredObject
from .service import ContentTransfer

__all__ = [
    "ContentTransfer",
    "InMemoryObjectStore",
    "ObjectStore",
    "S3ObjectStore",
    "StoredObject",
]
