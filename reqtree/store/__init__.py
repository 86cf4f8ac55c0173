"""Document store gateway: collections, atomic batches, and live subscriptions."""

from reqtree.store.gateway import SERVER_TIMESTAMP, ArrayAppend, DocumentStore, WriteBatch

__all__ = ["SERVER_TIMESTAMP", "ArrayAppend", "DocumentStore", "WriteBatch"]
