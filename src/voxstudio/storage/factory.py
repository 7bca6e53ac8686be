"""Document store backend factory."""

from voxstudio.core.config import settings
from voxstudio.storage.base import DocumentStore
from voxstudio.storage.graph import GraphDocumentStore
from voxstudio.storage.local import local_store

_graph_store: GraphDocumentStore | None = None


def get_document_store() -> DocumentStore:
    """Return the configured document store.

    Raises:
        ValueError: If the backend is unknown or not configured
    """
    global _graph_store

    if settings.STORE_BACKEND == "local":
        return local_store

    if settings.STORE_BACKEND == "graph":
        if not settings.graph_configured:
            raise ValueError("Graph backend selected but Azure credentials are not configured")
        if _graph_store is None:
            _graph_store = GraphDocumentStore()
        return _graph_store

    raise ValueError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND}")
