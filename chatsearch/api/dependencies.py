"""FastAPI dependencies resolving services from the application state."""

from fastapi import Request

from chatsearch.container import ServiceContainer
from chatsearch.exceptions import ConfigurationError
from chatsearch.ingestion.indexer import MessageIndexer
from chatsearch.messages.store import MessageStore
from chatsearch.search.orchestrator import SearchOrchestrator
from chatsearch.vectorstore.index import VectorIndex


def get_container(request: Request) -> ServiceContainer:
    """Container attached to the running application.

    Raises:
        ConfigurationError: Services were not wired (startup did not run).
    """
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise ConfigurationError("Search services are not configured")
    return container


def get_store(request: Request) -> MessageStore:
    return get_container(request).store


def get_orchestrator(request: Request) -> SearchOrchestrator:
    return get_container(request).orchestrator


def get_index(request: Request) -> VectorIndex:
    return get_container(request).index


def get_indexer(request: Request) -> MessageIndexer:
    return get_container(request).indexer
