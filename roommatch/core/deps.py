from roommatch.services.embedding_store import EmbeddingStore, get_embedding_store


def get_store() -> EmbeddingStore:
    """FastAPI dependency; overridden in tests with a store on a fake provider."""
    return get_embedding_store()
