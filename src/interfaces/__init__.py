"""Public interface definitions for the external collaborators.

The ingestion and retrieval services only talk to these abstract base
classes; concrete adapters in ``src/providers/`` are wired up in
``src/main.py``.  Tests inject fakes through the same seam.

CONCRETE PROVIDER MAP:
    Interface                  ->  Concrete implementations (in src/providers/)
    ---------------------------------------------------------------------
    IEmbeddingProvider         ->  OpenAIEmbeddingProvider
    IKnowledgeStoreProvider    ->  SQLiteKnowledgeStore
"""

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.knowledge_store_provider import IKnowledgeStoreProvider, SearchCandidate

__all__ = [
    "IEmbeddingProvider",
    "IKnowledgeStoreProvider",
    "SearchCandidate",
]
