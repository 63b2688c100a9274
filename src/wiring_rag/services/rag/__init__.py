from wiring_rag.services.rag.chain import RetrievalChain
from wiring_rag.services.rag.index_store import load_index, save_index
from wiring_rag.services.rag.memory import ConversationMemory
from wiring_rag.services.rag.pipeline import WiringAssistant, open_or_build_index
from wiring_rag.services.rag.types import IngestionSummary, SearchHit
from wiring_rag.services.rag.vector_index import IndexParams, VectorIndex, build_index

__all__ = [
    "ConversationMemory",
    "IndexParams",
    "IngestionSummary",
    "RetrievalChain",
    "SearchHit",
    "VectorIndex",
    "WiringAssistant",
    "build_index",
    "load_index",
    "open_or_build_index",
    "save_index",
]
