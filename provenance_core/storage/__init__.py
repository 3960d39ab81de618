from provenance_core.storage.base import KnowledgeStore, entity_key
from provenance_core.storage.memory import InMemoryKnowledgeStore

__all__ = ["KnowledgeStore", "InMemoryKnowledgeStore", "entity_key"]
