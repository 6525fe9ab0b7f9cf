"""
tmbridge Store Layer

Concept, mapping and ValueSet query interfaces with in-memory and PostgreSQL
backends, plus FHIR/CSV loading.
"""

from tmbridge.store.base import (
    ConceptStore,
    MappingEdge,
    MappingStore,
    TerminologyStore,
    ValueSetStore,
    flatten_edges,
)
from tmbridge.store.memory import InMemoryTerminologyStore
from tmbridge.store.postgres import PostgresTerminologyStore
from tmbridge.store.clients import close_store, init_store

__all__ = [
    "ConceptStore",
    "MappingEdge",
    "MappingStore",
    "TerminologyStore",
    "ValueSetStore",
    "flatten_edges",
    "InMemoryTerminologyStore",
    "PostgresTerminologyStore",
    "init_store",
    "close_store",
]
