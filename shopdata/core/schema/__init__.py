"""
Schema introspection, versioning and caching.
"""

from shopdata.core.schema.cache import SchemaService, schema_service
from shopdata.core.schema.hashing import compute_schema_hash
from shopdata.core.schema.processors import (
    SchemaProcessor,
    get_processor,
    process_schema,
    register_processor,
)

__all__ = [
    "SchemaService",
    "schema_service",
    "compute_schema_hash",
    "SchemaProcessor",
    "get_processor",
    "process_schema",
    "register_processor",
]
