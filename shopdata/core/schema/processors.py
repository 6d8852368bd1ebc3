"""
Provider schema processors.

A processor turns a provider's raw schema into `{rootResources, objectTypes,
metadata}`. Processors register themselves by provider name; unknown
providers fall back to the generic GraphQL processor.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Callable, Iterable, Optional, TypeVar

from shopdata.core.errors import InvalidSchemaError
from shopdata.core.schema.introspection import (
    deep_type_name,
    is_list_type,
    is_non_null_type,
    query_type_name,
    schema_types,
)
from shopdata.models import (
    FieldCategory,
    ObjectField,
    ObjectType,
    ProcessedSchema,
    RootResource,
)

logger = logging.getLogger(__name__)

GENERIC_PROVIDER = "graphql"

_KIND_CATEGORIES = {
    "OBJECT": FieldCategory.OBJECT,
    "INTERFACE": FieldCategory.INTERFACE,
    "UNION": FieldCategory.INTERFACE,
    "ENUM": FieldCategory.ENUM,
}


class TypeMap:
    """Name -> type lookup over an introspection result."""

    def __init__(self, raw: dict[str, Any]):
        self.types: dict[str, dict[str, Any]] = {
            t["name"]: t for t in schema_types(raw) if t.get("name")
        }
        name = query_type_name(raw)
        self.query_type = self.types.get(name)
        if not self.query_type or not self.query_type.get("fields"):
            raise InvalidSchemaError("Invalid schema: Query type not found")

    def get(self, name: Optional[str]) -> Optional[dict[str, Any]]:
        return self.types.get(name) if name else None

    def field(self, type_name: Optional[str], field_name: str) -> Optional[dict[str, Any]]:
        t = self.get(type_name)
        for f in (t or {}).get("fields") or []:
            if f.get("name") == field_name:
                return f
        return None

    def is_connection(self, type_name: Optional[str]) -> bool:
        t = self.get(type_name)
        if not t or not (t.get("name") or "").endswith("Connection"):
            return False
        names = {f.get("name") for f in t.get("fields") or []}
        return "edges" in names and "pageInfo" in names

    def connection_node_type(self, connection_name: str) -> Optional[str]:
        edges = self.field(connection_name, "edges")
        if edges is None:
            return None
        node = self.field(deep_type_name(edges.get("type")), "node")
        return deep_type_name(node.get("type")) if node else None

    def category(self, type_name: str) -> FieldCategory:
        t = self.get(type_name)
        if t is None:
            return FieldCategory.SCALAR
        return _KIND_CATEGORIES.get(t.get("kind") or "", FieldCategory.SCALAR)

    def object_type(self, name: str) -> ObjectType:
        t = self.types[name]
        fields = []
        for f in t.get("fields") or []:
            type_name = deep_type_name(f.get("type"))
            fields.append(
                ObjectField(
                    name=f["name"],
                    type=type_name,
                    category=self.category(type_name),
                    is_list=is_list_type(f.get("type")),
                    is_non_null=is_non_null_type(f.get("type")),
                    description=f.get("description"),
                )
            )
        return ObjectType(
            name=name,
            kind=t.get("kind") or "OBJECT",
            description=t.get("description"),
            fields=fields,
        )


def _is_user_type(t: dict[str, Any]) -> bool:
    return not (t.get("name") or "").startswith("__")


class SchemaProcessor(ABC):
    provider: str = GENERIC_PROVIDER

    def process_schema(self, raw: dict[str, Any]) -> ProcessedSchema:
        started = time.perf_counter()
        processed = self._process(raw)
        processed.metadata.update(
            {
                "processor": self.provider,
                "typeCount": len(processed.object_types),
                "resourceCount": len(processed.root_resources),
                "processingTimeMs": int((time.perf_counter() - started) * 1000),
            }
        )
        logger.info(
            "%s processor: %d resources, %d object types",
            self.provider,
            len(processed.root_resources),
            len(processed.object_types),
        )
        return processed

    @abstractmethod
    def _process(self, raw: dict[str, Any]) -> ProcessedSchema: ...


_PROCESSORS: dict[str, SchemaProcessor] = {}

P = TypeVar("P", bound=type[SchemaProcessor])


def register_processor(provider: str) -> Callable[[P], P]:
    def decorator(cls: P) -> P:
        cls.provider = provider
        _PROCESSORS[provider] = cls()
        return cls

    return decorator


def get_processor(provider: Optional[str]) -> SchemaProcessor:
    key = (provider or "").strip().lower()
    processor = _PROCESSORS.get(key)
    if processor is None:
        logger.debug("No schema processor for %r, using generic", provider)
        processor = _PROCESSORS[GENERIC_PROVIDER]
    return processor


def registered_providers() -> list[str]:
    return sorted(_PROCESSORS)


def _reachable_types(types: TypeMap, roots: Iterable[str]) -> list[str]:
    """Object/interface types reachable from `roots`, in discovery order."""
    seen: dict[str, None] = {}
    queue = deque(r for r in roots if r)
    while queue:
        name = queue.popleft()
        if name in seen:
            continue
        t = types.get(name)
        if not t or t.get("kind") not in ("OBJECT", "INTERFACE") or not _is_user_type(t):
            continue
        if not t.get("fields"):
            continue
        seen[name] = None
        for f in t.get("fields") or []:
            child = deep_type_name(f.get("type"))
            if child not in seen:
                queue.append(child)
    return list(seen)


@register_processor("shopify")
class ShopifySchemaProcessor(SchemaProcessor):
    """
    Root resources are the Query fields returning a `*Connection` type; object
    types are only those reachable from a resource's node type, since the full
    Admin API schema is very large.
    """

    QUERY_DEPTH = 3

    def _process(self, raw: dict[str, Any]) -> ProcessedSchema:
        types = TypeMap(raw)

        resources: list[RootResource] = []
        for f in types.query_type.get("fields") or []:
            type_name = deep_type_name(f.get("type"))
            if not types.is_connection(type_name):
                continue
            node_type = types.connection_node_type(type_name)
            if not node_type:
                continue
            resources.append(
                RootResource(
                    name=f["name"],
                    type=type_name,
                    node_type=node_type,
                    is_connection=True,
                    query_depth=self.QUERY_DEPTH,
                    description=f.get("description"),
                )
            )

        reachable = _reachable_types(types, (r.node_type for r in resources))
        return ProcessedSchema(
            root_resources=resources,
            object_types={name: types.object_type(name) for name in reachable},
        )


@register_processor(GENERIC_PROVIDER)
class GenericGraphQLSchemaProcessor(SchemaProcessor):
    """Every Query field returning a composite type; every user object type."""

    def _process(self, raw: dict[str, Any]) -> ProcessedSchema:
        types = TypeMap(raw)

        resources: list[RootResource] = []
        for f in types.query_type.get("fields") or []:
            type_name = deep_type_name(f.get("type"))
            if types.category(type_name) is FieldCategory.SCALAR:
                continue
            if types.category(type_name) is FieldCategory.ENUM:
                continue
            is_connection = types.is_connection(type_name)
            resources.append(
                RootResource(
                    name=f["name"],
                    type=type_name,
                    node_type=types.connection_node_type(type_name)
                    if is_connection
                    else type_name,
                    is_connection=is_connection,
                    query_depth=3 if is_connection else 2,
                    description=f.get("description"),
                )
            )

        object_types = {
            name: types.object_type(name)
            for name, t in types.types.items()
            if t.get("kind") == "OBJECT" and _is_user_type(t) and t.get("fields")
        }
        return ProcessedSchema(root_resources=resources, object_types=object_types)


@register_processor("woocommerce")
class WooCommerceSchemaProcessor(GenericGraphQLSchemaProcessor):
    """WPGraphQL schemas follow the generic shape."""

    def _process(self, raw: dict[str, Any]) -> ProcessedSchema:
        processed = super()._process(raw)
        processed.metadata["platform"] = "woocommerce"
        return processed


_REST_SCALARS = {"string", "integer", "number", "boolean", "date", "datetime", "float"}


@register_processor("rest")
class RestSchemaProcessor(SchemaProcessor):
    """
    REST sources describe themselves as
    ``{"resources": [{"name", "path", "fields": {name: type}}]}``.
    """

    def _process(self, raw: dict[str, Any]) -> ProcessedSchema:
        resources_raw = raw.get("resources")
        if not isinstance(resources_raw, list):
            raise InvalidSchemaError("REST schema has no resources list")

        names = {r.get("name") for r in resources_raw if isinstance(r, dict)}
        resources: list[RootResource] = []
        object_types: dict[str, ObjectType] = {}

        for r in resources_raw:
            if not isinstance(r, dict) or not r.get("name"):
                continue
            name = r["name"]
            resources.append(
                RootResource(
                    name=name,
                    type=name,
                    node_type=name,
                    is_connection=False,
                    query_depth=1,
                    description=r.get("description"),
                    path=r.get("path"),
                )
            )
            fields = []
            for field_name, field_type in (r.get("fields") or {}).items():
                type_str = str(field_type)
                is_list = type_str.startswith("array")
                base = type_str.split(":", 1)[1] if is_list and ":" in type_str else type_str
                if base in names:
                    category = FieldCategory.OBJECT
                else:
                    category = FieldCategory.SCALAR
                fields.append(
                    ObjectField(
                        name=field_name,
                        type=base if base.lower() not in _REST_SCALARS else base.lower(),
                        category=category,
                        is_list=is_list,
                    )
                )
            object_types[name] = ObjectType(
                name=name, description=r.get("description"), fields=fields
            )

        return ProcessedSchema(root_resources=resources, object_types=object_types)


def process_schema(provider: Optional[str], raw: dict[str, Any]) -> ProcessedSchema:
    return get_processor(provider).process_schema(raw)
