"""
GraphQL introspection query and type-reference helpers.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from shopdata.core.errors import InvalidSchemaError
from shopdata.core.pagination import GraphQLRequester

logger = logging.getLogger(__name__)

# Four levels of ofType cover wrappers like [Type!]! on every field and arg.
_TYPE_REF = """
kind
name
ofType {
  kind
  name
  ofType {
    kind
    name
    ofType {
      kind
      name
    }
  }
}
"""

INTROSPECTION_QUERY = f"""
query IntrospectionQuery {{
  __schema {{
    queryType {{
      name
    }}
    types {{
      kind
      name
      description
      fields {{
        name
        description
        args {{
          name
          description
          type {{ {_TYPE_REF} }}
        }}
        type {{ {_TYPE_REF} }}
      }}
    }}
  }}
}}
"""

WRAPPER_KINDS = ("NON_NULL", "LIST")


def deep_type_name(type_ref: Optional[dict[str, Any]]) -> str:
    """Name of the named type under any NON_NULL/LIST wrappers."""
    current = type_ref
    while current and current.get("kind") in WRAPPER_KINDS:
        current = current.get("ofType")
    if not current:
        return "Unknown"
    return current.get("name") or "Unknown"


def is_list_type(type_ref: Optional[dict[str, Any]]) -> bool:
    current = type_ref
    while current and current.get("kind") == "NON_NULL":
        current = current.get("ofType")
    return bool(current) and current.get("kind") == "LIST"


def is_non_null_type(type_ref: Optional[dict[str, Any]]) -> bool:
    return bool(type_ref) and type_ref.get("kind") == "NON_NULL"


def render_type_ref(type_ref: Optional[dict[str, Any]]) -> str:
    """SDL-style signature, e.g. ``[ProductVariant!]!``."""
    if not type_ref:
        return "Unknown"
    kind = type_ref.get("kind")
    if kind == "NON_NULL":
        return f"{render_type_ref(type_ref.get('ofType'))}!"
    if kind == "LIST":
        return f"[{render_type_ref(type_ref.get('ofType'))}]"
    return type_ref.get("name") or "Unknown"


def schema_types(raw: dict[str, Any]) -> list[dict[str, Any]]:
    try:
        return list(raw["__schema"]["types"])
    except (KeyError, TypeError) as e:
        raise InvalidSchemaError("Introspection result has no __schema.types") from e


def query_type_name(raw: dict[str, Any]) -> str:
    try:
        return raw["__schema"]["queryType"]["name"]
    except (KeyError, TypeError) as e:
        raise InvalidSchemaError("Introspection result has no queryType") from e


async def fetch_introspection(client: GraphQLRequester) -> dict[str, Any]:
    """Run the introspection query; the result is the raw `data` object."""
    data = await client.post(INTROSPECTION_QUERY)
    schema_types(data)
    logger.info(
        "Introspection returned %d types", len(data["__schema"]["types"])
    )
    return data
