"""
Cursor pagination rewriting for GraphQL documents.

Parses a stored query, finds its connection field and makes sure that field is
driven by `$first` / `$after`. Variables and arguments are merged into the
AST rather than spliced into the text, so nested braces, aliases, fragments and
multiple connections do not confuse the rewrite.
"""

from __future__ import annotations

import logging
from copy import copy
from dataclasses import dataclass, field, is_dataclass, replace
from typing import Any, Iterator, Optional

from graphql import (
    ArgumentNode,
    DocumentNode,
    FieldNode,
    FragmentDefinitionNode,
    FragmentSpreadNode,
    GraphQLSyntaxError,
    InlineFragmentNode,
    NamedTypeNode,
    NameNode,
    Node,
    OperationDefinitionNode,
    OperationType,
    SelectionSetNode,
    VariableDefinitionNode,
    VariableNode,
    Visitor,
    parse,
    print_ast,
    visit,
)

from shopdata.core.errors import QueryRewriteError

logger = logging.getLogger(__name__)

FIRST = "first"
AFTER = "after"

_VARIABLE_TYPES = {FIRST: "Int", AFTER: "String"}


@dataclass(frozen=True)
class PaginatedQuery:
    """A document ready for cursor pagination."""

    query: str
    connection_path: tuple[str, ...]
    # Variables the document actually consumes; only these are sent.
    variables: frozenset[str] = field(default_factory=frozenset)
    rewritten: bool = False

    @property
    def connection_field(self) -> str:
        return self.connection_path[-1]


def _response_key(node: FieldNode) -> str:
    return node.alias.value if node.alias else node.name.value


def _selects(node: FieldNode, name: str) -> bool:
    if node.selection_set is None:
        return False
    return any(
        isinstance(sel, FieldNode) and sel.name.value == name
        for sel in node.selection_set.selections
    )


def _walk_fields(
    selection_set: Optional[SelectionSetNode],
    fragments: dict[str, FragmentDefinitionNode],
    path: tuple[str, ...] = (),
    seen: frozenset[str] = frozenset(),
) -> Iterator[tuple[FieldNode, tuple[str, ...]]]:
    """Depth-first, pre-order walk yielding (field, response path)."""
    if selection_set is None:
        return
    for selection in selection_set.selections:
        if isinstance(selection, FieldNode):
            field_path = path + (_response_key(selection),)
            yield selection, field_path
            yield from _walk_fields(selection.selection_set, fragments, field_path, seen)
        elif isinstance(selection, InlineFragmentNode):
            yield from _walk_fields(selection.selection_set, fragments, path, seen)
        elif isinstance(selection, FragmentSpreadNode):
            name = selection.name.value
            fragment = fragments.get(name)
            if fragment is not None and name not in seen:
                yield from _walk_fields(
                    fragment.selection_set, fragments, path, seen | {name}
                )


def _find_connection(
    operation: OperationDefinitionNode,
    fragments: dict[str, FragmentDefinitionNode],
    connection_field: Optional[str],
) -> tuple[FieldNode, tuple[str, ...]]:
    candidates = list(_walk_fields(operation.selection_set, fragments))

    if connection_field:
        for node, path in candidates:
            if node.name.value == connection_field and node.selection_set is not None:
                return node, path
        logger.debug(
            "Connection field %r not in document, falling back to edges search",
            connection_field,
        )

    for node, path in candidates:
        if _selects(node, "edges"):
            return node, path

    raise QueryRewriteError(
        "Query has no connection field (a field selecting `edges`) to paginate"
    )


def _argument(node: FieldNode, name: str) -> Optional[ArgumentNode]:
    for arg in node.arguments or ():
        if arg.name.value == name:
            return arg
    return None


def _variable_definition(name: str) -> VariableDefinitionNode:
    return VariableDefinitionNode(
        variable=VariableNode(name=NameNode(value=name)),
        type=NamedTypeNode(name=NameNode(value=_VARIABLE_TYPES[name])),
        default_value=None,
        directives=(),
    )


def _variable_argument(name: str) -> ArgumentNode:
    return ArgumentNode(
        name=NameNode(value=name),
        value=VariableNode(name=NameNode(value=name)),
    )


def _rebuilt(node: Node, **changes: Any) -> Node:
    """Copy of `node` with `changes` applied; AST nodes are not edited in place."""
    if is_dataclass(node):
        return replace(node, **changes)
    clone = copy(node)
    for key, value in changes.items():
        setattr(clone, key, value)
    return clone


class _PaginationArgumentsVisitor(Visitor):
    """Swaps in the connection field and operation with the merged pagination nodes."""

    def __init__(
        self,
        operation: OperationDefinitionNode,
        connection: FieldNode,
        new_args: list[ArgumentNode],
        new_defs: list[VariableDefinitionNode],
    ):
        super().__init__()
        self.operation = operation
        self.connection = connection
        self.new_args = new_args
        self.new_defs = new_defs

    def enter_operation_definition(self, node: OperationDefinitionNode, *_args: Any):
        if node is not self.operation or not self.new_defs:
            return None
        return _rebuilt(
            node,
            variable_definitions=tuple(node.variable_definitions or ())
            + tuple(self.new_defs),
        )

    def enter_field(self, node: FieldNode, *_args: Any):
        if node is not self.connection or not self.new_args:
            return None
        return _rebuilt(
            node, arguments=tuple(node.arguments or ()) + tuple(self.new_args)
        )


def prepare_paginated_query(
    query: str, connection_field: Optional[str] = None
) -> PaginatedQuery:
    """
    Bind the connection field's `first`/`after` arguments to `$first`/`$after`.

    - Missing variable definitions are added to the operation signature.
    - Missing arguments are merged into the connection field's arguments.
    - A literal `first: N` is kept (the server page size then wins).
    - A `first`/`after` bound to any other variable name, or a literal
      `after`, is ambiguous and rejected.

    Raises:
        QueryRewriteError: on syntax errors or ambiguous pagination.
    """
    try:
        document: DocumentNode = parse(query)
    except GraphQLSyntaxError as e:
        raise QueryRewriteError(f"Invalid GraphQL query: {e.message}") from e

    operations = [
        d for d in document.definitions if isinstance(d, OperationDefinitionNode)
    ]
    if not operations:
        raise QueryRewriteError("GraphQL document contains no operation")
    operation = operations[0]
    if operation.operation != OperationType.QUERY:
        raise QueryRewriteError(
            f"Only query operations can be paginated, got {operation.operation.value}"
        )

    fragments = {
        d.name.value: d
        for d in document.definitions
        if isinstance(d, FragmentDefinitionNode)
    }
    connection, path = _find_connection(operation, fragments, connection_field)

    used: set[str] = set()
    new_args: list[ArgumentNode] = []
    for name in (FIRST, AFTER):
        existing = _argument(connection, name)
        if existing is None:
            new_args.append(_variable_argument(name))
            used.add(name)
            continue
        value = existing.value
        if isinstance(value, VariableNode):
            if value.name.value != name:
                raise QueryRewriteError(
                    f"Ambiguous pagination variables: `{name}` on "
                    f"`{connection.name.value}` is bound to ${value.name.value}, "
                    f"expected ${name}"
                )
            used.add(name)
        elif name == AFTER:
            raise QueryRewriteError(
                f"`after` on `{connection.name.value}` is a literal; "
                "cursor pagination needs it to be $after"
            )

    declared = {
        v.variable.name.value for v in operation.variable_definitions or ()
    }
    new_defs = [
        _variable_definition(n)
        for n in (FIRST, AFTER)
        if n in used and n not in declared
    ]

    if not new_args and not new_defs:
        return PaginatedQuery(
            query=query, connection_path=path, variables=frozenset(used)
        )

    document = visit(
        document,
        _PaginationArgumentsVisitor(operation, connection, new_args, new_defs),
    )
    rewritten = print_ast(document)
    logger.debug(
        "Rewrote query for pagination on %s (+args=%s, +vars=%s)",
        ".".join(path),
        [a.name.value for a in new_args],
        [d.variable.name.value for d in new_defs],
    )
    return PaginatedQuery(
        query=rewritten,
        connection_path=path,
        variables=frozenset(used),
        rewritten=True,
    )
