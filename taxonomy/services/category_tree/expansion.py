from __future__ import annotations

from typing import Iterable

from taxonomy.models.category import CategoryFlatNode, CategoryNode
from taxonomy.services.category_tree.builder import flatten, iter_preorder
from taxonomy.services.category_tree.search import filter_tree, normalize_search_text


def initial_expansion(forest: list[CategoryNode]) -> set[int]:
    return {int(node.id) for node, _depth in iter_preorder(forest)}


def toggle_expansion(expanded: Iterable[int], node_id: int) -> set[int]:
    result = set(expanded)
    if node_id in result:
        result.discard(node_id)
    else:
        result.add(node_id)
    return result


def reconcile_expansion(
    expanded: Iterable[int],
    forest: list[CategoryNode],
    *,
    known_ids: Iterable[int] | None = None,
) -> set[int]:
    """Carry expansion state over a reload.

    Ids gone from the tree are dropped. Ids missing from ``known_ids`` (categories
    created since the previous snapshot) open expanded, like a fresh load.
    """
    current = initial_expansion(forest)
    result = set(expanded) & current
    if known_ids is not None:
        result |= current - set(known_ids)
    return result


def is_expanded(expanded: Iterable[int], node_id: int, query: str | None = "") -> bool:
    if normalize_search_text(query):
        return True
    return node_id in set(expanded)


def visible_rows(
    forest: list[CategoryNode],
    expanded: Iterable[int],
    query: str | None = "",
) -> list[CategoryFlatNode]:
    """Rows a collapsible tree shows for the given state.

    An active query shows the filtered forest fully open; the stored expansion set
    only applies once the query is cleared.
    """
    if normalize_search_text(query):
        return flatten(filter_tree(forest, query))

    open_ids = set(expanded)
    rows: list[CategoryFlatNode] = []
    stack = [(node, 0) for node in reversed(forest)]
    while stack:
        node, depth = stack.pop()
        rows.append(CategoryFlatNode.from_node(node, depth))
        if node.id not in open_ids:
            continue
        for child in reversed(node.children):
            stack.append((child, depth + 1))
    return rows
