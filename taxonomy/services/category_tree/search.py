from __future__ import annotations

import unicodedata

from taxonomy.models.category import CategoryNode
from taxonomy.services.category_tree.builder import copy_forest


PATH_SEPARATOR = " / "


def normalize_search_text(value: str | None) -> str:
    norm = unicodedata.normalize("NFKD", str(value or ""))
    stripped = "".join(ch for ch in norm if not unicodedata.combining(ch))
    return stripped.casefold().strip()


def node_matches(node: CategoryNode, term: str) -> bool:
    """``term`` must already be normalized."""
    if not term:
        return True
    haystacks = (node.name, node.slug, PATH_SEPARATOR.join(node.path))
    return any(term in normalize_search_text(text) for text in haystacks)


def filter_tree(forest: list[CategoryNode], query: str | None) -> list[CategoryNode]:
    """Smallest sub-forest holding every match plus the ancestors leading to it.

    Returns new nodes; the input forest is left untouched. A blank query keeps
    everything.
    """
    term = normalize_search_text(query)
    if not term:
        return copy_forest(forest)

    kept: dict[int, CategoryNode | None] = {}
    stack: list[tuple[CategoryNode, bool]] = [(node, False) for node in reversed(forest)]
    while stack:
        node, children_done = stack.pop()
        if not children_done:
            stack.append((node, True))
            for child in reversed(node.children):
                stack.append((child, False))
            continue
        children = [kept[id(child)] for child in node.children if kept.get(id(child)) is not None]
        if children or node_matches(node, term):
            kept[id(node)] = node.copy(children=children)
        else:
            kept[id(node)] = None
    return [kept[id(node)] for node in forest if kept.get(id(node)) is not None]


def prune_inactive(forest: list[CategoryNode]) -> list[CategoryNode]:
    """Storefront view: inactive categories disappear together with their subtree."""
    active = [node for node in forest if node.status]
    roots = [node.copy() for node in active]
    stack = list(zip(active, roots))
    while stack:
        source, target = stack.pop()
        for child in source.children:
            if not child.status:
                continue
            child_copy = child.copy()
            target.children.append(child_copy)
            stack.append((child, child_copy))
    return roots
