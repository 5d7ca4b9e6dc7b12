from __future__ import annotations

from taxonomy.models.category import CategoryMutation, CategoryNode
from taxonomy.services.category_tree.builder import (
    CategoryTree,
    assign_paths,
    collect_descendant_ids,
    sort_siblings,
)
from taxonomy.services.category_tree.errors import ReparentError


def can_reparent(tree: CategoryTree, node_id: int, new_parent_id: int | None) -> ReparentError | None:
    """Return the reason a move is illegal, or ``None`` when it may be applied.

    Only the moved node's subtree is walked; the target is looked up in the index.
    """
    node = tree.get(node_id)
    if node is None:
        return ReparentError(
            code="NODE_NOT_FOUND",
            message=f"Category {node_id} not found",
            status=404,
            node_id=node_id,
            parent_id=new_parent_id,
        )
    if new_parent_id is None:
        return None
    if int(new_parent_id) == int(node_id):
        return ReparentError(
            code="SELF_PARENT",
            message="A category cannot be its own parent",
            node_id=node_id,
            parent_id=new_parent_id,
        )
    if int(new_parent_id) in collect_descendant_ids(node):
        return ReparentError(
            code="CYCLE",
            message="The new parent is a subcategory of the category being moved",
            node_id=node_id,
            parent_id=new_parent_id,
        )
    if tree.get(new_parent_id) is None:
        return ReparentError(
            code="PARENT_NOT_FOUND",
            message=f"Parent category {new_parent_id} not found",
            status=404,
            node_id=node_id,
            parent_id=new_parent_id,
        )
    return None


def subtree_height(node: CategoryNode) -> int:
    """Levels below ``node``; a leaf has height 0."""
    height = 0
    stack = [(node, 0)]
    while stack:
        current, level = stack.pop()
        if level > height:
            height = level
        for child in current.children:
            stack.append((child, level + 1))
    return height


def _detach(tree: CategoryTree, node: CategoryNode) -> None:
    siblings = tree.siblings_for(node.parent_id)
    siblings[:] = [item for item in siblings if item is not node]


def move_category(
    tree: CategoryTree,
    node_id: int,
    new_parent_id: int | None,
    *,
    position: int | None = None,
) -> CategoryMutation:
    """Relink ``node_id`` under ``new_parent_id`` and regenerate paths of its subtree.

    ``position`` replaces the node's ordering hint when given.
    """
    error = can_reparent(tree, node_id, new_parent_id)
    if error is not None:
        raise error

    node = tree.require(node_id)
    _detach(tree, node)
    node.parent_id = int(new_parent_id) if new_parent_id is not None else None
    if position is not None:
        node.position = int(position)

    siblings = tree.siblings_for(node.parent_id)
    siblings.append(node)
    sort_siblings(siblings)

    parent = tree.get(node.parent_id)
    assign_paths([node], parent.path if parent is not None else [])
    return CategoryMutation(
        kind="move",
        category_id=int(node.id),
        fields={"parent_id": node.parent_id, "position": node.position},
    )
